"""Database models for the salon booking backend.

Each model maps one collection of the salon's document store. ``to_document``
renders a row in the camelCase document shape the booking, pricing and
read-model layers consume; fields that are not set are left out so that
legacy and current record shapes stay distinguishable.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _compact(document: dict[str, object]) -> dict[str, object]:
    return {key: value for key, value in document.items() if value is not None}


APPOINTMENT_STATUSES = (
    "pending",
    "confirmed",
    "scheduled",
    "in_service",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
)

NOTIFICATION_TYPES = (
    "appointment_created",
    "appointment_confirmed",
    "appointment_cancelled",
    "appointment_rescheduled",
    "appointment_completed",
    "promotion",
    "reward",
    "welcome",
)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    middle_name = db.Column(db.String(100))
    name = db.Column(db.String(200))
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    image_url = db.Column(db.String(500))
    user_type = db.Column(
        db.Enum(
            "client",
            "stylist",
            "admin",
            name="user_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="client",
    )
    roles = db.Column(db.JSON, nullable=True, default=list)
    branch_id = db.Column(db.String(64), db.ForeignKey("branches.id"), nullable=True)
    notifications_enabled = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    password_hash = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_document(self) -> dict[str, object]:
        return _compact({
            "firstName": self.first_name,
            "lastName": self.last_name,
            "middleName": self.middle_name,
            "name": self.display_name or None,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "imageURL": self.image_url,
            "userType": self.user_type,
            "roles": list(self.roles or []),
            "branchId": self.branch_id,
            "notificationsEnabled": bool(self.notifications_enabled),
            "isActive": bool(self.is_active),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        })

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.display_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "userType": self.user_type,
            "branchId": self.branch_id,
        }


class Branch(db.Model):
    __tablename__ = "branches"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    hours = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name or "Unknown Branch",
            "address": self.address or "Address not available",
            "phone": self.phone or "Phone not available",
            "hours": self.hours or "Hours not available",
            "isActive": bool(self.is_active),
        }


class Service(db.Model):
    """Catalog services; ``branches``/``prices`` are parallel per-branch price lists."""

    __tablename__ = "services"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float)
    duration = db.Column(db.Integer)
    branches = db.Column(db.JSON, nullable=True)
    prices = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_document(self) -> dict[str, object]:
        return _compact({
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "duration": self.duration,
            "branches": self.branches,
            "prices": self.prices,
            "isActive": bool(self.is_active),
        })


class Appointment(db.Model):
    """Client appointments.

    Rows written by the booking flow use the current shape
    (``service_stylist_pairs`` plus ``appointment_date``/``appointment_time``).
    The single service/stylist columns and the ``date``/``time`` pair belong
    to historic records and are only read.
    """

    __tablename__ = "appointments"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    branch_id = db.Column(db.String(64))
    appointment_date = db.Column(db.String(10))
    appointment_time = db.Column(db.String(5))
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    notes = db.Column(db.Text)
    total_price = db.Column(db.Float)
    service_stylist_pairs = db.Column(db.JSON, nullable=True)
    history = db.Column(db.JSON, nullable=True)
    client_name = db.Column(db.String(200))
    client_email = db.Column(db.String(255))
    client_phone = db.Column(db.String(30))
    created_by = db.Column(db.String(64))
    reschedule_notes = db.Column(db.Text)
    cancellation_reason = db.Column(db.Text)
    cancelled_at = db.Column(db.DateTime)
    version = db.Column(db.Integer, nullable=False, default=1)

    # Historic single-service shape
    service_id = db.Column(db.String(64))
    stylist_id = db.Column(db.String(64))
    date = db.Column(db.String(32))
    time = db.Column(db.String(8))
    start_time = db.Column(db.String(8))
    end_time = db.Column(db.String(8))
    total_cost = db.Column(db.Float)
    final_price = db.Column(db.Float)
    price = db.Column(db.Float)
    services = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __mapper_args__ = {"version_id_col": version}

    def to_document(self) -> dict[str, object]:
        return _compact({
            "clientId": self.client_id,
            "branchId": self.branch_id,
            "appointmentDate": self.appointment_date,
            "appointmentTime": self.appointment_time,
            "status": self.status,
            "notes": self.notes,
            "totalPrice": self.total_price,
            "serviceStylistPairs": self.service_stylist_pairs,
            "history": self.history,
            "clientName": self.client_name,
            "clientEmail": self.client_email,
            "clientPhone": self.client_phone,
            "createdBy": self.created_by,
            "rescheduleNotes": self.reschedule_notes,
            "cancellationReason": self.cancellation_reason,
            "cancelledAt": _iso(self.cancelled_at),
            "version": self.version,
            "serviceId": self.service_id,
            "stylistId": self.stylist_id,
            "date": self.date,
            "time": self.time,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "totalCost": self.total_cost,
            "finalPrice": self.final_price,
            "price": self.price,
            "services": self.services,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        })


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    recipient_id = db.Column(db.String(64), nullable=False, index=True)
    recipient_role = db.Column(db.String(30))
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(
        db.Enum(
            *NOTIFICATION_TYPES,
            name="notification_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    appointment_id = db.Column(db.String(64))
    appointment_date = db.Column(db.String(10))
    appointment_time = db.Column(db.String(5))
    client_name = db.Column(db.String(200))
    stylist_name = db.Column(db.String(200))
    branch_name = db.Column(db.String(150))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.notification_type,
            "isRead": bool(self.is_read),
            "recipientId": self.recipient_id,
            "recipientRole": self.recipient_role,
            "appointmentId": self.appointment_id,
            "appointmentDate": self.appointment_date,
            "appointmentTime": self.appointment_time,
            "clientName": self.client_name,
            "stylistName": self.stylist_name,
            "branchName": self.branch_name,
            "createdAt": _iso(self.created_at),
        }


class Transaction(db.Model):
    """Point-of-sale records written by the front desk; read-only here."""

    __tablename__ = "transactions"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    branch_id = db.Column(db.String(64))
    appointment_id = db.Column(db.String(64))
    payment_method = db.Column(db.String(50))
    amount_received = db.Column(db.Float)
    change = db.Column(db.Float)
    discount = db.Column(db.Float)
    loyalty_earned = db.Column(db.Integer)
    subtotal = db.Column(db.Float)
    tax = db.Column(db.Float)
    total = db.Column(db.Float)
    total_amount = db.Column(db.Float)
    products = db.Column(db.JSON, nullable=True)
    services = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(30))
    transaction_type = db.Column(db.String(30))
    notes = db.Column(db.Text)
    client_info = db.Column(db.JSON, nullable=True)
    created_by = db.Column(db.String(64))
    processed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "branchId": self.branch_id or "",
            "appointmentId": self.appointment_id,
            "paymentMethod": self.payment_method,
            "amountReceived": self.amount_received,
            "change": self.change,
            "discount": self.discount,
            "loyaltyEarned": self.loyalty_earned,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "totalAmount": self.total_amount,
            "products": list(self.products or []),
            "services": list(self.services or []),
            "status": self.status,
            "transactionType": self.transaction_type,
            "notes": self.notes,
            "clientInfo": self.client_info,
            "createdBy": self.created_by,
            "processedAt": _iso(self.processed_at),
            "createdAt": _iso(self.created_at),
        }


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    brand = db.Column(db.String(100))
    category = db.Column(db.String(100))
    supplier = db.Column(db.String(150))
    image_url = db.Column(db.String(500))
    otc_price = db.Column(db.Float)
    salon_use_price = db.Column(db.Float)
    unit_cost = db.Column(db.Float)
    upc = db.Column(db.String(50))
    shelf_life = db.Column(db.String(50))
    variants = db.Column(db.String(255))
    status = db.Column(db.String(30), nullable=False, default="Active")
    branches = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name or "Unknown Product",
            "description": self.description or "",
            "brand": self.brand or "",
            "category": self.category or "",
            "supplier": self.supplier or "",
            "imageUrl": self.image_url or "",
            "otcPrice": self.otc_price or 0,
            "salonUsePrice": self.salon_use_price or 0,
            "unitCost": self.unit_cost or 0,
            "upc": self.upc or "",
            "shelfLife": self.shelf_life or "",
            "variants": self.variants or "",
            "status": self.status or "Active",
            "branches": list(self.branches or []),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
