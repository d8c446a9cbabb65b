"""Booking validation and appointment creation.

``validate_booking`` runs the ordered preview gates and returns a
:class:`BookingSummary` for the confirmation step. ``submit_booking`` re-checks
the request, assembles the service/stylist pairs and writes the appointment.
Every gate raises :class:`~salonbook.errors.BookingValidationError` and stops
at the first failure; nothing is written unless all of them pass.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime

from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import BookingSubmissionError, BookingValidationError
from .extensions import db
from .models import Appointment, utc_now
from .notifications import create_client_appointment_notification, create_stylist_appointment_notification
from .pricing import PricingCache
from .read_models import NameDirectory, format_time, parse_calendar_date, to_number

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
WIRE_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
WIRE_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

REQUIRED_BOOKING_FIELDS = ("branchId", "date", "time")


def _setting(name: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(name, default))
    return default


def _selected_services(booking: Mapping[str, object]) -> list[Mapping[str, object]]:
    services = booking.get("selectedServices")
    if not isinstance(services, list):
        return []
    return [service for service in services if isinstance(service, Mapping)]


def _stylist_for(booking: Mapping[str, object], service_id: object) -> Mapping[str, object] | None:
    stylists = booking.get("selectedStylists")
    if not isinstance(stylists, Mapping):
        return None
    stylist = stylists.get(service_id)
    if isinstance(stylist, str) and stylist:
        return {"id": stylist}
    if isinstance(stylist, Mapping) and stylist:
        return stylist
    return None


def _parse_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.match(r"^\s*-?\d+", value)
        return int(match.group()) if match else 0
    return 0


def notes_error_for(text: str | None, max_length: int | None = None) -> str | None:
    """Message to show while the client edits notes, or ``None`` when they are fine."""
    if max_length is None:
        max_length = _setting("NOTES_MAX_LENGTH", 500)
    text = text or ""
    if len(text) > max_length:
        return f"Notes cannot exceed {max_length} characters"
    if text and not text.strip():
        return "Notes cannot contain only spaces"
    return None


def appointment_total(pairs, cache: PricingCache) -> float:
    """Sum of the branch price of every selected service; the stylist is ignored."""
    return cache.sum_for_selections(pairs)


def selection_total(booking: Mapping[str, object], cache: PricingCache | None = None) -> float:
    services = _selected_services(booking)
    if services:
        total = 0
        for service in services:
            cached = cache.price_of(service.get("id")) if cache is not None else 0
            total += to_number(cached or service.get("price") or 0)
        return total

    cached = cache.price_of(booking.get("serviceId")) if cache is not None else 0
    return to_number(cached or booking.get("totalPrice") or booking.get("servicePrice") or 0)


def total_duration(booking: Mapping[str, object]) -> int:
    return _parse_int(booking.get("totalDuration") or booking.get("serviceDuration") or 0)


def build_service_stylist_pairs(
    booking: Mapping[str, object], cache: PricingCache | None = None
) -> list[dict[str, object]]:
    """Assemble ``serviceStylistPairs`` from a booking request.

    Each selected service takes its own stylist, falling back to the single
    legacy ``stylistId``. A request without ``selectedServices`` falls back
    to the legacy single ``serviceId``.
    """
    pairs = []
    for service in _selected_services(booking):
        service_id = service.get("id")
        stylist = _stylist_for(booking, service_id)
        cached = cache.price_of(service_id) if cache is not None else 0
        if stylist and (stylist.get("firstName") or stylist.get("lastName")):
            stylist_name = f"{stylist.get('firstName', '')} {stylist.get('lastName', '')}"
        elif stylist:
            stylist_name = stylist.get("name") or booking.get("stylistName") or ""
        else:
            stylist_name = booking.get("stylistName") or ""
        pairs.append({
            "serviceId": service_id,
            "serviceName": service.get("name"),
            "servicePrice": to_number(cached or service.get("price") or 0),
            "stylistId": (stylist or {}).get("id") or booking.get("stylistId") or "",
            "stylistName": stylist_name,
        })

    if not pairs and booking.get("serviceId"):
        service_id = booking["serviceId"]
        cached = cache.price_of(service_id) if cache is not None else 0
        pairs.append({
            "serviceId": service_id,
            "serviceName": booking.get("serviceName") or "Service",
            "servicePrice": to_number(cached or booking.get("servicePrice") or 0),
            "stylistId": booking.get("stylistId") or "",
            "stylistName": booking.get("stylistName") or "",
        })

    return pairs


@dataclass
class BookingSummary:
    """What the client confirms before the appointment is written."""

    total: float
    duration: int
    pairs: list[dict[str, object]] = field(default_factory=list)
    notes_error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "totalPrice": self.total,
            "totalDuration": self.duration,
            "serviceStylistPairs": self.pairs,
            "notesError": self.notes_error,
        }


def validate_booking(
    user: Mapping[str, object] | None,
    booking: Mapping[str, object],
    cache: PricingCache | None = None,
    today: date | None = None,
) -> BookingSummary:
    """Run the ordered booking gates and summarise the request."""
    if not user:
        raise BookingValidationError("Authentication Required", "Please log in to book an appointment.", 401)

    if not user.get("id") or not user.get("name") or not user.get("email"):
        raise BookingValidationError(
            "Incomplete Profile", "Please complete your profile information before booking."
        )

    if not booking.get("branchId") or not booking.get("date") or not booking.get("time"):
        raise BookingValidationError(
            "Missing Information", "Please go back and select a branch, date, and time."
        )

    services = _selected_services(booking)
    if not services and not booking.get("serviceId"):
        raise BookingValidationError(
            "No Services Selected", "Please go back and select at least one service."
        )

    if services:
        if any(_stylist_for(booking, service.get("id")) is None for service in services):
            raise BookingValidationError(
                "Stylist Assignment Required", "Please go back and assign stylists for all services."
            )
    elif not booking.get("stylistId"):
        raise BookingValidationError("No Stylist Assigned", "Please go back and select a stylist.")

    appointment_day = parse_calendar_date(booking.get("date"))
    if appointment_day is None:
        raise BookingValidationError("Invalid Date", "Please select a valid appointment date.")
    if appointment_day < (today or date.today()):
        raise BookingValidationError("Invalid Date", "Please select a future date for your appointment.")

    if not TIME_PATTERN.match(str(booking.get("time"))):
        raise BookingValidationError("Invalid Time", "Please select a valid appointment time.")

    total = selection_total(booking, cache)
    if total <= 0:
        raise BookingValidationError(
            "Invalid Price", "The total price is invalid. Please go back and reselect services."
        )

    duration = total_duration(booking)
    if duration <= 0:
        raise BookingValidationError(
            "Invalid Duration", "The total duration is invalid. Please go back and reselect services."
        )

    if services:
        service_ids = [service.get("id") for service in services]
        if len(service_ids) != len(set(service_ids)):
            raise BookingValidationError(
                "Duplicate Services",
                "You have selected the same service multiple times. Please go back and fix this.",
            )

    if booking.get("notesError"):
        raise BookingValidationError("Invalid Notes", "Please fix the notes field before proceeding.")

    notes = booking.get("notes")
    if notes is None:
        notes = ""
    elif not isinstance(notes, str):
        raise BookingValidationError("Invalid Notes", "Please fix the notes field before proceeding.")
    max_notes = _setting("NOTES_MAX_LENGTH", 500)
    if len(notes) > max_notes:
        raise BookingValidationError("Notes Too Long", f"Notes cannot exceed {max_notes} characters.")

    # Clients may hold several open appointments at once.

    return BookingSummary(
        total=total,
        duration=duration,
        pairs=build_service_stylist_pairs(booking, cache),
        notes_error=notes_error_for(notes, max_notes),
    )


_WRITE_ERROR_CATEGORIES = (
    (
        "network",
        ("network", "fetch", "connection refused", "could not connect", "timed out"),
        "Network Error",
        "Please check your internet connection and try again.",
    ),
    (
        "permission",
        ("permission", "unauthorized", "access denied"),
        "Permission Denied",
        "You do not have permission to create this appointment. Please log in again.",
    ),
    (
        "conflict",
        ("conflict", "duplicate", "unique"),
        "Appointment Conflict",
        "There may be a scheduling conflict. Please try a different time.",
    ),
    (
        "validation",
        ("validation", "invalid"),
        "Invalid Data",
        "Some appointment information is invalid. Please go back and check your selections.",
    ),
    (
        "database",
        ("sqlalchemy", "database", "sqlite", "psycopg"),
        "Database Error",
        "There was an issue saving your appointment. Please try again.",
    ),
)


def classify_write_error(exc: BaseException) -> BookingSubmissionError:
    """Turn a failed appointment write into a user-facing error category."""
    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, IntegrityError):
        _, _, title, text = _WRITE_ERROR_CATEGORIES[2]
        return BookingSubmissionError("conflict", title, text)

    for category, needles, title, text in _WRITE_ERROR_CATEGORIES:
        if any(needle in lowered for needle in needles):
            return BookingSubmissionError(category, title, text)

    if isinstance(exc, SQLAlchemyError):
        _, _, title, text = _WRITE_ERROR_CATEGORIES[4]
        return BookingSubmissionError("database", title, text)

    return BookingSubmissionError("generic", "Booking Error", f"Failed to book appointment: {message}")


def _pair_stylists(appointment: Appointment) -> set[str]:
    stylists = {pair.get("stylistId") for pair in appointment.service_stylist_pairs or () if pair.get("stylistId")}
    if appointment.stylist_id:
        stylists.add(appointment.stylist_id)
    return stylists


def _check_slot_free(session: Session, branch_id: str, day: str, time: str, stylist_ids: set[str]) -> None:
    stmt = select(Appointment).where(
        Appointment.branch_id == branch_id,
        Appointment.appointment_date == day,
        Appointment.appointment_time == time,
        Appointment.status != "cancelled",
    )
    for existing in session.scalars(stmt):
        if _pair_stylists(existing) & stylist_ids:
            raise BookingValidationError(
                "Appointment Conflict",
                "There may be a scheduling conflict. Please try a different time.",
                409,
            )


def _confirm_checks(booking: Mapping[str, object], now: datetime) -> None:
    missing = [name for name in REQUIRED_BOOKING_FIELDS if not booking.get(name)]
    if missing:
        raise BookingValidationError("Missing Required Information", f"Please complete: {', '.join(missing)}")

    day = str(booking["date"])
    time = str(booking["time"])
    try:
        starts_at = datetime.strptime(f"{day} {time}", "%Y-%m-%d %H:%M")
    except ValueError:
        starts_at = None

    if starts_at is not None:
        if starts_at <= now:
            raise BookingValidationError(
                "Invalid Appointment Time", "Please select a future date and time for your appointment."
            )
        open_hour = _setting("BUSINESS_OPEN_HOUR", 8)
        close_hour = _setting("BUSINESS_CLOSE_HOUR", 20)
        if starts_at.hour < open_hour or starts_at.hour > close_hour:
            raise BookingValidationError(
                "Outside Business Hours",
                f"Please select a time between {format_time(f'{open_hour}:00')} "
                f"and {format_time(f'{close_hour}:00')}.",
            )

    if not WIRE_DATE_PATTERN.match(day):
        raise BookingValidationError("Invalid Date Format", "Appointment date must be in YYYY-MM-DD format.")
    if not WIRE_TIME_PATTERN.match(time):
        raise BookingValidationError("Invalid Time Format", "Appointment time must be in HH:MM format.")


def _check_pairs(pairs: list[dict[str, object]], cache: PricingCache) -> None:
    if not pairs:
        raise BookingValidationError("No Services", "No services selected for this appointment.")
    if not pairs[0].get("stylistId"):
        raise BookingValidationError("No Stylist", "No stylist assigned to this appointment.")
    if any(not pair.get("stylistId") for pair in pairs):
        raise BookingValidationError("Stylist Assignment Required", "All services must have a stylist assigned.")
    # Only catalog services with a resolved branch price can be booked.
    if any(not cache.has_price(pair.get("serviceId")) for pair in pairs):
        raise BookingValidationError(
            "Invalid Price",
            "One or more selected services are not available at this branch. Please go back and reselect services.",
        )


def submit_booking(
    user: Mapping[str, object] | None,
    booking: Mapping[str, object],
    cache: PricingCache | None = None,
    now: datetime | None = None,
    session: Session | None = None,
) -> Appointment:
    """Validate, confirm and write a new pending appointment."""
    session = session or db.session
    now = now or datetime.now()
    if cache is None and booking.get("branchId"):
        cache = PricingCache(booking.get("branchId"), session=session)

    validate_booking(user, booking, cache, today=now.date())
    _confirm_checks(booking, now)

    pairs = build_service_stylist_pairs(booking, cache)
    _check_pairs(pairs, cache)
    _check_slot_free(
        session,
        booking["branchId"],
        booking["date"],
        booking["time"],
        {pair["stylistId"] for pair in pairs},
    )

    appointment = Appointment(
        appointment_date=booking["date"],
        appointment_time=booking["time"],
        branch_id=booking["branchId"],
        client_email=user.get("email") or "",
        client_id=user.get("id") or "",
        client_name=user.get("name") or "Client",
        client_phone=user.get("phone") or "",
        created_by=user.get("id") or "",
        notes=booking.get("notes") or "",
        status="pending",
        total_price=appointment_total(pairs, cache),
        service_stylist_pairs=pairs,
        history=[{
            "action": "created",
            "by": user.get("id") or "",
            "notes": "Appointment created",
            "timestamp": utc_now().isoformat(),
        }],
    )

    try:
        session.add(appointment)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to create appointment for client %s", user.get("id"), exc_info=exc)
        raise classify_write_error(exc) from exc

    logger.info("Created appointment %s for client %s", appointment.id, appointment.client_id)
    notify_booking(appointment, session=session)
    return appointment


def notify_booking(appointment: Appointment, session: Session | None = None) -> None:
    """Tell the client and each assigned stylist about a new appointment.

    Notification failures are logged and never undo the booking.
    """
    session = session or db.session
    pairs = appointment.service_stylist_pairs or []
    branch_name = NameDirectory(session).branch_name(appointment.branch_id)
    first_stylist = pairs[0].get("stylistName") if pairs else ""

    stylists: dict[str, str] = {}
    for pair in pairs:
        stylists.setdefault(pair.get("stylistId"), pair.get("stylistName") or "Stylist")

    try:
        create_client_appointment_notification(
            appointment.id,
            appointment.appointment_date,
            appointment.appointment_time,
            appointment.client_name,
            appointment.client_id,
            first_stylist or "Stylist",
            branch_name,
            session=session,
        )
        for stylist_id, stylist_name in stylists.items():
            create_stylist_appointment_notification(
                appointment.id,
                appointment.appointment_date,
                appointment.appointment_time,
                appointment.client_name,
                stylist_name,
                stylist_id,
                branch_name,
                session=session,
            )
        session.commit()
    except (ValueError, SQLAlchemyError) as exc:
        session.rollback()
        logger.warning("Could not create notifications for appointment %s", appointment.id, exc_info=exc)
