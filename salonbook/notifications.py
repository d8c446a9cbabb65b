"""In-app notifications for clients and stylists."""
from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .extensions import db
from .models import Notification, utc_now

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "title",
    "message",
    "type",
    "appointmentId",
    "appointmentDate",
    "appointmentTime",
    "clientName",
    "stylistName",
    "branchName",
    "recipientRole",
    "recipientId",
)


def create_notification(data: Mapping[str, object], session: Session | None = None) -> Notification:
    """Validate and persist one notification.

    Raises ``ValueError`` naming every missing required field. The row is
    added and flushed but not committed; callers own the transaction.
    """
    session = session or db.session
    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")

    notification = Notification(
        title=data["title"],
        message=data["message"],
        notification_type=data["type"],
        is_read=bool(data.get("isRead", False)),
        appointment_id=data["appointmentId"],
        appointment_date=data["appointmentDate"],
        appointment_time=data["appointmentTime"],
        client_name=data["clientName"],
        stylist_name=data["stylistName"],
        branch_name=data["branchName"],
        recipient_role=data["recipientRole"],
        recipient_id=data["recipientId"],
    )
    session.add(notification)
    session.flush()
    logger.info("Created %s notification %s for %s", notification.notification_type,
                notification.id, notification.recipient_id)
    return notification


def create_client_appointment_notification(
    appointment_id: str,
    appointment_date: str,
    appointment_time: str,
    client_name: str,
    client_id: str,
    stylist_name: str,
    branch_name: str,
    session: Session | None = None,
) -> Notification:
    return create_notification(
        {
            "title": "Appointment Booked Successfully",
            "message": f"Your appointment has been scheduled for {appointment_date} at {appointment_time}",
            "type": "appointment_created",
            "appointmentId": appointment_id,
            "appointmentDate": appointment_date,
            "appointmentTime": appointment_time,
            "clientName": client_name,
            "stylistName": stylist_name,
            "branchName": branch_name,
            "recipientRole": "client",
            "recipientId": client_id,
            "isRead": False,
        },
        session=session,
    )


def create_stylist_appointment_notification(
    appointment_id: str,
    appointment_date: str,
    appointment_time: str,
    client_name: str,
    stylist_name: str,
    stylist_id: str,
    branch_name: str,
    session: Session | None = None,
) -> Notification:
    return create_notification(
        {
            "title": "New Appointment Assigned",
            "message": f"You have a new appointment with {client_name} on {appointment_date}",
            "type": "appointment_created",
            "appointmentId": appointment_id,
            "appointmentDate": appointment_date,
            "appointmentTime": appointment_time,
            "clientName": client_name,
            "stylistName": stylist_name,
            "branchName": branch_name,
            "recipientRole": "stylist",
            "recipientId": stylist_id,
            "isRead": False,
        },
        session=session,
    )


def list_notifications(recipient_id: str, session: Session | None = None) -> list[Notification]:
    session = session or db.session
    stmt = (
        select(Notification)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc())
    )
    return list(session.scalars(stmt))


def unread_count(recipient_id: str, session: Session | None = None) -> int:
    return sum(1 for notification in list_notifications(recipient_id, session) if not notification.is_read)


def mark_as_read(notification_id: str, session: Session | None = None) -> Notification:
    session = session or db.session
    notification = session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    notification.updated_at = utc_now()
    session.commit()
    return notification


def mark_all_as_read(recipient_id: str, session: Session | None = None) -> int:
    """Flag every unread notification of ``recipient_id`` in one statement."""
    session = session or db.session
    result = session.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .values(is_read=True, updated_at=utc_now())
    )
    session.commit()
    return result.rowcount or 0
