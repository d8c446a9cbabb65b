"""Reschedule and cancel transitions for existing appointments.

Both transitions require a written reason, append an entry to the
appointment's history and go through the version check on
:class:`~salonbook.models.Appointment`, so a write based on a stale read
fails with a ``conflict`` error instead of silently overwriting.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .booking import WIRE_DATE_PATTERN, WIRE_TIME_PATTERN
from .errors import TransitionError
from .extensions import db
from .models import Appointment, utc_now

logger = logging.getLogger(__name__)

RESCHEDULABLE_STATUSES = frozenset({"scheduled", "pending"})
CANCELLABLE_STATUSES = frozenset({"scheduled", "pending", "confirmed"})


def can_reschedule(status: str | None) -> bool:
    return status in RESCHEDULABLE_STATUSES


def can_cancel(status: str | None) -> bool:
    return status in CANCELLABLE_STATUSES


def _load(session: Session, appointment_id: str, expected_version: int | None) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if appointment is None:
        raise TransitionError("not_found", "Appointment not found", 404)
    if expected_version is not None and appointment.version != expected_version:
        raise TransitionError(
            "conflict", "This appointment was changed by someone else. Please reload and try again.", 409
        )
    return appointment


def _history_entry(action: str, actor_id: str | None, notes: str) -> dict[str, str]:
    return {
        "action": action,
        "by": actor_id or "client",
        "notes": notes,
        "timestamp": utc_now().isoformat(),
    }


def _commit(session: Session, appointment: Appointment, action: str) -> Appointment:
    try:
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        logger.warning("Version conflict while trying to %s appointment %s", action, appointment.id, exc_info=exc)
        raise TransitionError(
            "conflict", "This appointment was changed by someone else. Please reload and try again.", 409
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to %s appointment %s", action, appointment.id, exc_info=exc)
        raise TransitionError("database_error", f"Failed to {action} appointment. Please try again.", 500) from exc
    return appointment


def reschedule_appointment(
    appointment_id: str,
    new_date: str,
    new_time: str,
    reason: str | None,
    actor_id: str | None = None,
    expected_version: int | None = None,
    session: Session | None = None,
) -> Appointment:
    """Move an appointment to a new date and time; its status is unchanged."""
    session = session or db.session
    reason = (reason or "").strip()
    if not reason:
        raise TransitionError("reason_required", "Please provide a reason for rescheduling the appointment.")
    if not WIRE_DATE_PATTERN.match(new_date or "") or not WIRE_TIME_PATTERN.match(new_time or ""):
        raise TransitionError("invalid_request", "New date must be YYYY-MM-DD and new time HH:MM.")

    appointment = _load(session, appointment_id, expected_version)
    if not can_reschedule(appointment.status):
        raise TransitionError(
            "not_allowed",
            "This appointment cannot be rescheduled. Only scheduled or pending appointments can be rescheduled.",
            409,
        )

    appointment.appointment_date = new_date
    appointment.date = new_date
    appointment.appointment_time = new_time
    appointment.start_time = new_time
    appointment.reschedule_notes = reason
    appointment.updated_at = utc_now()
    appointment.history = [
        *(appointment.history or []),
        _history_entry("rescheduled", actor_id, f"Rescheduled to {new_date} {new_time}: {reason}"),
    ]

    _commit(session, appointment, "reschedule")
    logger.info("Rescheduled appointment %s to %s %s", appointment_id, new_date, new_time)
    return appointment


def cancel_appointment(
    appointment_id: str,
    reason: str | None,
    actor_id: str | None = None,
    expected_version: int | None = None,
    session: Session | None = None,
) -> Appointment:
    session = session or db.session
    reason = (reason or "").strip()
    if not reason:
        raise TransitionError("reason_required", "Please provide a reason for cancelling the appointment.")

    appointment = _load(session, appointment_id, expected_version)
    if not can_cancel(appointment.status):
        raise TransitionError("not_allowed", "This appointment cannot be cancelled.", 409)

    now = utc_now()
    appointment.status = "cancelled"
    appointment.cancellation_reason = reason
    appointment.cancelled_at = now
    appointment.updated_at = now
    appointment.history = [
        *(appointment.history or []),
        _history_entry("cancelled", actor_id, reason),
    ]

    _commit(session, appointment, "cancel")
    logger.info("Cancelled appointment %s", appointment_id)
    return appointment
