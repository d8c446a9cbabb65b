"""Read models for stored appointments.

Appointment documents exist in two shapes. Historic rows carry a single
``serviceId``/``stylistId`` with ``date``/``time``; current rows carry a
``serviceStylistPairs`` list with ``appointmentDate``/``appointmentTime``.
:func:`normalize` folds both into one :class:`NormalizedRecord` and
:func:`map_stored_appointment_to_view` turns that into the flat view the
screens render without further lookups.
"""
from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .extensions import db
from .models import Branch, Service, User

logger = logging.getLogger(__name__)

STYLIST_PLACEHOLDER = "Stylist Name"
PLACEHOLDER_UNIT_PRICE = 200
DEFAULT_DURATION_MINUTES = 60

_STATUS_COLORS = {
    "scheduled": "#FFC107",
    "confirmed": "#2196F3",
    "completed": "#4CAF50",
    "paid": "#4CAF50",
    "pending": "#FFC107",
    "in_progress": "#FF9800",
    "in_service": "#FF9800",
    "cancelled": "#F44336",
    "no_show": "#795548",
}
_UNKNOWN_STATUS_COLOR = "#9E9E9E"

_STATUS_TEXT = {
    "scheduled": "Scheduled",
    "confirmed": "Confirmed",
    "pending": "Pending",
    "in_progress": "In Progress",
    "in_service": "In Service",
    "completed": "Completed",
    "paid": "Completed",
    "cancelled": "Cancelled",
    "no_show": "No Show",
}


def _normalize_status(status: object) -> str:
    if not status:
        return ""
    return str(status).strip().lower()


def status_color(status: object) -> str:
    return _STATUS_COLORS.get(_normalize_status(status), _UNKNOWN_STATUS_COLOR)


def status_text(status: object) -> str:
    return _STATUS_TEXT.get(_normalize_status(status), "Unknown")


def format_time(value: object) -> str:
    """Render ``HH:MM`` as a 12-hour clock string, e.g. ``2:30 PM``."""
    if not value:
        return "N/A"
    parts = str(value).split(":")
    try:
        hours = int(parts[0] or 0)
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return "Invalid Time"
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{minutes:02d} {period}"


def parse_calendar_date(value: object) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: object) -> str:
    """Render a calendar date as ``Monday, December 1, 2025``."""
    if not value:
        return "N/A"
    parsed = parse_calendar_date(value)
    if parsed is None:
        return "Invalid Date"
    return f"{parsed:%A}, {parsed:%B} {parsed.day}, {parsed.year}"


def to_number(value: object) -> float:
    """Coerce numbers and numeric strings; anything else counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0
    return 0


@dataclass(frozen=True)
class LegacyShape:
    service_id: str | None
    stylist_id: str | None
    date: str | None
    time: str | None


@dataclass(frozen=True)
class CurrentShape:
    pairs: tuple[Mapping[str, object], ...]
    appointment_date: str | None
    appointment_time: str | None


RecordShape = Union[LegacyShape, CurrentShape]


@dataclass(frozen=True)
class NormalizedRecord:
    shape: RecordShape
    primary_service_id: str
    primary_stylist_id: str
    service_ids: tuple[str, ...]
    stylist_ids: tuple[str, ...]
    date: str | None
    time: str | None


def classify_record(raw: Mapping[str, object]) -> RecordShape:
    pairs = raw.get("serviceStylistPairs")
    if isinstance(pairs, list) or raw.get("appointmentDate"):
        return CurrentShape(
            pairs=tuple(pair for pair in pairs or () if isinstance(pair, Mapping)),
            appointment_date=raw.get("appointmentDate"),
            appointment_time=raw.get("appointmentTime"),
        )
    return LegacyShape(
        service_id=raw.get("serviceId"),
        stylist_id=raw.get("stylistId"),
        date=raw.get("date"),
        time=raw.get("time"),
    )


def _unique(values) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


def normalize(raw: Mapping[str, object]) -> NormalizedRecord:
    shape = classify_record(raw)

    if isinstance(shape, CurrentShape) and shape.pairs:
        first = shape.pairs[0]
        primary_service = first.get("serviceId") or ""
        primary_stylist = first.get("stylistId") or ""
        service_ids = _unique(pair.get("serviceId") for pair in shape.pairs)
        stylist_ids = _unique(pair.get("stylistId") for pair in shape.pairs)
    else:
        primary_service = raw.get("serviceId") or ""
        primary_stylist = raw.get("stylistId") or ""
        service_ids = _unique([primary_service])
        stylist_ids = _unique([primary_stylist])

    return NormalizedRecord(
        shape=shape,
        primary_service_id=primary_service,
        primary_stylist_id=primary_stylist,
        service_ids=service_ids,
        stylist_ids=stylist_ids,
        date=raw.get("appointmentDate") or raw.get("date") or raw.get("scheduledDate"),
        time=raw.get("appointmentTime") or raw.get("time") or raw.get("startTime"),
    )


def display_total(raw: Mapping[str, object]) -> float:
    """Best-effort total for a stored appointment; the first non-empty source wins."""
    for key in ("totalPrice", "totalCost", "finalPrice", "price"):
        value = to_number(raw.get(key))
        if value:
            return value

    services = raw.get("services")
    if isinstance(services, list) and services:
        summed = sum(to_number(item.get("price")) for item in services if isinstance(item, Mapping))
        if summed:
            return summed

    pairs = raw.get("serviceStylistPairs")
    if isinstance(pairs, list) and pairs:
        return len(pairs) * PLACEHOLDER_UNIT_PRICE

    return 0


class NameDirectory:
    """Memoised display-name lookups for one mapping run.

    Each id is looked up at most once. Misses and lookup errors fall back to
    placeholder names instead of raising.
    """

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session
        self._stylists: dict[str, str] = {}
        self._services: dict[str, str | None] = {}
        self._branches: dict[str, str] = {}

    def stylist_name(self, stylist_id: str | None) -> str:
        if not stylist_id:
            return STYLIST_PLACEHOLDER
        if stylist_id not in self._stylists:
            self._stylists[stylist_id] = self._lookup_stylist(stylist_id)
        return self._stylists[stylist_id]

    def _lookup_stylist(self, stylist_id: str) -> str:
        try:
            user = self.session.get(User, stylist_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not fetch stylist %s; using placeholder name", stylist_id, exc_info=exc)
            return STYLIST_PLACEHOLDER
        if user is None:
            logger.warning("Stylist %s not found in the user directory", stylist_id)
            return STYLIST_PLACEHOLDER
        return f"{user.first_name or 'Stylist'} {user.last_name or 'Name'}"

    def service_name(self, service_id: str | None, fallback: str | None = None) -> str:
        if service_id and service_id not in self._services:
            try:
                service = self.session.get(Service, service_id)
            except SQLAlchemyError as exc:
                logger.warning("Could not fetch service %s", service_id, exc_info=exc)
                service = None
            self._services[service_id] = service.name if service else None
        name = self._services.get(service_id) if service_id else None
        return name or fallback or "Unknown Service"

    def branch_name(self, branch_id: str | None) -> str:
        if not branch_id:
            return "Unknown Branch"
        if branch_id not in self._branches:
            try:
                branch = self.session.get(Branch, branch_id)
            except SQLAlchemyError as exc:
                logger.warning("Could not fetch branch %s", branch_id, exc_info=exc)
                branch = None
            self._branches[branch_id] = branch.name if branch and branch.name else "Unknown Branch"
        return self._branches[branch_id]


def map_stored_appointment_to_view(
    raw: Mapping[str, object],
    doc_id: str,
    directory: NameDirectory | None = None,
    pricing=None,
) -> dict[str, object]:
    """Flatten a stored appointment document into its display view.

    ``pricing`` is an optional :class:`~salonbook.pricing.PricingCache` for
    the appointment's branch; when given the view also carries the current
    catalog total for its selections.
    """
    directory = directory or NameDirectory()
    record = normalize(raw)

    pairs = [dict(pair) for pair in raw.get("serviceStylistPairs") or () if isinstance(pair, Mapping)]
    services = raw.get("services") if isinstance(raw.get("services"), list) else []
    first_service = services[0] if services and isinstance(services[0], Mapping) else None

    if pairs:
        service_names = [directory.service_name(pair.get("serviceId"), pair.get("serviceName")) for pair in pairs]
    elif record.primary_service_id:
        service_names = [directory.service_name(record.primary_service_id)]
    else:
        service_names = []

    status = raw.get("status")
    total = display_total(raw)

    view: dict[str, object] = {
        "id": doc_id,
        "clientId": raw.get("clientId"),
        "branchId": raw.get("branchId"),
        "branchName": directory.branch_name(raw.get("branchId")),
        "serviceId": record.primary_service_id,
        "stylistId": record.primary_stylist_id,
        "stylistName": directory.stylist_name(record.primary_stylist_id),
        "stylistNames": [directory.stylist_name(stylist_id) for stylist_id in record.stylist_ids],
        "serviceNames": service_names,
        "date": record.date,
        "time": record.time,
        "appointmentDate": raw.get("appointmentDate"),
        "appointmentTime": raw.get("appointmentTime"),
        "formattedDate": format_date(record.date),
        "formattedTime": format_time(record.time),
        "endTime": raw.get("endTime") or "",
        "duration": (first_service or {}).get("duration") or DEFAULT_DURATION_MINUTES,
        "status": status,
        "statusText": status_text(status),
        "statusColor": status_color(status),
        "notes": raw.get("notes") or "",
        "totalPrice": total,
        "finalPrice": raw.get("finalPrice") or total,
        "serviceStylistPairs": pairs,
        "history": copy.deepcopy(raw.get("history") or []),
        "clientName": raw.get("clientName"),
        "clientEmail": raw.get("clientEmail"),
        "clientPhone": raw.get("clientPhone"),
        "createdBy": raw.get("createdBy"),
        "rescheduleNotes": raw.get("rescheduleNotes") or "",
        "cancellationReason": raw.get("cancellationReason") or "",
        "version": raw.get("version"),
        "createdAt": raw.get("createdAt"),
        "updatedAt": raw.get("updatedAt"),
    }

    if pricing is not None:
        selections = pairs or [{"serviceId": service_id} for service_id in record.service_ids]
        view["resolvedTotal"] = pricing.sum_for_selections(selections)

    return view
