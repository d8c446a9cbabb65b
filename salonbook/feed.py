"""Live per-client appointment feed.

Session events collect the client ids of appointments written in a flush.
Once the transaction commits, every live subscription for those clients is
re-queried, re-mapped and handed the full sorted list. Delivery happens
synchronously in the committing thread; a failing subscription is stopped
and logged without affecting the writer.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime

from flask import Flask, current_app, has_app_context
from sqlalchemy import event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .extensions import db
from .models import Appointment
from .pricing import PricingCache
from .read_models import NameDirectory, map_stored_appointment_to_view

logger = logging.getLogger(__name__)

UPCOMING_STATUSES = frozenset({"in_service", "confirmed", "pending"})
PAST_STATUSES = frozenset({"completed", "cancelled"})
VIEWS = ("upcoming", "past", "all")

STATUS_PRIORITY = {"pending": 1, "confirmed": 2, "in_service": 3}
_OTHER_PRIORITY = 4

_PENDING_KEY = "feed_client_ids"
_CLOSED = object()

UpdateCallback = Callable[[list[dict[str, object]]], None]
ErrorCallback = Callable[[Exception], None]


def appointment_instant(view: dict[str, object]) -> datetime:
    """Combined date and time of a mapped appointment; unparseable sorts first."""
    date_text = str(view.get("date") or "")[:10]
    time_text = str(view.get("time") or "00:00")
    try:
        return datetime.strptime(f"{date_text} {time_text[:5]}", "%Y-%m-%d %H:%M")
    except ValueError:
        return datetime.min


def _priority(view: dict[str, object]) -> int:
    return STATUS_PRIORITY.get(str(view.get("status") or "").lower(), _OTHER_PRIORITY)


def arrange(appointments: Iterable[dict[str, object]], view: str = "upcoming") -> list[dict[str, object]]:
    """Filter and order mapped appointments for one of the feed views."""
    if view not in VIEWS:
        raise ValueError(f"Unknown appointment view: {view}")

    items = list(appointments)
    if view == "past":
        items = [item for item in items if item.get("status") in PAST_STATUSES]
        return sorted(items, key=appointment_instant, reverse=True)

    if view == "upcoming":
        items = [item for item in items if item.get("status") in UPCOMING_STATUSES]
    return sorted(items, key=lambda item: (_priority(item), appointment_instant(item)))


def map_client_appointments(session: Session, client_id: str) -> list[dict[str, object]]:
    """Load and map every appointment of ``client_id`` with fresh names and prices."""
    rows = session.scalars(select(Appointment).where(Appointment.client_id == client_id)).all()

    directory = NameDirectory(session)
    caches: dict[str | None, PricingCache] = {}
    mapped = []
    for row in rows:
        document = row.to_document()
        branch_id = document.get("branchId") or None
        if branch_id not in caches:
            caches[branch_id] = PricingCache(branch_id, session=session)
        mapped.append(map_stored_appointment_to_view(document, row.id, directory, caches[branch_id]))
    return mapped


def list_client_appointments(client_id: str, view: str = "upcoming", session: Session | None = None):
    """One-shot snapshot of a client's appointments for ``view``."""
    session = session or db.session
    return arrange(map_client_appointments(session, client_id), view)


class Subscription:
    """A live view of one client's appointments.

    Calling the subscription (or :meth:`unsubscribe`) stops delivery. Without
    an ``on_update`` callback snapshots are buffered for :meth:`stream`.
    """

    def __init__(
        self,
        feed: AppointmentFeed,
        client_id: str,
        view: str,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.feed = feed
        self.client_id = client_id
        self.view = view
        self.on_update = on_update
        self.on_error = on_error
        self.active = True
        self.error: Exception | None = None
        self._queue: queue.Queue | None = queue.Queue() if on_update is None else None

    def deliver(self, mapped: list[dict[str, object]]) -> None:
        if not self.active:
            return
        snapshot = arrange(mapped, self.view)
        if self._queue is not None:
            self._queue.put(snapshot)
            return
        try:
            self.on_update(snapshot)
        except Exception as exc:  # noqa: BLE001 - subscriber code must not break the writer
            logger.exception("Appointment feed subscriber for client %s failed", self.client_id, exc_info=exc)
            self.fail(exc)

    def fail(self, exc: Exception) -> None:
        if not self.active:
            return
        self.error = exc
        self.unsubscribe()
        if self.on_error is not None:
            try:
                self.on_error(exc)
            except Exception as callback_exc:  # noqa: BLE001
                logger.exception("Appointment feed error handler failed", exc_info=callback_exc)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed.discard(self)
        if self._queue is not None:
            self._queue.put(_CLOSED)

    __call__ = unsubscribe

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()

    def stream(self, heartbeat: float = 15.0) -> Iterator[list[dict[str, object]] | None]:
        """Yield buffered snapshots, or ``None`` when ``heartbeat`` seconds pass idle."""
        if self._queue is None:
            raise RuntimeError("stream() needs a subscription created without on_update")
        while self.active or not self._queue.empty():
            try:
                snapshot = self._queue.get(timeout=heartbeat)
            except queue.Empty:
                yield None
                continue
            if snapshot is _CLOSED:
                return
            yield snapshot


class AppointmentFeed:
    """Registry of live subscriptions, attached to the app as an extension."""

    def __init__(self, app: Flask | None = None) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions["appointment_feed"] = self

    def subscribe(
        self,
        client_id: str,
        on_update: UpdateCallback | None = None,
        view: str = "upcoming",
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Register a subscription and deliver the current snapshot to it."""
        if view not in VIEWS:
            raise ValueError(f"Unknown appointment view: {view}")

        subscription = Subscription(self, client_id, view, on_update=on_update, on_error=on_error)
        with self._lock:
            self._subscriptions.setdefault(client_id, []).append(subscription)

        self._push(client_id, [subscription])
        return subscription

    def discard(self, subscription: Subscription) -> None:
        with self._lock:
            live = self._subscriptions.get(subscription.client_id, [])
            if subscription in live:
                live.remove(subscription)
            if not live:
                self._subscriptions.pop(subscription.client_id, None)

    def subscribers(self, client_id: str) -> list[Subscription]:
        with self._lock:
            return [sub for sub in self._subscriptions.get(client_id, []) if sub.active]

    def publish(self, client_ids: Iterable[str]) -> None:
        """Push fresh snapshots to every live subscription of ``client_ids``."""
        for client_id in set(client_ids):
            subscriptions = self.subscribers(client_id)
            if subscriptions:
                self._push(client_id, subscriptions)

    def _push(self, client_id: str, subscriptions: list[Subscription]) -> None:
        try:
            with Session(bind=db.engine) as session:
                mapped = map_client_appointments(session, client_id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load appointments for client %s", client_id, exc_info=exc)
            for subscription in subscriptions:
                subscription.fail(exc)
            return

        logger.debug("Pushing %d appointments to %d subscribers of client %s",
                     len(mapped), len(subscriptions), client_id)
        for subscription in subscriptions:
            subscription.deliver(mapped)


def get_feed() -> AppointmentFeed:
    return current_app.extensions["appointment_feed"]


@event.listens_for(Session, "after_flush")
def _collect_written_clients(session, flush_context) -> None:
    touched = session.info.setdefault(_PENDING_KEY, set())
    for obj in (*session.new, *session.dirty, *session.deleted):
        if isinstance(obj, Appointment) and obj.client_id:
            touched.add(obj.client_id)


@event.listens_for(Session, "after_commit")
def _publish_committed(session) -> None:
    client_ids = session.info.pop(_PENDING_KEY, None)
    if not client_ids or not has_app_context():
        return
    feed = current_app.extensions.get("appointment_feed")
    if feed is None:
        return
    try:
        feed.publish(client_ids)
    except Exception as exc:  # noqa: BLE001 - a feed failure never fails the commit
        logger.exception("Appointment feed dispatch failed", exc_info=exc)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back(session) -> None:
    session.info.pop(_PENDING_KEY, None)
