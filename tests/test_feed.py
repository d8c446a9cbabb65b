"""Tests for the live appointment feed and appointment list views."""
from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from salonbook.extensions import db
from salonbook.feed import arrange, get_feed, list_client_appointments


def _view(status: str, day: str = "2025-12-01", time: str = "10:00", **extra) -> dict[str, object]:
    return {"status": status, "date": day, "time": time, **extra}


def test_upcoming_sorts_by_status_priority() -> None:
    items = [_view("confirmed", id="a"), _view("pending", id="b"), _view("in_service", id="c")]

    assert [item["status"] for item in arrange(items, "upcoming")] == ["pending", "confirmed", "in_service"]


def test_upcoming_breaks_ties_by_date_and_time() -> None:
    items = [
        _view("pending", "2025-12-02", "09:00", id="late"),
        _view("pending", "2025-12-01", "15:00", id="afternoon"),
        _view("pending", "2025-12-01", "09:00", id="morning"),
        _view("completed", id="done"),
    ]

    assert [item["id"] for item in arrange(items, "upcoming")] == ["morning", "afternoon", "late"]


def test_past_view_sorts_newest_first() -> None:
    items = [
        _view("completed", "2025-01-01", id="old"),
        _view("cancelled", "2025-03-01", id="new"),
        _view("pending", "2025-02-01", id="open"),
    ]

    assert [item["id"] for item in arrange(items, "past")] == ["new", "old"]


def test_all_view_keeps_every_status() -> None:
    items = [_view("completed", id="a"), _view("scheduled", id="b"), _view("pending", id="c")]

    assert [item["id"] for item in arrange(items, "all")] == ["c", "a", "b"]


def test_list_client_appointments_filters_by_client(app, make_appointment) -> None:
    make_appointment(client_id="c1", appointment_date="2025-12-01", appointment_time="10:00", status="confirmed")
    make_appointment(client_id="c1", appointment_date="2025-12-01", appointment_time="11:00", status="pending")
    make_appointment(client_id="c2", appointment_date="2025-12-01", appointment_time="10:00", status="pending")

    appointments = list_client_appointments("c1")

    assert [item["status"] for item in appointments] == ["pending", "confirmed"]
    assert {item["clientId"] for item in appointments} == {"c1"}


def test_subscribe_delivers_initial_snapshot_and_pushes(app, make_appointment) -> None:
    make_appointment(appointment_date="2025-12-01", appointment_time="10:00", status="confirmed")
    received = []

    subscription = get_feed().subscribe("c1", received.append)
    assert len(received) == 1
    assert [item["status"] for item in received[0]] == ["confirmed"]

    make_appointment(appointment_date="2025-12-02", appointment_time="09:00", status="pending")

    assert len(received) == 2
    assert [item["status"] for item in received[1]] == ["pending", "confirmed"]
    subscription.unsubscribe()


def test_pushes_only_reach_the_written_client(app, make_appointment) -> None:
    received = []
    subscription = get_feed().subscribe("c1", received.append)

    make_appointment(client_id="c2", appointment_date="2025-12-01", appointment_time="10:00")

    assert len(received) == 1
    subscription()


def test_unsubscribe_stops_delivery(app, make_appointment) -> None:
    received = []
    with get_feed().subscribe("c1", received.append) as subscription:
        assert subscription.active

    make_appointment(appointment_date="2025-12-01", appointment_time="10:00")

    assert len(received) == 1
    assert not subscription.active
    assert get_feed().subscribers("c1") == []


def test_rolled_back_writes_are_not_pushed(app, make_appointment) -> None:
    appointment = make_appointment(appointment_date="2025-12-01", appointment_time="10:00")
    received = []
    subscription = get_feed().subscribe("c1", received.append)

    appointment.notes = "changed"
    db.session.flush()
    db.session.rollback()

    assert len(received) == 1
    subscription.unsubscribe()


def test_subscriber_error_stops_the_subscription_without_breaking_writes(app, make_appointment) -> None:
    calls = []
    errors = []

    def explode(snapshot):
        calls.append(snapshot)
        if len(calls) > 1:
            raise RuntimeError("render failed")

    subscription = get_feed().subscribe("c1", explode, on_error=errors.append)
    make_appointment(appointment_date="2025-12-01", appointment_time="10:00")
    make_appointment(appointment_date="2025-12-02", appointment_time="10:00")

    assert len(calls) == 2
    assert not subscription.active
    assert isinstance(subscription.error, RuntimeError)
    assert errors == [subscription.error]


def test_load_failure_stops_subscription(app, make_appointment) -> None:
    errors = []
    failure = OperationalError("SELECT", {}, Exception("permission denied"))

    with patch("salonbook.feed.map_client_appointments", side_effect=failure):
        subscription = get_feed().subscribe("c1", lambda snapshot: None, on_error=errors.append)

    assert not subscription.active
    assert errors == [failure]


def test_stream_yields_snapshots_until_unsubscribed(app, make_appointment) -> None:
    subscription = get_feed().subscribe("c1", view="all")
    make_appointment(appointment_date="2025-12-01", appointment_time="10:00", status="completed")
    subscription.unsubscribe()

    snapshots = list(subscription.stream(heartbeat=0.01))

    assert snapshots[0] == []
    assert [item["status"] for item in snapshots[1]] == ["completed"]
    assert len(snapshots) == 2


def test_client_appointments_route_requires_matching_identity(client, auth_headers, make_appointment) -> None:
    make_appointment(appointment_date="2025-12-01", appointment_time="10:00", status="pending")

    assert client.get("/clients/c1/appointments").status_code == 401
    assert client.get("/clients/c1/appointments", headers=auth_headers("c2")).status_code == 403

    response = client.get("/clients/c1/appointments?view=upcoming", headers=auth_headers("c1"))

    assert response.status_code == 200
    assert [item["status"] for item in response.json["appointments"]] == ["pending"]


def test_client_appointments_route_rejects_unknown_view(client, auth_headers) -> None:
    response = client.get("/clients/c1/appointments?view=someday", headers=auth_headers("c1"))

    assert response.status_code == 400
    assert response.json["error"] == "invalid_query"
