"""HTTP routes for booking, appointments and the live appointment feed."""
from __future__ import annotations

import json

from flask import Blueprint, Flask, Response, current_app, jsonify, request, stream_with_context
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .auth import build_token, get_current_user, get_jwt_identity
from .booking import submit_booking, validate_booking
from .catalog import list_services
from .errors import SalonbookError
from .extensions import db
from .feed import VIEWS, get_feed, list_client_appointments
from .models import Appointment
from .pricing import PricingCache
from .profiles import authenticate, register_user
from .read_models import NameDirectory, map_stored_appointment_to_view
from .transitions import cancel_appointment, reschedule_appointment

bp = Blueprint("api", __name__)


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)


def error_response(exc: SalonbookError) -> tuple[Response, int]:
    return jsonify(exc.to_dict()), exc.status_code


def require_identity(user_id: str | None = None) -> tuple[Response, int] | None:
    """Return an error response unless the caller is signed in (as ``user_id`` when given)."""
    identity = get_jwt_identity()
    if identity is None:
        return jsonify({"error": "unauthorized", "message": "authentication required"}), 401
    if user_id is not None and identity != user_id:
        return jsonify({"error": "forbidden", "message": "not allowed to access this resource"}), 403
    return None


def _booking_user() -> dict[str, object] | None:
    user = get_current_user()
    if user is None:
        return None
    return {"id": user.id, "name": user.display_name, "email": user.email, "phone": user.phone}


def _load_owned_appointment(appointment_id: str) -> tuple[Appointment | None, tuple[Response, int] | None]:
    user = get_current_user()
    if user is None:
        return None, (jsonify({"error": "unauthorized", "message": "authentication required"}), 401)

    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return None, (jsonify({"error": "not_found", "message": "Appointment not found"}), 404)

    if appointment.client_id != user.id and user.user_type != "admin":
        return None, (jsonify({"error": "forbidden", "message": "not allowed to modify this appointment"}), 403)
    return appointment, None


def _expected_version(payload: dict[str, object]) -> tuple[int | None, tuple[Response, int] | None]:
    """Read the optional ``version`` the caller last saw; JSON strings like ``"2"`` are accepted."""
    version = payload.get("version")
    if version is None:
        return None, None
    if isinstance(version, bool):
        version = None
    try:
        return int(version), None
    except (TypeError, ValueError):
        return None, (jsonify({"error": "invalid_payload", "message": "version must be an integer"}), 400)


def _appointment_view(appointment: Appointment) -> dict[str, object]:
    document = appointment.to_document()
    return map_stored_appointment_to_view(
        document,
        appointment.id,
        NameDirectory(),
        PricingCache(document.get("branchId")),
    )


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.post("/auth/register")
def register() -> tuple[dict[str, object], int]:
    """Register a new client account.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            firstName:
              type: string
            lastName:
              type: string
            address:
              type: string
            email:
              type: string
            phone:
              type: string
            password:
              type: string
            confirmPassword:
              type: string
            acceptTerms:
              type: boolean
    responses:
      201:
        description: User registered successfully
      400:
        description: Invalid payload
      409:
        description: Email already in use
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    try:
        user = register_user(payload)
    except SalonbookError as exc:
        return error_response(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token({"user_id": user.id, "role": user.user_type})
    return jsonify({"token": token, "user": user.to_dict_basic()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a user by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "invalid_payload", "message": "email and password are required"}), 400

    user = authenticate(email, password)
    if user is None:
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    token = build_token({"user_id": user.id, "role": user.user_type})
    return jsonify({"token": token, "user": user.to_dict_basic()}), 200


@bp.get("/services")
def services_with_prices() -> tuple[dict[str, object], int]:
    """List active services priced for a branch.
    ---
    tags:
      - Services
    parameters:
      - name: branch_id
        in: query
        type: string
    responses:
      200:
        description: Services with the branch price resolved
    """
    branch_id = request.args.get("branch_id") or None
    return jsonify({"services": list_services(branch_id)}), 200


@bp.post("/bookings/preview")
def preview_booking() -> tuple[dict[str, object], int]:
    """Run the booking checks and return the confirmation summary.
    ---
    tags:
      - Bookings
    responses:
      200:
        description: Booking passes every check
      400:
        description: A booking check failed
      401:
        description: Not signed in
    """
    payload = request.get_json(silent=True) or {}
    cache = PricingCache(payload.get("branchId")) if payload.get("branchId") else None

    try:
        summary = validate_booking(_booking_user(), payload, cache)
    except SalonbookError as exc:
        return error_response(exc)

    return jsonify({"summary": summary.to_dict()}), 200


@bp.post("/bookings")
def create_booking() -> tuple[dict[str, object], int]:
    """Confirm a booking and create a pending appointment.
    ---
    tags:
      - Bookings
    responses:
      201:
        description: Appointment created
      400:
        description: A booking check failed
      401:
        description: Not signed in
      409:
        description: The slot is already taken
      500:
        description: The appointment could not be saved
    """
    payload = request.get_json(silent=True) or {}

    try:
        appointment = submit_booking(_booking_user(), payload)
    except SalonbookError as exc:
        return error_response(exc)

    return jsonify({"appointment": _appointment_view(appointment)}), 201


@bp.get("/appointments/<appointment_id>")
def get_appointment(appointment_id: str) -> tuple[dict[str, object], int]:
    """Return one appointment in its display shape.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment view
      401:
        description: Not signed in
      403:
        description: Appointment belongs to another client
      404:
        description: Appointment not found
    """
    appointment, error = _load_owned_appointment(appointment_id)
    if error:
        return error
    return jsonify({"appointment": _appointment_view(appointment)}), 200


@bp.put("/appointments/<appointment_id>/reschedule")
def reschedule(appointment_id: str) -> tuple[dict[str, object], int]:
    """Move an appointment to a new date and time.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            date:
              type: string
              example: "2025-12-01"
            time:
              type: string
              example: "14:30"
            reason:
              type: string
            version:
              type: integer
    responses:
      200:
        description: Appointment rescheduled
      400:
        description: Missing reason or malformed date/time
      409:
        description: Status does not allow rescheduling or the appointment changed
    """
    appointment, error = _load_owned_appointment(appointment_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    expected_version, error = _expected_version(payload)
    if error:
        return error

    try:
        appointment = reschedule_appointment(
            appointment.id,
            payload.get("date") or "",
            payload.get("time") or "",
            payload.get("reason"),
            actor_id=get_jwt_identity(),
            expected_version=expected_version,
        )
    except SalonbookError as exc:
        return error_response(exc)

    return jsonify({"appointment": _appointment_view(appointment)}), 200


@bp.put("/appointments/<appointment_id>/cancel")
def cancel(appointment_id: str) -> tuple[dict[str, object], int]:
    """Cancel an appointment.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            reason:
              type: string
            version:
              type: integer
    responses:
      200:
        description: Appointment cancelled
      400:
        description: Missing reason
      409:
        description: Status does not allow cancelling or the appointment changed
    """
    appointment, error = _load_owned_appointment(appointment_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    expected_version, error = _expected_version(payload)
    if error:
        return error

    try:
        appointment = cancel_appointment(
            appointment.id,
            payload.get("reason"),
            actor_id=get_jwt_identity(),
            expected_version=expected_version,
        )
    except SalonbookError as exc:
        return error_response(exc)

    return jsonify({"appointment": _appointment_view(appointment)}), 200


@bp.get("/clients/<client_id>/appointments")
def client_appointments(client_id: str) -> tuple[dict[str, object], int]:
    """List a client's appointments for the upcoming, past or all view.
    ---
    tags:
      - Appointments
    parameters:
      - name: view
        in: query
        type: string
        enum: [upcoming, past, all]
        default: upcoming
    responses:
      200:
        description: Sorted appointment views
      400:
        description: Unknown view
    """
    error = require_identity(client_id)
    if error:
        return error

    view = request.args.get("view", "upcoming")
    if view not in VIEWS:
        return jsonify({"error": "invalid_query", "message": f"view must be one of {', '.join(VIEWS)}"}), 400

    try:
        appointments = list_client_appointments(client_id, view)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"appointments": appointments}), 200


@bp.get("/clients/<client_id>/appointments/stream")
def stream_client_appointments(client_id: str):
    """Server-sent events carrying the client's sorted appointments on every change.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: text/event-stream of appointment snapshots
    """
    error = require_identity(client_id)
    if error:
        return error

    view = request.args.get("view", "upcoming")
    if view not in VIEWS:
        return jsonify({"error": "invalid_query", "message": f"view must be one of {', '.join(VIEWS)}"}), 400

    subscription = get_feed().subscribe(client_id, view=view)

    @stream_with_context
    def events():
        try:
            for snapshot in subscription.stream():
                if snapshot is None:
                    yield ": keep-alive\n\n"
                else:
                    yield f"data: {json.dumps(snapshot, default=str)}\n\n"
        finally:
            subscription.unsubscribe()

    return Response(events(), mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})
