"""Routes for notifications, profile settings and catalog reads."""
from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .catalog import (dashboard_summary, get_branch, get_stylist, list_branches, list_products,
                      list_stylists, list_transactions, search_products, stylist_to_dict,
                      transaction_detail)
from .errors import SalonbookError
from .extensions import db
from .models import Notification, Transaction, User
from .notifications import list_notifications, mark_all_as_read, mark_as_read, unread_count
from .profiles import set_notifications_enabled, set_profile_image, update_profile
from .routes import error_response, require_identity
from .uploads import CloudinaryUploader

bp_ext = Blueprint("api_ext", __name__)


# NOTIFICATIONS
@bp_ext.get("/users/<user_id>/notifications")
def get_notifications(user_id: str) -> tuple[dict[str, object], int]:
    """Get all notifications for a user, newest first.
    ---
    tags:
      - Notifications
    parameters:
      - name: unread_only
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: Notifications with the unread count
      401:
        description: Not signed in
      403:
        description: Not the signed-in user
    """
    error = require_identity(user_id)
    if error:
        return error

    unread_only = request.args.get("unread_only", "false").lower() == "true"
    notifications = list_notifications(user_id)
    if unread_only:
        notifications = [n for n in notifications if not n.is_read]

    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": unread_count(user_id),
    }), 200


@bp_ext.get("/users/<user_id>/notifications/unread-count")
def get_unread_count(user_id: str) -> tuple[dict[str, object], int]:
    error = require_identity(user_id)
    if error:
        return error
    return jsonify({"unread_count": unread_count(user_id)}), 200


@bp_ext.put("/notifications/<notification_id>/read")
def read_notification(notification_id: str) -> tuple[dict[str, object], int]:
    """Mark one notification as read.
    ---
    tags:
      - Notifications
    responses:
      200:
        description: Notification marked as read
      404:
        description: Notification not found
    """
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        return jsonify({"error": "not_found", "message": "Notification not found"}), 404

    error = require_identity(notification.recipient_id)
    if error:
        return error

    try:
        notification = mark_as_read(notification_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notification as read", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"notification": notification.to_dict()}), 200


@bp_ext.put("/users/<user_id>/notifications/read-all")
def read_all_notifications(user_id: str) -> tuple[dict[str, object], int]:
    error = require_identity(user_id)
    if error:
        return error

    try:
        updated = mark_all_as_read(user_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notifications as read", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"updated": updated}), 200


# PROFILE AND SETTINGS
@bp_ext.get("/users/<user_id>/profile")
def get_profile(user_id: str) -> tuple[dict[str, object], int]:
    error = require_identity(user_id)
    if error:
        return error

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "not_found", "message": "User not found"}), 404
    return jsonify({"user": {"id": user.id, **user.to_document()}}), 200


@bp_ext.put("/users/<user_id>/profile")
def put_profile(user_id: str) -> tuple[dict[str, object], int]:
    """Update the signed-in user's profile fields.
    ---
    tags:
      - Profile
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
            middleName:
              type: string
            email:
              type: string
            phone:
              type: string
            address:
              type: string
    responses:
      200:
        description: Profile updated
      400:
        description: Validation error
      409:
        description: Email already in use
    """
    error = require_identity(user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    try:
        user = update_profile(user_id, payload)
    except SalonbookError as exc:
        return error_response(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to update profile", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Failed to update profile. Please try again."}), 500

    return jsonify({"user": {"id": user.id, **user.to_document()}}), 200


@bp_ext.put("/users/<user_id>/settings/notifications")
def put_notification_settings(user_id: str) -> tuple[dict[str, object], int]:
    error = require_identity(user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    enabled = payload.get("enabled")
    if not isinstance(enabled, bool):
        return jsonify({"error": "invalid_payload", "message": "enabled must be true or false"}), 400

    try:
        user = set_notifications_enabled(user_id, enabled)
    except SalonbookError as exc:
        return error_response(exc)
    except SQLAlchemyError:
        return jsonify({"error": "database_error", "message": "Failed to update notification settings."}), 500

    return jsonify({"notificationsEnabled": bool(user.notifications_enabled)}), 200


@bp_ext.post("/users/<user_id>/profile-image")
def upload_profile_image(user_id: str) -> tuple[dict[str, object], int]:
    """Upload a profile picture and store its URL on the user.
    ---
    tags:
      - Profile
    consumes:
      - multipart/form-data
    parameters:
      - name: file
        in: formData
        type: file
        required: true
    responses:
      200:
        description: Image uploaded
      400:
        description: No file supplied
      502:
        description: The image host rejected the upload
    """
    error = require_identity(user_id)
    if error:
        return error

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "invalid_payload", "message": "file is required"}), 400

    try:
        with CloudinaryUploader.from_config(current_app.config) as uploader:
            image_url = uploader.upload_image(
                upload.read(), upload.filename, upload.mimetype or "image/jpeg"
            )
        set_profile_image(user_id, image_url)
    except SalonbookError as exc:
        current_app.logger.warning("Profile image upload failed for %s: %s", user_id, exc.message)
        return error_response(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to store profile image", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"imageURL": image_url}), 200


# BRANCHES AND STYLISTS
@bp_ext.get("/branches")
def get_branches() -> tuple[dict[str, object], int]:
    return jsonify({"branches": [branch.to_dict() for branch in list_branches()]}), 200


@bp_ext.get("/branches/<branch_id>")
def get_branch_detail(branch_id: str) -> tuple[dict[str, object], int]:
    branch = get_branch(branch_id)
    if branch is None:
        return jsonify({"error": "not_found", "message": "Branch not found"}), 404
    return jsonify({"branch": branch.to_dict()}), 200


@bp_ext.get("/stylists")
def get_stylists() -> tuple[dict[str, object], int]:
    """List active stylists, optionally for one branch.
    ---
    tags:
      - Stylists
    parameters:
      - name: branch_id
        in: query
        type: string
    responses:
      200:
        description: Active stylists
    """
    branch_id = request.args.get("branch_id") or None
    return jsonify({"stylists": [stylist_to_dict(user) for user in list_stylists(branch_id)]}), 200


@bp_ext.get("/stylists/<stylist_id>")
def get_stylist_detail(stylist_id: str) -> tuple[dict[str, object], int]:
    stylist = get_stylist(stylist_id)
    if stylist is None:
        return jsonify({"error": "not_found", "message": "Stylist not found"}), 404
    return jsonify({"stylist": stylist_to_dict(stylist)}), 200


# PRODUCTS
@bp_ext.get("/products")
def get_products() -> tuple[dict[str, object], int]:
    """List active products, optionally filtered by branch and search term.
    ---
    tags:
      - Products
    parameters:
      - name: branch_id
        in: query
        type: string
      - name: q
        in: query
        type: string
        description: Matches name, brand or category
    responses:
      200:
        description: Matching products
      400:
        description: Search requires a branch
    """
    branch_id = request.args.get("branch_id") or None
    term = (request.args.get("q") or "").strip()

    if term:
        if not branch_id:
            return jsonify({"error": "invalid_query", "message": "branch_id is required when searching"}), 400
        products = search_products(branch_id, term)
    else:
        products = list_products(branch_id)

    return jsonify({"products": [product.to_dict() for product in products]}), 200


# TRANSACTIONS AND DASHBOARD
def _parse_date_arg(name: str) -> date | None:
    value = request.args.get(name)
    if not value:
        return None
    return date.fromisoformat(value)


@bp_ext.get("/clients/<client_id>/transactions")
def get_transactions(client_id: str) -> tuple[dict[str, object], int]:
    """List a client's transactions, newest first.
    ---
    tags:
      - Transactions
    parameters:
      - name: search
        in: query
        type: string
      - name: start_date
        in: query
        type: string
        format: date
      - name: end_date
        in: query
        type: string
        format: date
    responses:
      200:
        description: Transactions
      400:
        description: Invalid date filter
    """
    error = require_identity(client_id)
    if error:
        return error

    try:
        start_date = _parse_date_arg("start_date")
        end_date = _parse_date_arg("end_date")
    except ValueError:
        return jsonify({"error": "invalid_query", "message": "dates must be YYYY-MM-DD"}), 400

    transactions = list_transactions(client_id, request.args.get("search"), start_date, end_date)
    return jsonify({"transactions": [tx.to_dict() for tx in transactions]}), 200


@bp_ext.get("/transactions/<transaction_id>")
def get_transaction(transaction_id: str) -> tuple[dict[str, object], int]:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        return jsonify({"error": "not_found", "message": "Transaction not found"}), 404

    error = require_identity(transaction.client_id)
    if error:
        return error

    return jsonify({"transaction": transaction_detail(transaction)}), 200


@bp_ext.get("/clients/<client_id>/dashboard")
def get_dashboard(client_id: str) -> tuple[dict[str, object], int]:
    error = require_identity(client_id)
    if error:
        return error

    try:
        summary = dashboard_summary(client_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to build dashboard", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify(summary), 200
