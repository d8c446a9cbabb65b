"""Client registration, login and profile settings."""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ConflictError, NotFoundError, ProfileValidationError
from .extensions import db
from .models import User, utc_now

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_PHONE_LENGTH = 10
MIN_PASSWORD_LENGTH = 6

PROFILE_FIELDS = ("firstName", "lastName", "middleName", "email", "phone", "address")


def _text(form: Mapping[str, object], key: str) -> str:
    value = form.get(key)
    return value.strip() if isinstance(value, str) else ""


def _check_email(email: str) -> None:
    if not email:
        raise ProfileValidationError("Email is required")
    if not EMAIL_PATTERN.search(email):
        raise ProfileValidationError("Please enter a valid email address")


def validate_registration(form: Mapping[str, object]) -> None:
    """Raise :class:`ProfileValidationError` for the first invalid field."""
    if not _text(form, "firstName"):
        raise ProfileValidationError("First name is required")
    if not _text(form, "lastName"):
        raise ProfileValidationError("Last name is required")
    if not _text(form, "address"):
        raise ProfileValidationError("Address is required")

    _check_email(_text(form, "email"))

    phone = _text(form, "phone")
    if not phone:
        raise ProfileValidationError("Phone number is required")
    if len(phone) < MIN_PHONE_LENGTH:
        raise ProfileValidationError("Please enter a valid phone number")

    password = form.get("password") or ""
    if not password:
        raise ProfileValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ProfileValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != form.get("confirmPassword"):
        raise ProfileValidationError("Passwords do not match")
    if not form.get("acceptTerms"):
        raise ProfileValidationError("You must accept the terms and conditions")


def find_user_by_email(email: str, session: Session | None = None) -> User | None:
    session = session or db.session
    return session.scalars(select(User).where(User.email == email.strip().lower())).first()


def register_user(form: Mapping[str, object], session: Session | None = None) -> User:
    """Create a client account from the registration form."""
    session = session or db.session
    validate_registration(form)

    email = _text(form, "email").lower()
    if find_user_by_email(email, session) is not None:
        raise ConflictError("email address is already in use")

    first_name = _text(form, "firstName")
    last_name = _text(form, "lastName")
    user = User(
        first_name=first_name,
        last_name=last_name,
        middle_name=_text(form, "middleName") or None,
        name=f"{first_name} {last_name}",
        email=email,
        phone=_text(form, "phone"),
        address=_text(form, "address"),
        image_url=_text(form, "imageURL") or None,
        user_type="client",
        roles=["client"],
        password_hash=generate_password_hash(form["password"]),
    )
    session.add(user)
    session.commit()
    logger.info("Registered client %s", user.id)
    return user


def authenticate(email: str, password: str, session: Session | None = None) -> User | None:
    """Return the active user matching the credentials, else ``None``."""
    if not email or not password:
        return None
    user = find_user_by_email(email, session)
    if user is None or not user.is_active or not user.password_hash:
        return None
    if not check_password_hash(user.password_hash, password):
        return None
    return user


def _get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_profile(user_id: str, form: Mapping[str, object], session: Session | None = None) -> User:
    session = session or db.session
    first_name = _text(form, "firstName")
    last_name = _text(form, "lastName")
    email = _text(form, "email")

    if not first_name:
        raise ProfileValidationError("First name is required")
    if not last_name:
        raise ProfileValidationError("Last name is required")
    _check_email(email)

    user = _get_user(session, user_id)
    email = email.lower()
    if email != user.email:
        existing = find_user_by_email(email, session)
        if existing is not None and existing.id != user.id:
            raise ConflictError("email address is already in use")

    user.first_name = first_name
    user.last_name = last_name
    user.middle_name = _text(form, "middleName")
    user.email = email
    user.phone = _text(form, "phone")
    user.address = _text(form, "address")
    user.name = f"{first_name} {last_name}"
    if "imageURL" in form:
        user.image_url = _text(form, "imageURL") or None
    user.updated_at = utc_now()

    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    return user


def set_profile_image(user_id: str, image_url: str, session: Session | None = None) -> User:
    session = session or db.session
    user = _get_user(session, user_id)
    user.image_url = image_url
    user.updated_at = utc_now()
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    return user


def set_notifications_enabled(user_id: str, enabled: bool, session: Session | None = None) -> User:
    """Persist the notification switch; a failed write restores the previous value."""
    session = session or db.session
    user = _get_user(session, user_id)
    previous = user.notifications_enabled

    user.notifications_enabled = bool(enabled)
    user.updated_at = utc_now()
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        user.notifications_enabled = previous
        logger.warning("Failed to update notification settings for %s; keeping %s",
                       user_id, previous, exc_info=exc)
        raise
    return user
