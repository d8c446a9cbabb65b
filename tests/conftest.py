"""pytest configuration: path management, app/client fixtures and seed helpers."""
from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app  # noqa: E402
from salonbook.auth import build_token  # noqa: E402
from salonbook.extensions import db  # noqa: E402
from salonbook.models import Appointment, Branch, Service, User  # noqa: E402

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret",
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "CLOUDINARY_CLOUD_NAME": "demo",
    "CLOUDINARY_API_KEY": "key-123",
    "CLOUDINARY_API_SECRET": "test-signing-secret",
    "CLOUDINARY_UPLOAD_PRESET": "salonbook",
    "CLOUDINARY_FOLDER": "salonbook",
}


@pytest.fixture
def app():
    app = create_app(dict(TEST_CONFIG))
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tomorrow() -> str:
    return (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def branch(app):
    branch = Branch(id="b1", name="Makati Branch", address="Ayala Ave", phone="0281234567")
    db.session.add(branch)
    db.session.commit()
    return branch


@pytest.fixture
def stylist(app, branch):
    stylist = User(
        id="sty1",
        first_name="Ana",
        last_name="Reyes",
        email="ana@example.com",
        user_type="stylist",
        branch_id=branch.id,
    )
    db.session.add(stylist)
    db.session.commit()
    return stylist


@pytest.fixture
def client_user(app):
    user = User(
        id="c1",
        first_name="Carla",
        last_name="Cruz",
        name="Carla Cruz",
        email="carla@example.com",
        phone="09171234567",
        user_type="client",
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def service(app):
    service = Service(id="svc1", name="Haircut", price=100, duration=45)
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def auth_headers(app):
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {build_token({'user_id': user_id})}"}

    return _headers


@pytest.fixture
def make_appointment(app):
    def _make(**fields) -> Appointment:
        fields.setdefault("client_id", "c1")
        fields.setdefault("branch_id", "b1")
        fields.setdefault("status", "pending")
        appointment = Appointment(**fields)
        db.session.add(appointment)
        db.session.commit()
        return appointment

    return _make
