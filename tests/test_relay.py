"""Tests for the email relay and upload-signature service."""
from __future__ import annotations

import hashlib
import smtplib
from unittest.mock import patch

import pytest

from salonbook.relay import create_relay_app, sign_params

RELAY_CONFIG = {
    "TESTING": True,
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": 587,
    "SMTP_USER": "relay@example.com",
    "SMTP_PASSWORD": "app-password",
    "CLOUDINARY_API_SECRET": "signing-secret",
}


@pytest.fixture
def relay_client():
    return create_relay_app(dict(RELAY_CONFIG)).test_client()


def test_sign_params_sorts_keys() -> None:
    expected = hashlib.sha1(b"folder=salonbook&timestamp=1700000000signing-secret").hexdigest()

    assert sign_params({"timestamp": 1700000000, "folder": "salonbook"}, "signing-secret") == expected


def test_health(relay_client) -> None:
    response = relay_client.get("/health")

    assert response.status_code == 200
    assert response.json["status"] == "OK"
    assert response.json["message"] == "Email server is running"
    assert response.json["timestamp"]


def test_cloudinary_sign(relay_client) -> None:
    params = {"timestamp": 1700000000, "folder": "salonbook"}

    response = relay_client.post("/cloudinary-sign", json={"params": params})

    assert response.status_code == 200
    assert response.json == {"signature": sign_params(params, "signing-secret")}


def test_cloudinary_sign_requires_params(relay_client) -> None:
    response = relay_client.post("/cloudinary-sign", json={})

    assert response.status_code == 400
    assert response.json == {"error": "Missing params"}


def test_cloudinary_sign_without_secret() -> None:
    client = create_relay_app({**RELAY_CONFIG, "CLOUDINARY_API_SECRET": ""}).test_client()

    response = client.post("/cloudinary-sign", json={"params": {"timestamp": 1}})

    assert response.status_code == 503


def test_send_email_uses_server_settings(relay_client) -> None:
    payload = {
        "email": {
            "to": "carla@example.com",
            "subject": "Your booking",
            "text": "See you tomorrow",
            "html": "<p>See you tomorrow</p>",
        },
        "smtp": {"host": "evil.example.com", "auth": {"user": "x", "pass": "y"}},
    }

    with patch("salonbook.relay.smtplib.SMTP") as smtp_cls:
        response = relay_client.post("/send-email", json=payload)

    assert response.status_code == 200
    assert response.json["success"] is True
    assert response.json["messageId"]
    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server = smtp_cls.return_value
    server.login.assert_called_once_with("relay@example.com", "app-password")
    sender, recipients, _ = server.sendmail.call_args.args
    assert sender == "relay@example.com"
    assert recipients == ["carla@example.com"]
    server.quit.assert_called_once()


def test_send_email_failure(relay_client) -> None:
    with patch("salonbook.relay.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        response = relay_client.post("/send-email", json={"email": {"to": "carla@example.com", "text": "hi"}})

    assert response.status_code == 500
    assert response.json["success"] is False
    assert response.json["message"] == "Failed to send email"
    smtp_cls.return_value.quit.assert_called_once()


def test_send_email_requires_email_block(relay_client) -> None:
    response = relay_client.post("/send-email", json={"smtp": {}})

    assert response.status_code == 400
    assert response.json["success"] is False
