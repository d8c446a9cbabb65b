"""Standalone email relay and upload-signature service.

Runs as its own small Flask app (``python -m salonbook.relay``) so mobile
clients can send mail and obtain image-host signatures without holding SMTP
credentials or the signing secret themselves.
"""
from __future__ import annotations

import hashlib
import logging
import os
import smtplib
import ssl
from collections.abc import Mapping
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from .config import Config

logger = logging.getLogger(__name__)

relay_bp = Blueprint("relay", __name__)


def sign_params(params: Mapping[str, object], secret: str) -> str:
    """SHA-1 signature over ``k=v`` pairs sorted by key, joined by ``&``, plus the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{secret}".encode("utf-8")).hexdigest()


def _open_smtp(config: Mapping[str, object]) -> smtplib.SMTP:
    host = config.get("SMTP_HOST")
    port = int(config.get("SMTP_PORT") or 587)
    if port == 465:
        return smtplib.SMTP_SSL(host, port, context=ssl.create_default_context(), timeout=30)
    server = smtplib.SMTP(host, port, timeout=30)
    if config.get("SMTP_USE_TLS", True):
        server.starttls(context=ssl.create_default_context())
    return server


def send_email(config: Mapping[str, object], email: Mapping[str, object]) -> str:
    """Send one message through the configured SMTP server and return its Message-ID."""
    recipients = email.get("to")
    if isinstance(recipients, str):
        recipients = [address.strip() for address in recipients.split(",") if address.strip()]
    if not recipients:
        raise ValueError("Recipient address is required")

    sender = email.get("from") or config.get("MAIL_DEFAULT_SENDER") or config.get("SMTP_USER")
    if not sender:
        raise ValueError("Sender address is required")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = email.get("subject") or ""
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Message-ID"] = make_msgid()
    if email.get("text"):
        msg.attach(MIMEText(email["text"], "plain"))
    if email.get("html"):
        msg.attach(MIMEText(email["html"], "html"))

    server = _open_smtp(config)
    try:
        if config.get("SMTP_USER"):
            server.login(config["SMTP_USER"], config.get("SMTP_PASSWORD") or "")
        server.sendmail(sender.split("<")[-1].rstrip(">"), recipients, msg.as_string())
    finally:
        server.quit()
    return msg["Message-ID"]


def verify_smtp(config: Mapping[str, object]) -> bool:
    """Log whether the SMTP server accepts a connection with the configured credentials."""
    try:
        server = _open_smtp(config)
        try:
            if config.get("SMTP_USER"):
                server.login(config["SMTP_USER"], config.get("SMTP_PASSWORD") or "")
            server.noop()
        finally:
            server.quit()
    except (OSError, smtplib.SMTPException) as exc:
        logger.error("SMTP verification failed: %s", exc)
        return False
    logger.info("SMTP server %s is ready to take messages", config.get("SMTP_HOST"))
    return True


@relay_bp.post("/send-email")
def send_email_route() -> tuple[dict[str, object], int]:
    """Relay one email.
    ---
    tags:
      - Relay
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: object
              properties:
                to:
                  type: string
                subject:
                  type: string
                text:
                  type: string
                html:
                  type: string
                from:
                  type: string
    responses:
      200:
        description: Email sent
      400:
        description: Missing email block
      500:
        description: SMTP failure
    """
    payload = request.get_json(silent=True) or {}
    email = payload.get("email")
    if not isinstance(email, dict):
        return jsonify({"success": False, "error": "Missing email", "message": "Failed to send email"}), 400

    # Any client-supplied smtp block is ignored; the server's own settings are used.
    current_app.logger.info("Received email request to %s: %s", email.get("to"), email.get("subject"))
    try:
        message_id = send_email(current_app.config, email)
    except (OSError, ValueError, smtplib.SMTPException) as exc:
        current_app.logger.exception("Error sending email", exc_info=exc)
        return jsonify({"success": False, "error": str(exc), "message": "Failed to send email"}), 500

    current_app.logger.info("Email sent successfully: %s", message_id)
    return jsonify({"success": True, "messageId": message_id, "message": "Email sent successfully"}), 200


@relay_bp.get("/health")
def relay_health() -> tuple[dict[str, str], int]:
    return jsonify({
        "status": "OK",
        "message": "Email server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }), 200


@relay_bp.post("/cloudinary-sign")
def cloudinary_sign() -> tuple[dict[str, object], int]:
    """Sign upload parameters for a direct image upload.
    ---
    tags:
      - Relay
    responses:
      200:
        description: Signature for the given params
      400:
        description: Missing params
      503:
        description: Signing secret not configured
    """
    payload = request.get_json(silent=True) or {}
    params = payload.get("params")
    if not params or not isinstance(params, dict):
        return jsonify({"error": "Missing params"}), 400

    secret = current_app.config.get("CLOUDINARY_API_SECRET")
    if not secret:
        current_app.logger.error("Signature requested but CLOUDINARY_API_SECRET is not set")
        return jsonify({"error": "Signing is not configured"}), 503

    return jsonify({"signature": sign_params(params, secret)}), 200


def create_relay_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)

    CORS(app)
    app.register_blueprint(relay_bp)
    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    relay_app = create_relay_app()
    verify_smtp(relay_app.config)

    port = int(os.environ.get("RELAY_PORT", relay_app.config["RELAY_PORT"]))
    logger.info("Email relay running on http://localhost:%s (health check at /health)", port)
    relay_app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
