"""Tests for profile image uploads and the signed-upload fallback."""
from __future__ import annotations

import io

import httpx
import pytest

from salonbook.errors import UploadError
from salonbook.extensions import db
from salonbook.models import User
from salonbook.uploads import CloudinaryUploader

UPLOAD_HOST = "api.cloudinary.com"
SECURE_URL = "https://res.cloudinary.com/demo/image/upload/v1/salonbook/avatar.jpg"


def _uploader(handler, **overrides) -> CloudinaryUploader:
    settings = {
        "cloud_name": "demo",
        "api_key": "key-123",
        "upload_preset": "salonbook",
        "folder": "salonbook",
        "signer_url": "http://signer.local:3001",
    }
    settings.update(overrides)
    return CloudinaryUploader(client=httpx.Client(transport=httpx.MockTransport(handler)), **settings)


def test_unsigned_upload_returns_secure_url() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = request.read()
        assert b"upload_preset" in body
        assert b"signature" not in body
        return httpx.Response(200, json={"secure_url": SECURE_URL})

    url = _uploader(handler).upload_image(b"jpeg-bytes", "avatar.jpg")

    assert url == SECURE_URL
    assert len(seen) == 1
    assert seen[0].url.host == UPLOAD_HOST
    assert seen[0].url.path == "/v1_1/demo/image/upload"


def test_missing_preset_falls_back_to_signed_upload() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = request.read()
        calls.append((request.url.host, request.url.path))
        if request.url.path == "/cloudinary-sign":
            return httpx.Response(200, json={"signature": "sig-abc"})
        if b"upload_preset" in body:
            return httpx.Response(400, json={"error": {"message": "Upload preset not found"}})
        assert b"sig-abc" in body
        assert b"key-123" in body
        return httpx.Response(200, json={"secure_url": SECURE_URL})

    url = _uploader(handler).upload_image(b"jpeg-bytes")

    assert url == SECURE_URL
    assert calls == [
        (UPLOAD_HOST, "/v1_1/demo/image/upload"),
        ("signer.local", "/cloudinary-sign"),
        (UPLOAD_HOST, "/v1_1/demo/image/upload"),
    ]


def test_signer_candidates_are_tried_in_order() -> None:
    tried = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/cloudinary-sign":
            tried.append(request.url.host)
            if request.url.host != "localhost":
                raise httpx.ConnectError("unreachable", request=request)
            return httpx.Response(200, json={"signature": "sig-local"})
        return httpx.Response(500)

    uploader = _uploader(handler, signer_url="", lan_host="192.168.1.20")

    assert uploader.request_signature({"timestamp": 1}) == "sig-local"
    assert tried == ["192.168.1.20", "10.0.2.2", "localhost"]


def test_signer_candidates_deduplicate() -> None:
    uploader = CloudinaryUploader("demo", signer_url="http://localhost:3001/", client=httpx.Client())

    assert uploader.signer_candidates() == [
        "http://localhost:3001",
        "http://10.0.2.2:3001",
        "http://127.0.0.1:3001",
    ]


def test_no_reachable_signer_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/cloudinary-sign":
            raise httpx.ConnectError("unreachable", request=request)
        return httpx.Response(400, text="Upload preset not found")

    with pytest.raises(UploadError) as excinfo:
        _uploader(handler).upload_image(b"jpeg-bytes")

    assert "signer" in excinfo.value.message


def test_other_upload_failures_are_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(401, text="Invalid cloud_name demo")

    with pytest.raises(UploadError) as excinfo:
        _uploader(handler).upload_image(b"jpeg-bytes")

    assert "Invalid cloud_name" in excinfo.value.message
    assert len(calls) == 1


def test_success_without_secure_url_is_an_error() -> None:
    uploader = _uploader(lambda request: httpx.Response(200, json={"public_id": "x"}))

    with pytest.raises(UploadError):
        uploader.upload_image(b"jpeg-bytes")


def test_profile_image_route(client, auth_headers, client_user, monkeypatch) -> None:
    monkeypatch.setattr(CloudinaryUploader, "upload_image", lambda self, content, filename, content_type: SECURE_URL)

    response = client.post(
        "/users/c1/profile-image",
        data={"file": (io.BytesIO(b"jpeg-bytes"), "avatar.jpg", "image/jpeg")},
        content_type="multipart/form-data",
        headers=auth_headers("c1"),
    )

    assert response.status_code == 200
    assert response.json == {"imageURL": SECURE_URL}
    db.session.expire_all()
    assert db.session.get(User, "c1").image_url == SECURE_URL


def test_profile_image_route_reports_upload_failure(client, auth_headers, client_user, monkeypatch) -> None:
    def fail(self, content, filename, content_type):
        raise UploadError("Cloudinary upload failed: boom")

    monkeypatch.setattr(CloudinaryUploader, "upload_image", fail)

    response = client.post(
        "/users/c1/profile-image",
        data={"file": (io.BytesIO(b"jpeg-bytes"), "avatar.jpg")},
        content_type="multipart/form-data",
        headers=auth_headers("c1"),
    )

    assert response.status_code == 502
    assert response.json["error"] == "upload_failed"


def test_profile_image_route_requires_file(client, auth_headers, client_user) -> None:
    response = client.post("/users/c1/profile-image", data={}, headers=auth_headers("c1"))

    assert response.status_code == 400


def test_uploader_closes_the_client_it_created() -> None:
    with CloudinaryUploader("demo") as uploader:
        assert not uploader.client.is_closed

    assert uploader.client.is_closed


def test_uploader_leaves_a_supplied_client_open() -> None:
    client = httpx.Client()

    with CloudinaryUploader("demo", client=client):
        pass

    assert not client.is_closed
    client.close()


def test_profile_image_route_closes_its_client(client, auth_headers, client_user, monkeypatch) -> None:
    uploaders = []
    original_from_config = CloudinaryUploader.from_config.__func__

    def tracking_from_config(cls, config, client=None):
        uploader = original_from_config(cls, config, client)
        uploaders.append(uploader)
        return uploader

    monkeypatch.setattr(CloudinaryUploader, "from_config", classmethod(tracking_from_config))
    monkeypatch.setattr(CloudinaryUploader, "upload_image", lambda self, content, filename, content_type: SECURE_URL)

    response = client.post(
        "/users/c1/profile-image",
        data={"file": (io.BytesIO(b"jpeg-bytes"), "avatar.jpg", "image/jpeg")},
        content_type="multipart/form-data",
        headers=auth_headers("c1"),
    )

    assert response.status_code == 200
    assert len(uploaders) == 1
    assert uploaders[0].client.is_closed
