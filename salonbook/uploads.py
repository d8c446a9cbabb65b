"""Profile image uploads to the image host.

An unsigned upload with the configured preset is tried first. When the host
reports that the preset does not exist, a signature is requested from the
relay (see :mod:`salonbook.relay`) and a signed upload is made instead.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Mapping

import httpx

from .errors import UploadError

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"
PRESET_MISSING = "Upload preset not found"
SIGNER_PORT = 3001
LOOPBACK_SIGNERS = (
    f"http://10.0.2.2:{SIGNER_PORT}",
    f"http://localhost:{SIGNER_PORT}",
    f"http://127.0.0.1:{SIGNER_PORT}",
)


class CloudinaryUploader:
    def __init__(
        self,
        cloud_name: str,
        api_key: str = "",
        upload_preset: str = "",
        folder: str = "",
        signer_url: str = "",
        lan_host: str = "",
        client: httpx.Client | None = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.upload_preset = upload_preset
        self.folder = folder
        self.signer_url = signer_url
        self.lan_host = lan_host
        # A client passed in belongs to the caller and is left open.
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=30.0)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> CloudinaryUploader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @classmethod
    def from_config(cls, config: Mapping[str, object], client: httpx.Client | None = None) -> CloudinaryUploader:
        return cls(
            cloud_name=config.get("CLOUDINARY_CLOUD_NAME") or "",
            api_key=config.get("CLOUDINARY_API_KEY") or "",
            upload_preset=config.get("CLOUDINARY_UPLOAD_PRESET") or "",
            folder=config.get("CLOUDINARY_FOLDER") or "",
            signer_url=config.get("CLOUDINARY_SIGNER_URL") or "",
            lan_host=config.get("SIGNER_LAN_HOST") or "",
            client=client,
        )

    @property
    def upload_url(self) -> str:
        return UPLOAD_URL.format(cloud_name=self.cloud_name)

    def signer_candidates(self) -> list[str]:
        """Signer base URLs in the order they are tried, without duplicates."""
        candidates = []
        if self.signer_url:
            candidates.append(self.signer_url.rstrip("/"))
        if self.lan_host:
            candidates.append(f"http://{self.lan_host}:{SIGNER_PORT}")
        candidates.extend(LOOPBACK_SIGNERS)
        return list(dict.fromkeys(candidates))

    def upload_image(self, content: bytes, filename: str = "profile_image.jpg",
                     content_type: str = "image/jpeg") -> str:
        """Upload ``content`` and return its ``secure_url``."""
        files = {"file": (filename, content, content_type)}
        try:
            response = self.client.post(self.upload_url, data={"upload_preset": self.upload_preset}, files=files)
        except httpx.HTTPError as exc:
            raise UploadError(f"Cloudinary upload failed: {exc}") from exc

        if response.is_success:
            return self._secure_url(response, "Cloudinary upload did not return a secure_url")

        if PRESET_MISSING not in response.text:
            raise UploadError(f"Cloudinary upload failed: {response.text}")

        logger.info("Upload preset %r not found; falling back to a signed upload", self.upload_preset)
        return self._signed_upload(files)

    def request_signature(self, params: Mapping[str, object]) -> str:
        last_error: object = None
        for base in self.signer_candidates():
            try:
                response = self.client.post(f"{base}/cloudinary-sign", json={"params": dict(params)})
            except httpx.HTTPError as exc:
                logger.debug("Signer %s unreachable: %s", base, exc)
                last_error = exc
                continue
            if response.is_success:
                signature = response.json().get("signature")
                if signature:
                    return signature
                last_error = "signer response carried no signature"
            else:
                last_error = response.text

        raise UploadError(
            "Failed to get Cloudinary signature from the signer. Ensure the relay is running and "
            f"reachable. Last error: {last_error}"
        )

    def _signed_upload(self, files: dict[str, tuple]) -> str:
        timestamp = int(time.time())
        signature = self.request_signature({"timestamp": timestamp, "folder": self.folder})
        data = {
            "api_key": self.api_key,
            "timestamp": str(timestamp),
            "signature": signature,
            "folder": self.folder,
        }
        try:
            response = self.client.post(self.upload_url, data=data, files=files)
        except httpx.HTTPError as exc:
            raise UploadError(f"Cloudinary signed upload failed: {exc}") from exc
        if not response.is_success:
            raise UploadError(f"Cloudinary signed upload failed: {response.text}")
        return self._secure_url(response, "Cloudinary signed upload did not return a secure_url")

    @staticmethod
    def _secure_url(response: httpx.Response, message: str) -> str:
        try:
            secure_url = response.json().get("secure_url")
        except ValueError:
            secure_url = None
        if not secure_url:
            raise UploadError(message)
        return secure_url
