# Overview: Signed upload/delete client for the Cloudinary media host.

"""
Media Store

Receipt and product images live on an external media host; the rest of the
service only stores the returned URL. Deletion is keyed by the host's
public id, which is recoverable from the URL.

NOTE: instantiated in extensions.py, so this module must not import it.
"""

from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass
from typing import BinaryIO

import httpx
from flask import current_app

from ..errors import MediaUnavailable
from ..validation import ValidationError


API_BASE = "https://api.cloudinary.com/v1_1"
PUBLIC_ID_RE = re.compile(r"/v\d+/(.+?)(?:\.[^./]+)?$")
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif", "application/pdf"}


def public_id_from_url(url: str | None) -> str | None:
    """
    https://res.cloudinary.com/demo/image/upload/v1712/storepos/receipts/abc.jpg
    -> "storepos/receipts/abc"
    """
    if not url:
        return None
    match = PUBLIC_ID_RE.search(url.split("?", 1)[0])
    return match.group(1) if match else None


def sign_params(params: dict, api_secret: str) -> str:
    """SHA-1 over the sorted key=value pairs followed by the API secret."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


@dataclass
class UploadedFile:
    filename: str
    stream: BinaryIO
    content_type: str | None = None


class MediaStore:
    def __init__(self, app=None):
        self.cloud_name = None
        self.api_key = None
        self.api_secret = None
        self.folder = "storepos"
        self.timeout = 5.0
        self.max_upload_bytes = 5 * 1024 * 1024
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.cloud_name = app.config.get("MEDIA_CLOUD_NAME")
        self.api_key = app.config.get("MEDIA_API_KEY")
        self.api_secret = app.config.get("MEDIA_API_SECRET")
        self.folder = app.config.get("MEDIA_FOLDER", "storepos")
        self.timeout = float(app.config.get("STORAGE_TIMEOUT_SECONDS", 5))
        self.max_upload_bytes = int(app.config.get("MEDIA_MAX_UPLOAD_BYTES", self.max_upload_bytes))
        app.extensions["media"] = self

    @property
    def enabled(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": sign_params(params, self.api_secret)}

    def _post(self, action: str, data: dict, files: dict | None = None) -> dict:
        if not self.enabled:
            raise MediaUnavailable("Media storage is not configured")

        url = f"{API_BASE}/{self.cloud_name}/image/{action}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, data=data, files=files)
        except httpx.HTTPError as exc:
            raise MediaUnavailable(f"Media host unreachable: {exc}") from exc

        if response.status_code != 200:
            raise MediaUnavailable(
                f"Media host returned HTTP {response.status_code}",
                details={"body": response.text[:200]},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MediaUnavailable("Media host returned a non-JSON response") from exc

    def upload(self, file: UploadedFile, *, subfolder: str | None = None) -> str:
        """Upload a file and return its HTTPS URL."""
        content = file.stream.read()
        if len(content) > self.max_upload_bytes:
            raise ValidationError(f"File exceeds {self.max_upload_bytes} bytes")
        if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(f"Unsupported file type {file.content_type}")

        folder = f"{self.folder}/{subfolder}" if subfolder else self.folder
        body = self._post(
            "upload",
            self._signed({"folder": folder}),
            files={"file": (file.filename, content, file.content_type or "application/octet-stream")},
        )
        url = body.get("secure_url") or body.get("url")
        if not url:
            raise MediaUnavailable("Media host response missing URL")
        return url

    def delete(self, public_id: str) -> None:
        body = self._post("destroy", self._signed({"public_id": public_id}))
        if body.get("result") not in ("ok", "not found"):
            raise MediaUnavailable(f"Media delete failed: {body.get('result')}")

    def delete_quietly(self, url: str | None) -> bool:
        """
        Best-effort delete by URL. Failures are logged and swallowed so the
        caller's write always goes through.
        """
        public_id = public_id_from_url(url)
        if public_id is None:
            return False
        try:
            self.delete(public_id)
        except MediaUnavailable as exc:
            current_app.logger.warning("Media delete failed for %s: %s", public_id, exc.message)
            return False
        return True
