import hashlib
import io

import httpx
import pytest

from storepos.errors import MediaUnavailable
from storepos.services import media_service
from storepos.services.media_service import MediaStore, UploadedFile, public_id_from_url, sign_params
from storepos.validation import ValidationError


@pytest.mark.parametrize("url,expected", [
    ("https://res.cloudinary.com/demo/image/upload/v1712/storepos/receipts/abc.jpg", "storepos/receipts/abc"),
    ("https://res.cloudinary.com/demo/image/upload/v1/storepos/p/img.png?x=1", "storepos/p/img"),
    ("https://res.cloudinary.com/demo/image/upload/v99/noext", "noext"),
    ("https://example.com/file.jpg", None),
    (None, None),
    ("", None),
])
def test_public_id_from_url(url, expected):
    assert public_id_from_url(url) == expected


def test_sign_params_sorts_and_skips_empty():
    params = {"timestamp": 1700000000, "folder": "storepos", "public_id": None}
    expected = hashlib.sha1(b"folder=storepos&timestamp=1700000000secret").hexdigest()
    assert sign_params(params, "secret") == expected


def _store():
    store = MediaStore()
    store.cloud_name = "demo"
    store.api_key = "key"
    store.api_secret = "secret"
    return store


class _FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        return self._body


class _FakeClient:
    calls = []
    response = None
    error = None

    def __init__(self, timeout=None):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, url, data=None, files=None):
        _FakeClient.calls.append((url, data, files))
        if _FakeClient.error is not None:
            raise _FakeClient.error
        return _FakeClient.response


@pytest.fixture
def fake_http(monkeypatch):
    _FakeClient.calls = []
    _FakeClient.response = None
    _FakeClient.error = None
    monkeypatch.setattr(media_service.httpx, "Client", _FakeClient)
    return _FakeClient


class TestMediaStore:
    def test_disabled_store_raises(self, app):
        with pytest.raises(MediaUnavailable):
            MediaStore().delete("storepos/x")

    def test_upload_returns_secure_url(self, app, fake_http):
        fake_http.response = _FakeResponse(200, {"secure_url": "https://res.cloudinary.com/demo/v1/storepos/r/a.jpg"})

        url = _store().upload(
            UploadedFile("a.jpg", io.BytesIO(b"data"), "image/jpeg"),
            subfolder="r",
        )

        assert url.endswith("/storepos/r/a.jpg")
        called_url, data, files = fake_http.calls[0]
        assert called_url == "https://api.cloudinary.com/v1_1/demo/image/upload"
        assert data["folder"] == "storepos/r"
        assert data["api_key"] == "key"
        assert "signature" in data
        assert files["file"][0] == "a.jpg"

    def test_upload_rejects_unsupported_type(self, app, fake_http):
        with pytest.raises(ValidationError):
            _store().upload(UploadedFile("a.exe", io.BytesIO(b"MZ"), "application/x-msdownload"))
        assert fake_http.calls == []

    def test_http_error_becomes_media_unavailable(self, app, fake_http):
        fake_http.error = httpx.ConnectError("boom")
        with pytest.raises(MediaUnavailable):
            _store().delete("storepos/x")

    def test_delete_quietly_swallows_failures(self, app, fake_http):
        fake_http.response = _FakeResponse(500, {"error": "down"})
        url = "https://res.cloudinary.com/demo/image/upload/v1/storepos/r/a.jpg"
        assert _store().delete_quietly(url) is False

    def test_delete_quietly_not_found_is_success(self, app, fake_http):
        fake_http.response = _FakeResponse(200, {"result": "not found"})
        url = "https://res.cloudinary.com/demo/image/upload/v1/storepos/r/a.jpg"
        assert _store().delete_quietly(url) is True
        assert fake_http.calls[0][1]["public_id"] == "storepos/r/a"
