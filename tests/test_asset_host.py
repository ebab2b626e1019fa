import pytest
import requests

from service_report_bot.domain.errors import UploadError
from service_report_bot.domain.service_report import ImageFile
from service_report_bot.infra import asset_host


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.ok = status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "report.jpg"
    path.write_bytes(b"\xff\xd8\xff")
    return ImageFile(path=str(path), mime_type="image/jpeg")


def test_upload_sends_preset_and_returns_secure_url(monkeypatch, image):
    calls = []

    def fake_post(url, data=None, files=None, timeout=None):
        calls.append((url, data, files))
        return FakeResponse(payload={"secure_url": "https://res.cloudinary.com/demo/report.jpg"})

    monkeypatch.setattr(asset_host.requests, "post", fake_post)

    url = asset_host.upload_asset(image, "reports", url="https://api.example/upload", cloud_name="demo")

    assert url == "https://res.cloudinary.com/demo/report.jpg"
    target, data, files = calls[0]
    assert target == "https://api.example/upload"
    assert data == {"upload_preset": "reports", "cloud_name": "demo"}
    assert files["file"][0] == "report.jpg"
    assert files["file"][2] == "image/jpeg"


def test_upload_error_message_from_host(monkeypatch, image):
    monkeypatch.setattr(
        asset_host.requests,
        "post",
        lambda *a, **k: FakeResponse(400, {"error": {"message": "Upload preset not found"}}),
    )
    with pytest.raises(UploadError) as exc:
        asset_host.upload_asset(image, "missing", url="https://api.example/upload")
    assert exc.value.message == "Upload preset not found"


def test_upload_without_secure_url_uses_default_message(monkeypatch, image):
    monkeypatch.setattr(asset_host.requests, "post", lambda *a, **k: FakeResponse(200, {}))
    with pytest.raises(UploadError) as exc:
        asset_host.upload_asset(image, "reports", url="https://api.example/upload")
    assert exc.value.message == asset_host.DEFAULT_UPLOAD_ERROR


def test_upload_transport_error(monkeypatch, image):
    def boom(*a, **k):
        raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(asset_host.requests, "post", boom)
    with pytest.raises(UploadError) as exc:
        asset_host.upload_asset(image, "reports", url="https://api.example/upload")
    assert exc.value.message == "connection reset"


def test_upload_missing_file(tmp_path):
    missing = ImageFile(path=str(tmp_path / "gone.jpg"), mime_type="image/jpeg")
    with pytest.raises(UploadError):
        asset_host.upload_asset(missing, "reports", url="https://api.example/upload")
