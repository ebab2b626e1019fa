"""Тесты для проверки MIME и параллельной загрузки изображений"""

import asyncio
import time

import pytest

from service_report_bot.domain.errors import AssetFormatError, UploadError
from service_report_bot.domain.service_report import ImageFile
from service_report_bot.services.uploads import INVALID_FORMAT_MESSAGE, check_mime, upload_pair

REPORT = ImageFile(path="report.jpg", mime_type="image/jpeg")
DELIVERY = ImageFile(path="delivery.png", mime_type="image/png")


def test_check_mime_accepts_allow_list():
    for mime in ("image/jpeg", "image/png", "image/webp", "image/jpg", "image/heic", "IMAGE/HEIF"):
        check_mime(ImageFile(path="x", mime_type=mime))


def test_check_mime_rejects_text_plain():
    with pytest.raises(AssetFormatError) as exc:
        check_mime(REPORT, ImageFile(path="notes.txt", mime_type="text/plain"))
    assert exc.value.message == INVALID_FORMAT_MESSAGE


def test_check_mime_rejects_missing_type():
    with pytest.raises(AssetFormatError):
        check_mime(ImageFile(path="x", mime_type=None))


@pytest.mark.asyncio
async def test_uploads_run_concurrently():
    in_flight = 0
    max_in_flight = 0
    latencies = {"report-preset": 0.05, "delivery-preset": 0.02}

    async def fake_uploader(file, preset):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(latencies[preset])
        in_flight -= 1
        return f"https://cdn/{preset}/{file.path}"

    urls = await upload_pair(REPORT, DELIVERY, "report-preset", "delivery-preset", uploader=fake_uploader)

    assert max_in_flight == 2
    assert urls == ("https://cdn/report-preset/report.jpg", "https://cdn/delivery-preset/delivery.png")


@pytest.mark.asyncio
async def test_first_failure_does_not_wait_for_second_upload():
    cancelled = asyncio.Event()

    async def fake_uploader(file, preset):
        if preset == "report":
            await asyncio.sleep(0.01)
            raise UploadError("Upload preset not found")
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "https://cdn/delivery"

    started = time.monotonic()
    with pytest.raises(UploadError) as exc:
        await upload_pair(REPORT, DELIVERY, "report", "delivery", uploader=fake_uploader)

    assert time.monotonic() - started < 2
    assert exc.value.message == "Upload preset not found"
    await asyncio.sleep(0.01)
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_unexpected_uploader_error_wrapped():
    async def fake_uploader(file, preset):
        if preset == "delivery":
            raise ConnectionError("host unreachable")
        return "https://cdn/report"

    with pytest.raises(UploadError) as exc:
        await upload_pair(REPORT, DELIVERY, "report", "delivery", uploader=fake_uploader)
    assert exc.value.message == "host unreachable"
