from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

from ..domain.errors import AssetFormatError, UploadError
from ..domain.service_report import ImageFile
from ..infra.asset_host import DEFAULT_UPLOAD_ERROR, upload_asset

logger = logging.getLogger("service_report_bot")

VALID_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/jpg",
    "image/heic",
    "image/heif",
)
INVALID_FORMAT_MESSAGE = "Invalid image format. Use JPG/PNG/WEBP/HEIC."

Uploader = Callable[[ImageFile, str], Awaitable[str]]


def check_mime(*files: Optional[ImageFile]) -> None:
    """Все файлы должны иметь MIME из белого списка, иначе AssetFormatError."""
    for f in files:
        if f is None or (f.mime_type or "").lower() not in VALID_IMAGE_TYPES:
            raise AssetFormatError(INVALID_FORMAT_MESSAGE)


async def upload_in_thread(file: ImageFile, preset: str) -> str:
    """Загрузка через requests в отдельном потоке, чтобы не блокировать event loop."""
    return await asyncio.to_thread(upload_asset, file, preset)


def _discard_result(task: asyncio.Task) -> None:
    # результат отменённой загрузки никому не нужен
    if not task.cancelled():
        task.exception()


async def upload_pair(
    report_file: ImageFile,
    delivery_file: ImageFile,
    report_preset: str,
    delivery_preset: str,
    uploader: Uploader = upload_in_thread,
) -> Tuple[str, str]:
    """
    Загружает фото отчёта и накладной параллельно.

    Ожидание завершается при первой ошибке: вторая загрузка отменяется,
    частичный результат наружу не отдаётся.

    Returns:
        (url отчёта, url накладной)
    """
    tasks = [
        asyncio.create_task(uploader(report_file, report_preset)),
        asyncio.create_task(uploader(delivery_file, delivery_preset)),
    ]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

    failed = next((t for t in tasks if t in done and t.exception() is not None), None)
    if failed is not None:
        for t in pending:
            t.cancel()
            t.add_done_callback(_discard_result)
        for t in done:
            _discard_result(t)
        exc = failed.exception()
        logger.warning("Asset upload failed: %s", exc)
        if isinstance(exc, UploadError):
            raise exc
        raise UploadError(str(exc) or DEFAULT_UPLOAD_ERROR) from exc

    return tasks[0].result(), tasks[1].result()
