# asset_host.py
from pathlib import Path
from typing import Optional

import requests

from ..config import CLOUDINARY_CLOUD_NAME, CLOUDINARY_URL, REQUEST_TIMEOUT
from ..domain.errors import UploadError
from ..domain.service_report import ImageFile

DEFAULT_UPLOAD_ERROR = "Cloudinary upload failed"


def _upstream_message(response: Optional[requests.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message")
    return None


def upload_asset(
    file: ImageFile,
    preset: str,
    url: Optional[str] = None,
    cloud_name: Optional[str] = None,
) -> str:
    """
    Загружает файл на Cloudinary (unsigned upload) под указанным пресетом.

    Returns:
        secure_url загруженного файла
    Raises:
        UploadError: хост отклонил файл или недоступен
    """
    target = url or CLOUDINARY_URL
    if not target:
        raise UploadError("Asset host URL is not configured")

    path = Path(file.path)
    try:
        with open(path, "rb") as fh:
            r = requests.post(
                target,
                data={"upload_preset": preset, "cloud_name": cloud_name or CLOUDINARY_CLOUD_NAME},
                files={"file": (file.file_name or path.name, fh, file.mime_type or "application/octet-stream")},
                timeout=REQUEST_TIMEOUT,
            )
    except OSError as e:
        raise UploadError(str(e) or DEFAULT_UPLOAD_ERROR) from e
    except requests.RequestException as e:
        raise UploadError(_upstream_message(e.response) or str(e) or DEFAULT_UPLOAD_ERROR) from e

    try:
        data = r.json()
    except ValueError:
        data = {}
    secure_url = data.get("secure_url") if isinstance(data, dict) else None

    if not r.ok or not secure_url:
        raise UploadError(_upstream_message(r) or DEFAULT_UPLOAD_ERROR)
    return secure_url
