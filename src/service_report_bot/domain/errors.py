from typing import Dict, Optional


class ServiceReportError(Exception):
    """Базовая ошибка процесса отправки сервисного отчёта."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ReportValidationError(ServiceReportError):
    kind = "validation"

    def __init__(self, errors: Dict[str, str], message: str = "Please fix the highlighted fields"):
        super().__init__(message)
        self.errors = dict(errors)


class AssetFormatError(ServiceReportError):
    kind = "asset_format"


class UploadError(ServiceReportError):
    kind = "upload"


class SubmissionError(ServiceReportError):
    kind = "submission"

    def __init__(self, message: str, status: Optional[str] = None, http_status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.http_status = http_status
