"""
Процесс отправки сервисного отчёта.

Последовательность: валидация -> проверка MIME -> параллельная загрузка
изображений -> сборка payload -> POST /reports. Любая ошибка возвращает
процесс в IDLE с одним сообщением для пользователя; черновик при этом не
меняется. Успех сбрасывает черновик.

Повторов нет: каждая попытка запускается пользователем заново и загружает
изображения снова (URL прошлых загрузок не кешируются).
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import requests

from ..config import UPLOAD_PRESET_DELIVERY, UPLOAD_PRESET_REPORT
from ..domain.errors import ReportValidationError, ServiceReportError, SubmissionError
from ..domain.service_report import (
    ServiceReportDraft,
    ServiceReportPayload,
    SessionContext,
    SubmitOutcome,
)
from ..infra import api_client
from .reference_data import ReferenceData
from .uploads import Uploader, check_mime, upload_in_thread, upload_pair
from .validation import clean_draft, validate_draft

logger = logging.getLogger("service_report_bot")

SUCCESS_MESSAGE = "Service report created successfully!"
DEFAULT_SUBMISSION_ERROR = "Failed to create report"
GENERIC_ERROR = "Something went wrong"
BUSY_MESSAGE = "Submission already in progress"

ReportCreator = Callable[[Dict[str, Any], Optional[str]], Awaitable[Dict[str, Any]]]


class WorkflowState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CHECKING_MIME = "checking_mime"
    UPLOADING = "uploading"
    SUBMITTING = "submitting"


async def create_report_in_thread(body: Dict[str, Any], token: Optional[str]) -> Dict[str, Any]:
    return await asyncio.to_thread(api_client.create_report, body, token)


def build_payload(
    draft: ServiceReportDraft,
    report_url: str,
    delivery_url: str,
    session: SessionContext,
) -> ServiceReportPayload:
    return ServiceReportPayload(
        **clean_draft(draft),
        serviceReportPicture=report_url,
        deliveryNotePicture=delivery_url,
        region=session.region_id,
        engineerName=session.user_id,
    )


class ServiceReportWorkflow:
    def __init__(
        self,
        uploader: Uploader = upload_in_thread,
        report_creator: ReportCreator = create_report_in_thread,
        report_preset: str = UPLOAD_PRESET_REPORT,
        delivery_preset: str = UPLOAD_PRESET_DELIVERY,
        reference: Optional[ReferenceData] = None,
    ):
        self._uploader = uploader
        self._report_creator = report_creator
        self._report_preset = report_preset
        self._delivery_preset = delivery_preset
        self.reference = reference or ReferenceData()
        self.draft = ServiceReportDraft()
        self.state = WorkflowState.IDLE
        self.last_message: Optional[str] = None
        self._errors: Dict[str, str] = {}

    @property
    def current_errors(self) -> Dict[str, str]:
        return dict(self._errors)

    @property
    def busy(self) -> bool:
        return self.state is not WorkflowState.IDLE

    def reset(self) -> None:
        self.draft = ServiceReportDraft()
        self._errors = {}

    def _set_state(self, state: WorkflowState) -> None:
        logger.debug("Report workflow: %s -> %s", self.state.value, state.value)
        self.state = state

    async def submit(self, session: SessionContext, draft: Optional[ServiceReportDraft] = None) -> SubmitOutcome:
        """Единственная точка входа. Исключения наружу не выходят."""
        if self.busy:
            return SubmitOutcome(ok=False, message=BUSY_MESSAGE, error_kind="busy")
        if draft is not None:
            self.draft = draft
        snapshot = self.draft.model_copy(deep=True)

        try:
            await self._run(snapshot, session)
        except ReportValidationError as e:
            self._errors = e.errors
            return self._failed(e.message, e.kind)
        except ServiceReportError as e:
            self._errors = {}
            return self._failed(e.message, e.kind, getattr(e, "http_status", None))
        except Exception as e:
            logger.exception("Unexpected error while submitting report")
            self._errors = {}
            return self._failed(str(e) or GENERIC_ERROR, "unexpected")
        finally:
            self._set_state(WorkflowState.IDLE)

        logger.info("Service report %s created", snapshot.SerialReportNumber)
        self.reset()
        self.last_message = SUCCESS_MESSAGE
        return SubmitOutcome(ok=True, message=SUCCESS_MESSAGE)

    def _failed(self, message: str, kind: str, http_status: Optional[int] = None) -> SubmitOutcome:
        logger.warning("Report submission failed (%s): %s", kind, message)
        self.last_message = message
        return SubmitOutcome(
            ok=False, message=message, errors=self.current_errors, error_kind=kind, http_status=http_status
        )

    async def _run(self, draft: ServiceReportDraft, session: SessionContext) -> None:
        self._set_state(WorkflowState.VALIDATING)
        result = validate_draft(draft)
        if not result.valid:
            raise ReportValidationError(result.errors)

        self._set_state(WorkflowState.CHECKING_MIME)
        check_mime(draft.serviceReportPicture, draft.deliveryNotePicture)

        self._set_state(WorkflowState.UPLOADING)
        report_url, delivery_url = await upload_pair(
            draft.serviceReportPicture,
            draft.deliveryNotePicture,
            self._report_preset,
            self._delivery_preset,
            uploader=self._uploader,
        )

        self._set_state(WorkflowState.SUBMITTING)
        payload = build_payload(draft, report_url, delivery_url, session)
        try:
            response = await self._report_creator(payload.to_request_body(), session.token)
        except requests.RequestException as e:
            http_status = e.response.status_code if getattr(e, "response", None) is not None else None
            raise SubmissionError(
                api_client.error_message(e, DEFAULT_SUBMISSION_ERROR), http_status=http_status
            ) from e

        response = response or {}
        status = response.get("status")
        if status != "success":
            raise SubmissionError(response.get("message") or DEFAULT_SUBMISSION_ERROR, status=status)
