"""Тесты для процесса отправки сервисного отчёта"""

import asyncio

import pytest
import requests

from service_report_bot.domain.errors import UploadError
from service_report_bot.domain.service_report import ImageFile, ServiceReportDraft
from service_report_bot.services.submission import (
    BUSY_MESSAGE,
    DEFAULT_SUBMISSION_ERROR,
    SUCCESS_MESSAGE,
    ServiceReportWorkflow,
    WorkflowState,
)
from service_report_bot.services.uploads import INVALID_FORMAT_MESSAGE


class Recorder:
    """Фейковые загрузчик и эндпоинт отчётов, пишущие журнал вызовов."""

    def __init__(self, response=None, fail_preset=None, create_exc=None):
        self.events = []
        self.uploads = []
        self.bodies = []
        self.response = response if response is not None else {"status": "success"}
        self.fail_preset = fail_preset
        self.create_exc = create_exc

    async def uploader(self, file, preset):
        self.uploads.append(preset)
        self.events.append(f"start:{preset}")
        await asyncio.sleep(0.02 if preset == "report" else 0.01)
        if preset == self.fail_preset:
            self.events.append(f"fail:{preset}")
            raise UploadError(f"{preset} rejected by asset host")
        self.events.append(f"done:{preset}")
        return f"https://cdn/{preset}.jpg"

    async def creator(self, body, token):
        self.events.append("create")
        self.bodies.append((body, token))
        if self.create_exc:
            raise self.create_exc
        return self.response


def _workflow(rec: Recorder) -> ServiceReportWorkflow:
    return ServiceReportWorkflow(
        uploader=rec.uploader,
        report_creator=rec.creator,
        report_preset="report",
        delivery_preset="delivery",
    )


@pytest.mark.asyncio
async def test_success_uploads_then_creates_and_resets(make_draft, session_ctx):
    rec = Recorder()
    wf = _workflow(rec)

    outcome = await wf.submit(session_ctx, make_draft(ServiceDueDate=""))

    assert outcome.ok is True
    assert outcome.message == SUCCESS_MESSAGE
    # обе загрузки стартуют до завершения любой из них, create после обеих
    assert rec.events[:2] == ["start:report", "start:delivery"]
    assert rec.events[-1] == "create"
    assert rec.events.index("create") > max(rec.events.index("done:report"), rec.events.index("done:delivery"))

    body, token = rec.bodies[0]
    assert token == "tok"
    assert body["serviceReportPicture"] == "https://cdn/report.jpg"
    assert body["deliveryNotePicture"] == "https://cdn/delivery.jpg"
    assert body["region"] == "region-7"
    assert body["engineerName"] == "user-42"
    assert body["ServiceDueDate"] is None
    assert body["spare"] == ["spare-1"]

    assert wf.draft == ServiceReportDraft()
    assert wf.current_errors == {}
    assert wf.state is WorkflowState.IDLE


@pytest.mark.asyncio
async def test_server_failure_keeps_draft(make_draft, session_ctx):
    rec = Recorder(response={"status": "fail", "message": "Duplicate report number"})
    wf = _workflow(rec)
    draft = make_draft()

    outcome = await wf.submit(session_ctx, draft)

    assert outcome.ok is False
    assert outcome.message == "Duplicate report number"
    assert outcome.error_kind == "submission"
    assert wf.draft.SerialReportNumber == "SR-1001"
    assert wf.draft == draft
    assert wf.last_message == "Duplicate report number"


@pytest.mark.asyncio
async def test_server_failure_without_message_uses_default(make_draft, session_ctx):
    rec = Recorder(response={"status": "error"})
    outcome = await _workflow(rec).submit(session_ctx, make_draft())
    assert outcome.message == DEFAULT_SUBMISSION_ERROR


@pytest.mark.asyncio
async def test_transport_failure_is_submission_error(make_draft, session_ctx):
    rec = Recorder(create_exc=requests.ConnectionError("connection refused"))
    wf = _workflow(rec)

    outcome = await wf.submit(session_ctx, make_draft())

    assert outcome.ok is False
    assert outcome.error_kind == "submission"
    assert "connection refused" in outcome.message
    assert wf.draft.SerialReportNumber == "SR-1001"


@pytest.mark.asyncio
async def test_expired_token_reports_http_status(make_draft, session_ctx):
    response = requests.Response()
    response.status_code = 401
    rec = Recorder(create_exc=requests.HTTPError("401 Unauthorized", response=response))
    wf = _workflow(rec)

    outcome = await wf.submit(session_ctx, make_draft())

    assert outcome.ok is False
    assert outcome.http_status == 401
    assert wf.draft.SerialReportNumber == "SR-1001"


@pytest.mark.asyncio
async def test_disallowed_mime_makes_no_uploads(make_draft, session_ctx, tmp_path):
    rec = Recorder()
    notes = tmp_path / "notes.txt"
    notes.write_text("not an image", encoding="utf-8")
    draft = make_draft(serviceReportPicture=ImageFile(path=str(notes), mime_type="text/plain"))

    outcome = await _workflow(rec).submit(session_ctx, draft)

    assert outcome.ok is False
    assert outcome.error_kind == "asset_format"
    assert outcome.message == INVALID_FORMAT_MESSAGE
    assert rec.uploads == []
    assert rec.bodies == []


@pytest.mark.asyncio
async def test_upload_failure_never_creates_report(make_draft, session_ctx):
    rec = Recorder(fail_preset="report")
    wf = _workflow(rec)

    outcome = await wf.submit(session_ctx, make_draft())

    assert outcome.ok is False
    assert outcome.error_kind == "upload"
    assert outcome.message == "report rejected by asset host"
    assert rec.bodies == []
    assert wf.draft.SerialReportNumber == "SR-1001"


@pytest.mark.asyncio
async def test_validation_failure_makes_no_network_calls(make_draft, session_ctx):
    rec = Recorder()
    wf = _workflow(rec)

    outcome = await wf.submit(session_ctx, make_draft(MachineType="OTHER", otherMachineType=""))

    assert outcome.ok is False
    assert outcome.error_kind == "validation"
    assert outcome.errors == {"otherMachineType": "Specify other machine type"}
    assert wf.current_errors == {"otherMachineType": "Specify other machine type"}
    assert rec.uploads == []
    assert rec.bodies == []
    assert wf.state is WorkflowState.IDLE


@pytest.mark.asyncio
async def test_errors_cleared_after_successful_retry(make_draft, session_ctx):
    rec = Recorder()
    wf = _workflow(rec)

    await wf.submit(session_ctx, make_draft(spare=[]))
    assert "spare" in wf.current_errors

    wf.draft.spare = ["spare-2"]
    outcome = await wf.submit(session_ctx)
    assert outcome.ok is True
    assert wf.current_errors == {}


@pytest.mark.asyncio
async def test_second_submit_while_in_flight_is_refused(make_draft, session_ctx):
    release = asyncio.Event()
    rec = Recorder()

    async def slow_uploader(file, preset):
        await release.wait()
        return await rec.uploader(file, preset)

    wf = ServiceReportWorkflow(uploader=slow_uploader, report_creator=rec.creator)
    first = asyncio.create_task(wf.submit(session_ctx, make_draft()))
    await asyncio.sleep(0.01)
    assert wf.busy is True

    second = await wf.submit(session_ctx, make_draft(SerialReportNumber="SR-2"))
    assert second.ok is False
    assert second.message == BUSY_MESSAGE

    release.set()
    outcome = await first
    assert outcome.ok is True
    assert len(rec.bodies) == 1
    assert rec.bodies[0][0]["SerialReportNumber"] == "SR-1001"
