from types import SimpleNamespace

import pytest

from service_report_bot.domain.service_report import ImageFile, ServiceReportDraft, SessionContext


class DummyMessage:
    def __init__(self, text: str = "", photo=None, document=None):
        self.text = text
        self.photo = photo or []
        self.document = document
        self.replies = []
        self.documents = []

    async def reply_text(self, text: str, **kwargs):
        self.replies.append(text)

    async def reply_document(self, document=None, **kwargs):
        self.documents.append(document)


class DummyUpdate:
    def __init__(self, user_id: int = 1, text: str = ""):
        self.effective_user = SimpleNamespace(id=user_id)
        self.message = DummyMessage(text=text)


def _valid_fields(tmp_path) -> dict:
    report_img = tmp_path / "report.jpg"
    delivery_img = tmp_path / "delivery.png"
    report_img.write_bytes(b"\xff\xd8\xff")
    delivery_img.write_bytes(b"\x89PNG")
    return dict(
        SerialReportNumber="SR-1001",
        Date="2026-01-31",
        Customer="cust-1",
        timeIn="09:00",
        timeOut="11:30",
        Quotation="Q-77",
        PurchaseOrder="PO-12",
        Inventory="INV-3",
        MachineType="LASER",
        Model="L-500",
        SerialNumber="SN-9",
        ServiceType="SERVICE_CALL",
        description="Replaced the lens",
        JobCompleted="yes",
        concernName="Anna",
        customerdesignation="Plant manager",
        customerPhoneNumber="+100000000",
        spare=["spare-1"],
        serviceReportPicture=ImageFile(path=str(report_img), mime_type="image/jpeg", file_name="report.jpg"),
        deliveryNotePicture=ImageFile(path=str(delivery_img), mime_type="image/png", file_name="delivery.png"),
    )


@pytest.fixture
def make_draft(tmp_path):
    """Фабрика валидного черновика с возможностью переопределить поля."""

    def _make(**overrides) -> ServiceReportDraft:
        fields = _valid_fields(tmp_path)
        fields.update(overrides)
        return ServiceReportDraft(**fields)

    return _make


@pytest.fixture
def session_ctx() -> SessionContext:
    return SessionContext(user_id="user-42", region_id="region-7", token="tok")
