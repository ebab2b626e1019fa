from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

MACHINE_TYPES = ("CIJ", "LASER", "TTO", "PALLET", "TAPPING", "SCALE", "OTHER")
SERVICE_TYPES = (
    "NEW_INSTALLATION",
    "DEMO",
    "SERVICE_CALL",
    "AMC",
    "WARRANTY",
    "FILTERS_REPLACMENT",
    "OTHER",
)
JOB_COMPLETED_VALUES = ("yes", "no")

# Поля, которые существуют только внутри своего варианта
CONDITIONAL_FIELDS = (
    "otherMachineType",
    "headLife",
    "powerONtime",
    "JetRunningTime",
    "INKtype",
    "SolventType",
    "otherServiceType",
    "Unicode",
    "Configurationcode",
    "JobcompleteReason",
)


class ImageFile(BaseModel):
    """Локальный файл изображения, выбранный пользователем."""

    path: str
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


class ServiceReportDraft(BaseModel):
    # Обязательность полей проверяет схема валидации, а не типы
    SerialReportNumber: Optional[str] = None
    Date: Optional[str] = None
    Customer: Optional[str] = None
    timeIn: Optional[str] = None
    timeOut: Optional[str] = None
    Quotation: Optional[str] = None
    PurchaseOrder: Optional[str] = None
    Inventory: Optional[str] = None

    # Машина
    MachineType: Optional[str] = ""
    otherMachineType: Optional[str] = None
    headLife: Optional[str] = None
    powerONtime: Optional[str] = None
    JetRunningTime: Optional[str] = None
    INKtype: Optional[str] = None
    SolventType: Optional[str] = None
    ServiceDueDate: Optional[str] = None
    Model: Optional[str] = None
    SerialNumber: Optional[str] = None

    # Сервис
    ServiceType: Optional[str] = ""
    otherServiceType: Optional[str] = None
    Unicode: Optional[str] = None
    Configurationcode: Optional[str] = None

    description: Optional[str] = None
    JobCompleted: Optional[str] = None
    JobcompleteReason: Optional[str] = None

    # Контакт заказчика
    concernName: Optional[str] = None
    customerdesignation: Optional[str] = None
    customerPhoneNumber: Optional[str] = None

    spare: List[str] = Field(default_factory=list)

    serviceReportPicture: Optional[ImageFile] = None
    deliveryNotePicture: Optional[ImageFile] = None


class ServiceReportPayload(BaseModel):
    """Неизменяемое тело запроса POST /reports."""

    model_config = ConfigDict(frozen=True)

    SerialReportNumber: str
    Date: str
    Customer: str
    timeIn: str
    timeOut: str
    Quotation: str
    PurchaseOrder: str
    Inventory: str
    MachineType: str
    otherMachineType: Optional[str] = None
    headLife: Optional[str] = None
    powerONtime: Optional[str] = None
    JetRunningTime: Optional[str] = None
    INKtype: Optional[str] = None
    SolventType: Optional[str] = None
    ServiceDueDate: Optional[str] = None
    Model: str
    SerialNumber: str
    ServiceType: str
    otherServiceType: Optional[str] = None
    Unicode: Optional[str] = None
    Configurationcode: Optional[str] = None
    description: str
    JobCompleted: str
    JobcompleteReason: Optional[str] = None
    concernName: str
    customerdesignation: str
    customerPhoneNumber: str
    spare: Tuple[str, ...]
    serviceReportPicture: str
    deliveryNotePicture: str
    region: Optional[str] = None
    engineerName: Optional[str] = None

    def to_request_body(self) -> Dict[str, Any]:
        body = self.model_dump()
        # неактивные условные поля в запрос не попадают; ServiceDueDate уходит как null
        for name in CONDITIONAL_FIELDS:
            if body.get(name) is None:
                body.pop(name, None)
        body["spare"] = list(self.spare)
        return body


class SessionContext(BaseModel):
    """Идентификаторы текущей сессии, передаваемые в процесс отправки явно."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    region_id: Optional[str] = None
    token: Optional[str] = None


class SubmitOutcome(BaseModel):
    ok: bool
    message: str
    errors: Dict[str, str] = Field(default_factory=dict)
    error_kind: Optional[str] = None
    # HTTP-статус ответа эндпоинта отчётов (401 означает истёкшую сессию)
    http_status: Optional[int] = None
