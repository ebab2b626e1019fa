"""
Схема условной валидации черновика сервисного отчёта.

Часть полей обязательна всегда, часть только внутри своего варианта
(MachineType, ServiceType, JobCompleted). Вне варианта такие поля не
проверяются и не попадают в отправляемые данные.

Валидация не останавливается на первой ошибке: проверяются все правила,
результаты сливаются в один словарь {поле: сообщение}.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Set

from ..domain.service_report import (
    CONDITIONAL_FIELDS,
    JOB_COMPLETED_VALUES,
    MACHINE_TYPES,
    SERVICE_TYPES,
    ServiceReportDraft,
)

REQUIRED = "Required"

REQUIRED_TEXT_FIELDS = (
    "SerialReportNumber",
    "Date",
    "Customer",
    "timeIn",
    "timeOut",
    "Quotation",
    "PurchaseOrder",
    "Inventory",
    "Model",
    "SerialNumber",
    "description",
    "concernName",
    "customerdesignation",
    "customerPhoneNumber",
)

# Поля, которые обрезаются по краям перед отправкой
TRIMMED_FIELDS = ("SerialReportNumber", "description")

ENUM_FIELDS = {
    "MachineType": MACHINE_TYPES,
    "ServiceType": SERVICE_TYPES,
    "JobCompleted": JOB_COMPLETED_VALUES,
}

# значение поля-переключателя -> {условное поле: сообщение}
MACHINE_VARIANTS = {
    "OTHER": {"otherMachineType": "Specify other machine type"},
    "TTO": {"headLife": "Head life is required for TTO"},
    "CIJ": {
        "powerONtime": REQUIRED,
        "JetRunningTime": REQUIRED,
        "INKtype": REQUIRED,
        "SolventType": REQUIRED,
    },
}
SERVICE_VARIANTS = {
    "OTHER": {"otherServiceType": "Specify service type"},
    "NEW_INSTALLATION": {"Unicode": REQUIRED, "Configurationcode": REQUIRED},
}
JOB_VARIANTS = {
    "no": {"JobcompleteReason": "Required when not completed"},
}

VARIANT_TRIGGERS = (
    ("MachineType", MACHINE_VARIANTS),
    ("ServiceType", SERVICE_VARIANTS),
    ("JobCompleted", JOB_VARIANTS),
)

PICTURE_MESSAGES = {
    "serviceReportPicture": "Service report image is required",
    "deliveryNotePicture": "Delivery note image is required",
}

SPARE_MIN_MESSAGE = "Select at least one spare part"


@dataclass
class ValidationResult:
    valid: bool
    errors: Dict[str, str] = field(default_factory=dict)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def active_conditional_fields(draft: ServiceReportDraft) -> Dict[str, str]:
    """Условные поля, активные для текущих значений переключателей."""
    active: Dict[str, str] = {}
    for trigger, variants in VARIANT_TRIGGERS:
        active.update(variants.get(getattr(draft, trigger), {}))
    return active


def exempt_fields(draft: ServiceReportDraft) -> Set[str]:
    """Условные поля, которые для этого черновика не существуют."""
    return set(CONDITIONAL_FIELDS) - set(active_conditional_fields(draft))


def _check_required(draft: ServiceReportDraft, names: Iterable[str]) -> Dict[str, str]:
    return {name: REQUIRED for name in names if _is_blank(getattr(draft, name))}


def _check_enums(draft: ServiceReportDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for name, allowed in ENUM_FIELDS.items():
        value = getattr(draft, name)
        if _is_blank(value):
            errors[name] = REQUIRED
        elif value not in allowed:
            errors[name] = f"Must be one of: {', '.join(allowed)}"
    return errors


def _check_variants(draft: ServiceReportDraft) -> Dict[str, str]:
    # Каждый вариант проверяется отдельно, ошибки сливаются
    errors: Dict[str, str] = {}
    for trigger, variants in VARIANT_TRIGGERS:
        sub_record = variants.get(getattr(draft, trigger), {})
        for name, message in sub_record.items():
            if _is_blank(getattr(draft, name)):
                errors[name] = message
    return errors


def _check_spares(draft: ServiceReportDraft) -> Dict[str, str]:
    spares = draft.spare or []
    if len(spares) < 1:
        return {"spare": SPARE_MIN_MESSAGE}
    if any(_is_blank(s) for s in spares):
        return {"spare": REQUIRED}
    return {}


def _check_pictures(draft: ServiceReportDraft) -> Dict[str, str]:
    # только наличие файла; тип MIME проверяется перед загрузкой
    errors: Dict[str, str] = {}
    for name, message in PICTURE_MESSAGES.items():
        picture = getattr(draft, name)
        if picture is None or _is_blank(picture.path):
            errors[name] = message
    return errors


def validate_draft(draft: ServiceReportDraft) -> ValidationResult:
    errors: Dict[str, str] = {}
    errors.update(_check_required(draft, REQUIRED_TEXT_FIELDS))
    errors.update(_check_enums(draft))
    errors.update(_check_variants(draft))
    errors.update(_check_spares(draft))
    errors.update(_check_pictures(draft))
    return ValidationResult(valid=not errors, errors=errors)


def clean_draft(draft: ServiceReportDraft) -> Dict[str, Any]:
    """
    Данные черновика в виде, пригодном для отправки.

    Неактивные условные поля удаляются, ServiceDueDate приводится к None,
    если пустой. Изображения не включаются: их заменяют URL после загрузки.
    """
    data = draft.model_dump(exclude={"serviceReportPicture", "deliveryNotePicture"})
    for name in exempt_fields(draft):
        data.pop(name, None)
    for name in TRIMMED_FIELDS:
        if isinstance(data.get(name), str):
            data[name] = data[name].strip()
    if _is_blank(data.get("ServiceDueDate")):
        data["ServiceDueDate"] = None
    data["spare"] = list(draft.spare or [])
    return data
