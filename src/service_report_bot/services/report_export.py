import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from docxtpl import DocxTemplate

from ..config import CACHE_DIR, REPORT_TEMPLATE_PATH

EMPTY = "-"


def _label(value: Any) -> str:
    """Название вложенного объекта бэкенда (заказчик, регион, инженер) или само значение."""
    if value is None or value == "":
        return EMPTY
    if isinstance(value, dict):
        name = value.get("name") or value.get("_id") or EMPTY
        code = value.get("code")
        return f"{name} ({code})" if code else str(name)
    return str(value)


def format_date(value: Any) -> str:
    """ISO-дата бэкенда -> ДД.ММ.ГГГГ; нераспознанное значение возвращается как есть."""
    if not value:
        return EMPTY
    text = str(value)
    try:
        return datetime.fromisoformat(text[:10]).strftime("%d.%m.%Y")
    except ValueError:
        return text


def _spares_text(spares: Optional[Iterable[Any]]) -> str:
    items = [_label(s) for s in (spares or [])]
    return ", ".join(items) if items else EMPTY


def report_context(report: Dict[str, Any]) -> Dict[str, str]:
    """Плоский контекст шаблона из отчёта в формате бэкенда."""
    machine_type = report.get("MachineType") or EMPTY
    if machine_type == "CIJ":
        machine_details = (
            f"Power ON {report.get('powerONtime') or EMPTY}, "
            f"jet running {report.get('JetRunningTime') or EMPTY}, "
            f"ink {report.get('INKtype') or EMPTY}, "
            f"solvent {report.get('SolventType') or EMPTY}"
        )
    elif machine_type == "TTO":
        machine_details = f"Head life {report.get('headLife') or EMPTY}"
    elif machine_type == "OTHER":
        machine_details = report.get("otherMachineType") or EMPTY
    else:
        machine_details = EMPTY

    service_type = report.get("ServiceType") or EMPTY
    if service_type == "NEW_INSTALLATION":
        service_details = (
            f"Unicode {report.get('Unicode') or EMPTY}, "
            f"configuration code {report.get('Configurationcode') or EMPTY}"
        )
    elif service_type == "OTHER":
        service_details = report.get("otherServiceType") or EMPTY
    else:
        service_details = EMPTY

    context = {
        name: _label(report.get(name))
        for name in (
            "SerialReportNumber",
            "Customer",
            "region",
            "engineerName",
            "timeIn",
            "timeOut",
            "Quotation",
            "PurchaseOrder",
            "Inventory",
            "Model",
            "SerialNumber",
            "description",
            "JobCompleted",
            "JobcompleteReason",
            "concernName",
            "customerdesignation",
            "customerPhoneNumber",
            "serviceReportPicture",
            "deliveryNotePicture",
        )
    }
    context.update(
        Date=format_date(report.get("Date")),
        ServiceDueDate=format_date(report.get("ServiceDueDate")),
        MachineType=machine_type,
        machine_details=machine_details,
        ServiceType=service_type,
        service_details=service_details,
        spare=_spares_text(report.get("spare")),
    )
    return context


def find_report(reports: List[Dict[str, Any]], serial: str) -> Optional[Dict[str, Any]]:
    serial = serial.strip()
    return next((r for r in reports if str(r.get("SerialReportNumber", "")).strip() == serial), None)


def generate_report_document(report: Dict[str, Any], template_path: Optional[Path] = None) -> str:
    """
    Генерирует DOCX файл отчёта на основе шаблона.
    Возвращает путь к созданному файлу.
    """
    template = Path(template_path or REPORT_TEMPLATE_PATH)
    if not template.exists():
        raise FileNotFoundError(f"Report template not found: {template}")

    doc = DocxTemplate(str(template))
    context = report_context(report)
    doc.render(context, autoescape=True)

    # Имя файла: report_<номер>_<дата>.docx
    serial = re.sub(r"[^\w.-]+", "_", context["SerialReportNumber"]).strip("_") or "report"
    date_str = context["Date"].replace(".", "_")
    output_path = Path(CACHE_DIR) / "reports"
    output_path.mkdir(parents=True, exist_ok=True)

    full_path = output_path / f"report_{serial}_{date_str}.docx"
    doc.save(str(full_path))
    return str(full_path)
