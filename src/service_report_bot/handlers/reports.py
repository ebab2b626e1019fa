import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from telegram import Update
from telegram.ext import ContextTypes

from ..config import REPORTS_LIST_LIMIT
from ..domain.service_report import SessionContext
from ..infra import api_client
from ..services import auth
from ..services.report_export import EMPTY, find_report, format_date, generate_report_document
from ..services.settings import ALLOWED_USER_IDS
from ..utils.logging import log_print
from .access import reply_private

logger = logging.getLogger("service_report_bot")


def _name(value: Any) -> str:
    if isinstance(value, dict):
        return value.get("name") or EMPTY
    return str(value) if value else EMPTY


def format_reports(reports: List[Dict[str, Any]], limit: int = REPORTS_LIST_LIMIT) -> str:
    if not reports:
        return "📭 No service reports yet."
    lines = [f"📋 Last {min(limit, len(reports))} of {len(reports)} reports:", ""]
    for r in reports[-limit:][::-1]:
        done = "✅" if r.get("JobCompleted") == "yes" else "⏳"
        lines.append(
            f"{done} {r.get('SerialReportNumber') or EMPTY} · {format_date(r.get('Date'))} · "
            f"{_name(r.get('Customer'))} · {r.get('MachineType') or EMPTY} / {r.get('ServiceType') or EMPTY}"
        )
    return "\n".join(lines)


async def _fetch_reports(update: Update) -> Optional[List[Dict[str, Any]]]:
    """Список отчётов с одной попыткой автологина при 401. None: ответ пользователю уже отправлен."""
    session: Optional[SessionContext] = await auth.ensure_user_authenticated(update)
    if not session:
        return None
    try:
        return await asyncio.to_thread(api_client.list_reports, session.token)
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "unknown"
        logger.error(f"HTTP error while listing reports: {status}", exc_info=True)
        if status == 401:
            session = await asyncio.to_thread(auth.refresh_session, update.effective_user.id)
            if session:
                try:
                    return await asyncio.to_thread(api_client.list_reports, session.token)
                except requests.RequestException:
                    pass
            await update.message.reply_text("❌ Your session has expired. Use /login to sign in again.")
            return None
        await update.message.reply_text(f"❌ Failed to load reports: {api_client.error_message(e, str(status))}")
    except requests.RequestException as e:
        log_print(logger, f"Ошибка загрузки отчётов: {e}", "ERROR")
        await update.message.reply_text(f"❌ Failed to load reports: {e}")
    return None


async def reports_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Команда /reports"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return

    reports = await _fetch_reports(update)
    if reports is None:
        return
    await update.message.reply_text(format_reports(reports))


async def export_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Команда /export [номер отчёта]"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return

    if not context.args:
        await update.message.reply_text("❌ Specify the report number. Example: /export SR-1024")
        return

    serial = " ".join(context.args)
    reports = await _fetch_reports(update)
    if reports is None:
        return

    report = find_report(reports, serial)
    if not report:
        await update.message.reply_text(f"❌ Report {serial} not found.")
        return

    file_path = None
    try:
        file_path = await asyncio.to_thread(generate_report_document, report)
        with open(file_path, "rb") as document:
            await update.message.reply_document(document=document)
    except Exception as e:
        logger.exception("Ошибка при генерации документа отчёта")
        await update.message.reply_text(f"❌ Could not build the document: {e}")
    finally:
        # документ уже в Telegram, локальная копия не нужна
        if file_path:
            Path(file_path).unlink(missing_ok=True)
