import asyncio
import logging

import requests
from telegram import Update
from telegram.ext import ContextTypes

from ..infra import api_client
from ..services import auth
from ..services.settings import ALLOWED_USER_IDS
from ..utils.logging import log_print
from .access import reply_private

logger = logging.getLogger("service_report_bot")


async def login_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Запуск ручной авторизации в бэкенде"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return
    await auth._prompt_login(update)


async def logout_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Выход: закрывает сессию в бэкенде и удаляет локальную"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return

    user_id = update.effective_user.id
    session = auth.forget_session(user_id)
    auth._reset_auth_flow(user_id)
    if session and session.token:
        try:
            await asyncio.to_thread(api_client.logout, session.token)
        except requests.RequestException as e:
            # локальная сессия уже удалена, ошибка бэкенда не мешает выходу
            log_print(logger, f"Ошибка logout в бэкенде: {e}", "WARNING")
    await update.message.reply_text("👋 Signed out. Use /login to sign in again.")


async def text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Обработчик текстовых сообщений вне формы: диалог авторизации"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        return

    user_id = update.effective_user.id
    text = (update.message.text or "").strip()

    stage = auth.auth_flow_stage.get(user_id)
    if stage == "await_email":
        auth.auth_flow_data.setdefault(user_id, {})["email"] = text
        auth.auth_flow_stage[user_id] = "await_password"
        await update.message.reply_text("Enter your password:")
        return

    if stage == "await_password":
        creds = auth.auth_flow_data.get(user_id, {})
        email = creds.get("email")
        password = text

        if not email or not password:
            auth._reset_auth_flow(user_id)
            await update.message.reply_text("❌ Email or password is empty. Try /login again.")
            return

        try:
            session = await asyncio.to_thread(auth.login_user, user_id, email, password)
            auth._reset_auth_flow(user_id)
            name = f", {session.name}" if session.name else ""
            await update.message.reply_text(f"✅ Signed in{name}. Use /report to file a service report.")
        except Exception as e:
            auth._reset_auth_flow(user_id)
            log_print(logger, f"Ошибка авторизации: {e}", "ERROR")
            await update.message.reply_text(f"❌ Sign-in failed: {api_client.error_message(e, 'unknown error')}")
        return

    await update.message.reply_text("ℹ️ Use /report to file a service report or /help for commands.")
