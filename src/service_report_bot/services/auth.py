from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional

from telegram import Update

from ..config import USER_SESSION_DIR
from ..domain.service_report import SessionContext
from ..infra import api_client
from ..utils.logging import log_print

logger = logging.getLogger("service_report_bot")


# Сессия пользователя в бэкенде
@dataclass
class UserSession:
    email: str
    password: Optional[str]
    token: str
    user_id: Optional[str]
    region_id: Optional[str]
    role: Optional[str] = None
    name: str = ""


user_sessions: Dict[int, UserSession] = {}
# auth_flow_stage: telegram user_id -> "await_email" | "await_password"
auth_flow_stage: Dict[int, str] = {}
auth_flow_data: Dict[int, Dict[str, str]] = {}


def check_access(user_id: int, allowed_user_ids: Optional[list[str]]) -> bool:
    if not allowed_user_ids:
        return True
    return str(user_id) in allowed_user_ids


def _reset_auth_flow(user_id: int) -> None:
    auth_flow_stage.pop(user_id, None)
    auth_flow_data.pop(user_id, None)


def _user_session_path(user_id: int) -> Path:
    return Path(USER_SESSION_DIR) / f"{user_id}_session.json"


def _atomic_write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def _load_user_session(user_id: int) -> Optional[UserSession]:
    path = _user_session_path(user_id)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if data.get("token"):
            return UserSession(**data)
    except (OSError, ValueError, TypeError) as e:
        log_print(logger, f"Не удалось прочитать сессию {path}: {e}", "WARNING")
    return None


def _save_user_session(user_id: int, email: str, password: Optional[str], login_data: dict) -> UserSession:
    session = UserSession(
        email=email,
        password=password,
        token=login_data["token"],
        user_id=login_data.get("user_id"),
        region_id=login_data.get("region_id"),
        role=login_data.get("role"),
        name=login_data.get("name") or "",
    )
    user_sessions[user_id] = session
    # Пишем сессию сразу в файл, чтобы она пережила перезапуск бота
    try:
        _atomic_write_json(_user_session_path(user_id), asdict(session))
    except OSError as e:
        log_print(logger, f"Не удалось записать сессию пользователя {user_id}: {e}", "ERROR")
    return session


def forget_session(user_id: int) -> Optional[UserSession]:
    session = get_session(user_id)
    user_sessions.pop(user_id, None)
    _user_session_path(user_id).unlink(missing_ok=True)
    return session


def get_session(user_id: int) -> Optional[UserSession]:
    session = user_sessions.get(user_id)
    if session and session.token:
        return session
    session = _load_user_session(user_id)
    if session:
        user_sessions[user_id] = session
    return session


def get_current_user_id(user_id: int) -> Optional[str]:
    session = get_session(user_id)
    return session.user_id if session else None


def get_current_region_id(user_id: int) -> Optional[str]:
    session = get_session(user_id)
    return session.region_id if session else None


def get_session_context(user_id: int) -> Optional[SessionContext]:
    session = get_session(user_id)
    if not session:
        return None
    return SessionContext(user_id=session.user_id, region_id=session.region_id, token=session.token)


def login_user(user_id: int, email: str, password: str) -> UserSession:
    """Авторизация в бэкенде и сохранение сессии. Исключения пробрасываются."""
    login_data = api_client.login(email, password)
    return _save_user_session(user_id, email=email, password=password, login_data=login_data)


def _try_autologin(user_id: int) -> Optional[UserSession]:
    session = _load_user_session(user_id) or user_sessions.get(user_id)
    if not session or not session.email or not session.password:
        return None
    try:
        return login_user(user_id, session.email, session.password)
    except Exception as e:
        log_print(logger, f"Автологин не удался: {e}", "ERROR")
        return None


def refresh_session(user_id: int) -> Optional[SessionContext]:
    """
    Пытается обновить сессию пользователя по сохранённым учётным данным.
    Возвращает новый контекст сессии при успехе.
    """
    if not _try_autologin(user_id):
        return None
    return get_session_context(user_id)


async def _prompt_login(update: Update) -> None:
    """Запускает диалог авторизации: сначала email, потом пароль."""
    user_id = update.effective_user.id
    _reset_auth_flow(user_id)
    auth_flow_stage[user_id] = "await_email"
    auth_flow_data[user_id] = {}
    await update.message.reply_text(
        "🔐 Connect your service account to file reports.\n"
        "Enter your email:"
    )


async def ensure_user_authenticated(update: Update) -> Optional[SessionContext]:
    """Возвращает контекст сессии. Если его нет, запускает запрос логина."""
    user_id = update.effective_user.id
    ctx = get_session_context(user_id)
    if ctx:
        return ctx
    await update.message.reply_text("ℹ️ You need to sign in first. Use /login.")
    await _prompt_login(update)
    return None
