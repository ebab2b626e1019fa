import json

import pytest

from service_report_bot.services import auth
from service_report_bot.handlers import login as login_handlers

from conftest import DummyUpdate

LOGIN_DATA = {"token": "jwt-1", "user_id": "u1", "region_id": "r1", "role": "engineer", "name": "Ivan"}


@pytest.fixture(autouse=True)
def reset_state(monkeypatch, tmp_path):
    auth.auth_flow_stage.clear()
    auth.auth_flow_data.clear()
    auth.user_sessions.clear()
    session_dir = tmp_path / "sessions"
    session_dir.mkdir()
    monkeypatch.setattr(auth, "USER_SESSION_DIR", str(session_dir))
    # Доступ в тестах не проверяем
    monkeypatch.setattr(login_handlers, "ALLOWED_USER_IDS", None)
    yield session_dir


def test_login_user_persists_session(monkeypatch, reset_state):
    monkeypatch.setattr(auth.api_client, "login", lambda email, password: dict(LOGIN_DATA))

    auth.login_user(7, "eng@example.com", "secret")

    saved = json.loads((reset_state / "7_session.json").read_text(encoding="utf-8"))
    assert saved["token"] == "jwt-1"
    assert saved["region_id"] == "r1"

    ctx = auth.get_session_context(7)
    assert ctx.user_id == "u1"
    assert ctx.region_id == "r1"
    assert ctx.token == "jwt-1"


def test_session_survives_restart(monkeypatch):
    monkeypatch.setattr(auth.api_client, "login", lambda email, password: dict(LOGIN_DATA))
    auth.login_user(7, "eng@example.com", "secret")

    auth.user_sessions.clear()

    assert auth.get_current_user_id(7) == "u1"
    assert auth.get_current_region_id(7) == "r1"


def test_forget_session_removes_file(monkeypatch, reset_state):
    monkeypatch.setattr(auth.api_client, "login", lambda email, password: dict(LOGIN_DATA))
    auth.login_user(7, "eng@example.com", "secret")

    auth.forget_session(7)

    assert auth.get_session_context(7) is None
    assert not (reset_state / "7_session.json").exists()


def test_refresh_session_uses_saved_credentials(monkeypatch):
    logins = []

    def fake_login(email, password):
        logins.append((email, password))
        data = dict(LOGIN_DATA)
        data["token"] = f"jwt-{len(logins)}"
        return data

    monkeypatch.setattr(auth.api_client, "login", fake_login)
    auth.login_user(7, "eng@example.com", "secret")

    ctx = auth.refresh_session(7)

    assert ctx.token == "jwt-2"
    assert logins == [("eng@example.com", "secret"), ("eng@example.com", "secret")]


def test_refresh_session_failure_returns_none(monkeypatch):
    monkeypatch.setattr(auth.api_client, "login", lambda email, password: dict(LOGIN_DATA))
    auth.login_user(7, "eng@example.com", "secret")

    def fail(email, password):
        raise RuntimeError("Invalid credentials")

    monkeypatch.setattr(auth.api_client, "login", fail)
    assert auth.refresh_session(7) is None


def test_corrupt_session_file_ignored(reset_state):
    (reset_state / "9_session.json").write_text("{broken", encoding="utf-8")
    assert auth.get_session(9) is None


def test_check_access():
    assert auth.check_access(1, None) is True
    assert auth.check_access(1, ["1", "2"]) is True
    assert auth.check_access(3, ["1", "2"]) is False


@pytest.mark.asyncio
async def test_ensure_user_authenticated_prompts_login():
    update = DummyUpdate(user_id=5)

    ctx = await auth.ensure_user_authenticated(update)

    assert ctx is None
    assert auth.auth_flow_stage[5] == "await_email"
    assert any("/login" in r for r in update.message.replies)


@pytest.mark.asyncio
async def test_login_dialog_saves_session(monkeypatch):
    monkeypatch.setattr(auth.api_client, "login", lambda email, password: dict(LOGIN_DATA))

    await login_handlers.login_command(DummyUpdate(user_id=11, text="/login"), None)
    assert auth.auth_flow_stage[11] == "await_email"

    await login_handlers.text_handler(DummyUpdate(user_id=11, text="eng@example.com"), None)
    assert auth.auth_flow_stage[11] == "await_password"

    update = DummyUpdate(user_id=11, text="secret")
    await login_handlers.text_handler(update, None)

    assert 11 not in auth.auth_flow_stage
    assert auth.get_session_context(11).token == "jwt-1"
    assert update.message.replies


@pytest.mark.asyncio
async def test_login_dialog_failure_restarts(monkeypatch):
    def fail(email, password):
        raise RuntimeError("Invalid email or password")

    monkeypatch.setattr(auth.api_client, "login", fail)
    auth.auth_flow_stage[12] = "await_password"
    auth.auth_flow_data[12] = {"email": "eng@example.com"}

    update = DummyUpdate(user_id=12, text="wrong")
    await login_handlers.text_handler(update, None)

    assert auth.get_session_context(12) is None
    assert auth.auth_flow_stage.get(12) != "await_password"
