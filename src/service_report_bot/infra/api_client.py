# api_client.py
from typing import Any, Dict, List, Optional

import requests

from ..config import API_BASE_URL, REQUEST_TIMEOUT

# ---------- Backend auth/requests ----------
_SESSION = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = requests.Session()
    return _SESSION


def _auth_headers(token: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "User-Agent": "ServiceReportBot/1.0",
    }
    if token:
        headers["Authorization"] = f"Bearer {token.strip()}"
    return headers


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def error_message(exc: Exception, default: str) -> str:
    """Сообщение сервера из HTTPError, иначе текст исключения или default."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        msg = _json_or_empty(exc.response).get("message")
        if msg:
            return str(msg)
    return str(exc) or default


def _as_list(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    v = data.get(key)
    if isinstance(v, list):
        return v
    inner = data.get("data")
    if isinstance(inner, list):
        return inner
    if isinstance(inner, dict) and isinstance(inner.get(key), list):
        return inner[key]
    return []


def login(email: str, password: str) -> Dict[str, Any]:
    """
    Авторизуется в бэкенде и возвращает данные сессии.

    Returns:
        {"token", "user_id", "region_id", "role", "name"}
    """
    if not email or not password:
        raise ValueError("Email and password are required")

    r = _get_session().post(
        f"{API_BASE_URL}/users/login",
        json={"email": email, "password": password},
        headers=_auth_headers(),
        timeout=REQUEST_TIMEOUT,
    )
    r.raise_for_status()
    data = _json_or_empty(r)
    token = data.get("token")
    user = (data.get("data") or {}).get("user") if isinstance(data.get("data"), dict) else None
    if not token or not user:
        raise RuntimeError("Login succeeded but the response has no token or user")

    region = user.get("region")
    if isinstance(region, dict):
        region_id = region.get("_id")
    else:
        region_id = region
    return {
        "token": str(token).strip(),
        "user_id": str(user.get("_id")) if user.get("_id") else None,
        "region_id": str(region_id) if region_id else None,
        "role": user.get("role"),
        "name": user.get("name") or "",
    }


def logout(token: str) -> None:
    r = _get_session().get(
        f"{API_BASE_URL}/users/logout",
        headers=_auth_headers(token),
        timeout=REQUEST_TIMEOUT,
    )
    r.raise_for_status()


def list_customers(token: str) -> List[Dict[str, Any]]:
    r = _get_session().get(f"{API_BASE_URL}/customers", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
    r.raise_for_status()
    return _as_list(_json_or_empty(r), "customers")


def list_spares(token: str) -> List[Dict[str, Any]]:
    r = _get_session().get(f"{API_BASE_URL}/spares", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
    r.raise_for_status()
    return _as_list(_json_or_empty(r), "spares")


def create_report(payload: Dict[str, Any], token: Optional[str]) -> Dict[str, Any]:
    """
    POST /reports. Возвращает тело ответа {status, message?}.

    Ответ с ошибочным HTTP-статусом не бросает исключение, если у него есть
    JSON-тело: решение об успехе принимается по полю status.
    """
    r = _get_session().post(
        f"{API_BASE_URL}/reports",
        json=payload,
        headers=_auth_headers(token),
        timeout=REQUEST_TIMEOUT,
    )
    data = _json_or_empty(r)
    if r.status_code == 401 or (not r.ok and not data):
        r.raise_for_status()
    if not r.ok:
        data.setdefault("status", "fail")
    return data


def list_reports(token: str) -> List[Dict[str, Any]]:
    r = _get_session().get(f"{API_BASE_URL}/reports", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
    r.raise_for_status()
    return _as_list(_json_or_empty(r), "reports")


def get_report(report_id: str, token: str) -> Optional[Dict[str, Any]]:
    r = _get_session().get(
        f"{API_BASE_URL}/reports/{report_id}",
        headers=_auth_headers(token),
        timeout=REQUEST_TIMEOUT,
    )
    if r.status_code == 404:
        return None
    r.raise_for_status()
    data = _json_or_empty(r)
    inner = data.get("data")
    if isinstance(inner, dict):
        return inner.get("report") if isinstance(inner.get("report"), dict) else inner
    return None
