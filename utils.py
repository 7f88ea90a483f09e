import logging
from typing import Any, Optional

import requests

from config import (
    CHAT_SERVICE_URL,
    EMAIL_HTTP_TIMEOUT,
    PROXY_HTTP_TIMEOUT,
    ROAMJET_API_URL,
    ROAMJET_PROJECT_ID,
    ROAMJET_TEMPLATE_ID,
)

logger = logging.getLogger(__name__)

TOKEN_LOG_PREFIX = 20


def redact_token(token: str) -> str:
    """Prefix of a device token, safe for logs and response bodies."""
    return token[:TOKEN_LOG_PREFIX] + "..."


# ------------------------
# Chat / image backend proxy
# ------------------------
class UpstreamError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


def _upstream_error_message(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text or "Backend service error"
    if isinstance(payload, dict):
        return payload.get("error") or payload.get("details") or "Backend service error"
    return "Backend service error"


def forward_to_chat_service(path: str, body: Any) -> Any:
    """POST a JSON body to the chat/image backend and return its decoded JSON reply."""
    url = f"{CHAT_SERVICE_URL}/{path.lstrip('/')}"
    shape = sorted(body) if isinstance(body, dict) else type(body).__name__
    logger.info("[proxy] Forwarding to %s (keys: %s)", url, shape)
    resp = requests.post(url, json=body, headers={"Content-Type": "application/json"}, timeout=PROXY_HTTP_TIMEOUT)
    if not resp.ok:
        message = _upstream_error_message(resp)
        logger.error("[proxy] Backend service error %s: %s", resp.status_code, message)
        raise UpstreamError(resp.status_code, message)
    return resp.json()


# ------------------------
# Email relay (Roamjet)
# ------------------------
BOOSTER_DEFAULT_TITLE = "🚀 בקשה להצטרפות לתכנית הבוסטר"


def booster_default_text(user_name: Optional[str], user_email: Optional[str]) -> str:
    return f"המתאמן/ת {user_name or user_email or ''} מבקש/ת להצטרף לתכנית הבוסטר."


def send_roamjet_email(to_email: str, title: str, text: str) -> dict:
    """Send a templated email through the Roamjet relay.

    Returns dict with keys: ok (bool), status (int|None), message_id (str|None), error (str|None)
    """
    params = {
        "email": to_email,
        "project_id": ROAMJET_PROJECT_ID,
        "template_id": ROAMJET_TEMPLATE_ID,
        "title": title,
        "text": text,
    }
    try:
        resp = requests.get(
            ROAMJET_API_URL,
            params=params,
            headers={"Content-Type": "application/json"},
            timeout=EMAIL_HTTP_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error("[email] Roamjet request failed: %s", e)
        return {"ok": False, "status": None, "message_id": None, "error": str(e)}
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if resp.ok:
        logger.info("[email] Sent to %s", to_email)
        return {"ok": True, "status": resp.status_code, "message_id": payload.get("messageId") or "sent", "error": None}
    logger.error("[email] Roamjet send failed %s: %s", resp.status_code, payload or resp.text)
    return {
        "ok": False,
        "status": resp.status_code,
        "message_id": None,
        "error": payload.get("error") or "Failed to send email",
    }
