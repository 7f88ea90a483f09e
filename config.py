"""Runtime configuration read from the environment (.env supported)."""

import os

from dotenv import load_dotenv

load_dotenv()


def env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma separated; "*" keeps the handlers open to any origin
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

# Backends: TOKEN_STORE in {sql, firestore}; PUSH_TRANSPORT in {auto, v1, legacy, admin}
TOKEN_STORE = os.getenv("TOKEN_STORE", "sql").strip().lower()
PUSH_TRANSPORT = os.getenv("PUSH_TRANSPORT", "auto").strip().lower()

# --- FCM ---
FCM_HTTP_TIMEOUT = _env_float("FCM_HTTP_TIMEOUT", 5.0)
FCM_ANDROID_CHANNEL_ID = os.getenv("FCM_ANDROID_CHANNEL_ID", "muscleup_notifications")
FCM_CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"

# Max active token records returned per user lookup
TOKEN_QUERY_LIMIT = _env_int("TOKEN_QUERY_LIMIT", 10)

# --- Chat / image backend ---
CHAT_SERVICE_URL = (
    os.getenv("CHAT_SERVICE_URL") or os.getenv("DALLE_SERVICE_URL") or "https://dalle.roamjet.net"
).rstrip("/")
PROXY_HTTP_TIMEOUT = _env_float("PROXY_HTTP_TIMEOUT", 60.0)

# --- Email relay ---
ROAMJET_API_URL = os.getenv("ROAMJET_API_URL", "https://smtp.roamjet.net/api/email/send")
ROAMJET_PROJECT_ID = os.getenv("ROAMJET_PROJECT_ID", "eZl22S3z7Pl0oGA01qyH")
ROAMJET_TEMPLATE_ID = os.getenv("ROAMJET_TEMPLATE_ID", "lbbVwGT1BLMw87C3oHbI")
EMAIL_HTTP_TIMEOUT = _env_float("EMAIL_HTTP_TIMEOUT", 15.0)
