"""Firebase Cloud Messaging push transports.

Three ways to reach FCM, selected from the environment at startup:

- v1:     HTTP v1 REST API, OAuth2 access token from a service account (google-auth)
- legacy: legacy HTTP API with a server key
- admin:  Firebase Admin SDK messaging

Every transport sends exactly one message to one token and either returns the
provider message id or raises ProviderError carrying the provider error code.
"""

import base64
import json
import logging
import os
import threading
from typing import Any, Optional

import requests
import firebase_admin
from firebase_admin import credentials as admin_credentials
from firebase_admin import exceptions as admin_exceptions
from firebase_admin import messaging
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GAuthRequest
from google.oauth2 import service_account

from config import FCM_ANDROID_CHANNEL_ID, FCM_CLICK_ACTION, FCM_HTTP_TIMEOUT
from dispatcher import PushMessage
from errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_V1_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_LEGACY_URL = "https://fcm.googleapis.com/fcm/send"

# Checked in order when no structured error code is available
_KNOWN_ERROR_MARKERS = (
    "UNREGISTERED", "InvalidRegistration", "NotRegistered", "MismatchSenderId",
    "SENDER_ID_MISMATCH", "QUOTA_EXCEEDED", "QuotaExceeded", "INVALID_ARGUMENT",
    "THIRD_PARTY_AUTH_ERROR", "UNAVAILABLE", "Unavailable", "INTERNAL", "Internal",
)


# ------------------------
# Credentials
# ------------------------
def load_service_account_info() -> Optional[dict]:
    """Service account dict from the environment, or None when not configured.

    Sources, first match wins: FIREBASE_SERVICE_ACCOUNT_JSON, FIREBASE_SERVICE_ACCOUNT,
    FIREBASE_SERVICE_ACCOUNT_JSON_B64, then FIREBASE_PRIVATE_KEY + FIREBASE_CLIENT_EMAIL.
    """
    sa_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON") or os.getenv("FIREBASE_SERVICE_ACCOUNT")
    if not sa_json:
        sa_b64 = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_B64")
        if sa_b64:
            try:
                sa_json = base64.b64decode(sa_b64).decode("utf-8")
            except (ValueError, UnicodeDecodeError) as e:
                logger.error("[FCM] Failed to decode FIREBASE_SERVICE_ACCOUNT_JSON_B64: %s", e)
                sa_json = None
    if sa_json:
        try:
            return json.loads(sa_json)
        except ValueError as e:
            logger.error("[FCM] Service account JSON is not valid JSON: %s", e)

    private_key = os.getenv("FIREBASE_PRIVATE_KEY")
    client_email = os.getenv("FIREBASE_CLIENT_EMAIL")
    if private_key and client_email:
        return {
            "type": "service_account",
            "project_id": resolve_project_id(None),
            "private_key": private_key.replace("\\n", "\n"),
            "client_email": client_email,
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    return None


def resolve_project_id(sa_info: Optional[dict]) -> Optional[str]:
    return (
        os.getenv("FIREBASE_PROJECT_ID")
        or os.getenv("NEXT_PUBLIC_FIREBASE_PROJECT_ID")
        or (sa_info or {}).get("project_id")
    )


def initialize_firebase_app(sa_info: dict, project_id: Optional[str] = None) -> firebase_admin.App:
    """Create the process' Firebase Admin app; called once by the container."""
    options = {"projectId": project_id} if project_id else None
    app = firebase_admin.initialize_app(admin_credentials.Certificate(sa_info), options)
    logger.info("[FCM] Firebase Admin SDK initialized for project %s", project_id or sa_info.get("project_id"))
    return app


# ------------------------
# Error extraction
# ------------------------
def extract_fcm_error(body: Optional[str]) -> Optional[str]:
    """Best-effort provider error code from an FCM response body."""
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            for detail in error.get("details") or []:
                if isinstance(detail, dict) and detail.get("errorCode"):
                    return detail["errorCode"]
            if error.get("status"):
                return error["status"]
        elif isinstance(error, str):
            return error
    for key in _KNOWN_ERROR_MARKERS:
        if key in body:
            return key
    return None


def _error_text(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text[:400] or f"HTTP {resp.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str):
        return error
    return resp.text[:400]


# ------------------------
# Envelopes (fixed platform constants)
# ------------------------
def build_v1_message(token: str, message: PushMessage, channel_id: str = FCM_ANDROID_CHANNEL_ID) -> dict:
    notification: dict[str, Any] = {"title": message.title, "body": message.body}
    android_notification: dict[str, Any] = {
        "channel_id": channel_id,
        "sound": "default",
        "notification_priority": "PRIORITY_HIGH",
        "click_action": FCM_CLICK_ACTION,
    }
    if message.image_url:
        notification["image"] = message.image_url
        android_notification["image"] = message.image_url
    return {
        "token": token,
        "notification": notification,
        "data": dict(message.data),
        "android": {"priority": "high", "notification": android_notification},
        "apns": {
            "payload": {
                "aps": {
                    "alert": {"title": message.title, "body": message.body},
                    "sound": "default",
                    "badge": 1,
                }
            }
        },
    }


def build_legacy_message(token: str, message: PushMessage, channel_id: str = FCM_ANDROID_CHANNEL_ID) -> dict:
    notification: dict[str, Any] = {
        "title": message.title,
        "body": message.body,
        "sound": "default",
        "android_channel_id": channel_id,
        "click_action": FCM_CLICK_ACTION,
    }
    if message.image_url:
        notification["image"] = message.image_url
    return {
        "to": token,
        "notification": notification,
        "data": dict(message.data),
        "priority": "high",
    }


def build_admin_message(token: str, message: PushMessage, channel_id: str = FCM_ANDROID_CHANNEL_ID) -> messaging.Message:
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=message.title, body=message.body, image=message.image_url),
        data=dict(message.data),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                channel_id=channel_id,
                sound="default",
                priority="high",
                click_action=FCM_CLICK_ACTION,
                image=message.image_url,
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=message.title, body=message.body),
                    sound="default",
                    badge=1,
                )
            )
        ),
    )


# ------------------------
# Transports
# ------------------------
class FcmV1Transport:
    name = "fcm-v1"

    def __init__(self, credentials, project_id: str, channel_id: str = FCM_ANDROID_CHANNEL_ID,
                 timeout: float = FCM_HTTP_TIMEOUT):
        self._credentials = credentials
        self._url = FCM_V1_URL.format(project_id=project_id)
        self._channel_id = channel_id
        self._timeout = timeout
        # Sends run in worker threads; refresh the shared access token one at a time
        self._lock = threading.Lock()

    @classmethod
    def from_service_account_info(cls, sa_info: dict, project_id: Optional[str] = None, **kwargs) -> "FcmV1Transport":
        project_id = project_id or resolve_project_id(sa_info)
        if not project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID not set and missing project_id in service account JSON")
        creds = service_account.Credentials.from_service_account_info(sa_info, scopes=[FCM_SCOPE])
        return cls(creds, project_id, **kwargs)

    def _access_token(self) -> str:
        with self._lock:
            if not self._credentials.valid:
                self._credentials.refresh(GAuthRequest())
            return self._credentials.token

    def send(self, token: str, message: PushMessage) -> str:
        try:
            access_token = self._access_token()
        except GoogleAuthError as e:
            raise ProviderError(f"FCM v1 auth failed: {e}", code="AUTH") from e
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; UTF-8",
        }
        payload = {"message": build_v1_message(token, message, self._channel_id)}
        try:
            resp = requests.post(self._url, data=json.dumps(payload), headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise ProviderError(f"FCM v1 request failed: {e}") from e
        if resp.status_code in (200, 202):
            try:
                return resp.json().get("name") or "sent"
            except ValueError:
                return "sent"
        raise ProviderError(_error_text(resp), code=extract_fcm_error(resp.text), status=resp.status_code)


class FcmLegacyTransport:
    name = "fcm-legacy"

    def __init__(self, server_key: str, channel_id: str = FCM_ANDROID_CHANNEL_ID,
                 timeout: float = FCM_HTTP_TIMEOUT):
        self._server_key = server_key
        self._channel_id = channel_id
        self._timeout = timeout

    def send(self, token: str, message: PushMessage) -> str:
        headers = {
            "Authorization": f"key={self._server_key}",
            "Content-Type": "application/json",
        }
        payload = build_legacy_message(token, message, self._channel_id)
        try:
            resp = requests.post(FCM_LEGACY_URL, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise ProviderError(f"FCM legacy request failed: {e}") from e
        if resp.status_code != 200:
            raise ProviderError(_error_text(resp), code=extract_fcm_error(resp.text), status=resp.status_code)
        # HTTP 200 still carries per-registration failures in results[]
        try:
            result_body = resp.json()
        except ValueError:
            return "sent"
        results = result_body.get("results") or [{}]
        first = results[0] if isinstance(results[0], dict) else {}
        if first.get("error"):
            raise ProviderError(first["error"], code=first["error"], status=resp.status_code)
        return str(first.get("message_id") or result_body.get("multicast_id") or "sent")


class FirebaseAdminTransport:
    name = "firebase-admin"

    def __init__(self, app: Optional[firebase_admin.App] = None, channel_id: str = FCM_ANDROID_CHANNEL_ID):
        self._app = app
        self._channel_id = channel_id

    def send(self, token: str, message: PushMessage) -> str:
        msg = build_admin_message(token, message, self._channel_id)
        try:
            return messaging.send(msg, app=self._app)
        except messaging.UnregisteredError as e:
            raise ProviderError(str(e), code="UNREGISTERED") from e
        except messaging.SenderIdMismatchError as e:
            raise ProviderError(str(e), code="SENDER_ID_MISMATCH") from e
        except admin_exceptions.FirebaseError as e:
            raise ProviderError(str(e), code=e.code) from e


def create_push_transport(mode: str = "auto", firebase_app: Optional[firebase_admin.App] = None):
    """Build the configured transport; raises ConfigurationError when credentials are missing."""
    if mode == "admin":
        if firebase_app is None:
            raise ConfigurationError("PUSH_TRANSPORT=admin requires Firebase service account credentials")
        return FirebaseAdminTransport(firebase_app)

    if mode in ("auto", "v1"):
        sa_info = load_service_account_info()
        if sa_info:
            return FcmV1Transport.from_service_account_info(sa_info)
        if mode == "v1":
            raise ConfigurationError("PUSH_TRANSPORT=v1 requires a Firebase service account")

    if mode in ("auto", "legacy"):
        server_key = os.getenv("FCM_SERVER_KEY")
        if server_key:
            return FcmLegacyTransport(server_key)
        raise ConfigurationError(
            "FCM credentials not configured: either FCM_SERVER_KEY or FIREBASE_SERVICE_ACCOUNT is required"
        )

    raise ConfigurationError(f"Unknown PUSH_TRANSPORT {mode!r}")
