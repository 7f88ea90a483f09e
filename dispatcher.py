"""Fan-out notification dispatch.

One dispatch resolves the recipients, sends the same message to every token
concurrently and folds the settled outcomes into a DeliveryReport. Individual
send failures are recorded, never retried; only a dispatch where every token
failed is reported as an error (AllFailedError).
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from config import FCM_CLICK_ACTION
from errors import AllFailedError, ProviderError, ValidationError
from recipients import Group, RecipientSpec
from resolver import MemberTokens, TokenResolver, TokenStore
from utils import redact_token

logger = logging.getLogger(__name__)

# Provider codes meaning the registration is gone for good
INVALID_TOKEN_CODES = frozenset({"UNREGISTERED", "NotRegistered", "InvalidRegistration"})


def coerce_data_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def coerce_data(data: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """FCM data maps only accept string values."""
    if not data:
        return {}
    return {str(k): coerce_data_value(v) for k, v in data.items()}


@dataclass(frozen=True)
class NotificationPayload:
    title: Optional[str]
    body: Optional[str]
    data: Optional[Mapping[str, Any]] = None
    image_url: Optional[str] = None

    def validate(self) -> None:
        missing = [name for name in ("title", "body") if not getattr(self, name)]
        if missing:
            raise ValidationError(f"Missing required fields: {' and '.join(missing)} required")


@dataclass(frozen=True)
class PushMessage:
    """Provider-neutral message; transports render their own envelope."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    image_url: Optional[str] = None


class PushTransport(Protocol):
    name: str

    def send(self, token: str, message: PushMessage) -> str:
        """Deliver to one token and return the provider message id; raise ProviderError on rejection."""
        ...


@dataclass
class DeliveryResult:
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class DeliveryReport:
    total_tokens: int
    success_count: int
    failure_count: int
    results: list[DeliveryResult]
    # Group dispatches only
    members: list[MemberTokens] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.success_count > 0

    @classmethod
    def from_results(cls, results: list[DeliveryResult],
                     members: Optional[list[MemberTokens]] = None) -> "DeliveryReport":
        ok = sum(1 for r in results if r.success)
        return cls(
            total_tokens=len(results),
            success_count=ok,
            failure_count=len(results) - ok,
            results=results,
            members=list(members or []),
        )


def build_message(payload: NotificationPayload, spec: RecipientSpec) -> PushMessage:
    data = coerce_data(payload.data)
    data["click_action"] = FCM_CLICK_ACTION
    if isinstance(spec, Group):
        data.update({
            "timestamp": str(int(time.time() * 1000)),
            "source": "dashboard",
            "groupName": spec.name,
        })
    return PushMessage(
        title=payload.title,
        body=payload.body,
        data=data,
        image_url=payload.image_url or None,
    )


class NotificationDispatcher:
    def __init__(
        self,
        resolver: TokenResolver,
        transport: PushTransport,
        store: Optional[TokenStore] = None,
    ):
        self._resolver = resolver
        self._transport = transport
        self._store = store

    async def dispatch(self, spec: RecipientSpec, payload: NotificationPayload) -> DeliveryReport:
        payload.validate()

        resolution = await self._resolver.resolve_with_members(spec)
        tokens = resolution.tokens
        if not tokens:
            raise ValidationError(
                "Missing FCM token(s): provide tokens, fcmToken, userId, userEmail or groupName "
                "with at least one active device"
            )

        message = build_message(payload, spec)
        logger.info(
            "[dispatch] Sending '%s' via %s to %d token(s)",
            message.title, getattr(self._transport, "name", "transport"), len(tokens),
        )

        # Settle-all join: _send_one never raises, results come back in token order
        results = await asyncio.gather(*(self._send_one(t, message) for t in tokens))
        report = DeliveryReport.from_results(list(results), resolution.members)

        await self._cleanup_invalid(tokens, report.results)

        logger.info(
            "[dispatch] Done: %d success, %d failure, %d total",
            report.success_count, report.failure_count, report.total_tokens,
        )
        if report.success_count == 0:
            raise AllFailedError(report)
        return report

    async def _send_one(self, token: str, message: PushMessage) -> DeliveryResult:
        redacted = redact_token(token)
        try:
            message_id = await asyncio.to_thread(self._transport.send, token, message)
        except ProviderError as exc:
            logger.warning("[dispatch] Send failed for %s: %s (%s)", redacted, exc, exc.code)
            return DeliveryResult(token=redacted, success=False, error=str(exc), error_code=exc.code)
        except Exception as exc:
            logger.exception("[dispatch] Unexpected send error for %s", redacted)
            return DeliveryResult(token=redacted, success=False, error=str(exc) or type(exc).__name__)
        return DeliveryResult(token=redacted, success=True, message_id=message_id)

    async def _cleanup_invalid(self, tokens: list[str], results: list[DeliveryResult]) -> None:
        if self._store is None:
            return
        stale = [
            (token, result.error_code)
            for token, result in zip(tokens, results)
            if not result.success and result.error_code in INVALID_TOKEN_CODES
        ]
        if not stale:
            return
        outcomes = await asyncio.gather(
            *(self._store.deactivate_token(token, code) for token, code in stale),
            return_exceptions=True,
        )
        for (token, _), outcome in zip(stale, outcomes):
            if isinstance(outcome, Exception):
                logger.error("[dispatch] Could not deactivate %s: %s", redact_token(token), outcome)
            else:
                logger.info("[dispatch] Deactivated stale token %s", redact_token(token))
