"""Resolve a recipient specification into a de-duplicated device token list."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from errors import NotFoundError
from recipients import (
    ExplicitTokens,
    Group,
    RecipientSpec,
    SingleToken,
    UserByEmail,
    UserById,
)
from utils import redact_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupMember:
    id: str
    legacy_token: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class MemberTokens:
    """Per-user outcome of a group lookup."""

    user_id: str
    email: Optional[str]
    name: Optional[str]
    token_count: int

    @property
    def has_token(self) -> bool:
        return self.token_count > 0


@dataclass
class Resolution:
    tokens: list[str]
    members: list[MemberTokens] = field(default_factory=list)


class TokenStore(Protocol):
    async def query_active_tokens_by_user(self, user_id: str) -> list[str]: ...

    async def find_user_id_by_email(self, email: str) -> Optional[str]: ...

    async def query_users_in_group(self, name: str) -> list[GroupMember]: ...

    async def deactivate_token(self, token: str, reason: str) -> None: ...


def _unique(tokens) -> list[str]:
    # dict keeps first-seen order
    return list(dict.fromkeys(t for t in tokens if t))


class TokenResolver:
    def __init__(self, store: Optional[TokenStore] = None):
        self._store = store

    async def resolve(self, spec: RecipientSpec) -> list[str]:
        return (await self.resolve_with_members(spec)).tokens

    async def resolve_with_members(self, spec: RecipientSpec) -> Resolution:
        """Like resolve(), plus a per-user breakdown for group recipients."""
        if isinstance(spec, ExplicitTokens):
            return Resolution(_unique(spec.tokens))
        if isinstance(spec, SingleToken):
            return Resolution(_unique([spec.token]))
        if self._store is None:
            logger.warning("[resolve] No token store configured; cannot resolve %s", type(spec).__name__)
            return Resolution([])
        if isinstance(spec, UserById):
            return Resolution(_unique(await self._user_tokens(spec.user_id)))
        if isinstance(spec, UserByEmail):
            return Resolution(_unique(await self._email_tokens(spec.email)))
        if isinstance(spec, Group):
            return await self._group_tokens(spec.name)
        raise TypeError(f"Unsupported recipient spec: {spec!r}")

    async def _user_tokens(self, user_id: str) -> list[str]:
        try:
            return list(await self._store.query_active_tokens_by_user(user_id))
        except Exception as exc:
            logger.error("[resolve] Token lookup failed for user %s: %s", user_id, exc)
            return []

    async def _email_tokens(self, email: str) -> list[str]:
        try:
            user_id = await self._store.find_user_id_by_email(email)
        except Exception as exc:
            logger.error("[resolve] User lookup failed for %s: %s", email, exc)
            return []
        if not user_id:
            raise NotFoundError(f"No user found with email {email}")
        return await self._user_tokens(user_id)

    async def _group_tokens(self, name: str) -> Resolution:
        try:
            members = await self._store.query_users_in_group(name)
        except Exception as exc:
            logger.error("[resolve] Group lookup failed for %s: %s", name, exc)
            return Resolution([])
        if not members:
            logger.info("[resolve] No users found in group %s", name)
            return Resolution([])

        collected: list[str] = []
        breakdown: list[MemberTokens] = []
        for member in members:
            user_tokens = await self._user_tokens(member.id)
            if not user_tokens and member.legacy_token:
                user_tokens = [member.legacy_token]
            collected.extend(user_tokens)
            breakdown.append(MemberTokens(
                user_id=member.id,
                email=member.email,
                name=member.name,
                token_count=len(user_tokens),
            ))

        tokens = _unique(collected)
        logger.info(
            "[resolve] Group %s: %d users, %d unique tokens", name, len(members), len(tokens)
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[resolve] Group %s tokens: %s", name, [redact_token(t) for t in tokens])
        return Resolution(tokens, breakdown)
