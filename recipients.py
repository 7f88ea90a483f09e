from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union


@dataclass(frozen=True)
class ExplicitTokens:
    tokens: tuple[str, ...]


@dataclass(frozen=True)
class SingleToken:
    token: str


@dataclass(frozen=True)
class UserById:
    user_id: str


@dataclass(frozen=True)
class UserByEmail:
    email: str


@dataclass(frozen=True)
class Group:
    name: str


RecipientSpec = Union[ExplicitTokens, SingleToken, UserById, UserByEmail, Group]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def recipient_from_fields(
    tokens: Optional[Iterable[Any]] = None,
    fcm_token: Optional[str] = None,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    group_name: Optional[str] = None,
) -> Optional[RecipientSpec]:
    """Pick the active recipient variant from loosely-typed request fields.

    Precedence: explicit tokens > single token > userId > userEmail > groupName.
    Returns None when no usable identifier was supplied.
    """
    if tokens:
        cleaned = tuple(t for t in (_clean(t) for t in tokens) if t)
        if cleaned:
            return ExplicitTokens(cleaned)
    token = _clean(fcm_token)
    if token:
        return SingleToken(token)
    uid = _clean(user_id)
    if uid:
        return UserById(uid)
    email = _clean(user_email)
    if email:
        return UserByEmail(email)
    group = _clean(group_name)
    if group:
        return Group(group)
    return None
