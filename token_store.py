"""Token store backends.

SqlTokenStore keeps users, group memberships and device tokens in the
SQLAlchemy models; FirestoreTokenStore reads the same shapes from the
`users` / `fcm_tokens` collections written by the mobile clients.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

import models
from config import TOKEN_QUERY_LIMIT
from resolver import GroupMember
from utils import redact_token

logger = logging.getLogger(__name__)


@dataclass
class DeviceRecord:
    user_id: str
    token: str
    platform: str
    active: bool = True
    deactivated_reason: Optional[str] = None


def _device_record(row: models.DeviceToken) -> DeviceRecord:
    return DeviceRecord(
        user_id=row.user_id,
        token=row.token,
        platform=row.platform,
        active=bool(row.active),
        deactivated_reason=row.deactivated_reason,
    )


class SqlTokenStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], limit: int = TOKEN_QUERY_LIMIT):
        self._sessions = session_factory
        self._limit = limit

    async def query_active_tokens_by_user(self, user_id: str) -> list[str]:
        async with self._sessions() as db:
            res = await db.execute(
                select(models.DeviceToken.token)
                .where(models.DeviceToken.user_id == user_id)
                .where(models.DeviceToken.active == True)  # noqa: E712
                .order_by(models.DeviceToken.updated_at.desc())
                .limit(self._limit)
            )
            return [row[0] for row in res.all()]

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        async with self._sessions() as db:
            res = await db.execute(select(models.User.id).where(models.User.email == email).limit(1))
            return res.scalar_one_or_none()

    async def query_users_in_group(self, name: str) -> list[GroupMember]:
        async with self._sessions() as db:
            res = await db.execute(
                select(models.User.id, models.User.fcm_token, models.User.email, models.User.name)
                .join(models.UserGroup, models.UserGroup.user_id == models.User.id)
                .where(models.UserGroup.group_name == name)
                .order_by(models.User.id)
                .distinct()
            )
            return [
                GroupMember(id=uid, legacy_token=legacy, email=email, name=user_name)
                for uid, legacy, email, user_name in res.all()
            ]

    async def deactivate_token(self, token: str, reason: str) -> None:
        async with self._sessions() as db:
            res = await db.execute(select(models.DeviceToken).where(models.DeviceToken.token == token))
            row = res.scalars().first()
            if row is None or not row.active:
                return
            now = datetime.utcnow()
            row.active = False
            row.deactivated_at = now
            row.deactivated_reason = reason
            row.updated_at = now
            await db.commit()

    async def register_token(self, user_id: str, token: str, platform: str) -> DeviceRecord:
        """Upsert by token; an existing token is reassigned to `user_id` and reactivated."""
        now = datetime.utcnow()
        async with self._sessions() as db:
            if await db.get(models.User, user_id) is None:
                db.add(models.User(id=user_id))
            res = await db.execute(select(models.DeviceToken).where(models.DeviceToken.token == token))
            row = res.scalars().first()
            if row is None:
                row = models.DeviceToken(user_id=user_id, platform=platform, token=token, created_at=now)
                db.add(row)
            else:
                row.user_id = user_id
                row.platform = platform
                row.active = True
                row.deactivated_at = None
                row.deactivated_reason = None
            row.updated_at = now
            await db.commit()
            await db.refresh(row)
            return _device_record(row)

    async def list_tokens(self, user_id: str) -> list[DeviceRecord]:
        async with self._sessions() as db:
            res = await db.execute(
                select(models.DeviceToken)
                .where(models.DeviceToken.user_id == user_id)
                .order_by(models.DeviceToken.created_at)
            )
            return [_device_record(row) for row in res.scalars().all()]


class FirestoreTokenStore:
    """Firestore layout: fcm_tokens/{*}: {token, userId, active, platform};
    users/{uid}: {email, name, group_names: [...], fcm_token}."""

    TOKENS = "fcm_tokens"
    USERS = "users"

    def __init__(self, client, limit: int = TOKEN_QUERY_LIMIT):
        self._db = client
        self._limit = limit

    @classmethod
    def from_app(cls, app, **kwargs) -> "FirestoreTokenStore":
        return cls(firestore.client(app), **kwargs)

    def _active_tokens(self, user_id: str) -> list[str]:
        docs = (
            self._db.collection(self.TOKENS)
            .where(filter=FieldFilter("userId", "==", user_id))
            .where(filter=FieldFilter("active", "==", True))
            .limit(self._limit)
            .stream()
        )
        return [t for t in (doc.to_dict().get("token") for doc in docs) if t]

    def _user_id_by_email(self, email: str) -> Optional[str]:
        docs = list(
            self._db.collection(self.USERS)
            .where(filter=FieldFilter("email", "==", email))
            .limit(1)
            .stream()
        )
        return docs[0].id if docs else None

    def _group_members(self, name: str) -> list[GroupMember]:
        docs = (
            self._db.collection(self.USERS)
            .where(filter=FieldFilter("group_names", "array_contains", name))
            .stream()
        )
        members = []
        for doc in docs:
            data = doc.to_dict() or {}
            members.append(GroupMember(
                id=doc.id,
                legacy_token=data.get("fcm_token"),
                email=data.get("email"),
                name=data.get("name"),
            ))
        return members

    def _token_docs(self, token: str):
        return list(self._db.collection(self.TOKENS).where(filter=FieldFilter("token", "==", token)).stream())

    def _deactivate(self, token: str, reason: str) -> None:
        for doc in self._token_docs(token):
            doc.reference.update({
                "active": False,
                "deactivatedAt": datetime.utcnow(),
                "deactivatedReason": reason,
            })

    def _register(self, user_id: str, token: str, platform: str) -> DeviceRecord:
        now = datetime.utcnow()
        fields = {
            "token": token,
            "userId": user_id,
            "platform": platform,
            "active": True,
            "deactivatedReason": None,
            "updatedAt": now,
        }
        existing = self._token_docs(token)
        if existing:
            for doc in existing:
                doc.reference.update(fields)
        else:
            self._db.collection(self.TOKENS).add({**fields, "createdAt": now})
        logger.info("[firestore] Registered %s for user %s", redact_token(token), user_id)
        return DeviceRecord(user_id=user_id, token=token, platform=platform)

    def _list(self, user_id: str) -> list[DeviceRecord]:
        docs = self._db.collection(self.TOKENS).where(filter=FieldFilter("userId", "==", user_id)).stream()
        out = []
        for doc in docs:
            data = doc.to_dict() or {}
            if not data.get("token"):
                continue
            out.append(DeviceRecord(
                user_id=user_id,
                token=data["token"],
                platform=data.get("platform") or "unknown",
                active=bool(data.get("active", True)),
                deactivated_reason=data.get("deactivatedReason"),
            ))
        return out

    # The Firestore client is blocking; keep the event loop free
    async def query_active_tokens_by_user(self, user_id: str) -> list[str]:
        return await asyncio.to_thread(self._active_tokens, user_id)

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        return await asyncio.to_thread(self._user_id_by_email, email)

    async def query_users_in_group(self, name: str) -> list[GroupMember]:
        return await asyncio.to_thread(self._group_members, name)

    async def deactivate_token(self, token: str, reason: str) -> None:
        await asyncio.to_thread(self._deactivate, token, reason)

    async def register_token(self, user_id: str, token: str, platform: str) -> DeviceRecord:
        return await asyncio.to_thread(self._register, user_id, token, platform)

    async def list_tokens(self, user_id: str) -> list[DeviceRecord]:
        return await asyncio.to_thread(self._list, user_id)
