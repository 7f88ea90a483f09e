"""Dependency container: builds the token store, push transport and dispatcher once per process."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Request

from config import PUSH_TRANSPORT, TOKEN_STORE
from database import AsyncSessionLocal
from dispatcher import NotificationDispatcher, PushTransport
from errors import ConfigurationError
from fcm import create_push_transport, initialize_firebase_app, load_service_account_info, resolve_project_id
from resolver import TokenResolver
from token_store import FirestoreTokenStore, SqlTokenStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    store: Any = None
    transport: Optional[PushTransport] = None
    transport_error: Optional[str] = None
    dispatcher: Optional[NotificationDispatcher] = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.transport is not None:
            self.dispatcher = NotificationDispatcher(TokenResolver(self.store), self.transport, store=self.store)

    def require_dispatcher(self) -> NotificationDispatcher:
        if self.dispatcher is None:
            raise ConfigurationError(self.transport_error or "Push transport not configured")
        return self.dispatcher

    def require_store(self):
        if self.store is None:
            raise ConfigurationError("Token store not configured")
        return self.store

    @classmethod
    def from_env(cls) -> "Container":
        firebase_app = None
        firebase_error = None
        if TOKEN_STORE == "firestore" or PUSH_TRANSPORT == "admin":
            sa_info = load_service_account_info()
            if sa_info:
                try:
                    firebase_app = initialize_firebase_app(sa_info, resolve_project_id(sa_info))
                except ValueError as e:
                    # Malformed certificate, or the default app already exists
                    firebase_error = f"Firebase Admin initialization failed: {e}"
                    logger.error("[container] %s", firebase_error)
            else:
                logger.warning("[container] Firebase Admin requested but no service account configured")

        store = None
        if TOKEN_STORE == "firestore":
            if firebase_app is not None:
                store = FirestoreTokenStore.from_app(firebase_app)
        else:
            store = SqlTokenStore(AsyncSessionLocal)

        transport = None
        transport_error = firebase_error
        try:
            transport = create_push_transport(PUSH_TRANSPORT, firebase_app=firebase_app)
            logger.info("[container] Push transport: %s", transport.name)
        except (ConfigurationError, ValueError) as e:
            transport_error = "; ".join(filter(None, [firebase_error, str(e)]))
            logger.warning("[container] %s", e)

        logger.info("[container] Token store: %s", type(store).__name__ if store else "none")
        return cls(store=store, transport=transport, transport_error=transport_error)


def get_container(request: Request) -> Container:
    return request.app.state.container
