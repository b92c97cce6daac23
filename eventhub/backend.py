"""Backend selection: pairs an auth provider with a data gateway."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .auth import AuthProvider, LocalAuthProvider
from .config import Settings, settings
from .database import get_session
from .gateway import DataGateway, SqlGateway
from .supabase_backend import (
    SupabaseAuthProvider,
    SupabaseGateway,
    create_supabase_client,
)


@dataclass
class Backend:
    auth: AuthProvider
    gateway: DataGateway

    def close(self) -> None:
        self.auth.close()


def build_sql_backend(db: Session, config: Settings = settings) -> Backend:
    auth = LocalAuthProvider(
        db,
        access_token_ttl=config.access_token_ttl,
        recovery_token_ttl=config.recovery_token_ttl,
    )
    return Backend(auth=auth, gateway=SqlGateway(db, identity=auth.current_user_id))


def build_supabase_backend(config: Settings = settings, client=None) -> Backend:
    client = client or create_supabase_client(config)
    return Backend(auth=SupabaseAuthProvider(client), gateway=SupabaseGateway(client))


@contextmanager
def open_backend(config: Settings | None = None) -> Iterator[Backend]:
    """Yield a request-scoped backend; SQL work commits when the block exits cleanly."""
    config = config or settings
    if config.backend == "supabase":
        backend = build_supabase_backend(config)
        try:
            yield backend
        finally:
            backend.close()
        return
    with get_session() as db:
        backend = build_sql_backend(db, config)
        try:
            yield backend
        finally:
            backend.close()
