# nextmeet/services/credential_store.py
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextmeet.models.stored_secret import StoredSecret

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    """
    Key/value store for opaque secrets, scoped to this application.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class CredentialStore:
    """
    Durable secret store backed by the `stored_secrets` table.

    Responsibilities
    ----------------
    - Persist opaque secrets (serialized OAuth token sets) across restarts.
    - Optionally encrypt values at rest with a Fernet key.
    - Serialize all operations so concurrent refreshes from different fetch
      paths cannot interleave a read-modify-write.

    Notes
    -----
    - Writes are last-writer-wins.
    - A value that can no longer be decrypted (e.g. the key was rotated) is
      reported as absent so the owning provider falls back to re-authorization.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        encryption_key: str | None = None,
        namespace: str = "nextmeet",
    ) -> None:
        self._session_factory = session_factory
        self._fernet = Fernet(encryption_key.encode()) if encryption_key else None
        self._namespace = namespace
        self._lock = asyncio.Lock()

    def _scoped(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _encode(self, value: str) -> str:
        if self._fernet is None:
            return value
        return self._fernet.encrypt(value.encode()).decode()

    def _decode(self, stored: str) -> str:
        if self._fernet is None:
            return stored
        return self._fernet.decrypt(stored.encode()).decode()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            async with self._session_factory() as session:
                row = await session.get(StoredSecret, self._scoped(key))
                if row is None:
                    return None
                stored = row.value

        try:
            return self._decode(stored)
        except InvalidToken:
            logger.error("Stored secret %s could not be decrypted; treating as absent", key)
            return None

    async def set(self, key: str, value: str) -> None:
        encoded = self._encode(value)
        async with self._lock:
            async with self._session_factory() as session:
                row = await session.get(StoredSecret, self._scoped(key))
                if row is None:
                    session.add(StoredSecret(key=self._scoped(key), value=encoded))
                else:
                    row.value = encoded
                await session.commit()

    async def delete(self, key: str) -> None:
        """
        Remove a secret. Deleting a missing key is a no-op.
        """
        async with self._lock:
            async with self._session_factory() as session:
                row = await session.get(StoredSecret, self._scoped(key))
                if row is None:
                    return
                await session.delete(row)
                await session.commit()
