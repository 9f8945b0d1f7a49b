"""
Token store - one Connection record per provider.

Connections are seeded from the configured client credentials and merged
with whatever was persisted earlier, so tokens survive a restart while a
credential change in the environment still takes effect.

The store also owns one asyncio.Lock per provider. Token refresh and
callback handling take it for their read-modify-write of the record.
"""

import asyncio
import logging
from typing import Dict, Mapping, Optional

from pydantic import ValidationError

from calswitch.models import Connection, Provider
from calswitch.services.storage import KeyValueStore


logger = logging.getLogger("calswitch.token_store")


def _key(provider: Provider) -> str:
    return f"connection:{provider.value}"


class TokenStore:
    """
    Holds the Connection for every provider.

    Args:
        store: Backing key-value store
        credentials: Optional seed credentials per provider, typically from
            settings: {Provider.GOOGLE: {"client_id": ..., "client_secret": ...}}
    """

    def __init__(
        self,
        store: KeyValueStore,
        credentials: Optional[Mapping[Provider, Mapping[str, Optional[str]]]] = None,
    ):
        self._store = store
        self._connections: Dict[Provider, Connection] = {}
        self._locks: Dict[Provider, asyncio.Lock] = {}

        for provider in Provider:
            self._connections[provider] = self._load(provider, (credentials or {}).get(provider, {}))

    def _load(self, provider: Provider, seed: Mapping[str, Optional[str]]) -> Connection:
        connection = Connection(provider=provider)
        raw = self._store.get(_key(provider))
        if raw:
            try:
                connection = Connection.model_validate(raw)
            except ValidationError as e:
                logger.error(f"Discarding unreadable {provider.value} connection record: {e}")

        # Non-empty configured credentials win over persisted ones
        updates = {k: v.strip() for k, v in seed.items() if v and v.strip()}
        if updates:
            connection = connection.model_copy(update=updates)
        return connection

    def get(self, provider: Provider) -> Connection:
        return self._connections[provider]

    def save(self, connection: Connection) -> Connection:
        self._connections[connection.provider] = connection
        self._store.put(_key(connection.provider), connection.model_dump(mode="json"))
        return connection

    def set_credentials(
        self,
        provider: Provider,
        client_id: str,
        client_secret: str,
        tenant: Optional[str] = None,
    ) -> Connection:
        """Update client credentials; tokens are left untouched."""
        current = self.get(provider)
        updated = current.model_copy(
            update={
                "client_id": client_id.strip(),
                "client_secret": client_secret.strip(),
                "tenant": (tenant or "").strip() or current.tenant,
            }
        )
        logger.info(f"Updated {provider.value} client credentials")
        return self.save(updated)

    def lock(self, provider: Provider) -> asyncio.Lock:
        """Read-modify-write lock for one connection."""
        if provider not in self._locks:
            self._locks[provider] = asyncio.Lock()
        return self._locks[provider]
