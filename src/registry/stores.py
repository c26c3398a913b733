"""Registry persistence: pluggable stores and the dirty-tracking wrapper.

A store holds the complete set of capability cards. ``PersistentRegistry``
loads the set into an ``AgentRegistry`` at startup and writes it back only
after a mutation. It assumes a single writer; concurrent writers would need
external locking.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import redis
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis

from src.utils.config import RegistryConfig, get_registry_config
from src.utils.logging.framework import SmartLogger
from src.utils.redis_client import create_redis_client

from .agent_registry import AgentRegistry
from .models import CapabilityCard

logger = SmartLogger("storage")

_cards_adapter = TypeAdapter(List[CapabilityCard])


class RegistryStoreError(Exception):
    """Raised when the backing store rejects a save."""
    pass


class RegistryStore(ABC):
    """Full-set persistence for capability cards."""

    kind = "abstract"

    @abstractmethod
    async def load(self) -> List[CapabilityCard]:
        """Return every stored card (empty if none)."""

    @abstractmethod
    async def save(self, cards: List[CapabilityCard]) -> None:
        """Replace the stored set with ``cards``."""

    async def close(self) -> None:
        return None


class InMemoryRegistryStore(RegistryStore):
    """Non-durable store, mainly for tests."""

    kind = "memory"

    def __init__(self, cards: Optional[List[CapabilityCard]] = None):
        self._cards: List[CapabilityCard] = [card.model_copy(deep=True) for card in cards or []]
        self.save_count = 0

    async def load(self) -> List[CapabilityCard]:
        return [card.model_copy(deep=True) for card in self._cards]

    async def save(self, cards: List[CapabilityCard]) -> None:
        self._cards = [card.model_copy(deep=True) for card in cards]
        self.save_count += 1


class RedisRegistryStore(RegistryStore):
    """Stores the card set as one JSON document under a key with a TTL."""

    kind = "redis"

    def __init__(self, client: Redis, key: str, ttl: Optional[int] = None):
        self.client = client
        self.key = key
        self.ttl = ttl

    async def load(self) -> List[CapabilityCard]:
        try:
            raw = await self.client.get(self.key)
            if not raw:
                logger.info("registry_store_empty", key=self.key)
                return []
            cards = _cards_adapter.validate_json(raw)
        except (redis.RedisError, ValidationError, ValueError) as e:
            logger.error("registry_store_load_failed",
                         key=self.key,
                         error=str(e),
                         error_type=type(e).__name__)
            return []

        logger.info("registry_store_loaded", key=self.key, agent_count=len(cards))
        return cards

    async def save(self, cards: List[CapabilityCard]) -> None:
        payload = _cards_adapter.dump_json(cards, by_alias=True, exclude_none=True).decode("utf-8")
        try:
            if self.ttl:
                await self.client.set(self.key, payload, ex=self.ttl)
            else:
                await self.client.set(self.key, payload)
        except redis.RedisError as e:
            logger.error("registry_store_save_failed",
                         key=self.key,
                         error=str(e),
                         error_type=type(e).__name__)
            raise RegistryStoreError(f"Failed to save registry to {self.key}: {e}") from e

        logger.info("registry_store_saved", key=self.key, agent_count=len(cards), ttl=self.ttl)

    async def close(self) -> None:
        await self.client.aclose()


class PersistentRegistry:
    """An AgentRegistry plus a store, saving only when something changed."""

    def __init__(self, registry: AgentRegistry, store: RegistryStore):
        self.registry = registry
        self.store = store
        self._dirty = False
        registry.subscribe(self._on_change)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _on_change(self, event: str, name: Optional[str]) -> None:
        self._dirty = True

    async def load(self) -> int:
        """Populate the registry from the store; returns the number of cards loaded."""
        cards = await self.store.load()
        self.registry.import_agents(cards)
        # The import itself is not an unsaved change
        self._dirty = False
        logger.info("persistent_registry_loaded", store=self.store.kind, agent_count=len(cards))
        return len(cards)

    async def save(self) -> bool:
        """Write through if dirty; returns whether a write happened."""
        if not self._dirty:
            logger.debug("persistent_registry_save_skipped", store=self.store.kind)
            return False

        await self.store.save(self.registry.export_agents())
        self._dirty = False
        return True

    async def close(self) -> None:
        self.registry.unsubscribe(self._on_change)
        await self.registry.close()
        await self.store.close()


def create_registry_store(config: Optional[RegistryConfig] = None, client: Optional[Redis] = None) -> RegistryStore:
    """Redis when a URL (or client) is available, otherwise in-memory."""
    config = config or get_registry_config()
    if client is None and config.redis_url:
        client = create_redis_client(config.redis_url)
    if client is not None:
        return RedisRegistryStore(client, config.registry_key, config.registration_ttl)
    return InMemoryRegistryStore()


async def create_persistent_registry(store: RegistryStore,
                                     registry: Optional[AgentRegistry] = None) -> PersistentRegistry:
    """Wrap ``registry`` (or a fresh one) with ``store`` and load it."""
    persistent = PersistentRegistry(registry or AgentRegistry(), store)
    await persistent.load()
    return persistent


def load_cards_file(path: str) -> List[CapabilityCard]:
    """Read a JSON array of capability cards, e.g. a seed file for the entry scripts."""
    with open(path, "r", encoding="utf-8") as f:
        cards = _cards_adapter.validate_json(f.read())
    logger.info("agent_cards_file_loaded", path=path, agent_count=len(cards))
    return cards
