"""Checkpoint storage for orchestrator state, keyed by session id."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis
from pydantic import ValidationError
from redis.asyncio import Redis

from src.utils.config import OrchestratorConfig, get_orchestrator_config
from src.utils.logging.framework import SmartLogger
from src.utils.redis_client import create_redis_client

from .plan_state import OrchestratorState

logger = SmartLogger("storage")


class StateStoreError(Exception):
    """Raised when a checkpoint cannot be written."""
    pass


class OrchestratorStateStore(ABC):
    kind = "abstract"

    @abstractmethod
    async def save(self, state: OrchestratorState) -> None:
        """Write a checkpoint for ``state.session_id``."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[OrchestratorState]:
        """Return the last checkpoint for a session, or None."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Drop a session's checkpoint."""

    async def close(self) -> None:
        return None


class InMemoryOrchestratorStateStore(OrchestratorStateStore):
    kind = "memory"

    def __init__(self):
        self._states: Dict[str, str] = {}

    async def save(self, state: OrchestratorState) -> None:
        self._states[state.session_id] = state.model_dump_json(by_alias=True)

    async def load(self, session_id: str) -> Optional[OrchestratorState]:
        raw = self._states.get(session_id)
        if raw is None:
            return None
        return OrchestratorState.model_validate_json(raw)

    async def delete(self, session_id: str) -> None:
        self._states.pop(session_id, None)


class RedisOrchestratorStateStore(OrchestratorStateStore):
    """One JSON document per session under ``<prefix><session_id>`` with a TTL."""

    kind = "redis"

    def __init__(self, client: Redis, prefix: str, ttl: Optional[int] = None):
        self.client = client
        self.prefix = prefix
        self.ttl = ttl

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def save(self, state: OrchestratorState) -> None:
        key = self._key(state.session_id)
        payload = state.model_dump_json(by_alias=True)
        try:
            if self.ttl:
                await self.client.set(key, payload, ex=self.ttl)
            else:
                await self.client.set(key, payload)
        except redis.RedisError as e:
            raise StateStoreError(f"Failed to save orchestrator state to {key}: {e}") from e

    async def load(self, session_id: str) -> Optional[OrchestratorState]:
        key = self._key(session_id)
        try:
            raw = await self.client.get(key)
            if not raw:
                return None
            return OrchestratorState.model_validate_json(raw)
        except (redis.RedisError, ValidationError) as e:
            logger.error("orchestrator_state_load_failed",
                         key=key,
                         error=str(e),
                         error_type=type(e).__name__)
            return None

    async def delete(self, session_id: str) -> None:
        await self.client.delete(self._key(session_id))

    async def close(self) -> None:
        await self.client.aclose()


def create_state_store(config: Optional[OrchestratorConfig] = None,
                       client: Optional[Redis] = None) -> OrchestratorStateStore:
    config = config or get_orchestrator_config()
    if client is None and config.redis_url:
        client = create_redis_client(config.redis_url)
    if client is not None:
        return RedisOrchestratorStateStore(client, config.redis_prefix, config.state_ttl)
    return InMemoryOrchestratorStateStore()
