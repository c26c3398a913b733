"""Capability registry: worker cards, ranked discovery, persistence and server."""

from .models import (
    AgentCapabilities,
    AgentMatch,
    AgentSkill,
    CapabilityCard,
    FindAgentQuery,
    RegisterAgentRequest,
    RegistryStats,
)
from .agent_registry import AgentRegistry, create_agent_registry, tokenize
from .stores import (
    InMemoryRegistryStore,
    PersistentRegistry,
    RedisRegistryStore,
    RegistryStore,
    RegistryStoreError,
    create_persistent_registry,
    create_registry_store,
    load_cards_file,
)
from .requests import RegistryRequestError, parse_resource_uri, parse_tool_call
from .server import RegistryServer

__all__ = [
    "AgentCapabilities",
    "AgentMatch",
    "AgentSkill",
    "CapabilityCard",
    "FindAgentQuery",
    "RegisterAgentRequest",
    "RegistryStats",
    "AgentRegistry",
    "create_agent_registry",
    "tokenize",
    "InMemoryRegistryStore",
    "PersistentRegistry",
    "RedisRegistryStore",
    "RegistryStore",
    "RegistryStoreError",
    "create_persistent_registry",
    "create_registry_store",
    "load_cards_file",
    "RegistryRequestError",
    "parse_resource_uri",
    "parse_tool_call",
    "RegistryServer",
]
