"""Data models for the capability registry.

Models validate with pydantic and serialize with camelCase aliases, which is
the wire format used by A2A agent cards and by the registry's tool endpoint.
"""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.utils.config.constants import DEFAULT_FIND_LIMIT

HealthStatus = Literal["healthy", "unhealthy", "unknown"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RegistryModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AgentCapabilities(RegistryModel):
    """Optional protocol features a worker declares."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    streaming: Optional[bool] = None
    push_notifications: Optional[bool] = None
    state_transition_history: Optional[bool] = None

    def enabled_flags(self) -> List[str]:
        """Names (wire spelling) of every capability flag set to true."""
        flags = []
        for name, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if value is True:
                flags.append(name)
        return flags


class AgentSkill(RegistryModel):
    """A skill advertised on an agent card."""

    id: str = ""
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    examples: Optional[List[str]] = None


class CapabilityCard(RegistryModel):
    """A worker descriptor; ``name`` is the registry key."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str = Field(min_length=1)
    description: str = ""
    url: str = Field(min_length=1)
    version: Optional[str] = None
    capabilities: Optional[AgentCapabilities] = None
    skills: List[AgentSkill] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None  # Reserved for semantic search

    # Registry bookkeeping
    registered_at: Optional[str] = None
    last_health_check: Optional[str] = None
    health_status: HealthStatus = "unknown"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Agent name cannot be blank")
        return v

    @property
    def is_healthy(self) -> bool:
        return self.health_status == "healthy"

    def capability_names(self) -> List[str]:
        """Lowercased capability flags and tags used for mandatory-capability gating."""
        names = [tag.lower() for tag in self.tags]
        if self.capabilities is not None:
            names.extend(flag.lower() for flag in self.capabilities.enabled_flags())
        return names


class RegisterAgentRequest(RegistryModel):
    agent_card: CapabilityCard
    tags: List[str] = Field(default_factory=list)


class FindAgentQuery(RegistryModel):
    """A ranked capability query."""

    query: str = Field(min_length=1)
    required_capabilities: List[str] = Field(default_factory=list)
    preferred_tags: List[str] = Field(default_factory=list)
    limit: int = Field(default=DEFAULT_FIND_LIMIT, ge=1, le=100)


class AgentMatch(RegistryModel):
    agent_card: CapabilityCard
    score: float = Field(ge=0.0, le=1.0)
    match_reason: str


class RegistryStats(RegistryModel):
    total_agents: int
    healthy_agents: int
    unhealthy_agents: int
    last_updated: str
    capability_distribution: Dict[str, int] = Field(default_factory=dict)
