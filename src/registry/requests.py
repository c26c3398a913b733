"""Typed registry requests.

Tool calls arriving over the wire are parsed into a closed set of request
models discriminated by ``tool``; resource URIs are parsed into a closed set
of resource references. Parsing failures raise ``RegistryRequestError`` with
a JSON-RPC error code, before any registry state is touched.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from src.a2a.protocol import INVALID_PARAMS
from src.utils.config.constants import DEFAULT_FIND_LIMIT

from .models import CapabilityCard, FindAgentQuery, RegistryModel


class RegistryRequestError(Exception):
    """A rejected request, carrying a JSON-RPC error code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class FindAgentCall(RegistryModel):
    """Find the best agent(s) for a task. Returns ranked results with match scores."""

    tool: Literal["find_agent"] = "find_agent"
    query: str = Field(min_length=1, description="Natural language description of the task")
    required_capabilities: List[str] = Field(default_factory=list, description="Capabilities the agent must have")
    preferred_tags: List[str] = Field(default_factory=list, description="Preferred tags for ranking")
    limit: int = Field(default=DEFAULT_FIND_LIMIT, ge=1, le=100, description="Maximum number of results")

    def to_query(self) -> FindAgentQuery:
        return FindAgentQuery(
            query=self.query,
            required_capabilities=self.required_capabilities,
            preferred_tags=self.preferred_tags,
            limit=self.limit,
        )


class ListAgentsCall(RegistryModel):
    """List all registered agents, optionally filtered by tags and health status."""

    tool: Literal["list_agents"] = "list_agents"
    tags: Optional[List[str]] = Field(default=None, description="Filter by tags")
    healthy_only: bool = Field(default=False, description="Only return healthy agents")


class GetAgentCall(RegistryModel):
    """Get a specific agent by its exact name."""

    tool: Literal["get_agent"] = "get_agent"
    name: str = Field(min_length=1, description="Exact name of the agent")


class RegisterAgentCall(RegistryModel):
    """Register an agent. Requires an agent card with name, description and URL."""

    tool: Literal["register_agent"] = "register_agent"
    agent_card: CapabilityCard
    tags: List[str] = Field(default_factory=list, description="Additional tags for the agent")


class UnregisterAgentCall(RegistryModel):
    """Remove an agent from the registry."""

    tool: Literal["unregister_agent"] = "unregister_agent"
    name: str = Field(min_length=1, description="Name of the agent to unregister")


ToolCall = Annotated[
    Union[FindAgentCall, ListAgentsCall, GetAgentCall, RegisterAgentCall, UnregisterAgentCall],
    Field(discriminator="tool"),
]

TOOL_MODELS = {
    "find_agent": FindAgentCall,
    "list_agents": ListAgentsCall,
    "get_agent": GetAgentCall,
    "register_agent": RegisterAgentCall,
    "unregister_agent": UnregisterAgentCall,
}

MUTATING_TOOLS = frozenset({"register_agent", "unregister_agent"})

_tool_adapter = TypeAdapter(ToolCall)


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


def parse_tool_call(name: Any, arguments: Any) -> ToolCall:
    """Validate ``tools/call`` params into one of the request models."""
    if not isinstance(name, str) or name not in TOOL_MODELS:
        raise RegistryRequestError(INVALID_PARAMS, f"Unknown tool: {name}")

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise RegistryRequestError(INVALID_PARAMS, "Tool arguments must be an object")

    try:
        return _tool_adapter.validate_python({**arguments, "tool": name})
    except ValidationError as e:
        raise RegistryRequestError(INVALID_PARAMS, f"Invalid parameters: {_describe_validation_error(e)}") from e


def tool_definitions() -> List[Dict[str, Any]]:
    """MCP tool descriptors with JSON schemas derived from the request models."""
    tools = []
    for name, model in TOOL_MODELS.items():
        schema = model.model_json_schema(by_alias=True)
        schema.get("properties", {}).pop("tool", None)
        if "required" in schema:
            schema["required"] = [field for field in schema["required"] if field != "tool"]
        schema.pop("title", None)
        schema.pop("description", None)
        tools.append({
            "name": name,
            "description": (model.__doc__ or "").strip(),
            "inputSchema": schema,
        })
    return tools


# Resource references


class AgentCardsListResource(RegistryModel):
    kind: Literal["agent_cards_list"] = "agent_cards_list"


class AgentCardResource(RegistryModel):
    kind: Literal["agent_card"] = "agent_card"
    name: str


class RegistryStatsResource(RegistryModel):
    kind: Literal["registry_stats"] = "registry_stats"


ResourceRef = Union[AgentCardsListResource, AgentCardResource, RegistryStatsResource]

AGENT_CARDS_LIST_URI = "agent_cards/list"
REGISTRY_STATS_URI = "registry/stats"
AGENT_CARD_URI_PREFIX = "agent_cards/"

RESOURCE_DEFINITIONS = [
    {
        "uri": AGENT_CARDS_LIST_URI,
        "name": "Agent Cards List",
        "description": "List of all registered agent cards",
        "mimeType": "application/json",
    },
    {
        "uri": REGISTRY_STATS_URI,
        "name": "Registry Statistics",
        "description": "Statistics about the registry",
        "mimeType": "application/json",
    },
]


def parse_resource_uri(uri: Any) -> ResourceRef:
    if not isinstance(uri, str) or not uri:
        raise RegistryRequestError(INVALID_PARAMS, "Resource uri must be a non-empty string")
    if uri == AGENT_CARDS_LIST_URI:
        return AgentCardsListResource()
    if uri == REGISTRY_STATS_URI:
        return RegistryStatsResource()
    if uri.startswith(AGENT_CARD_URI_PREFIX) and len(uri) > len(AGENT_CARD_URI_PREFIX):
        return AgentCardResource(name=uri[len(AGENT_CARD_URI_PREFIX):])
    raise RegistryRequestError(INVALID_PARAMS, f"Unknown resource: {uri}")
