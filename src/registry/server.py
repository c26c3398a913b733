"""Registry server: MCP-style JSON-RPC over HTTP.

Routes:
    POST /mcp     JSON-RPC 2.0 with ``initialize``, ``tools/list``, ``tools/call``,
                  ``resources/list`` and ``resources/read``
    GET  /health  liveness plus the persistence backend in use
    GET  /        server info and tool names

Tool results are MCP text content holding JSON. Malformed requests get a
JSON-RPC error object, never a crash.
"""

import asyncio
import json
from typing import Any, Dict, Optional

from aiohttp import web
from typing_extensions import assert_never

from src.a2a.protocol import (
    A2AResponse,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)
from src.utils.config import RegistryConfig, get_registry_config
from src.utils.config.constants import (
    DEFAULT_HOST,
    DEFAULT_REGISTRY_PORT,
    MCP_PROTOCOL_VERSION,
    MCP_SERVER_NAME,
    MCP_SERVER_VERSION,
)
from src.utils.logging.framework import SmartLogger

from .agent_registry import AgentRegistry
from .models import utc_now_iso
from .requests import (
    AgentCardResource,
    AgentCardsListResource,
    FindAgentCall,
    GetAgentCall,
    ListAgentsCall,
    MUTATING_TOOLS,
    RESOURCE_DEFINITIONS,
    RegisterAgentCall,
    RegistryRequestError,
    RegistryStatsResource,
    ResourceRef,
    ToolCall,
    UnregisterAgentCall,
    parse_resource_uri,
    parse_tool_call,
    tool_definitions,
)
from .stores import PersistentRegistry, RegistryStoreError

logger = SmartLogger("registry")

_HTTP_STATUS = {
    PARSE_ERROR: 400,
    INVALID_REQUEST: 400,
    INVALID_PARAMS: 400,
    METHOD_NOT_FOUND: 404,
    INTERNAL_ERROR: 500,
}


def _text_content(payload: Any, is_error: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "content": [{"type": "text", "text": json.dumps(payload, indent=2)}]
    }
    if is_error:
        result["isError"] = True
    return result


class RegistryServer:
    """HTTP front end for an AgentRegistry.

    When a PersistentRegistry is given, the registry is saved after every
    mutating tool call.
    """

    def __init__(self, registry: AgentRegistry,
                 persistent: Optional[PersistentRegistry] = None,
                 host: str = DEFAULT_HOST,
                 port: int = DEFAULT_REGISTRY_PORT,
                 config: Optional[RegistryConfig] = None):
        self.registry = registry
        self.persistent = persistent
        self.host = host
        self.port = port
        self.config = config or get_registry_config()
        self.app = web.Application()
        self._monitor_task: Optional[asyncio.Task] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_post("/mcp", self._handle_mcp)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/", self._handle_info)

    @property
    def persistence_kind(self) -> str:
        return self.persistent.store.kind if self.persistent else "none"

    # HTTP handlers

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "healthy",
            "persistence": self.persistence_kind,
            "agents": len(self.registry),
            "timestamp": utc_now_iso(),
        })

    async def _handle_info(self, request: web.Request) -> web.Response:
        return web.json_response({
            "name": MCP_SERVER_NAME,
            "version": MCP_SERVER_VERSION,
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "endpoints": {"mcp": "/mcp", "health": "/health"},
            "tools": [tool["name"] for tool in tool_definitions()],
        })

    async def _handle_mcp(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("mcp_parse_error", remote=request.remote)
            return web.json_response(A2AResponse.failure(PARSE_ERROR, "Parse error").to_dict(), status=400)

        response = await self.handle_request(data)
        error = response.get("error")
        status = _HTTP_STATUS.get(error["code"], 500) if error else 200
        return web.json_response(response, status=status)

    # JSON-RPC dispatch

    async def handle_request(self, data: Any) -> Dict[str, Any]:
        """Dispatch one decoded JSON-RPC request and return the response object.

        Error codes follow JSON-RPC 2.0:
        - -32600: Invalid request (wrong structure)
        - -32601: Method not found
        - -32602: Invalid params (unknown tool or resource, bad arguments)
        - -32603: Internal error
        """
        if not isinstance(data, dict) or data.get("jsonrpc") != "2.0":
            return A2AResponse.failure(INVALID_REQUEST, "Invalid Request").to_dict()

        request_id = data.get("id")
        method = data.get("method")
        params = data.get("params") or {}

        if not isinstance(method, str) or len(method) > 100:
            return A2AResponse.failure(INVALID_REQUEST, "Invalid method name", request_id).to_dict()
        if not isinstance(params, dict):
            return A2AResponse.failure(INVALID_REQUEST, "Invalid params - must be object", request_id).to_dict()

        try:
            if method == "initialize":
                result = self._initialize()
            elif method == "tools/list":
                result = {"tools": tool_definitions()}
            elif method == "tools/call":
                call = parse_tool_call(params.get("name"), params.get("arguments"))
                result = await self.call_tool(call)
            elif method == "resources/list":
                result = {"resources": RESOURCE_DEFINITIONS}
            elif method == "resources/read":
                uri = params.get("uri")
                result = self.read_resource(uri, parse_resource_uri(uri))
            else:
                raise RegistryRequestError(METHOD_NOT_FOUND, f"Method not found: {method}")

        except RegistryRequestError as e:
            logger.warning("mcp_request_rejected", method=method, code=e.code, error=e.message)
            return A2AResponse(error=e.to_dict(), request_id=request_id).to_dict()

        except Exception as e:
            logger.error("mcp_request_failed",
                         method=method,
                         error=str(e),
                         error_type=type(e).__name__)
            return A2AResponse.failure(INTERNAL_ERROR, str(e) or "Internal error", request_id).to_dict()

        return A2AResponse(result=result, request_id=request_id).to_dict()

    def _initialize(self) -> Dict[str, Any]:
        return {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
            "capabilities": {"tools": {}, "resources": {}},
        }

    async def call_tool(self, call: ToolCall) -> Dict[str, Any]:
        """Run one parsed tool call against the registry."""
        logger.info("tool_call", tool=call.tool)

        if isinstance(call, FindAgentCall):
            matches = self.registry.find_agent(call.to_query())
            result = _text_content([match.to_wire() for match in matches])
        elif isinstance(call, ListAgentsCall):
            agents = self.registry.list_agents(tags=call.tags, healthy_only=call.healthy_only)
            result = _text_content([agent.to_wire() for agent in agents])
        elif isinstance(call, GetAgentCall):
            agent = self.registry.get_agent(call.name)
            if agent is None:
                result = _text_content({"error": f"Agent not found: {call.name}"}, is_error=True)
            else:
                result = _text_content(agent.to_wire())
        elif isinstance(call, RegisterAgentCall):
            stored = self.registry.register_agent(call.agent_card, call.tags)
            result = _text_content(stored.to_wire())
        elif isinstance(call, UnregisterAgentCall):
            removed = self.registry.unregister_agent(call.name)
            result = _text_content({
                "success": removed,
                "message": f'Agent "{call.name}" unregistered' if removed else f'Agent "{call.name}" not found',
            })
        else:
            assert_never(call)

        if call.tool in MUTATING_TOOLS:
            await self._save()
        return result

    def read_resource(self, uri: str, ref: ResourceRef) -> Dict[str, Any]:
        if isinstance(ref, AgentCardsListResource):
            content: Any = [agent.to_wire() for agent in self.registry.list_agents()]
        elif isinstance(ref, RegistryStatsResource):
            content = self.registry.get_stats().to_wire()
        elif isinstance(ref, AgentCardResource):
            agent = self.registry.get_agent(ref.name)
            if agent is None:
                raise RegistryRequestError(INVALID_PARAMS, f"Agent not found: {ref.name}")
            content = agent.to_wire()
        else:
            assert_never(ref)

        return {
            "contents": [{
                "uri": uri,
                "mimeType": "application/json",
                "text": json.dumps(content, indent=2),
            }]
        }

    async def _save(self):
        if self.persistent is None:
            return
        try:
            await self.persistent.save()
        except RegistryStoreError as e:
            # Registry stays dirty; the next mutation or monitor pass retries
            logger.error("registry_save_deferred", error=str(e))

    # Health monitoring

    async def _monitor_health(self):
        interval = self.config.health_check_interval
        while True:
            await asyncio.sleep(interval)
            await self.registry.check_all_agents_health()
            await self._save()

    # Lifecycle

    async def start(self, monitor_health: bool = False) -> web.AppRunner:
        """Start serving; returns the AppRunner for ``stop``."""
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, self.host, self.port)
        await site.start()

        if monitor_health and self.config.health_check_interval > 0:
            self._monitor_task = asyncio.create_task(self._monitor_health())

        logger.info("registry_server_started",
                    host=self.host,
                    port=self.port,
                    persistence=self.persistence_kind,
                    agents=len(self.registry),
                    monitor_health=self._monitor_task is not None)
        return runner

    async def stop(self, runner: web.AppRunner):
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        await self._save()
        await runner.cleanup()
        logger.info("registry_server_stopped", host=self.host, port=self.port)
