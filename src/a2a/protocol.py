"""
Agent2Agent (A2A) Protocol Client.

Workers found through the capability registry are invoked with the A2A
``message/send`` method: JSON-RPC 2.0 over HTTP POST to the worker's card URL.
The orchestrator only needs the minimal request/response contract, so this
module covers the client side plus the JSON-RPC envelope shared with the
registry server.

Key Design Decisions:
    - JSON-RPC 2.0: Same envelope and error codes as the registry's tool endpoint
    - Circuit Breaker Pattern: One breaker per worker host and method, so a dead
      worker fails fast instead of stalling every wave that targets it
    - Retry with backoff: Transient network errors are retried before the task is
      marked failed
    - Tolerant reply parsing: Workers may answer with a Task or a bare Message;
      both are reduced to ``{"text": ..., "artifacts": [...]}``

Architecture Components:
    - A2AClient: Resilient JSON-RPC calls, ``send_message`` and ``/health`` probes
    - A2ARequest / A2AResponse: JSON-RPC 2.0 envelopes
    - WorkerReply / parse_worker_reply: Reduction of a worker reply to a result payload
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import aiohttp

from src.utils.circuit_breaker import CircuitBreakerConfig, RetryConfig, resilient_call
from src.utils.config import get_a2a_config
from src.utils.config.constants import (
    A2A_FAILED_STATES,
    A2A_INPUT_REQUIRED_STATE,
    DEFAULT_WORKER_REPLY_TEXT,
)
from src.utils.logging.framework import SmartLogger

logger = SmartLogger("a2a")

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class A2ARequest:
    """JSON-RPC 2.0 request wrapper."""

    def __init__(self, method: str, params: Dict[str, Any], request_id: Optional[str] = None):
        """Initialize a JSON-RPC request.

        Args:
            method: RPC method name to invoke
            params: Method parameters as a dictionary
            request_id: Optional correlation ID (auto-generated if not provided)
        """
        self.jsonrpc = "2.0"
        self.method = method
        self.params = params
        self.id = request_id or str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": self.params,
            "id": self.id
        }


class A2AResponse:
    """JSON-RPC 2.0 response wrapper.

    Error codes follow JSON-RPC 2.0 specification:
    - -32700: Parse error
    - -32600: Invalid request
    - -32601: Method not found
    - -32602: Invalid params
    - -32603: Internal error
    """

    def __init__(self, result: Any = None, error: Optional[Dict[str, Any]] = None, request_id: Any = None):
        self.jsonrpc = "2.0"
        self.result = result
        self.error = error
        self.id = request_id

    @classmethod
    def failure(cls, code: int, message: str, request_id: Any = None) -> "A2AResponse":
        return cls(error={"code": code, "message": message}, request_id=request_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 response format."""
        response = {
            "jsonrpc": self.jsonrpc,
            "id": self.id
        }
        if self.error:
            response["error"] = self.error
        else:
            response["result"] = self.result
        return response


@dataclass
class WorkerReply:
    """A worker's answer reduced to what the orchestrator records."""
    text: str
    artifacts: List[Any] = field(default_factory=list)
    task_id: Optional[str] = None
    context_id: Optional[str] = None
    state: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.state in A2A_FAILED_STATES

    @property
    def input_required(self) -> bool:
        return self.state == A2A_INPUT_REQUIRED_STATE

    def to_result(self) -> Dict[str, Any]:
        return {"text": self.text, "artifacts": self.artifacts}


def _as_id(value: Any) -> Optional[str]:
    # Workers occasionally send numeric ids
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    return str(value) or None


def _first_text(parts: Any) -> Optional[str]:
    if not isinstance(parts, list):
        return None
    for part in parts:
        if isinstance(part, dict) and (part.get("kind") == "text" or part.get("text")):
            text = part.get("text")
            if isinstance(text, str) and text:
                return text
    return None


def parse_worker_reply(result: Any) -> WorkerReply:
    """Reduce a ``message/send`` result (Task or Message) to a WorkerReply.

    Some workers wrap the task one level deeper (``{"result": {...}}``); that
    shape is unwrapped first.
    """
    if not isinstance(result, dict):
        return WorkerReply(text=DEFAULT_WORKER_REPLY_TEXT)

    if isinstance(result.get("result"), dict) and "kind" not in result:
        result = result["result"]

    if result.get("kind") == "message" or ("parts" in result and "status" not in result):
        return WorkerReply(
            text=_first_text(result.get("parts")) or DEFAULT_WORKER_REPLY_TEXT,
            task_id=_as_id(result.get("taskId")),
            context_id=_as_id(result.get("contextId")),
        )

    status = result.get("status")
    if not isinstance(status, dict):
        status = {}
    message = status.get("message")
    text = _first_text(message.get("parts")) if isinstance(message, dict) else None
    artifacts = result.get("artifacts")
    if not isinstance(artifacts, list):
        artifacts = []
    state = status.get("state")

    if text is None:
        # Text may only be present on an artifact
        for artifact in artifacts:
            if isinstance(artifact, dict):
                text = _first_text(artifact.get("parts"))
                if text:
                    break

    return WorkerReply(
        text=text or DEFAULT_WORKER_REPLY_TEXT,
        artifacts=artifacts,
        task_id=_as_id(result.get("id")),
        context_id=_as_id(result.get("contextId")),
        state=state if isinstance(state, str) else None,
    )


class A2AException(Exception):
    """Raised for transport and protocol failures when calling a worker."""
    pass


class A2AClient:
    """A2A Protocol Client for making resilient calls to workers.

    The client owns one aiohttp session (created lazily) with a pooled
    connector sized from ``A2AConfig``.

    Usage:
        async with A2AClient() as client:
            reply = await client.send_message(card.url, "Find flights to Paris")
    """

    def __init__(self, timeout: Optional[int] = None,
                 retry_config: Optional[RetryConfig] = None,
                 circuit_config: Optional[CircuitBreakerConfig] = None):
        """Initialize the A2A client.

        Args:
            timeout: Request timeout in seconds (uses config default if None)
            retry_config: Override of the retry policy built from config
            circuit_config: Override of the circuit breaker policy built from config
        """
        a2a_config = get_a2a_config()
        self.timeout = timeout if timeout is not None else a2a_config.timeout
        self.retry_config = retry_config or RetryConfig(
            max_attempts=a2a_config.retry_attempts,
            base_delay=a2a_config.retry_delay,
            max_delay=30.0,
            retry_on=(A2AException,),
        )
        self.circuit_config = circuit_config or CircuitBreakerConfig(
            failure_threshold=a2a_config.circuit_breaker_threshold,
            timeout=a2a_config.circuit_breaker_timeout,
            half_open_max_calls=3
        )
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            a2a_config = get_a2a_config()
            timeout_config = aiohttp.ClientTimeout(
                total=self.timeout,
                connect=a2a_config.connect_timeout,
                sock_read=a2a_config.sock_read_timeout,
                sock_connect=a2a_config.sock_connect_timeout
            )
            connector = aiohttp.TCPConnector(
                limit=a2a_config.connection_pool_size,
                limit_per_host=max(20, a2a_config.connection_pool_size),
                ttl_dns_cache=a2a_config.connection_pool_ttl
            )
            self.session = aiohttp.ClientSession(timeout=timeout_config, connector=connector)
            logger.debug("a2a_session_created", timeout=self.timeout)
        return self.session

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()
            logger.debug("a2a_session_closed")
        self.session = None

    async def _make_raw_call(self, endpoint: str, method: str, params: Dict[str, Any],
                             request_id: Optional[str] = None) -> Dict[str, Any]:
        """Make a raw JSON-RPC call without resilience patterns.

        Raises:
            A2AException: For HTTP, JSON-RPC, timeout and network errors
        """
        operation_id = f"a2a_call_{uuid.uuid4().hex[:8]}"
        request = A2ARequest(method, params, request_id)
        logger.info("a2a_call_start",
                    operation_id=operation_id,
                    endpoint=endpoint,
                    method=method,
                    request_id=request.id,
                    params_keys=list(params.keys()))

        start_time = time.time()
        session = self._get_session()
        try:
            async with session.post(
                endpoint,
                json=request.to_dict(),
                headers={"Content-Type": "application/json"}
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("a2a_http_error",
                                 operation_id=operation_id,
                                 endpoint=endpoint,
                                 status=response.status,
                                 error=error_text[:500])
                    raise A2AException(f"Agent call failed: {response.status} {response.reason}")

                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise A2AException(f"Invalid JSON from agent: {e}") from e

        except asyncio.TimeoutError as e:
            elapsed = time.time() - start_time
            logger.error("a2a_call_timeout",
                         operation_id=operation_id,
                         endpoint=endpoint,
                         elapsed_seconds=round(elapsed, 2),
                         timeout_seconds=self.timeout)
            raise A2AException(f"Request timed out after {elapsed:.2f}s") from e
        except aiohttp.ClientError as e:
            logger.error("a2a_call_network_error",
                         operation_id=operation_id,
                         endpoint=endpoint,
                         error=str(e),
                         error_type=type(e).__name__)
            raise A2AException(f"Network error: {e}") from e

        if not isinstance(body, dict):
            raise A2AException("Invalid JSON-RPC response from agent")

        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.error("a2a_agent_error",
                         operation_id=operation_id,
                         endpoint=endpoint,
                         error=error)
            raise A2AException(f"Agent error: {message}")

        result = body.get("result", {})
        logger.info("a2a_call_success",
                    operation_id=operation_id,
                    endpoint=endpoint,
                    method=method,
                    duration_seconds=round(time.time() - start_time, 3))
        return result

    async def call_agent(self, endpoint: str, method: str, params: Dict[str, Any],
                         request_id: Optional[str] = None) -> Dict[str, Any]:
        """Make a resilient JSON-RPC call with circuit breaker and retry logic.

        The circuit breaker is keyed by worker host and method to isolate failures.

        Raises:
            A2AException: After all retry attempts are exhausted
            CircuitBreakerException: When the breaker for this worker is open
        """
        host = urlparse(endpoint).netloc.replace(':', '_') or endpoint
        circuit_breaker_name = f"a2a_{host}_{method}"

        return await resilient_call(
            self._make_raw_call,
            circuit_breaker_name,
            self.retry_config,
            self.circuit_config,
            endpoint, method, params, request_id
        )

    async def send_message(self, endpoint: str, text: str,
                           data: Optional[Dict[str, Any]] = None,
                           context_id: Optional[str] = None) -> WorkerReply:
        """Send a user message to a worker via ``message/send``.

        Args:
            endpoint: Worker URL from its capability card
            text: The task description
            data: Optional structured context sent as a data part
            context_id: Conversation context to continue, when known

        Returns:
            The parsed WorkerReply
        """
        parts: List[Dict[str, Any]] = [{"kind": "text", "text": text}]
        if data:
            parts.append({"kind": "data", "data": data})

        message: Dict[str, Any] = {
            "kind": "message",
            "messageId": str(uuid.uuid4()),
            "role": "user",
            "parts": parts,
        }
        if context_id:
            message["contextId"] = context_id

        result = await self.call_agent(endpoint, "message/send", {"message": message},
                                       request_id=f"task_{uuid.uuid4().hex[:12]}")
        return parse_worker_reply(result)

    async def check_health(self, url: str, timeout: Optional[float] = None) -> bool:
        """Probe ``GET {url}/health``; any 2xx answer counts as healthy."""
        probe_timeout = timeout if timeout is not None else get_a2a_config().health_check_timeout
        health_url = f"{url.rstrip('/')}/health"
        try:
            async with self._get_session().get(
                health_url, timeout=aiohttp.ClientTimeout(total=probe_timeout)
            ) as response:
                healthy = 200 <= response.status < 300
                logger.debug("health_probe_response", url=health_url, status=response.status)
                return healthy
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("health_probe_failed",
                           url=health_url,
                           error=str(e),
                           error_type=type(e).__name__)
            return False
