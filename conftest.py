"""
Global pytest configuration and fixtures for orchestrator and registry tests.

Fixtures are organized by purpose: environment isolation, models, fake
collaborators (chat model and worker client) and registries.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from src.a2a.protocol import WorkerReply
from src.registry import AgentCapabilities, AgentRegistry, AgentSkill, CapabilityCard
from src.utils import circuit_breaker
from src.utils.circuit_breaker import CircuitBreakerConfig
from src.utils.config import OrchestratorConfig, RegistryConfig
from src.utils.config import config as config_module
from src.utils.logging import reset_logger


# ============================================================================
# Environment Isolation
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Log to a temp dir and start every test from default configuration."""
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SYSTEM_CONFIG_PATH", str(tmp_path / "missing_config.json"))
    for name in ("REDIS_URL", "MAX_REPLAN_ITERATIONS", "MAX_CONCURRENT_TASKS", "TASK_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(config_module, "_config_manager", None)
    monkeypatch.setattr(circuit_breaker, "_registry", None)
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    env_vars = {
        "AZURE_OPENAI_ENDPOINT": "https://test.openai.azure.com",
        "AZURE_OPENAI_API_KEY": "test-api-key",
        "AZURE_OPENAI_CHAT_DEPLOYMENT_NAME": "test-deployment",
        "AZURE_OPENAI_API_VERSION": "2024-06-01",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def orchestrator_config():
    return OrchestratorConfig(max_replan_iterations=3)


@pytest.fixture
def registry_config():
    return RegistryConfig(health_check_interval=0)


# ============================================================================
# Chat Model Fixtures
# ============================================================================

@pytest.fixture
def mock_llm():
    """Create a mock chat model for testing."""
    from langchain_core.messages import AIMessage

    llm = Mock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="Test response"))
    return llm


@pytest.fixture
def scripted_llm():
    """Factory for a chat model that answers with the given texts in order.

    A ``dict`` or ``list`` response is sent as JSON; an Exception is raised.
    """
    from langchain_core.messages import AIMessage

    def _build(*responses: Any) -> Mock:
        side_effect = []
        for response in responses:
            if isinstance(response, BaseException):
                side_effect.append(response)
            elif isinstance(response, (dict, list)):
                side_effect.append(AIMessage(content=json.dumps(response)))
            else:
                side_effect.append(AIMessage(content=response))
        llm = Mock()
        llm.ainvoke = AsyncMock(side_effect=side_effect)
        return llm

    return _build


def plan_json(*tasks: Dict[str, Any]) -> Dict[str, Any]:
    return {"tasks": list(tasks)}


@pytest.fixture
def make_plan():
    return plan_json


# ============================================================================
# Worker Client Fixtures
# ============================================================================

class FakeWorkerClient:
    """Stands in for A2AClient.send_message.

    Replies are looked up by endpoint; unknown endpoints succeed with a
    reply echoing the task text. Tracks how many calls overlap.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.replies: Dict[str, Any] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0

    async def send_message(self, endpoint: str, text: str,
                           data: Optional[Dict[str, Any]] = None,
                           context_id: Optional[str] = None) -> WorkerReply:
        self.calls.append({"endpoint": endpoint, "text": text, "data": data, "context_id": context_id})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        reply = self.replies.get(endpoint)
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            reply = WorkerReply(text=f"done: {text}", task_id=f"t-{len(self.calls)}", context_id="ctx-1",
                                state="completed")
        return reply

    async def close(self):
        pass


@pytest.fixture
def worker_client():
    return FakeWorkerClient()


# ============================================================================
# Capability Card Fixtures
# ============================================================================

@pytest.fixture
def flight_card():
    return CapabilityCard(
        name="flight-agent",
        description="Searches flights between airports",
        url="http://flight-agent.test",
        skills=[AgentSkill(id="flights", name="Flight Search", tags=["flights"])],
        tags=["flight_search", "travel"],
    )


@pytest.fixture
def hotel_card():
    return CapabilityCard(
        name="hotel-agent",
        description="Finds hotels and accommodation",
        url="http://hotel-agent.test",
        tags=["hotel_search", "travel"],
    )


@pytest.fixture
def weather_card():
    return CapabilityCard(
        name="weather-agent",
        description="Weather forecasts per city",
        url="http://weather-agent.test",
        capabilities=AgentCapabilities(streaming=True),
        tags=["weather_forecast"],
    )


@pytest.fixture
def sample_cards(flight_card, hotel_card, weather_card):
    return [flight_card, hotel_card, weather_card]


@pytest.fixture
def registry(registry_config, sample_cards):
    agent_registry = AgentRegistry(registry_config)
    for card in sample_cards:
        agent_registry.register_agent(card)
    return agent_registry


# ============================================================================
# Resilience Fixtures
# ============================================================================

@pytest.fixture
def circuit_breaker_config():
    """Circuit breaker configuration with short timeouts for testing."""
    return CircuitBreakerConfig(
        failure_threshold=3,
        timeout=1,
        half_open_max_calls=2,
        reset_timeout=2,
    )
