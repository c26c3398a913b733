"""
Central constants for the agent registry and orchestrator.

Single source of truth for defaults, key prefixes and protocol values that
would otherwise be repeated across modules.
"""

# Network constants
DEFAULT_REGISTRY_PORT = 8100
DEFAULT_HOST = "0.0.0.0"
LOCALHOST = "localhost"

# API constants
AZURE_OPENAI_API_VERSION = "2024-06-01"

# Registry defaults
REGISTRY_REDIS_PREFIX = "a2a:registry:"
REGISTRY_AGENTS_KEY = "a2a:registry:agents"
REGISTRATION_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
REGISTRY_HEALTH_CHECK_INTERVAL = 300
DEFAULT_FIND_LIMIT = 5

# Health status values
HEALTH_HEALTHY = "healthy"
HEALTH_UNHEALTHY = "unhealthy"
HEALTH_UNKNOWN = "unknown"

# Orchestrator defaults
MAX_REPLAN_ITERATIONS = 3
ORCHESTRATOR_REDIS_PREFIX = "a2a:orchestrator:"
ORCHESTRATOR_STATE_TTL = 86400
MAX_GOAL_LENGTH = 50000

# Task / plan messages
BLOCKED_TASK_ERROR = "blocked by failed dependencies"
NO_AGENT_ERROR_PREFIX = "no agent found for task type:"
EMPTY_PLAN_SUMMARY = "No tasks were planned for this goal."
EXHAUSTED_SUMMARY = "Failed to complete all tasks after maximum re-planning attempts."
DEFAULT_WORKER_REPLY_TEXT = "Task completed"

# A2A task states treated as failures
A2A_FAILED_STATES = ("failed", "rejected", "canceled")
A2A_INPUT_REQUIRED_STATE = "input-required"

# MCP server identity
MCP_PROTOCOL_VERSION = "2024-11-05"
MCP_SERVER_NAME = "agent-registry"
MCP_SERVER_VERSION = "1.0.0"

# Default timeout values
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_CONNECT_TIMEOUT = 30
DEFAULT_SOCKET_TIMEOUT = 30
HEALTH_CHECK_TIMEOUT = 5

# Circuit breaker defaults
CIRCUIT_BREAKER_FAILURE_THRESHOLD = 5
CIRCUIT_BREAKER_TIMEOUT = 30
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS = 3
