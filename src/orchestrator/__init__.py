"""Plan-and-execute orchestrator: planning, wave execution, re-planning and state."""

from .plan_state import (
    AgentContext,
    ErrorKind,
    ExecutionPlan,
    OrchestrationResult,
    OrchestratorState,
    PlanStatus,
    PlanTask,
    TaskStatus,
)
from .plan_parser import PlanDecodeResult, decode_plan_response
from .planner import Planner
from .executor import PlanExecutor, TaskOutcome
from .state_store import (
    InMemoryOrchestratorStateStore,
    OrchestratorStateStore,
    RedisOrchestratorStateStore,
    StateStoreError,
    create_state_store,
)
from .orchestrator import Orchestrator, OrchestratorStateError

__all__ = [
    "AgentContext",
    "ErrorKind",
    "ExecutionPlan",
    "OrchestrationResult",
    "OrchestratorState",
    "PlanStatus",
    "PlanTask",
    "TaskStatus",
    "PlanDecodeResult",
    "decode_plan_response",
    "Planner",
    "PlanExecutor",
    "TaskOutcome",
    "InMemoryOrchestratorStateStore",
    "OrchestratorStateStore",
    "RedisOrchestratorStateStore",
    "StateStoreError",
    "create_state_store",
    "Orchestrator",
    "OrchestratorStateError",
]
