"""Plan-and-execute state: tasks, plans, orchestrator state and results.

All models round-trip through JSON with camelCase keys so a checkpoint
written by one process can be restored by another.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PlanStatus(str, Enum):
    """Status of the overall plan execution."""
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    REPLANNING = "replanning"


class TaskStatus(str, Enum):
    """Status of individual tasks."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Why something failed."""
    VALIDATION = "validation"  # Malformed request, rejected before side effects
    DISCOVERY = "discovery"    # No worker matched the task
    EXECUTION = "execution"    # Worker errored or was unreachable
    BLOCKED = "blocked"        # A dependency failed or a cycle exists
    EXHAUSTION = "exhaustion"  # Re-planning ran out with failures remaining
    PARSE = "parse"            # Planner output could not be read as tasks


class StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InvalidTransition(Exception):
    pass


class PlanTask(StateModel):
    """One node of the execution DAG."""

    id: str
    type: str
    description: str = ""
    dependencies: List[str] = Field(default_factory=list)
    params: Optional[Dict[str, Any]] = None
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    assigned_agent: Optional[str] = None

    def _require(self, *allowed: TaskStatus):
        if self.status not in allowed:
            raise InvalidTransition(f"Task {self.id} cannot leave status {self.status.value}")

    def mark_running(self):
        self._require(TaskStatus.PENDING)
        self.status = TaskStatus.RUNNING

    def mark_completed(self, result: Any, agent: Optional[str] = None):
        self._require(TaskStatus.RUNNING)
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.assigned_agent = agent
        self.error = None
        self.error_kind = None

    def mark_failed(self, error: str, kind: ErrorKind):
        # Blocked tasks fail straight from pending
        self._require(TaskStatus.PENDING, TaskStatus.RUNNING)
        self.status = TaskStatus.FAILED
        self.error = error
        self.error_kind = kind

    def carry_over(self, result: Any, agent: Optional[str] = None):
        """Adopt a result completed in an earlier plan iteration."""
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.error = None
        self.error_kind = None
        if agent:
            self.assigned_agent = agent

    def reset_interrupted(self):
        """A task left running by a dead process goes back to pending."""
        if self.status == TaskStatus.RUNNING:
            self.status = TaskStatus.PENDING


class ExecutionPlan(StateModel):
    """The full DAG plus plan-level bookkeeping."""

    id: str = Field(default_factory=lambda: f"plan_{uuid.uuid4().hex[:12]}")
    goal: str
    tasks: List[PlanTask] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    status: PlanStatus = PlanStatus.PLANNING
    iteration: int = 0
    max_iterations: int = 3

    def get_task(self, task_id: str) -> Optional[PlanTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def tasks_with_status(self, status: TaskStatus) -> List[PlanTask]:
        return [task for task in self.tasks if task.status == status]

    @property
    def failed_tasks(self) -> List[PlanTask]:
        return self.tasks_with_status(TaskStatus.FAILED)

    @property
    def completed_tasks(self) -> List[PlanTask]:
        return self.tasks_with_status(TaskStatus.COMPLETED)

    @property
    def pending_tasks(self) -> List[PlanTask]:
        return self.tasks_with_status(TaskStatus.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self.status in (PlanStatus.COMPLETED, PlanStatus.FAILED)


class AgentContext(StateModel):
    """Conversation handle with the worker bound to a task."""

    task_id: Optional[str] = None
    context_id: Optional[str] = None
    input_required: bool = False


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


class OrchestratorState(StateModel):
    """Everything needed to resume an orchestration after a restart."""

    plan: Optional[ExecutionPlan] = None
    task_results: Dict[str, Any] = Field(default_factory=dict)
    agent_contexts: Dict[str, AgentContext] = Field(default_factory=dict)
    session_id: str = Field(default_factory=new_session_id)
    last_updated: str = Field(default_factory=utc_now_iso)

    def touch(self):
        self.last_updated = utc_now_iso()


class OrchestrationResult(StateModel):
    """What ``execute`` and ``resume`` return."""

    success: bool
    results: Dict[str, Any] = Field(default_factory=dict)
    summary: str
    plan: Optional[ExecutionPlan] = None
    session_id: str
    iterations: int = 0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
