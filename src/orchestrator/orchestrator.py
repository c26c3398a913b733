"""Plan-and-execute orchestrator.

The loop is a compiled LangGraph ``StateGraph``::

    START -> plan -> execute -> summarize -> END
                        |  ^
                        v  |
                       replan
                        |
                      (limit) -> fail -> END

``execute`` runs one pass of the wave scheduler. With no failed tasks the
goal is summarized; with failures the plan is revised until the iteration
limit, after which the run ends as exhausted with its partial results.

The plan, result map and agent contexts live on ``self.state`` (an
``OrchestratorState``) so they can be checkpointed after every step and
restored into another process. The graph state only carries the goal and
the outcome.
"""

import json
from typing import Any, Dict, Optional, TypedDict, Union

from langchain_core.language_models import BaseChatModel
from langgraph.graph import END, START, StateGraph

from src.a2a.protocol import A2AClient
from src.registry.agent_registry import AgentRegistry
from src.utils.config import OrchestratorConfig, get_orchestrator_config
from src.utils.config.constants import EMPTY_PLAN_SUMMARY, EXHAUSTED_SUMMARY
from src.utils.input_validation import validate_goal
from src.utils.llm import generate_text
from src.utils.logging.framework import SmartLogger, log_operation

from .executor import PlanExecutor
from .plan_state import (
    ErrorKind,
    ExecutionPlan,
    OrchestrationResult,
    OrchestratorState,
    PlanStatus,
)
from .planner import Planner
from .prompts import SUMMARY_SYSTEM_PROMPT, summary_prompt
from .state_store import OrchestratorStateStore, StateStoreError

logger = SmartLogger("orchestrator")


class OrchestrationGraphState(TypedDict, total=False):
    goal: str
    resume: bool
    step: str
    success: bool
    summary: str
    error_kind: Optional[str]


class OrchestratorStateError(Exception):
    """Raised when a resume or restore is impossible."""
    pass


class Orchestrator:
    """Drives one goal at a time from plan to summary.

    Args:
        registry: Registry used to discover a worker per task
        llm: Chat model for planning, re-planning and the final summary
        client: A2A client for worker calls; one is created (and closed) if omitted
        config: Orchestrator settings; defaults to the global config
        state_store: Optional checkpoint store
        session_id: Session to use instead of a generated one
    """

    def __init__(self, registry: AgentRegistry, llm: BaseChatModel,
                 client: Optional[A2AClient] = None,
                 config: Optional[OrchestratorConfig] = None,
                 state_store: Optional[OrchestratorStateStore] = None,
                 session_id: Optional[str] = None):
        self.registry = registry
        self.llm = llm
        self.config = config or get_orchestrator_config()
        self._owns_client = client is None
        self.client = client or A2AClient()
        self.state_store = state_store

        self.planner = Planner(llm, self.config.max_replan_iterations)
        self.executor = PlanExecutor(registry, self.client, self.config)

        self.state = OrchestratorState(session_id=session_id) if session_id else OrchestratorState()
        self.graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(OrchestrationGraphState)

        builder.add_node("plan", self._plan_node)
        builder.add_node("execute", self._execute_node)
        builder.add_node("replan", self._replan_node)
        builder.add_node("summarize", self._summarize_node)
        builder.add_node("fail", self._fail_node)

        builder.add_conditional_edges(
            START,
            self._route_start,
            {"plan": "plan", "execute": "execute", "replan": "replan",
             "summarize": "summarize", "fail": "fail"},
        )
        builder.add_edge("plan", "execute")
        builder.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {"summarize": "summarize", "replan": "replan", "fail": "fail"},
        )
        builder.add_edge("replan", "execute")
        builder.add_edge("summarize", END)
        builder.add_edge("fail", END)

        return builder.compile()

    # Routing

    def _current_plan(self) -> ExecutionPlan:
        if self.state.plan is None:
            raise OrchestratorStateError("No execution plan in state")
        return self.state.plan

    def _route_start(self, state: OrchestrationGraphState) -> str:
        if not state.get("resume"):
            return "plan"
        if self._current_plan().pending_tasks:
            return "execute"
        return self._route_after_execute(state)

    def _route_after_execute(self, state: OrchestrationGraphState) -> str:
        plan = self._current_plan()
        if not plan.failed_tasks:
            return "summarize"
        if plan.iteration < plan.max_iterations:
            return "replan"
        return "fail"

    # Nodes

    async def _plan_node(self, state: OrchestrationGraphState) -> Dict[str, Any]:
        self.state.plan = await self.planner.create_plan(state["goal"])
        await self._checkpoint("plan")
        return {"step": "plan"}

    async def _execute_node(self, state: OrchestrationGraphState) -> Dict[str, Any]:
        plan = self._current_plan()
        plan.status = PlanStatus.EXECUTING
        plan.iteration += 1

        logger.info("plan_iteration_started",
                    plan_id=plan.id,
                    iteration=plan.iteration,
                    max_iterations=plan.max_iterations,
                    pending=len(plan.pending_tasks))

        await self.executor.execute_plan(
            plan,
            self.state.task_results,
            self.state.agent_contexts,
            on_wave_complete=self._on_wave_complete,
        )
        await self._checkpoint("execute")
        return {"step": "execute"}

    async def _on_wave_complete(self, plan: ExecutionPlan):
        await self._checkpoint("wave")

    async def _replan_node(self, state: OrchestrationGraphState) -> Dict[str, Any]:
        plan = self._current_plan()
        plan.status = PlanStatus.REPLANNING
        self.state.plan = await self.planner.replan(plan, self.state.task_results)
        await self._checkpoint("replan")
        return {"step": "replan"}

    async def _summarize_node(self, state: OrchestrationGraphState) -> Dict[str, Any]:
        plan = self._current_plan()
        plan.status = PlanStatus.COMPLETED

        if plan.tasks:
            summary = await self.summarize_results(plan.goal, self.state.task_results)
        else:
            summary = EMPTY_PLAN_SUMMARY

        logger.info("orchestration_completed",
                    plan_id=plan.id,
                    iterations=plan.iteration,
                    task_count=len(plan.tasks))
        await self._checkpoint("completed")
        return {"step": "summarize", "success": True, "summary": summary, "error_kind": None}

    async def _fail_node(self, state: OrchestrationGraphState) -> Dict[str, Any]:
        plan = self._current_plan()
        plan.status = PlanStatus.FAILED

        logger.warning("orchestration_exhausted",
                       plan_id=plan.id,
                       iterations=plan.iteration,
                       failed_tasks=[task.id for task in plan.failed_tasks],
                       completed_tasks=[task.id for task in plan.completed_tasks])
        await self._checkpoint("failed")
        return {"step": "fail", "success": False, "summary": EXHAUSTED_SUMMARY,
                "error_kind": ErrorKind.EXHAUSTION.value}

    # Public operations

    async def execute(self, goal: str) -> OrchestrationResult:
        """Plan, run and (if needed) re-plan ``goal`` until done or exhausted.

        Raises:
            ValidationError: If the goal is rejected; nothing has run yet
        """
        goal = validate_goal(goal, self.config.max_goal_length)

        self.state.plan = None
        self.state.task_results = {}
        self.state.agent_contexts = {}

        return await self._run({"goal": goal, "resume": False}, "execute_goal",
                               self.config.max_replan_iterations)

    async def resume(self) -> OrchestrationResult:
        """Continue a restored plan that had not finished.

        Tasks left running by the interrupted process go back to pending.
        """
        plan = self.state.plan
        if plan is None:
            raise OrchestratorStateError("No plan to resume")
        if plan.is_terminal:
            raise OrchestratorStateError(f"Plan {plan.id} already {plan.status.value}")

        for task in plan.tasks:
            task.reset_interrupted()

        logger.info("orchestration_resumed",
                    plan_id=plan.id,
                    session_id=self.state.session_id,
                    iteration=plan.iteration,
                    pending=len(plan.pending_tasks))
        return await self._run({"goal": plan.goal, "resume": True}, "resume_goal", plan.max_iterations)

    async def _run(self, inputs: OrchestrationGraphState, operation: str, max_iterations: int) -> OrchestrationResult:
        with log_operation("orchestrator", operation, session_id=self.state.session_id):
            final = await self.graph.ainvoke(inputs, config={"recursion_limit": 2 * max_iterations + 10})
        return self._build_result(final)

    def _build_result(self, final: Dict[str, Any]) -> OrchestrationResult:
        plan = self.state.plan
        success = bool(final.get("success"))
        error = None
        if not success and plan is not None:
            error = "; ".join(f"{task.id}: {task.error}" for task in plan.failed_tasks) or None

        return OrchestrationResult(
            success=success,
            results=dict(self.state.task_results),
            summary=final.get("summary", ""),
            plan=plan.model_copy(deep=True) if plan else None,
            session_id=self.state.session_id,
            iterations=plan.iteration if plan else 0,
            error_kind=final.get("error_kind"),
            error=error,
        )

    async def create_plan(self, goal: str) -> ExecutionPlan:
        return await self.planner.create_plan(goal)

    async def replan(self, previous_plan: ExecutionPlan, results: Dict[str, Any]) -> ExecutionPlan:
        return await self.planner.replan(previous_plan, results)

    async def execute_plan(self, plan: ExecutionPlan) -> Dict[str, Any]:
        """One scheduler pass over ``plan``, accumulating into this session's results."""
        return await self.executor.execute_plan(plan, self.state.task_results, self.state.agent_contexts)

    async def summarize_results(self, goal: str, results: Dict[str, Any]) -> str:
        try:
            text = await generate_text(
                self.llm,
                SUMMARY_SYSTEM_PROMPT,
                summary_prompt(goal, json.dumps(results, indent=2, default=str)),
            )
        except Exception as e:
            logger.error("summary_generation_failed", error=str(e), error_type=type(e).__name__)
            text = ""

        if text.strip():
            return text.strip()
        return f"Completed {len(results)} task(s): {', '.join(results)}."

    # State

    async def _checkpoint(self, step: str):
        self.state.touch()
        if self.state_store is None:
            return
        try:
            await self.state_store.save(self.state)
        except StateStoreError as e:
            logger.error("state_checkpoint_failed",
                         session_id=self.state.session_id,
                         step=step,
                         error=str(e))
            return
        logger.info("state_checkpoint_saved",
                    session_id=self.state.session_id,
                    step=step,
                    plan_status=self.state.plan.status.value if self.state.plan else None)

    def get_state(self) -> OrchestratorState:
        return self.state.model_copy(deep=True)

    def export_state(self) -> str:
        self.state.touch()
        return self.state.model_dump_json(by_alias=True)

    def restore_state(self, state: Union[OrchestratorState, str, Dict[str, Any]]):
        if isinstance(state, OrchestratorState):
            self.state = state.model_copy(deep=True)
        elif isinstance(state, str):
            self.state = OrchestratorState.model_validate_json(state)
        else:
            self.state = OrchestratorState.model_validate(state)
        logger.info("orchestrator_state_restored",
                    session_id=self.state.session_id,
                    plan_id=self.state.plan.id if self.state.plan else None,
                    results=len(self.state.task_results))

    async def load_state(self, session_id: str) -> bool:
        """Restore the checkpoint of ``session_id`` from the state store."""
        if self.state_store is None:
            raise OrchestratorStateError("No state store configured")
        state = await self.state_store.load(session_id)
        if state is None:
            return False
        self.restore_state(state)
        return True

    async def close(self):
        if self._owns_client:
            await self.client.close()
        if self.state_store is not None:
            await self.state_store.close()
