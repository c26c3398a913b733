"""Wave scheduler that runs a plan's DAG against registered workers.

Each wave dispatches every pending task whose dependencies are completed and
waits for all of them to resolve before the next wave is computed. When
tasks remain but none can become ready, they are failed as blocked, so the
loop always terminates, cycles included.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from src.a2a.protocol import A2AClient, A2AException
from src.registry.agent_registry import AgentRegistry
from src.registry.models import FindAgentQuery
from src.utils.circuit_breaker import CircuitBreakerException
from src.utils.config import OrchestratorConfig, get_orchestrator_config
from src.utils.config.constants import BLOCKED_TASK_ERROR, NO_AGENT_ERROR_PREFIX
from src.utils.logging.framework import SmartLogger

from .plan_state import AgentContext, ErrorKind, ExecutionPlan, PlanTask, TaskStatus

logger = SmartLogger("orchestrator")

WaveCallback = Callable[[ExecutionPlan], Awaitable[None]]


@dataclass
class TaskOutcome:
    task_id: str
    success: bool
    result: Any = None
    agent: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


class PlanExecutor:
    def __init__(self, registry: AgentRegistry, client: A2AClient,
                 config: Optional[OrchestratorConfig] = None):
        self.registry = registry
        self.client = client
        self.config = config or get_orchestrator_config()

    async def execute_plan(self, plan: ExecutionPlan,
                           results: Optional[Dict[str, Any]] = None,
                           agent_contexts: Optional[Dict[str, AgentContext]] = None,
                           on_wave_complete: Optional[WaveCallback] = None) -> Dict[str, Any]:
        """Run every pending task of ``plan`` and return the result map.

        ``results`` and ``agent_contexts`` are updated in place; results of
        earlier iterations already in ``results`` are kept.
        """
        results = results if results is not None else {}
        agent_contexts = agent_contexts if agent_contexts is not None else {}

        by_id = {task.id: task for task in plan.tasks}
        pending = [task.id for task in plan.tasks if task.status == TaskStatus.PENDING]

        semaphore = None
        if self.config.max_concurrent_tasks:
            semaphore = asyncio.Semaphore(self.config.max_concurrent_tasks)

        wave = 0
        while pending:
            ready = [by_id[task_id] for task_id in pending if self._is_ready(by_id[task_id], by_id)]

            if not ready:
                for task_id in pending:
                    by_id[task_id].mark_failed(BLOCKED_TASK_ERROR, ErrorKind.BLOCKED)
                logger.warning("tasks_blocked", plan_id=plan.id, task_ids=pending)
                break

            wave += 1
            for task in ready:
                task.mark_running()
            logger.info("wave_dispatched",
                        plan_id=plan.id,
                        wave=wave,
                        task_ids=[task.id for task in ready])

            outcomes = await asyncio.gather(*(
                self._run_limited(task, results, agent_contexts, semaphore) for task in ready
            ), return_exceptions=True)

            for task, outcome in zip(ready, outcomes):
                if isinstance(outcome, Exception):
                    logger.error("task_execution_error",
                                 task_id=task.id,
                                 error=str(outcome),
                                 error_type=type(outcome).__name__)
                    outcome = TaskOutcome(task.id, False,
                                          error=f"unexpected error: {outcome}",
                                          error_kind=ErrorKind.EXECUTION)
                elif isinstance(outcome, BaseException):
                    raise outcome
                self._apply(task, outcome, results)

            dispatched = {task.id for task in ready}
            pending = [task_id for task_id in pending if task_id not in dispatched]

            if on_wave_complete is not None:
                await on_wave_complete(plan)

        logger.info("plan_execution_finished",
                    plan_id=plan.id,
                    waves=wave,
                    completed=len(plan.completed_tasks),
                    failed=len(plan.failed_tasks))
        return results

    @staticmethod
    def _is_ready(task: PlanTask, by_id: Dict[str, PlanTask]) -> bool:
        for dep in task.dependencies:
            dependency = by_id.get(dep)
            if dependency is None or dependency.status != TaskStatus.COMPLETED:
                return False
        return True

    def _apply(self, task: PlanTask, outcome: TaskOutcome, results: Dict[str, Any]):
        if outcome.success:
            task.mark_completed(outcome.result, outcome.agent)
            results[task.id] = outcome.result
            logger.info("task_completed", task_id=task.id, task_type=task.type, agent_name=outcome.agent)
        else:
            task.mark_failed(outcome.error or "task failed", outcome.error_kind or ErrorKind.EXECUTION)
            logger.warning("task_failed",
                           task_id=task.id,
                           task_type=task.type,
                           error=task.error,
                           error_kind=task.error_kind.value)

    async def _run_limited(self, task: PlanTask, results: Dict[str, Any],
                           agent_contexts: Dict[str, AgentContext],
                           semaphore: Optional[asyncio.Semaphore]) -> TaskOutcome:
        if semaphore is None:
            return await self._run_with_timeout(task, results, agent_contexts)
        async with semaphore:
            return await self._run_with_timeout(task, results, agent_contexts)

    async def _run_with_timeout(self, task: PlanTask, results: Dict[str, Any],
                                agent_contexts: Dict[str, AgentContext]) -> TaskOutcome:
        timeout = self.config.task_timeout
        try:
            if timeout:
                return await asyncio.wait_for(self.execute_task(task, results, agent_contexts), timeout)
            return await self.execute_task(task, results, agent_contexts)
        except asyncio.TimeoutError:
            return TaskOutcome(task.id, False,
                               error=f"task timed out after {timeout}s",
                               error_kind=ErrorKind.EXECUTION)

    async def execute_task(self, task: PlanTask, results: Dict[str, Any],
                           agent_contexts: Dict[str, AgentContext]) -> TaskOutcome:
        """Find a worker for one task and call it. Never raises for task-level errors."""
        matches = self.registry.find_agent(FindAgentQuery(query=f"{task.type}: {task.description}", limit=1))
        if not matches:
            return TaskOutcome(task.id, False,
                               error=f"{NO_AGENT_ERROR_PREFIX} {task.type}",
                               error_kind=ErrorKind.DISCOVERY)

        card = matches[0].agent_card
        data: Dict[str, Any] = {}
        dependency_results = {dep: results[dep] for dep in task.dependencies if dep in results}
        if dependency_results:
            data["dependencyResults"] = dependency_results
        if task.params:
            data["params"] = task.params

        previous = agent_contexts.get(task.id)
        logger.debug("task_dispatch",
                     task_id=task.id,
                     agent_name=card.name,
                     agent_url=card.url,
                     match_score=matches[0].score)

        try:
            reply = await self.client.send_message(
                card.url,
                task.description or task.type,
                data=data or None,
                context_id=previous.context_id if previous else None,
            )
        except (A2AException, CircuitBreakerException) as e:
            return TaskOutcome(task.id, False, agent=card.name,
                               error=f"agent {card.name} call failed: {e}",
                               error_kind=ErrorKind.EXECUTION)
        except Exception as e:
            logger.error("task_execution_error",
                         task_id=task.id,
                         agent_name=card.name,
                         error=str(e),
                         error_type=type(e).__name__)
            return TaskOutcome(task.id, False, agent=card.name,
                               error=f"unexpected error calling {card.name}: {e}",
                               error_kind=ErrorKind.EXECUTION)

        try:
            context = AgentContext(
                task_id=reply.task_id,
                context_id=reply.context_id,
                input_required=reply.input_required,
            )
            result = reply.to_result()
        except Exception as e:
            logger.error("task_reply_invalid",
                         task_id=task.id,
                         agent_name=card.name,
                         error=str(e),
                         error_type=type(e).__name__)
            return TaskOutcome(task.id, False, agent=card.name,
                               error=f"invalid reply from {card.name}: {e}",
                               error_kind=ErrorKind.EXECUTION)

        agent_contexts[task.id] = context
        if reply.failed:
            return TaskOutcome(task.id, False, agent=card.name,
                               error=f"agent {card.name} reported {reply.state}: {reply.text}",
                               error_kind=ErrorKind.EXECUTION)

        return TaskOutcome(task.id, True, result=result, agent=card.name)
