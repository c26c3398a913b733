"""Planning and re-planning through the text-generation model."""

import json
from typing import Any, Dict, List, Optional

from langchain_core.language_models import BaseChatModel

from src.utils.config import get_orchestrator_config
from src.utils.llm import generate_text
from src.utils.logging.framework import SmartLogger, log_execution

from .plan_parser import PlanDecodeResult, decode_plan_response
from .plan_state import ExecutionPlan, PlanStatus, PlanTask, TaskStatus
from .prompts import PLANNER_PROMPT, REPLAN_PROMPT

logger = SmartLogger("orchestrator")


class Planner:
    """Turns goals into execution plans and failed plans into revised ones.

    The model is any LangChain chat model. Nothing it returns can raise out
    of this class: unreadable output degrades to an empty plan on the first
    pass and to the unchanged previous plan on a re-plan.
    """

    def __init__(self, llm: BaseChatModel, max_iterations: Optional[int] = None):
        self.llm = llm
        if max_iterations is None:
            max_iterations = get_orchestrator_config().max_replan_iterations
        self.max_iterations = max_iterations

    async def _generate_plan(self, prompt: str, stage: str) -> PlanDecodeResult:
        try:
            text = await generate_text(self.llm, PLANNER_PROMPT, prompt)
        except Exception as e:
            logger.error("plan_generation_failed",
                         stage=stage,
                         error=str(e),
                         error_type=type(e).__name__)
            return PlanDecodeResult(ok=False, error=f"planner call failed: {e}")
        return decode_plan_response(text)

    @log_execution("orchestrator", "create_plan")
    async def create_plan(self, goal: str) -> ExecutionPlan:
        decoded = await self._generate_plan(goal, "plan")
        plan = ExecutionPlan(goal=goal, tasks=decoded.tasks, max_iterations=self.max_iterations)

        logger.info("plan_created",
                    plan_id=plan.id,
                    task_count=len(plan.tasks),
                    parse_ok=decoded.ok,
                    parse_error=decoded.error,
                    task_ids=[task.id for task in plan.tasks])
        return plan

    @log_execution("orchestrator", "replan")
    async def replan(self, previous_plan: ExecutionPlan, results: Dict[str, Any]) -> ExecutionPlan:
        """Ask for a plan that keeps prior successes and avoids the failures.

        Any task in the new plan whose id already has a result is marked
        completed with that result, whatever the new plan says about it.
        Completed tasks the new plan leaves out are kept at its front.
        """
        failed = previous_plan.failed_tasks
        completed = previous_plan.completed_tasks

        logger.info("replan_started",
                    plan_id=previous_plan.id,
                    iteration=previous_plan.iteration,
                    failed_tasks=[task.id for task in failed],
                    completed_tasks=[task.id for task in completed])

        prompt = REPLAN_PROMPT.format(
            goal=previous_plan.goal,
            previous_plan=previous_plan.model_dump_json(by_alias=True, indent=2),
            failed_tasks=json.dumps([task.model_dump(mode="json", by_alias=True) for task in failed], indent=2),
            successful_results=json.dumps({task.id: results.get(task.id) for task in completed},
                                          indent=2, default=str),
        )
        decoded = await self._generate_plan(prompt, "replan")

        if not decoded.ok:
            logger.warning("replan_kept_previous_plan", plan_id=previous_plan.id, error=decoded.error)
            return previous_plan

        previous_by_id = {task.id: task for task in previous_plan.tasks}
        new_ids = {task.id for task in decoded.tasks}

        carried: List[str] = []
        for task in decoded.tasks:
            if task.id in results:
                prior = previous_by_id.get(task.id)
                task.carry_over(results[task.id], prior.assigned_agent if prior else None)
                carried.append(task.id)

        kept: List[PlanTask] = [
            task.model_copy(deep=True) for task in completed if task.id not in new_ids
        ]

        plan = ExecutionPlan(
            id=previous_plan.id,
            goal=previous_plan.goal,
            tasks=kept + decoded.tasks,
            created_at=previous_plan.created_at,
            status=PlanStatus.REPLANNING,
            iteration=previous_plan.iteration,
            max_iterations=previous_plan.max_iterations,
        )

        logger.info("replan_finished",
                    plan_id=plan.id,
                    task_count=len(plan.tasks),
                    carried_over=carried + [task.id for task in kept],
                    pending=[task.id for task in plan.tasks if task.status == TaskStatus.PENDING])
        return plan
