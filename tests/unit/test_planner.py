"""
Unit tests for planning and re-planning.

Tests cover:
- Plan creation from model output (with prose, and failures)
- Re-plan carry-over of completed tasks
- Keeping the previous plan when a re-plan cannot be decoded
"""

import pytest

from src.orchestrator import ErrorKind, ExecutionPlan, PlanStatus, PlanTask, Planner, TaskStatus


def failed_plan():
    plan = ExecutionPlan(goal="Trip to Paris", max_iterations=3, iteration=1)
    plan.tasks = [
        PlanTask(id="task_1", type="flight_search", description="Find flights",
                 status=TaskStatus.COMPLETED, result={"text": "AF123"}, assigned_agent="flight-agent"),
        PlanTask(id="task_2", type="car_rental", description="Rent a car", dependencies=["task_1"],
                 status=TaskStatus.FAILED, error="no agent found for task type: car_rental",
                 error_kind=ErrorKind.DISCOVERY),
    ]
    return plan


class TestCreatePlan:
    @pytest.mark.asyncio
    async def test_creates_pending_plan(self, scripted_llm, make_plan):
        llm = scripted_llm(make_plan(
            {"id": "task_1", "type": "flight_search", "description": "Find flights"},
            {"id": "task_2", "type": "hotel_search", "description": "Find hotels", "dependencies": ["task_1"]},
        ))
        plan = await Planner(llm, max_iterations=2).create_plan("Trip to Paris")

        assert plan.goal == "Trip to Paris"
        assert plan.id.startswith("plan_")
        assert plan.status == PlanStatus.PLANNING
        assert plan.iteration == 0
        assert plan.max_iterations == 2
        assert all(task.status == TaskStatus.PENDING for task in plan.tasks)

    @pytest.mark.asyncio
    async def test_sends_goal_with_planner_instructions(self, scripted_llm):
        llm = scripted_llm('{"tasks": []}')
        await Planner(llm, max_iterations=1).create_plan("Weather in Oslo")

        system_message, human_message = llm.ainvoke.call_args[0][0]
        assert "task planning agent" in system_message.content
        assert human_message.content == "Weather in Oslo"

    @pytest.mark.asyncio
    async def test_unparseable_output_gives_empty_plan(self, scripted_llm):
        plan = await Planner(scripted_llm("no idea, sorry"), max_iterations=1).create_plan("goal")
        assert plan.tasks == []

    @pytest.mark.asyncio
    async def test_model_error_gives_empty_plan(self, scripted_llm):
        plan = await Planner(scripted_llm(RuntimeError("rate limited")), max_iterations=1).create_plan("goal")
        assert plan.tasks == []


class TestReplan:
    @pytest.mark.asyncio
    async def test_prompt_includes_failures_and_successes(self, scripted_llm, make_plan):
        llm = scripted_llm(make_plan({"id": "task_3", "type": "taxi_booking", "dependencies": ["task_1"]}))
        await Planner(llm, max_iterations=3).replan(failed_plan(), {"task_1": {"text": "AF123"}})

        prompt = llm.ainvoke.call_args[0][0][1].content
        assert "Trip to Paris" in prompt
        assert "no agent found for task type: car_rental" in prompt
        assert "AF123" in prompt

    @pytest.mark.asyncio
    async def test_completed_task_carried_over_even_if_redefined(self, scripted_llm, make_plan):
        llm = scripted_llm(make_plan(
            {"id": "task_1", "type": "train_search", "description": "Totally different"},
            {"id": "task_3", "type": "taxi_booking", "dependencies": ["task_1"]},
        ))
        results = {"task_1": {"text": "AF123"}}
        plan = await Planner(llm, max_iterations=3).replan(failed_plan(), results)

        task_1 = plan.get_task("task_1")
        assert task_1.status == TaskStatus.COMPLETED
        assert task_1.result == {"text": "AF123"}
        assert task_1.assigned_agent == "flight-agent"
        assert plan.get_task("task_3").status == TaskStatus.PENDING
        assert results == {"task_1": {"text": "AF123"}}

    @pytest.mark.asyncio
    async def test_omitted_completed_tasks_are_kept(self, scripted_llm, make_plan):
        llm = scripted_llm(make_plan({"id": "task_3", "type": "taxi_booking", "dependencies": ["task_1"]}))
        plan = await Planner(llm, max_iterations=3).replan(failed_plan(), {"task_1": {"text": "AF123"}})

        assert [task.id for task in plan.tasks] == ["task_1", "task_3"]
        assert plan.get_task("task_1").status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_keeps_plan_identity_and_iteration(self, scripted_llm, make_plan):
        previous = failed_plan()
        llm = scripted_llm(make_plan({"id": "task_3", "type": "taxi_booking"}))
        plan = await Planner(llm, max_iterations=3).replan(previous, {"task_1": {"text": "AF123"}})

        assert plan.id == previous.id
        assert plan.iteration == 1
        assert plan.status == PlanStatus.REPLANNING

    @pytest.mark.asyncio
    async def test_undecodable_replan_keeps_previous_plan(self, scripted_llm):
        previous = failed_plan()
        plan = await Planner(scripted_llm("I give up"), max_iterations=3).replan(previous, {"task_1": {"text": "AF123"}})

        assert plan is previous
        assert plan.get_task("task_2").status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_model_error_keeps_previous_plan(self, scripted_llm):
        previous = failed_plan()
        plan = await Planner(scripted_llm(TimeoutError("slow")), max_iterations=3).replan(previous, {})
        assert plan is previous
