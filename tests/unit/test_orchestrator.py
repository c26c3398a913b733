"""
Unit tests for the orchestrator.

Tests focus on:
- The plan -> execute -> replan/summarize/fail graph
- Carry-over of successes across re-plans
- Exhaustion with partial results
- Goal validation before side effects
- State export/restore, checkpoints and resume
"""

import json
from unittest.mock import AsyncMock

import pytest
import redis

from src.orchestrator import (
    ErrorKind,
    ExecutionPlan,
    InMemoryOrchestratorStateStore,
    Orchestrator,
    OrchestratorState,
    OrchestratorStateError,
    PlanStatus,
    PlanTask,
    RedisOrchestratorStateStore,
    StateStoreError,
    TaskStatus,
    create_state_store,
)
from src.utils.config import OrchestratorConfig
from src.utils.input_validation import ValidationError

FLIGHTS = {"id": "task_1", "type": "flight_search", "description": "Find flights", "dependencies": []}
HOTELS = {"id": "task_2", "type": "hotel_search", "description": "Find hotels", "dependencies": ["task_1"]}
CAR = {"id": "task_2", "type": "car_rental", "description": "Rent car", "dependencies": ["task_1"]}
WEATHER = {"id": "task_3", "type": "weather_forecast", "description": "Forecast per city", "dependencies": ["task_1"]}


def build(registry, llm, worker_client, max_iterations=3, **kwargs):
    config = OrchestratorConfig(max_replan_iterations=max_iterations)
    return Orchestrator(registry, llm, client=worker_client, config=config, **kwargs)


class TestExecute:
    @pytest.mark.asyncio
    async def test_successful_goal(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS, HOTELS), "Flights and hotel are booked.")
        orchestrator = build(registry, llm, worker_client)

        result = await orchestrator.execute("Plan a trip to Paris")

        assert result.success is True
        assert result.summary == "Flights and hotel are booked."
        assert set(result.results) == {"task_1", "task_2"}
        assert result.iterations == 1
        assert result.plan.status == PlanStatus.COMPLETED
        assert result.error_kind is None
        assert result.session_id == orchestrator.state.session_id

    @pytest.mark.asyncio
    async def test_summary_prompt_carries_goal_and_results(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS), "done")
        await build(registry, llm, worker_client).execute("Fly to Paris")

        prompt = llm.ainvoke.call_args[0][0][1].content
        assert "Original request: Fly to Paris" in prompt
        assert "done: Find flights" in prompt

    @pytest.mark.asyncio
    async def test_empty_plan_succeeds_without_summary_call(self, registry, scripted_llm, worker_client):
        llm = scripted_llm("I cannot plan this.")
        result = await build(registry, llm, worker_client).execute("Do something vague")

        assert result.success is True
        assert result.summary == "No tasks were planned for this goal."
        assert result.results == {}
        assert llm.ainvoke.await_count == 1
        assert worker_client.calls == []

    @pytest.mark.asyncio
    async def test_summary_failure_falls_back(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS), RuntimeError("model down"))
        result = await build(registry, llm, worker_client).execute("Fly to Paris")

        assert result.success is True
        assert result.summary == "Completed 1 task(s): task_1."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("goal", ["", "   ", None, 42, "x" * 60000])
    async def test_invalid_goal_rejected_before_planning(self, registry, scripted_llm, worker_client, goal):
        llm = scripted_llm()
        orchestrator = build(registry, llm, worker_client)

        with pytest.raises(ValidationError):
            await orchestrator.execute(goal)
        assert llm.ainvoke.await_count == 0
        assert orchestrator.state.plan is None


class TestReplanLoop:
    @pytest.mark.asyncio
    async def test_exhaustion_returns_partial_results(self, registry, scripted_llm, make_plan, worker_client):
        """One failing task and a single iteration: failure with the successes kept."""
        llm = scripted_llm(make_plan(FLIGHTS, CAR))
        result = await build(registry, llm, worker_client, max_iterations=1).execute("Trip with a car")

        assert result.success is False
        assert result.error_kind == ErrorKind.EXHAUSTION
        assert result.summary == "Failed to complete all tasks after maximum re-planning attempts."
        assert set(result.results) == {"task_1"}
        assert result.plan.status == PlanStatus.FAILED
        assert "no agent found for task type: car_rental" in result.error
        assert llm.ainvoke.await_count == 1

    @pytest.mark.asyncio
    async def test_replan_recovers(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(
            make_plan(FLIGHTS, CAR),
            make_plan(dict(FLIGHTS, description="Search flights again"), WEATHER),
            "Trip planned with weather instead of car.",
        )
        result = await build(registry, llm, worker_client).execute("Trip with a car")

        assert result.success is True
        assert result.iterations == 2
        assert set(result.results) == {"task_1", "task_3"}
        assert result.results["task_1"] == {"text": "done: Find flights", "artifacts": []}
        flight_calls = [call for call in worker_client.calls if call["endpoint"] == "http://flight-agent.test"]
        assert len(flight_calls) == 1

    @pytest.mark.asyncio
    async def test_repeated_failure_exhausts_iterations(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS, CAR), make_plan(FLIGHTS, CAR))
        result = await build(registry, llm, worker_client, max_iterations=2).execute("Trip with a car")

        assert result.success is False
        assert result.iterations == 2
        assert llm.ainvoke.await_count == 2
        assert set(result.results) == {"task_1"}

    @pytest.mark.asyncio
    async def test_undecodable_replan_does_not_report_success(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS, CAR), "no plan", "still no plan")
        result = await build(registry, llm, worker_client, max_iterations=3).execute("Trip with a car")

        assert result.success is False
        assert result.iterations == 3
        assert result.plan.get_task("task_2").status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_results_reset_between_goals(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS), "first", make_plan(WEATHER | {"dependencies": []}), "second")
        orchestrator = build(registry, llm, worker_client)

        await orchestrator.execute("Fly")
        result = await orchestrator.execute("Weather")

        assert set(result.results) == {"task_3"}


class TestState:
    @pytest.mark.asyncio
    async def test_export_restore_round_trip(self, registry, scripted_llm, make_plan, worker_client):
        llm = scripted_llm(make_plan(FLIGHTS, CAR))
        source = build(registry, llm, worker_client, max_iterations=1)
        await source.execute("Trip with a car")

        exported = source.export_state()
        target = build(registry, scripted_llm(), worker_client)
        target.restore_state(exported)

        assert target.state.task_results == source.state.task_results
        assert target.state.plan == source.state.plan
        assert target.state.session_id == source.state.session_id
        assert json.loads(exported)["taskResults"]["task_1"]["text"] == "done: Find flights"

    def test_restore_from_dict_and_model(self, registry, scripted_llm, worker_client):
        state = OrchestratorState(task_results={"a": 1})
        orchestrator = build(registry, scripted_llm(), worker_client)

        orchestrator.restore_state(state.model_dump(by_alias=True))
        assert orchestrator.get_state().task_results == {"a": 1}

        orchestrator.restore_state(state)
        state.task_results["b"] = 2
        assert "b" not in orchestrator.state.task_results

    @pytest.mark.asyncio
    async def test_checkpoints_saved(self, registry, scripted_llm, make_plan, worker_client):
        store = InMemoryOrchestratorStateStore()
        llm = scripted_llm(make_plan(FLIGHTS), "ok")
        orchestrator = build(registry, llm, worker_client, state_store=store, session_id="session_test")

        await orchestrator.execute("Fly")

        saved = await store.load("session_test")
        assert saved.plan.status == PlanStatus.COMPLETED
        assert saved.task_results == orchestrator.state.task_results

    @pytest.mark.asyncio
    async def test_checkpoint_failure_does_not_abort(self, registry, scripted_llm, make_plan, worker_client):
        store = AsyncMock()
        store.save = AsyncMock(side_effect=StateStoreError("redis down"))
        llm = scripted_llm(make_plan(FLIGHTS), "ok")

        result = await build(registry, llm, worker_client, state_store=store).execute("Fly")
        assert result.success is True

    @pytest.mark.asyncio
    async def test_load_state(self, registry, scripted_llm, worker_client):
        store = InMemoryOrchestratorStateStore()
        await store.save(OrchestratorState(session_id="session_x", task_results={"a": 1}))
        orchestrator = build(registry, scripted_llm(), worker_client, state_store=store)

        assert await orchestrator.load_state("session_x") is True
        assert orchestrator.state.task_results == {"a": 1}
        assert await orchestrator.load_state("session_missing") is False

    @pytest.mark.asyncio
    async def test_load_state_requires_store(self, registry, scripted_llm, worker_client):
        with pytest.raises(OrchestratorStateError):
            await build(registry, scripted_llm(), worker_client).load_state("session_x")


class TestResume:
    def interrupted_state(self):
        plan = ExecutionPlan(goal="Trip", status=PlanStatus.EXECUTING, iteration=1, max_iterations=3)
        plan.tasks = [
            PlanTask(id="task_1", type="flight_search", description="Find flights",
                     status=TaskStatus.COMPLETED, result={"text": "AF123"}, assigned_agent="flight-agent"),
            PlanTask(id="task_2", type="hotel_search", description="Find hotels",
                     dependencies=["task_1"], status=TaskStatus.RUNNING),
        ]
        return OrchestratorState(plan=plan, task_results={"task_1": {"text": "AF123"}})

    @pytest.mark.asyncio
    async def test_resume_reruns_interrupted_tasks(self, registry, scripted_llm, worker_client):
        llm = scripted_llm("Resumed and finished.")
        orchestrator = build(registry, llm, worker_client)
        orchestrator.restore_state(self.interrupted_state().model_dump_json(by_alias=True))

        result = await orchestrator.resume()

        assert result.success is True
        assert result.summary == "Resumed and finished."
        assert result.iterations == 2
        assert [call["endpoint"] for call in worker_client.calls] == ["http://hotel-agent.test"]
        assert worker_client.calls[0]["data"] == {"dependencyResults": {"task_1": {"text": "AF123"}}}

    @pytest.mark.asyncio
    async def test_resume_after_failed_execute_replans(self, registry, scripted_llm, make_plan, worker_client):
        state = self.interrupted_state()
        failed = state.plan.get_task("task_2")
        failed.status = TaskStatus.FAILED
        failed.error = "boom"
        llm = scripted_llm(make_plan(FLIGHTS, HOTELS), "done")
        orchestrator = build(registry, llm, worker_client)
        orchestrator.restore_state(state)

        result = await orchestrator.resume()

        assert result.success is True
        assert result.results["task_1"] == {"text": "AF123"}
        assert result.iterations == 2

    @pytest.mark.asyncio
    async def test_resume_without_plan(self, registry, scripted_llm, worker_client):
        with pytest.raises(OrchestratorStateError):
            await build(registry, scripted_llm(), worker_client).resume()

    @pytest.mark.asyncio
    async def test_resume_terminal_plan(self, registry, scripted_llm, worker_client):
        state = self.interrupted_state()
        state.plan.status = PlanStatus.COMPLETED
        orchestrator = build(registry, scripted_llm(), worker_client)
        orchestrator.restore_state(state)

        with pytest.raises(OrchestratorStateError):
            await orchestrator.resume()


class TestStateStores:
    @pytest.mark.asyncio
    async def test_redis_store_round_trip(self):
        client = AsyncMock()
        store = RedisOrchestratorStateStore(client, "a2a:orchestrator:", ttl=86400)
        state = OrchestratorState(session_id="session_r", task_results={"a": {"text": "x"}})

        await store.save(state)
        key, payload = client.set.call_args[0]
        assert key == "a2a:orchestrator:session_r"
        assert client.set.call_args.kwargs["ex"] == 86400

        client.get = AsyncMock(return_value=payload)
        loaded = await store.load("session_r")
        assert loaded == state

    @pytest.mark.asyncio
    async def test_redis_save_error(self):
        client = AsyncMock()
        client.set = AsyncMock(side_effect=redis.ConnectionError("down"))
        with pytest.raises(StateStoreError):
            await RedisOrchestratorStateStore(client, "p:").save(OrchestratorState())

    @pytest.mark.asyncio
    async def test_redis_corrupt_state_loads_none(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value="{bad")
        assert await RedisOrchestratorStateStore(client, "p:").load("s") is None

    def test_factory(self):
        assert create_state_store(OrchestratorConfig()).kind == "memory"
        assert create_state_store(OrchestratorConfig(), client=AsyncMock()).kind == "redis"
