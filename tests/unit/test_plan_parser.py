"""
Unit tests for tolerant plan decoding.

Tests cover:
- JSON embedded in prose and code fences
- Fallback to the whole response and bare task lists
- Normalization of ids, dependencies and descriptions
- Failure modes that must yield an empty plan instead of raising
"""

import json

import pytest

from src.orchestrator import TaskStatus, decode_plan_response
from src.orchestrator.plan_parser import normalize_tasks


PLAN = {
    "tasks": [
        {"id": "task_1", "type": "flight_search", "description": "Find flights", "dependencies": []},
        {"id": "task_2", "type": "hotel_search", "description": "Find hotels", "dependencies": ["task_1"]},
    ]
}


class TestExtraction:
    def test_plain_json(self):
        result = decode_plan_response(json.dumps(PLAN))

        assert result.ok is True
        assert [task.id for task in result.tasks] == ["task_1", "task_2"]
        assert result.tasks[1].dependencies == ["task_1"]

    def test_json_inside_prose(self):
        text = f"Sure! Here is the plan:\n{json.dumps(PLAN, indent=2)}\nLet me know if it works."
        result = decode_plan_response(text)

        assert result.ok is True
        assert len(result.tasks) == 2

    def test_code_fence(self):
        text = f"```json\n{json.dumps(PLAN)}\n```"
        assert len(decode_plan_response(text).tasks) == 2

    def test_braces_inside_strings_do_not_break_scanning(self):
        plan = {"tasks": [{"id": "a", "type": "format", "description": "Emit '}' and '{' literally"}]}
        text = f"Plan: {json.dumps(plan)} done"

        result = decode_plan_response(text)
        assert result.tasks[0].description == "Emit '}' and '{' literally"

    def test_skips_leading_block_without_tasks(self):
        text = 'Context {"note": "ignore me"} and the plan ' + json.dumps(PLAN)
        assert [task.id for task in decode_plan_response(text).tasks] == ["task_1", "task_2"]

    def test_bare_list_falls_back_to_whole_response(self):
        result = decode_plan_response(json.dumps(PLAN["tasks"]))
        assert result.ok is True
        assert len(result.tasks) == 2

    def test_empty_task_list_is_ok(self):
        result = decode_plan_response('{"tasks": []}')
        assert result.ok is True
        assert result.tasks == []

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "I could not come up with a plan.",
        "{broken json",
        '{"steps": [1, 2]}',
        "42",
        None,
    ])
    def test_unreadable_responses_yield_empty_plan(self, text):
        result = decode_plan_response(text)

        assert result.ok is False
        assert result.tasks == []
        assert result.error


class TestNormalization:
    def test_status_forced_pending(self):
        tasks = normalize_tasks([{"id": "a", "type": "x", "status": "completed", "result": "fake"}])

        assert tasks[0].status == TaskStatus.PENDING
        assert tasks[0].result is None

    def test_missing_dependencies_default_empty(self):
        assert normalize_tasks([{"id": "a", "type": "x"}])[0].dependencies == []

    def test_string_and_alias_dependencies(self):
        tasks = normalize_tasks([
            {"id": "a", "type": "x"},
            {"id": "b", "type": "y", "dependencies": "a"},
            {"id": "c", "type": "z", "depends_on": ["a", "b"]},
        ])
        assert tasks[1].dependencies == ["a"]
        assert tasks[2].dependencies == ["a", "b"]

    def test_missing_id_generated_from_position(self):
        tasks = normalize_tasks([{"type": "x"}, {"type": "y"}])
        assert [task.id for task in tasks] == ["task_1", "task_2"]

    def test_zero_id_kept(self):
        tasks = normalize_tasks([
            {"id": 0, "type": "flight_search"},
            {"id": 1, "type": "hotel_search", "dependencies": [0]},
        ])
        assert [task.id for task in tasks] == ["0", "1"]
        assert tasks[1].dependencies == ["0"]

    def test_blank_id_generated_from_position(self):
        assert normalize_tasks([{"id": "  ", "type": "x"}])[0].id == "task_1"

    def test_duplicate_ids_keep_first(self):
        tasks = normalize_tasks([
            {"id": "a", "type": "first"},
            {"id": "a", "type": "second"},
        ])
        assert [task.type for task in tasks] == ["first"]

    def test_entries_without_type_dropped(self):
        tasks = normalize_tasks([{"id": "a"}, "junk", {"id": "b", "type": "ok"}])
        assert [task.id for task in tasks] == ["b"]

    def test_description_defaults_to_type(self):
        assert normalize_tasks([{"id": "a", "type": "weather_forecast"}])[0].description == "weather_forecast"

    def test_params_kept(self):
        task = normalize_tasks([{"id": "a", "type": "x", "params": {"city": "Paris"}}])[0]
        assert task.params == {"city": "Paris"}

    def test_dangling_dependencies_kept(self):
        task = normalize_tasks([{"id": "a", "type": "x", "dependencies": ["ghost"]}])[0]
        assert task.dependencies == ["ghost"]
