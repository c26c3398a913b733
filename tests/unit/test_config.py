"""
Unit tests for the configuration layer.

Precedence is defaults, then the JSON file named by SYSTEM_CONFIG_PATH,
then environment variables.
"""

import json

import pytest

from src.utils.config import (
    ConfigManager,
    get_a2a_config,
    get_orchestrator_config,
    get_registry_config,
    reload_system_config,
)
from src.utils.config.constants import MAX_GOAL_LENGTH, MAX_REPLAN_ITERATIONS


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "system_config.json"
    monkeypatch.setenv("SYSTEM_CONFIG_PATH", str(path))

    def _write(data):
        path.write_text(json.dumps(data))
        return path
    return _write


class TestDefaults:
    def test_orchestrator_defaults(self):
        config = get_orchestrator_config()

        assert config.max_replan_iterations == MAX_REPLAN_ITERATIONS
        assert config.max_concurrent_tasks is None
        assert config.task_timeout is None
        assert config.redis_url is None
        assert config.max_goal_length == MAX_GOAL_LENGTH

    def test_registry_defaults_to_memory_store(self):
        assert get_registry_config().redis_url is None


class TestFileAndEnvironment:
    def test_file_values_merge_with_defaults(self, config_file):
        config_file({"orchestrator": {"max_replan_iterations": 5}, "a2a": {"timeout": 12}})
        reload_system_config()

        assert get_orchestrator_config().max_replan_iterations == 5
        assert get_orchestrator_config().state_ttl > 0
        assert get_a2a_config().timeout == 12
        assert get_a2a_config().retry_attempts == 3

    def test_environment_overrides_file(self, config_file, monkeypatch):
        config_file({"orchestrator": {"max_replan_iterations": 5}})
        monkeypatch.setenv("MAX_REPLAN_ITERATIONS", "2")
        monkeypatch.setenv("TASK_TIMEOUT", "7.5")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        reload_system_config()

        orchestrator = get_orchestrator_config()
        assert orchestrator.max_replan_iterations == 2
        assert orchestrator.task_timeout == 7.5
        assert orchestrator.redis_url == "redis://cache:6379/0"
        assert get_registry_config().redis_url == "redis://cache:6379/0"

    def test_invalid_environment_value_ignored(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_TASKS", "lots")
        monkeypatch.setenv("MAX_REPLAN_ITERATIONS", "4")
        reload_system_config()

        assert get_orchestrator_config().max_concurrent_tasks is None
        assert get_orchestrator_config().max_replan_iterations == 4

    def test_unreadable_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        manager = ConfigManager(str(path))

        assert manager.get_config().orchestrator.max_replan_iterations == MAX_REPLAN_ITERATIONS

    def test_update_config_at_runtime(self):
        manager = ConfigManager()
        manager.update_config({"orchestrator": {"max_concurrent_tasks": 4}})

        assert manager.get_config().orchestrator.max_concurrent_tasks == 4
        assert manager.get_config().orchestrator.max_replan_iterations == MAX_REPLAN_ITERATIONS
