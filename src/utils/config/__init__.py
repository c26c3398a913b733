"""Configuration system for the agent registry and orchestrator."""

from .config import (
    LoggingConfig,
    LLMConfig,
    A2AConfig,
    RegistryConfig,
    OrchestratorConfig,
    SystemConfig,
    ConfigManager,
    get_config_manager,
    get_system_config,
    reload_system_config,
    get_logging_config,
    get_llm_config,
    get_a2a_config,
    get_registry_config,
    get_orchestrator_config,
)

# Import all constants (star import acceptable for config constants)
from .constants import *  # noqa: F403

__all__ = [
    'LoggingConfig',
    'LLMConfig',
    'A2AConfig',
    'RegistryConfig',
    'OrchestratorConfig',
    'SystemConfig',
    'ConfigManager',
    'get_config_manager',
    'get_system_config',
    'reload_system_config',
    'get_logging_config',
    'get_llm_config',
    'get_a2a_config',
    'get_registry_config',
    'get_orchestrator_config',
]
