"""Configuration management for the agent registry and orchestrator."""

import os
import json
from typing import Dict, Any, Optional, Callable
from dataclasses import dataclass, asdict

from .constants import (
    DEFAULT_TIMEOUT_SECONDS, DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_SOCKET_TIMEOUT, HEALTH_CHECK_TIMEOUT,
    CIRCUIT_BREAKER_FAILURE_THRESHOLD, CIRCUIT_BREAKER_TIMEOUT,
    AZURE_OPENAI_API_VERSION,
    REGISTRY_REDIS_PREFIX, REGISTRY_AGENTS_KEY, REGISTRATION_TTL_SECONDS,
    REGISTRY_HEALTH_CHECK_INTERVAL, DEFAULT_FIND_LIMIT,
    MAX_REPLAN_ITERATIONS, ORCHESTRATOR_REDIS_PREFIX, ORCHESTRATOR_STATE_TTL,
    MAX_GOAL_LENGTH,
)

from ..logging import get_logger

logger = get_logger()


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    logs_dir: str = "logs"


@dataclass
class LLMConfig:
    """LLM configuration."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 4000
    timeout: int = 120  # Generous timeout for planning prompts
    azure_deployment: str = "gpt-4o-mini"
    api_version: str = AZURE_OPENAI_API_VERSION


@dataclass
class A2AConfig:
    """Agent-to-agent communication configuration."""
    timeout: int = DEFAULT_TIMEOUT_SECONDS  # Total operation timeout
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT  # TCP handshake timeout
    sock_connect_timeout: int = DEFAULT_SOCKET_TIMEOUT
    sock_read_timeout: int = DEFAULT_SOCKET_TIMEOUT
    health_check_timeout: int = HEALTH_CHECK_TIMEOUT  # Quick timeout for health probes
    retry_attempts: int = 3
    retry_delay: float = 1.0
    circuit_breaker_threshold: int = CIRCUIT_BREAKER_FAILURE_THRESHOLD  # Opens circuit after consecutive failures
    circuit_breaker_timeout: int = CIRCUIT_BREAKER_TIMEOUT  # Circuit reset interval
    connection_pool_size: int = 20
    connection_pool_ttl: int = 300


@dataclass
class RegistryConfig:
    """Capability registry configuration."""
    redis_url: Optional[str] = None  # None selects the in-memory store
    redis_prefix: str = REGISTRY_REDIS_PREFIX
    registry_key: str = REGISTRY_AGENTS_KEY
    registration_ttl: int = REGISTRATION_TTL_SECONDS
    health_check_interval: int = REGISTRY_HEALTH_CHECK_INTERVAL
    default_find_limit: int = DEFAULT_FIND_LIMIT
    enable_semantic_search: bool = False  # Reserved for the card embedding field


@dataclass
class OrchestratorConfig:
    """Plan-and-execute orchestrator configuration."""
    max_replan_iterations: int = MAX_REPLAN_ITERATIONS
    max_concurrent_tasks: Optional[int] = None  # None = every ready task in a wave runs at once
    task_timeout: Optional[float] = None  # None = no per-task timeout
    redis_url: Optional[str] = None
    redis_prefix: str = ORCHESTRATOR_REDIS_PREFIX
    state_ttl: int = ORCHESTRATOR_STATE_TTL
    max_goal_length: int = MAX_GOAL_LENGTH


@dataclass
class SystemConfig:
    """Root configuration object."""
    logging: LoggingConfig
    llm: LLMConfig
    a2a: A2AConfig
    registry: RegistryConfig
    orchestrator: OrchestratorConfig
    environment: str = "development"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SystemConfig':
        """Create from dictionary"""
        return cls(
            logging=LoggingConfig(**data.get('logging', {})),
            llm=LLMConfig(**data.get('llm', {})),
            a2a=A2AConfig(**data.get('a2a', {})),
            registry=RegistryConfig(**data.get('registry', {})),
            orchestrator=OrchestratorConfig(**data.get('orchestrator', {})),
            environment=data.get('environment', 'development'),
        )


def _env_value(name: str, convert: Callable[[str], Any]) -> Optional[Any]:
    """Read and convert an environment variable; invalid values are logged and ignored."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return convert(raw)
    except ValueError:
        logger.warning("invalid_env_override",
            component="config",
            operation="validation",
            variable=name,
            invalid_value=raw
        )
        return None


class ConfigManager:
    """Singleton configuration manager."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("SYSTEM_CONFIG_PATH", "system_config.json")
        self._config: Optional[SystemConfig] = None
        self._load_config()

    def _load_config(self):
        """Load configuration from defaults, the JSON file and the environment."""
        config_data = self._get_default_config()

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r') as f:
                    file_config = json.load(f)
                    config_data = self._merge_configs(config_data, file_config)
                logger.info("config_loaded",
                    component="config",
                    operation="load",
                    config_path=self.config_path
                )
            except (OSError, ValueError) as e:
                # System continues with defaults on config errors
                logger.warning("config_load_failed",
                    component="config",
                    operation="load",
                    config_path=self.config_path,
                    error=str(e),
                    error_type=type(e).__name__
                )

        env_overrides = self._get_env_overrides()
        config_data = self._merge_configs(config_data, env_overrides)

        self._config = SystemConfig.from_dict(config_data)

    def _get_default_config(self) -> Dict[str, Any]:
        return {
            "logging": {},
            "llm": {},
            "a2a": {},
            "registry": {},
            "orchestrator": {},
            "environment": "development"
        }

    def _get_env_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables."""
        overrides: Dict[str, Any] = {}

        if env := os.environ.get('ENVIRONMENT'):
            overrides['environment'] = env

        sections = {
            'logging': {
                'level': _env_value('LOG_LEVEL', str),
                'logs_dir': _env_value('LOGS_DIR', str),
            },
            'llm': {
                'model': _env_value('LLM_MODEL', str),
                'temperature': _env_value('LLM_TEMPERATURE', float),
                'azure_deployment': _env_value('AZURE_OPENAI_CHAT_DEPLOYMENT_NAME', str),
            },
            'a2a': {
                'timeout': _env_value('A2A_TIMEOUT', int),
                'retry_attempts': _env_value('A2A_RETRY_ATTEMPTS', int),
            },
            'registry': {
                'redis_url': _env_value('REDIS_URL', str),
                'registry_key': _env_value('REGISTRY_KEY', str),
                'registration_ttl': _env_value('REGISTRATION_TTL', int),
            },
            'orchestrator': {
                'redis_url': _env_value('REDIS_URL', str),
                'max_replan_iterations': _env_value('MAX_REPLAN_ITERATIONS', int),
                'max_concurrent_tasks': _env_value('MAX_CONCURRENT_TASKS', int),
                'task_timeout': _env_value('TASK_TIMEOUT', float),
            },
        }

        for section, values in sections.items():
            present = {key: value for key, value in values.items() if value is not None}
            if present:
                overrides[section] = present

        return overrides

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> SystemConfig:
        """Get configuration instance."""
        if self._config is None:
            self._load_config()
        return self._config

    def reload_config(self):
        """Reload configuration from disk and environment."""
        logger.info("config_reloading",
            component="config",
            operation="reload",
            config_path=self.config_path
        )
        self._config = None
        self._load_config()

    def update_config(self, updates: Dict[str, Any]):
        """Update configuration at runtime."""
        current_dict = self.get_config().to_dict()
        self._config = SystemConfig.from_dict(self._merge_configs(current_dict, updates))


_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get singleton config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path)
    return _config_manager


def get_system_config() -> SystemConfig:
    """Get system configuration."""
    return get_config_manager().get_config()


def reload_system_config():
    """Reload configuration from disk."""
    get_config_manager().reload_config()


# Convenience accessors
def get_logging_config() -> LoggingConfig:
    return get_system_config().logging


def get_llm_config() -> LLMConfig:
    return get_system_config().llm


def get_a2a_config() -> A2AConfig:
    """Get A2A communication configuration."""
    return get_system_config().a2a


def get_registry_config() -> RegistryConfig:
    """Get capability registry configuration."""
    return get_system_config().registry


def get_orchestrator_config() -> OrchestratorConfig:
    """Get orchestrator configuration."""
    return get_system_config().orchestrator


__all__ = [
    'LoggingConfig', 'LLMConfig', 'A2AConfig', 'RegistryConfig', 'OrchestratorConfig',
    'SystemConfig', 'ConfigManager', 'get_config_manager', 'get_system_config',
    'reload_system_config', 'get_logging_config', 'get_llm_config', 'get_a2a_config',
    'get_registry_config', 'get_orchestrator_config',
]
