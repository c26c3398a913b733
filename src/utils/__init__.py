"""Shared infrastructure: configuration, logging, resilience and LLM helpers."""

from .logging import get_logger
from .config import get_system_config, get_llm_config
from .input_validation import ValidationError, validate_goal

__all__ = [
    'get_logger',
    'get_system_config',
    'get_llm_config',
    'ValidationError',
    'validate_goal',
]
