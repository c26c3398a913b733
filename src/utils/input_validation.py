"""Goal validation at the orchestrator boundary.

The goal is the only human input the orchestrator accepts. It is checked
before any plan is created; everything downstream (plans produced by the
language model, worker replies) is handled by the tolerant decoders instead.
"""

from typing import Any

from .config.constants import MAX_GOAL_LENGTH
from .logging.framework import SmartLogger

logger = SmartLogger("orchestrator")


class ValidationError(Exception):
    """Raised when a goal is rejected before orchestration starts"""
    pass


def validate_goal(goal: Any, max_length: int = MAX_GOAL_LENGTH) -> str:
    """Validate and normalize an orchestration goal.

    Args:
        goal: Raw goal text from the caller
        max_length: Maximum allowed length after stripping

    Returns:
        The stripped goal with null bytes removed

    Raises:
        ValidationError: If the goal is not a non-empty string within the limit
    """
    if not isinstance(goal, str):
        raise ValidationError(f"Expected string goal, got {type(goal).__name__}")

    normalized = goal.replace('\x00', '').strip()
    if not normalized:
        raise ValidationError("Empty goal not allowed")

    if len(normalized) > max_length:
        logger.warning("goal_validation_failed",
                       operation="validate_goal",
                       reason="too_long",
                       goal_length=len(normalized),
                       max_length=max_length)
        raise ValidationError(f"Goal too long: {len(normalized)} > {max_length}")

    return normalized
