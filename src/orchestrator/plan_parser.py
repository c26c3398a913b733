"""Best-effort decoding of planner output into plan tasks.

Language models wrap the JSON they were asked for in prose, code fences or
both. ``decode_plan_response`` tries, in order:

1. each balanced ``{...}`` block in the text, taking the first that parses to
   an object with a ``tasks`` list
2. the whole response (code fences stripped), as an object or a bare list

It never raises. A response that yields nothing comes back as
``PlanDecodeResult(ok=False, tasks=[])``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from src.utils.logging.framework import SmartLogger

from .plan_state import PlanTask, TaskStatus

logger = SmartLogger("orchestrator")


@dataclass
class PlanDecodeResult:
    ok: bool
    tasks: List[PlanTask] = field(default_factory=list)
    error: Optional[str] = None


def _balanced_blocks(text: str) -> Iterator[str]:
    """Yield top-level brace-delimited blocks, ignoring braces inside strings."""
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:index + 1]


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        lines = stripped.splitlines()[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        stripped = "\n".join(lines)
    return stripped


def _extract_raw_tasks(text: str) -> Optional[List[Any]]:
    for block in _balanced_blocks(text):
        try:
            payload = json.loads(block)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
            return payload["tasks"]

    try:
        payload = json.loads(_strip_fences(text))
    except json.JSONDecodeError:
        return None

    if isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
        return payload["tasks"]
    if isinstance(payload, list):
        return payload
    return None


def _as_id_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int))]
    return []


def normalize_tasks(raw_tasks: List[Any]) -> List[PlanTask]:
    """Turn loosely-shaped task dicts into pending PlanTasks.

    Entries that are not objects or have no type are dropped, missing ids are
    generated as ``task_<n>``, and a repeated id keeps its first occurrence.
    """
    tasks: List[PlanTask] = []
    seen = set()

    for position, raw in enumerate(raw_tasks, start=1):
        if not isinstance(raw, dict):
            continue

        task_type = str(raw.get("type") or "").strip()
        if not task_type:
            logger.warning("plan_task_dropped", reason="missing_type", position=position)
            continue

        raw_id = raw.get("id")
        task_id = "" if raw_id is None else str(raw_id).strip()
        if not task_id:
            task_id = f"task_{position}"
        if task_id in seen:
            logger.warning("plan_task_dropped", reason="duplicate_id", task_id=task_id)
            continue
        seen.add(task_id)

        raw_deps = raw.get("dependencies")
        if raw_deps is None:
            raw_deps = raw.get("depends_on")

        params = raw.get("params")
        tasks.append(PlanTask(
            id=task_id,
            type=task_type,
            description=str(raw.get("description") or task_type),
            dependencies=_as_id_list(raw_deps),
            params=params if isinstance(params, dict) else None,
            status=TaskStatus.PENDING,
        ))

    known = {task.id for task in tasks}
    for task in tasks:
        dangling = [dep for dep in task.dependencies if dep not in known]
        if dangling:
            # Left in place; the executor will block these tasks
            logger.warning("plan_dangling_dependencies", task_id=task.id, missing=dangling)

    return tasks


def decode_plan_response(text: Any) -> PlanDecodeResult:
    if not isinstance(text, str) or not text.strip():
        return PlanDecodeResult(ok=False, error="empty planner response")

    raw_tasks = _extract_raw_tasks(text)
    if raw_tasks is None:
        logger.warning("plan_decode_failed", response_preview=text[:200])
        return PlanDecodeResult(ok=False, error="no task list found in planner response")

    return PlanDecodeResult(ok=True, tasks=normalize_tasks(raw_tasks))
