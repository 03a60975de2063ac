"""Requirement evaluation and task-state engine."""

from .evaluator import evaluate_requirement, evaluate_requirements, evaluate_task
from .models import Requirement, RequirementType, Task, TaskStatus, iter_requirements
from .operations import (
    InvalidRequirementUpdateError,
    RequirementNotFoundError,
    TaskEngineError,
    pause_task,
    reset_task,
    start_task,
    tick_task,
    update_requirement_value,
)

__all__ = [
    "InvalidRequirementUpdateError",
    "Requirement",
    "RequirementNotFoundError",
    "RequirementType",
    "Task",
    "TaskEngineError",
    "TaskStatus",
    "evaluate_requirement",
    "evaluate_requirements",
    "evaluate_task",
    "iter_requirements",
    "pause_task",
    "reset_task",
    "start_task",
    "tick_task",
    "update_requirement_value",
]
