"""
Exception hierarchy for the build task orchestrator.

Graph errors are raised while tasks are registered or looked up.
Task errors are raised while a task runs and end up on the TaskRun.
"""

from enum import Enum
from typing import Optional


class BuildTasksError(Exception):
    """Base class for all build_tasks errors."""


class ConfigError(BuildTasksError):
    """Project configuration could not be loaded or is invalid."""


class RevisionError(BuildTasksError):
    """Current source revision could not be determined."""


# Graph construction

class TaskGraphError(BuildTasksError):
    """Task graph is malformed."""


class UnknownTaskError(TaskGraphError):
    """A task name does not resolve in the registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown task: {name}")
        self.name = name


class DuplicateTaskError(TaskGraphError):
    """A task name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Task already registered: {name}")
        self.name = name


class CyclicTaskGraphError(TaskGraphError):
    """Registering a task would make it reference itself."""

    def __init__(self, cycle: list):
        super().__init__(f"Cycle in task graph: {' -> '.join(cycle)}")
        self.cycle = list(cycle)


# Execution

class TaskError(BuildTasksError):
    """A task run failed."""

    def __init__(self, message: str, task_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.task_name = task_name


class TransformErrorKind(str, Enum):
    """Why a transform failed."""
    LINT = "lint"
    COMPILE = "compile"
    IO = "io"


class TransformError(TaskError):
    """
    A transform reported failure.

    Carries the failure kind and whatever output the external tool produced.
    """

    def __init__(
        self,
        kind: TransformErrorKind,
        message: str,
        task_name: Optional[str] = None,
        output: Optional[str] = None
    ):
        super().__init__(message, task_name=task_name)
        self.kind = TransformErrorKind(kind)
        self.output = output

    def __str__(self) -> str:
        prefix = f"[{self.task_name}] " if self.task_name else ""
        return f"{prefix}{self.kind.value} failure: {self.message}"
