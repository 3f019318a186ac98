"""
Build Tasks - task graph runner with watch mode and dev process supervision.

Runs named build steps (lint, transpile, minify, style compile, copy,
version stamp, metadata strip) composed in series and parallel, re-runs
the affected subset when sources change, and restarts the dev server
after successful rebuilds.
"""

__version__ = "1.0.0"

from build_tasks.models import (
    FileSet,
    BuildConfig,
    TaskDefinition,
    Task,
    TaskKind,
    TaskRun,
    TaskStatus,
    WatchBinding,
    FileChangeEvent,
    ProjectConfig,
    leaf,
    series,
    parallel,
)

from build_tasks.errors import (
    BuildTasksError,
    UnknownTaskError,
    DuplicateTaskError,
    CyclicTaskGraphError,
    TaskError,
    TransformError,
    TransformErrorKind,
)
from build_tasks.config import ConfigManager, DEFAULT_CONFIG_FILE
from build_tasks.fileset import FileSetResolver
from build_tasks.registry import TaskRegistry
from build_tasks.scheduler import Scheduler
from build_tasks.transforms import Transform
from build_tasks.watcher import WatchEngine, WatchHandle
from build_tasks.supervisor import DevProcessSupervisor, supervise

__all__ = [
    # Models
    "FileSet",
    "BuildConfig",
    "TaskDefinition",
    "Task",
    "TaskKind",
    "TaskRun",
    "TaskStatus",
    "WatchBinding",
    "FileChangeEvent",
    "ProjectConfig",
    "leaf",
    "series",
    "parallel",
    # Errors
    "BuildTasksError",
    "UnknownTaskError",
    "DuplicateTaskError",
    "CyclicTaskGraphError",
    "TaskError",
    "TransformError",
    "TransformErrorKind",
    # Config
    "ConfigManager",
    "DEFAULT_CONFIG_FILE",
    # Components
    "FileSetResolver",
    "TaskRegistry",
    "Scheduler",
    "Transform",
    "WatchEngine",
    "WatchHandle",
    "DevProcessSupervisor",
    "supervise",
]
