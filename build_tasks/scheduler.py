"""
Scheduler: runs a registered task by name.

Series children run strictly one after another and stop at the first
failure. Parallel children all start together and all run to completion;
the group reports the first failure in completion order. Composition may
nest to any depth.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from build_tasks.errors import TaskError, TransformError, TransformErrorKind
from build_tasks.fileset import FileSetResolver
from build_tasks.models import BuildConfig, Task, TaskKind, TaskRun, TaskStatus
from build_tasks.registry import TaskRegistry


logger = logging.getLogger(__name__)


class Scheduler:
    """
    Executes tasks from a TaskRegistry against one BuildConfig.

    Within a single run every reachable leaf executes at most once; a leaf
    reached through two paths shares the first execution.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        config: BuildConfig,
        resolver: Optional[FileSetResolver] = None
    ):
        """
        Initialize scheduler.

        Args:
            registry: Registry holding the task graph
            config: Build policy handed to every transform
            resolver: File set resolver (creates default if None)
        """
        self.registry = registry
        self.config = config
        self.resolver = resolver or FileSetResolver()

    async def run(self, task_name: str) -> TaskRun:
        """
        Run a task and everything it is composed of.

        Args:
            task_name: Registered task name

        Returns:
            Completed TaskRun; on failure it carries the TaskError

        Raises:
            UnknownTaskError: If task_name is not registered
        """
        task = self.registry.resolve(task_name)
        run = TaskRun(task_name=task_name)
        started = time.monotonic()
        leaf_runs: Dict[str, asyncio.Future] = {}

        try:
            outputs = await self._execute(task, leaf_runs)
        except TaskError as e:
            run.status = TaskStatus.FAILED
            run.error = e
            logger.error(f"[{task_name}] Failed after {time.monotonic() - started:.2f}s: {e}")
        else:
            run.status = TaskStatus.SUCCEEDED
            run.outputs = [str(p) for p in outputs]
            logger.info(f"[{task_name}] Finished in {time.monotonic() - started:.2f}s")

        run.completed_at = datetime.now().isoformat()
        return run

    async def _execute(self, task: Task, leaf_runs: Dict[str, asyncio.Future]) -> List[Path]:
        if task.kind == TaskKind.LEAF:
            if task.name not in leaf_runs:
                leaf_runs[task.name] = asyncio.ensure_future(self._run_leaf(task))
            return await leaf_runs[task.name]

        if task.kind == TaskKind.SERIES:
            logger.debug(f"[{task.name}] Series: {', '.join(task.children)}")
            outputs: List[Path] = []
            for child in task.children:
                outputs.extend(await self._execute(self.registry.resolve(child), leaf_runs))
            return outputs

        logger.debug(f"[{task.name}] Parallel: {', '.join(task.children)}")
        children = [
            asyncio.ensure_future(self._execute(self.registry.resolve(child), leaf_runs))
            for child in task.children
        ]
        first_error: Optional[TaskError] = None
        for finished in asyncio.as_completed(children):
            try:
                await finished
            except TaskError as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return [path for child in children for path in child.result()]

    async def _run_leaf(self, task: Task) -> List[Path]:
        inputs = self.resolver.resolve(task.fileset) if task.fileset else []
        logger.info(f"[{task.name}] Starting ({len(inputs)} input file(s))")
        started = time.monotonic()

        try:
            outputs = await task.transform.apply(inputs, self.config)
        except TaskError as e:
            if e.task_name is None:
                e.task_name = task.name
            if isinstance(e, TransformError) and e.output:
                logger.error(f"[{task.name}] {e.output}")
            raise
        except Exception as e:
            raise TransformError(
                TransformErrorKind.IO,
                f"{type(e).__name__}: {e}",
                task_name=task.name
            ) from e

        logger.info(f"[{task.name}] Done in {time.monotonic() - started:.2f}s")
        return list(outputs or [])
