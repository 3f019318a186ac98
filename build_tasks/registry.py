"""
Task registry.

Maps task names to leaf or composite task definitions. The graph is
validated as tasks are registered, so a registry that accepted a task can
always run it.
"""

import logging
from typing import Dict, List, Optional

from build_tasks.errors import UnknownTaskError, DuplicateTaskError, CyclicTaskGraphError
from build_tasks.models import Task, TaskDefinition, TaskKind


logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    Registry of named tasks.

    Rules:
    - Names are unique
    - Composite tasks may only reference tasks that are already registered
    - A task must never (transitively) reference itself
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}

    def register(self, name: str, definition: TaskDefinition) -> Task:
        """
        Register a task.

        Args:
            name: Unique task name
            definition: Leaf, series or parallel definition

        Returns:
            The registered Task

        Raises:
            DuplicateTaskError: If name is already registered
            CyclicTaskGraphError: If the task would reference itself
            UnknownTaskError: If a child name does not resolve
        """
        if name in self._tasks:
            raise DuplicateTaskError(name)

        task = Task(name=name, definition=definition)
        if task.kind != TaskKind.LEAF:
            self._check_graph(task)

        self._tasks[name] = task
        logger.debug(f"Registered {task.kind.value} task '{name}'")
        return task

    def resolve(self, name: str) -> Task:
        """
        Look up a task by name.

        Raises:
            UnknownTaskError: If no task has this name
        """
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def get(self, name: str) -> Optional[Task]:
        """Get task by name, or None."""
        return self._tasks.get(name)

    def names(self) -> List[str]:
        """Registered task names in registration order."""
        return list(self._tasks)

    def leaves(self, name: str) -> List[str]:
        """
        Leaf task names reachable from a task, each listed once.

        Args:
            name: Root task name

        Returns:
            Leaf names in depth-first, left-to-right order
        """
        seen: List[str] = []

        def walk(current: str) -> None:
            task = self.resolve(current)
            if task.kind == TaskKind.LEAF:
                if current not in seen:
                    seen.append(current)
                return
            for child in task.children:
                walk(child)

        walk(name)
        return seen

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def _check_graph(self, candidate: Task) -> None:
        """
        Depth-first walk from a not-yet-registered task.

        A task listing itself is reported as a cycle whatever else its
        children contain.
        """
        if candidate.name in candidate.children:
            raise CyclicTaskGraphError([candidate.name, candidate.name])

        done = set()

        def children_of(name: str):
            if name == candidate.name:
                return candidate.children
            return self.resolve(name).children

        def visit(name: str, path: List[str]) -> None:
            if name in path:
                raise CyclicTaskGraphError(path[path.index(name):] + [name])
            if name in done:
                return
            if name != candidate.name and name not in self._tasks:
                raise UnknownTaskError(name)
            path.append(name)
            for child in children_of(name):
                visit(child, path)
            path.pop()
            done.add(name)

        visit(candidate.name, [])
