"""
Watchdog-based watch engine.

Turns file system notifications into FileChangeEvents and re-runs the
task bound to each matching FileSet once changes settle.

Per binding: Idle -> (matching change) -> Pending -> (debounce window
passes quietly) -> Running -> Idle. A change that lands while the task is
running queues one more run; a binding never runs concurrently with itself.
"""

import asyncio
import inspect
import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileSystemEvent

from build_tasks.models import ChangeKind, FileChangeEvent, TaskRun, WatchBinding
from build_tasks.scheduler import Scheduler


logger = logging.getLogger(__name__)


# Listener signature: (binding, run) -> None or awaitable
RunListener = Callable[[WatchBinding, TaskRun], object]


class BindingState(str, Enum):
    """Watch state of a single binding."""
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"


class BindingWatcher:
    """
    Debounces changes for one WatchBinding and runs its task.

    Must be created and driven on the event loop thread.
    """

    def __init__(
        self,
        binding: WatchBinding,
        scheduler: Scheduler,
        debounce_ms: int = 200,
        listeners: Optional[List[RunListener]] = None
    ):
        """
        Initialize binding watcher.

        Args:
            binding: File set to task binding
            scheduler: Scheduler used to run the bound task
            debounce_ms: Quiet period before a pending run starts
            listeners: Callbacks invoked after every completed run
        """
        self.binding = binding
        self.scheduler = scheduler
        self.debounce_seconds = debounce_ms / 1000.0
        self.listeners = listeners if listeners is not None else []

        self.state = BindingState.IDLE
        self.run_count = 0
        self.last_run: Optional[TaskRun] = None

        self._changed = asyncio.Event()
        self._stopping = False
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return f"{self.binding.fileset.name}->{self.binding.task_name}"

    def start(self) -> None:
        """Start the watch loop on the running event loop."""
        if self._loop_task is not None:
            logger.warning(f"[{self.name}] Watcher already running")
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._loop(), name=f"watch-{self.name}")

    def notify(self, event: FileChangeEvent) -> bool:
        """
        Offer a change event to this binding.

        Returns:
            True if the event matched the binding's FileSet
        """
        if self._stopping or not self.binding.fileset.matches(Path(event.path)):
            return False
        logger.debug(f"[{self.name}] {event.kind.value}: {event.path}")
        self._changed.set()
        return True

    async def stop(self) -> None:
        """Stop watching. A run already in progress is allowed to finish."""
        self._stopping = True
        self._changed.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        self.state = BindingState.STOPPED

    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _loop(self) -> None:
        while True:
            await self._changed.wait()
            if self._stopping:
                return

            self.state = BindingState.PENDING
            while True:
                self._changed.clear()
                try:
                    await asyncio.wait_for(self._changed.wait(), timeout=self.debounce_seconds)
                except asyncio.TimeoutError:
                    break
                if self._stopping:
                    return

            self.state = BindingState.RUNNING
            try:
                await self._run_once()
            except Exception as e:
                logger.error(f"[{self.name}] Error in watch cycle: {e}", exc_info=True)
            self.state = BindingState.IDLE

            if self._stopping:
                return

    async def _run_once(self) -> None:
        logger.info(f"[{self.name}] Change detected, running '{self.binding.task_name}'")
        run = await self.scheduler.run(self.binding.task_name)
        self.run_count += 1
        self.last_run = run

        if not run.succeeded:
            logger.error(f"[{self.name}] Rebuild failed: {run.error}")

        for listener in self.listeners:
            try:
                result = listener(self.binding, run)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[{self.name}] Error in run listener: {e}", exc_info=True)


class ChangeEventHandler(FileSystemEventHandler):
    """
    Bridges watchdog's observer thread onto the event loop.

    Every file event becomes a FileChangeEvent handed to `on_change` on the
    loop thread.
    """

    def __init__(self, on_change: Callable[[FileChangeEvent], None], event_loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.on_change = on_change
        self.event_loop = event_loop

    def _forward(self, path: str, kind: ChangeKind) -> None:
        event = FileChangeEvent(path=path, kind=kind)
        try:
            self.event_loop.call_soon_threadsafe(self.on_change, event)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped change event for {path}")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.DELETED)
            self._forward(event.dest_path, ChangeKind.MOVED)


class WatchHandle:
    """A started set of bindings plus the observer feeding them."""

    def __init__(self, watchers: List[BindingWatcher], observer=None):
        self.watchers = watchers
        self.observer = observer
        self.stopped = False

    @property
    def bindings(self) -> List[WatchBinding]:
        return [w.binding for w in self.watchers]

    def dispatch(self, event: FileChangeEvent) -> int:
        """
        Deliver a change event to every binding whose FileSet matches.

        Returns:
            Number of bindings triggered
        """
        if self.stopped:
            return 0
        return sum(1 for watcher in self.watchers if watcher.notify(event))

    def is_running(self) -> bool:
        return not self.stopped and any(w.is_running() for w in self.watchers)


class WatchEngine:
    """
    Starts and stops watch bindings.

    One watchdog observer per handle, with one recursive watch per distinct
    FileSet base path.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        debounce_ms: int = 200,
        observer_factory: Optional[Callable[[], object]] = Observer
    ):
        """
        Initialize watch engine.

        Args:
            scheduler: Scheduler used for re-runs
            debounce_ms: Debounce window per binding
            observer_factory: Creates the watchdog observer; None disables
                OS notifications (events then only arrive via dispatch)
        """
        self.scheduler = scheduler
        self.debounce_ms = debounce_ms
        self.observer_factory = observer_factory
        self._listeners: List[RunListener] = []

    def add_listener(self, listener: RunListener) -> None:
        """Register a callback invoked after every watch-triggered run."""
        self._listeners.append(listener)

    async def start_watch(self, bindings: List[WatchBinding]) -> WatchHandle:
        """
        Start watching.

        Args:
            bindings: File set to task bindings

        Returns:
            WatchHandle for dispatching events and stopping

        Raises:
            UnknownTaskError: If a binding names an unregistered task
        """
        for binding in bindings:
            self.scheduler.registry.resolve(binding.task_name)

        watchers = [
            BindingWatcher(binding, self.scheduler, self.debounce_ms, self._listeners)
            for binding in bindings
        ]
        handle = WatchHandle(watchers)
        for watcher in watchers:
            watcher.start()

        if self.observer_factory is not None:
            handle.observer = self._start_observer(handle, bindings)

        logger.info(f"Watching {len(bindings)} file set(s)")
        return handle

    async def stop_watch(self, handle: WatchHandle) -> None:
        """
        Stop a handle's observer and binding loops.

        Runs in progress finish first.
        """
        if handle.stopped:
            return
        handle.stopped = True

        if handle.observer is not None:
            try:
                handle.observer.stop()
                await asyncio.to_thread(handle.observer.join, 5.0)
            except Exception as e:
                logger.error(f"Error stopping observer: {e}", exc_info=True)
            handle.observer = None

        await asyncio.gather(*(w.stop() for w in handle.watchers))
        logger.info("Stopped watching")

    def _start_observer(self, handle: WatchHandle, bindings: List[WatchBinding]):
        handler = ChangeEventHandler(handle.dispatch, asyncio.get_running_loop())
        observer = self.observer_factory()

        roots: Dict[str, str] = {}
        for binding in bindings:
            base = Path(binding.fileset.base_path)
            if not base.is_dir():
                logger.warning(f"[{binding.fileset.name}] Base path does not exist: {base}")
                continue
            roots.setdefault(str(base), binding.fileset.name)

        for root in roots:
            observer.schedule(handler, root, recursive=True)

        observer.start()
        return observer
