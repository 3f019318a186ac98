"""
Build daemon: runs a task, then optionally keeps watching and serving.

The `watch` and `nodemon` tasks of the default pipeline are leaves whose
transforms start the watch engine and the dev process supervisor. Once the
selected task succeeds, the daemon stays alive while either is active and
shuts both down on SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from build_tasks.config import ConfigManager
from build_tasks.models import BuildConfig, TaskRun, WatchBinding
from build_tasks.pipeline import build_registry, watch_bindings, DEFAULT_TASK
from build_tasks.scheduler import Scheduler
from build_tasks.supervisor import DevProcessSupervisor
from build_tasks.transforms import Transform
from build_tasks.watcher import WatchEngine, WatchHandle


log_format = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger("build-tasks")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Suppress verbose watchdog library logging
    logging.getLogger("watchdog.observers.inotify_buffer").setLevel(logging.WARNING)
    logging.getLogger("watchdog.observers").setLevel(logging.WARNING)


class StartWatchTransform(Transform):
    """Leaf behind the `watch` task."""

    name = "watch"

    def __init__(self, daemon: "BuildDaemon"):
        self.daemon = daemon

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        await self.daemon.start_watch()
        return []


class ServeTransform(Transform):
    """Leaf behind the `nodemon` task."""

    name = "nodemon"

    def __init__(self, daemon: "BuildDaemon"):
        self.daemon = daemon

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        await self.daemon.start_dev_process()
        return []


class BuildDaemon:
    """
    Wires registry, scheduler, watch engine and dev process together.
    """

    def __init__(
        self,
        manager: ConfigManager,
        build_config: BuildConfig,
        watch: bool = True,
        serve: bool = True,
        engine: Optional[WatchEngine] = None,
        supervisor: Optional[DevProcessSupervisor] = None
    ):
        """
        Initialize daemon.

        Args:
            manager: Loaded project configuration
            build_config: Build policy for this process
            watch: Allow the `watch` task to start the watch engine
            serve: Allow the `nodemon` task to start the dev process
            engine: Watch engine (creates default if None)
            supervisor: Dev process supervisor (creates default if None)
        """
        self.manager = manager
        self.build_config = build_config
        self.watch_enabled = watch and manager.config.watch.enabled
        self.serve_enabled = serve

        self.registry = build_registry(
            manager,
            watch_hook=StartWatchTransform(self),
            serve_hook=ServeTransform(self)
        )
        self.scheduler = Scheduler(self.registry, build_config)
        self.engine = engine or WatchEngine(self.scheduler, debounce_ms=manager.config.watch.debounce_ms)
        self.supervisor = supervisor or DevProcessSupervisor(manager.config.dev_command, cwd=manager.project_root)
        self.engine.add_listener(self._on_rebuild)
        self.supervisor.on_stopped(self._on_dev_process_stopped)

        self.watch_handle: Optional[WatchHandle] = None
        self._shutdown_requested: Optional[asyncio.Event] = None

    def bindings(self) -> List[WatchBinding]:
        return watch_bindings(self.manager)

    async def start_watch(self) -> None:
        if not self.watch_enabled:
            logger.info("Watch mode disabled")
            return
        if self.watch_handle is None:
            self.watch_handle = await self.engine.start_watch(self.bindings())

    async def start_dev_process(self) -> None:
        if not self.serve_enabled:
            logger.info("Dev process disabled")
            return
        await self.supervisor.start()

    async def _on_rebuild(self, binding: WatchBinding, run: TaskRun) -> None:
        if binding.restarts_dev_process and self.serve_enabled:
            await self.supervisor.notify_rebuild(run)

    def _on_dev_process_stopped(self, returncode) -> None:
        if not self.is_active():
            logger.info("Dev process exited and nothing is being watched, shutting down")
            self.request_shutdown()

    def is_active(self) -> bool:
        """True while watching or serving."""
        watching = self.watch_handle is not None and self.watch_handle.is_running()
        return watching or self.supervisor.is_running()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        if self._shutdown_requested is not None:
            self._shutdown_requested.set()

    async def run(self, task_name: str = DEFAULT_TASK) -> TaskRun:
        """
        Run a task; stay alive afterwards while watching or serving.

        Args:
            task_name: Task to run

        Returns:
            The initial TaskRun
        """
        self._shutdown_requested = asyncio.Event()
        logger.info("=" * 60)
        logger.info(f"Build Tasks: {task_name} ({'debug' if self.build_config.debug else 'release'}, "
                    f"revision {self.build_config.short_version_tag})")
        logger.info("=" * 60)

        run = await self.scheduler.run(task_name)
        if not run.succeeded:
            await self.shutdown()
            return run

        if self.is_active():
            self._install_signal_handlers()
            logger.info("Waiting for changes (Ctrl+C to stop)")
            await self._shutdown_requested.wait()

        await self.shutdown()
        return run

    async def shutdown(self) -> None:
        """Stop watching and serving."""
        if self.watch_handle is not None:
            await self.engine.stop_watch(self.watch_handle)
            self.watch_handle = None
        if self.supervisor.is_running():
            await self.supervisor.stop()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform/loop; KeyboardInterrupt still ends the process
                logger.debug(f"Cannot install handler for signal {signum}")
