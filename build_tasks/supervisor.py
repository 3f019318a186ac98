"""
Development process supervisor.

Keeps one long-running child process (the dev server) alive across
rebuilds. Restarts are driven only by successful rebuilds; when the child
exits on its own the supervisor reports it as stopped and waits for the
next successful rebuild.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from build_tasks.models import TaskRun


logger = logging.getLogger(__name__)


# Seconds to wait for a terminated child before killing it
TERMINATE_TIMEOUT = 5.0


class ProcessState(str, Enum):
    """Supervised process state."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class DevProcessSupervisor:
    """
    Supervises the dev server process.

    Rules:
    - start() spawns the process once
    - a successful rebuild restarts it (terminate, then respawn)
    - a failed rebuild never restarts it
    - a crash is reported through on_stopped, never restarted
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[Path] = None,
        terminate_timeout: float = TERMINATE_TIMEOUT
    ):
        """
        Initialize supervisor.

        Args:
            command: Command line of the dev process
            cwd: Working directory for the process
            terminate_timeout: Grace period before SIGKILL on restart/stop
        """
        if not command:
            raise ValueError("Dev process command must not be empty")
        self.command = [str(c) for c in command]
        self.cwd = Path(cwd) if cwd else None
        self.terminate_timeout = terminate_timeout

        self.state = ProcessState.NOT_STARTED
        self.process: Optional[asyncio.subprocess.Process] = None
        self.restart_count = 0
        self._on_stopped: List[Callable[[Optional[int]], None]] = []
        self._exit_watch: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def on_stopped(self, callback: Callable[[Optional[int]], None]) -> None:
        """Register a callback for unexpected child exits. Receives the exit code."""
        self._on_stopped.append(callback)

    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    async def start(self) -> None:
        """Spawn the process if it is not running yet."""
        async with self._lock:
            if self.is_running():
                logger.warning("Dev process already running")
                return
            logger.info("Starting...")
            await self._spawn()

    async def restart(self) -> None:
        """Terminate the running process (if any) and spawn a new one."""
        async with self._lock:
            logger.info("Restarting...")
            self.state = ProcessState.RESTARTING
            await self._terminate()
            await self._spawn()
            self.restart_count += 1

    async def stop(self) -> None:
        """Terminate the process for good."""
        async with self._lock:
            await self._terminate()
            self.state = ProcessState.STOPPED
            if self._exit_watch is not None:
                await self._exit_watch
                self._exit_watch = None

    async def notify_rebuild(self, run: TaskRun) -> bool:
        """
        React to a finished rebuild.

        Args:
            run: The completed rebuild

        Returns:
            True if the process was restarted
        """
        if not run.succeeded:
            logger.warning(f"[{run.task_name}] Rebuild failed, dev process left as is")
            return False
        if self.state == ProcessState.NOT_STARTED:
            return False
        await self.restart()
        return True

    async def _spawn(self) -> None:
        try:
            process = await asyncio.create_subprocess_exec(*self.command, cwd=str(self.cwd) if self.cwd else None)
        except OSError as e:
            self.state = ProcessState.STOPPED
            logger.error(f"Cannot start dev process {' '.join(self.command)}: {e}")
            raise
        self.process = process
        self.state = ProcessState.RUNNING
        logger.info(f"Dev process running (pid {process.pid}): {' '.join(self.command)}")
        self._exit_watch = asyncio.get_running_loop().create_task(self._watch_exit(process))

    async def _terminate(self) -> None:
        process = self.process
        if process is None or process.returncode is not None:
            return

        # Mark as expected so the exit watcher stays quiet
        self.process = None
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dev process {process.pid} did not exit, killing")
            process.kill()
            await process.wait()

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        if process is not self.process:
            return

        self.state = ProcessState.STOPPED
        logger.warning(f"Dev process stopped (exit code {returncode}), waiting for the next successful rebuild")
        for callback in self._on_stopped:
            try:
                callback(returncode)
            except Exception as e:
                logger.error(f"Error in stopped callback: {e}", exc_info=True)


async def supervise(command: Sequence[str], cwd: Optional[Path] = None) -> DevProcessSupervisor:
    """
    Start supervising a dev process.

    Args:
        command: Command line to run
        cwd: Working directory

    Returns:
        Started DevProcessSupervisor
    """
    supervisor = DevProcessSupervisor(command, cwd=cwd)
    await supervisor.start()
    return supervisor
