# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""FFmpeg process supervisor for page-stream.

The supervisor owns the encoder subprocess and its reconnect state machine:

    Idle -> Running -> Exited-Clean    -> Terminal (exit code 0)
                    -> Exited-Failure  -> Idle (restart pending, backoff)
                                       -> Terminal (attempts exhausted, 10)
                                       -> Terminal (non-retryable ingest, 11)

A ``stopping`` flag, once set, makes every later exit terminal and turns
any pending or about-to-fire restart into a no-op. ``handle_exit`` is the
only place where the restart decision is taken.

Terminal outcomes are handed to the owner through ``on_terminal``; the
supervisor never exits the process itself, so the owner can tear the
browser down before leaving.
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pagestream.core.config import StreamConfig
from pagestream.core.ffmpeg_args import build_ffmpeg_args
from pagestream.core.ingest import ExitCode, troubleshooting_guidance
from pagestream.exceptions import EncoderError
from pagestream.utils.logger import logger


def compute_backoff_delay(attempt: int, initial_delay_ms: int, max_delay_ms: int) -> int:
    """Exponential backoff with a ceiling.

    Args:
        attempt: 1-based restart attempt number
        initial_delay_ms: Delay for the first attempt
        max_delay_ms: Upper bound for any delay

    Returns:
        Delay in milliseconds: min(initial * 2^(attempt-1), max)
    """
    return min(initial_delay_ms * 2 ** max(attempt - 1, 0), max_delay_ms)


class ExitDisposition(str, Enum):
    """What the supervisor decided after an encoder exit."""

    STOPPING = "stopping"            # shutdown in progress, nothing to do
    CLEAN = "clean"                  # exit code 0, terminal success
    NON_RETRYABLE = "non_retryable"  # ingest protocol cannot reconnect
    EXHAUSTED = "exhausted"          # attempt budget consumed
    RESTART = "restart"              # restart timer scheduled


@dataclass
class SupervisorState:
    """Mutable supervisor state. Only EncoderSupervisor writes to it."""

    process: Optional[asyncio.subprocess.Process] = None
    restart_attempt: int = 0
    last_exit_code: Optional[int] = None
    last_restart_delay_ms: Optional[int] = None
    stopping: bool = False
    restart_timer: Optional[asyncio.TimerHandle] = None
    exit_watch: Optional[asyncio.Task] = None
    relaunch: Optional[asyncio.Task] = None


class EncoderSupervisor:
    """Spawns ffmpeg, watches it exit, and restarts it with bounded backoff.

    Example:
        >>> supervisor = EncoderSupervisor(config, on_terminal=streamer.request_shutdown)
        >>> await supervisor.launch()
        >>> # ... later
        >>> await supervisor.stop()
    """

    def __init__(
        self,
        config: StreamConfig,
        on_terminal: Callable[[ExitCode], None],
        ffmpeg_path: str = "ffmpeg",
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            config: Stream configuration (also used to rebuild arguments on restart)
            on_terminal: Called once with the exit code when streaming cannot continue
            ffmpeg_path: Encoder binary to execute
        """
        self.config = config
        self.ffmpeg_path = ffmpeg_path
        self._on_terminal = on_terminal
        self.state = SupervisorState()

    @property
    def restart_pending(self) -> bool:
        return self.state.restart_timer is not None

    @property
    def is_running(self) -> bool:
        process = self.state.process
        return process is not None and process.returncode is None

    async def launch(self) -> None:
        """Build arguments, spawn ffmpeg and start watching for its exit.

        Raises:
            EncoderError: If the encoder binary cannot be executed
        """
        if self.state.stopping:
            logger.debug("[FFMPEG] Launch skipped, supervisor is stopping")
            return

        args = build_ffmpeg_args(self.config)
        logger.info(f"[FFMPEG] Command: {self.ffmpeg_path} {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise EncoderError(f"Encoder binary not found: {self.ffmpeg_path}") from e
        except PermissionError as e:
            raise EncoderError(f"Permission denied starting encoder: {e}") from e
        except OSError as e:
            raise EncoderError(f"Failed to start encoder: {e}") from e

        if self.state.stopping:
            # stop() ran while the spawn was in flight and found no process to stop
            logger.info(f"[FFMPEG] Supervisor stopped during spawn, terminating encoder (pid={process.pid})")
            await self._terminate(process)
            return

        self.state.process = process
        self.state.exit_watch = asyncio.create_task(self._watch_exit(process))
        logger.info(f"[FFMPEG] Encoder started (pid={process.pid})")

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        if code < 0:
            logger.info(f"[FFMPEG] ffmpeg exited code={code} signal={-code}")
        else:
            logger.info(f"[FFMPEG] ffmpeg exited code={code}")
        if self.state.process is process:
            self.state.process = None
        self.handle_exit(code)

    def handle_exit(self, code: int) -> ExitDisposition:
        """Decide what happens after the encoder exited.

        Args:
            code: Process return code (negative when killed by a signal)

        Returns:
            The disposition that was applied
        """
        state = self.state
        state.last_exit_code = code

        if state.stopping:
            return ExitDisposition.STOPPING

        if code == 0:
            self._cancel_restart_timer()
            logger.info("[FFMPEG] Encoder finished cleanly; not restarting")
            self._on_terminal(ExitCode.OK)
            return ExitDisposition.CLEAN

        protocol = self.config.protocol
        if not protocol.retry_eligible:
            self._cancel_restart_timer()
            logger.error(
                f"[FFMPEG] ffmpeg exited (code={code}). Ingest protocol not configured for "
                f"auto-retry. Exiting with code {int(ExitCode.NON_RETRYABLE)}."
            )
            self._on_terminal(ExitCode.NON_RETRYABLE)
            return ExitDisposition.NON_RETRYABLE

        budget = self.config.reconnect_attempts
        if budget != 0 and state.restart_attempt >= budget:
            self._cancel_restart_timer()
            logger.error(
                f"[FFMPEG] {protocol.display_name} reconnect attempts exhausted "
                f"({state.restart_attempt}/{budget}). Giving up."
            )
            for line in troubleshooting_guidance(protocol, self.config.ingest):
                logger.error(line)
            self._on_terminal(ExitCode.RECONNECT_EXHAUSTED)
            return ExitDisposition.EXHAUSTED

        state.restart_attempt += 1
        delay_ms = compute_backoff_delay(
            state.restart_attempt,
            self.config.reconnect_initial_delay_ms,
            self.config.reconnect_max_delay_ms,
        )
        state.last_restart_delay_ms = delay_ms
        logger.warning(
            f"[FFMPEG] ffmpeg exited (code={code}). Scheduling {protocol.display_name} "
            f"reconnect attempt {state.restart_attempt} in {delay_ms}ms"
        )

        # At most one restart may be pending
        self._cancel_restart_timer()
        loop = asyncio.get_running_loop()
        state.restart_timer = loop.call_later(delay_ms / 1000, self._fire_restart)
        return ExitDisposition.RESTART

    def _cancel_restart_timer(self) -> None:
        if self.state.restart_timer is not None:
            self.state.restart_timer.cancel()
            self.state.restart_timer = None

    def _fire_restart(self) -> None:
        self.state.restart_timer = None
        if self.state.stopping:
            return
        task = asyncio.ensure_future(self.launch())
        self.state.relaunch = task
        task.add_done_callback(self._restart_done)

    def _restart_done(self, task: asyncio.Task) -> None:
        if self.state.relaunch is task:
            self.state.relaunch = None
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"[FFMPEG] ffmpeg restart failed: {error}")
        if not self.state.stopping:
            self._on_terminal(ExitCode.FAILURE)

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop supervising: no more restarts, encoder asked to finish.

        Sends SIGINT so ffmpeg can flush and close the output, then kills
        the process if it has not exited after ``timeout`` seconds. A
        relaunch that is still spawning terminates its own encoder and is
        awaited here.
        """
        state = self.state
        state.stopping = True
        self._cancel_restart_timer()

        process = state.process
        if process is not None and process.returncode is None:
            logger.info(f"[FFMPEG] Stopping encoder (pid={process.pid})")
            await self._terminate(process, timeout)

        relaunch = state.relaunch
        state.relaunch = None
        if relaunch is not None and not relaunch.done():
            await asyncio.gather(relaunch, return_exceptions=True)

        watch = state.exit_watch
        state.exit_watch = None
        if watch is not None and not watch.done():
            try:
                await asyncio.wait_for(watch, timeout=1.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass
        state.process = None

    async def _terminate(self, process: asyncio.subprocess.Process, timeout: float = 5.0) -> None:
        try:
            process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("[FFMPEG] Encoder did not exit gracefully, killing...")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
