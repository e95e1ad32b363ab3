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

"""
Top-level start/stop orchestration for page-stream.

PageStreamer wires the components together:

    start: reconcile geometry -> browser session -> encoder supervisor -> scheduler
    stop:  scheduler timers -> encoder -> browser session (+ temporary profile)

Shutdown is requested either by a signal or by the supervisor reporting a
terminal outcome; ``run()`` then tears everything down and returns the
process exit code.
"""

from __future__ import annotations

import asyncio
import signal
import time
from pathlib import Path
from typing import List, Mapping, Optional

from pagestream.core.browser import BrowserSession
from pagestream.core.config import CaptureMode, StreamConfig, reconcile_display_size
from pagestream.core.ingest import ExitCode
from pagestream.core.scheduler import StreamScheduler
from pagestream.core.supervisor import EncoderSupervisor
from pagestream.exceptions import ConfigurationError
from pagestream.utils.logger import logger


class PageStreamer:
    """
    Streams a page (or video file) to an ingest until told to stop.

    Attributes:
        config: Effective configuration (after display-size reconciliation)
        session: Browser session, None in video-file mode or before start
        supervisor: Encoder supervisor, None before start
        scheduler: Health/refresh scheduler, None before start
        started_at: time.monotonic() when start() began, the health uptime origin

    Example:
        >>> streamer = PageStreamer(StreamConfig(ingest="srt://127.0.0.1:9000?streamid=test"))
        >>> exit_code = await streamer.run()
    """

    def __init__(
        self,
        config: StreamConfig,
        ffmpeg_path: str = "ffmpeg",
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Initialize the streamer.

        Args:
            config: Requested configuration
            ffmpeg_path: Encoder binary
            environ: Environment used for WIDTH/HEIGHT reconciliation (default os.environ)
        """
        self.requested_config = config
        self.config = config
        self.ffmpeg_path = ffmpeg_path
        self._environ = environ
        self.session: Optional[BrowserSession] = None
        self.supervisor: Optional[EncoderSupervisor] = None
        self.scheduler: Optional[StreamScheduler] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._exit_code = ExitCode.OK
        self._installed_signals: List[signal.Signals] = []
        self._stopped = False
        self.started_at: Optional[float] = None

    @property
    def exit_code(self) -> ExitCode:
        return self._exit_code

    def prepare(self) -> StreamConfig:
        """Normalize the configuration and log the startup line."""
        self.config = reconcile_display_size(self.requested_config, self._environ)
        logger.info(self.config.startup_message())
        return self.config

    async def start(self) -> None:
        """
        Launch browser, encoder and timers.

        In test mode only the configuration steps and startup logging run.

        Raises:
            ConfigurationError: If the video file does not exist
            BrowserError: If Chromium cannot be started
            EncoderError: If ffmpeg cannot be spawned
        """
        self._shutdown_event = asyncio.Event()
        self.started_at = time.monotonic()
        config = self.prepare()

        if config.test_mode:
            logger.info("PAGE_STREAM_TEST_MODE enabled: skipping browser/ffmpeg startup.")
            return

        if config.capture_mode == CaptureMode.FILE and not Path(config.video_file).is_file():
            raise ConfigurationError(f"Video file not found: {config.video_file}")

        self._install_signal_handlers()
        self.supervisor = EncoderSupervisor(
            config, on_terminal=self.request_shutdown, ffmpeg_path=self.ffmpeg_path
        )

        if config.capture_mode == CaptureMode.PAGE:
            self.session = BrowserSession(config)
            await self.session.launch()

        if self._shutdown_event.is_set():
            logger.info("[STREAMER] Shutdown requested during startup, not starting the encoder")
            return

        await self.supervisor.launch()
        self.scheduler = StreamScheduler(
            config, self.supervisor, self.session, started_at=self.started_at
        )
        self.scheduler.start()

    async def run(self) -> int:
        """Start, wait for a shutdown request, stop.

        Returns:
            Process exit code (see ExitCode)
        """
        try:
            await self.start()
            if not self.config.test_mode:
                await self._shutdown_event.wait()
        finally:
            await self.stop()
        return int(self._exit_code)

    def request_shutdown(self, code: ExitCode = ExitCode.OK) -> None:
        """Ask ``run()`` to stop. The first request decides the exit code."""
        if self._shutdown_event is None or self._shutdown_event.is_set():
            return
        self._exit_code = code
        self._shutdown_event.set()

    def request_refresh(self) -> None:
        if self.scheduler is not None:
            self.scheduler.request_refresh()

    async def stop(self) -> None:
        """
        Tear everything down. Safe to call repeatedly and after a failed start.

        Every step is attempted even when an earlier step raised.
        """
        if self._stopped:
            return
        self._stopped = True
        logger.info("[STREAMER] Stopping...")
        self._remove_signal_handlers()

        steps = []
        if self.scheduler is not None:
            steps.append(("scheduler", self.scheduler.stop))
        if self.supervisor is not None:
            steps.append(("encoder", self.supervisor.stop))
        if self.session is not None:
            steps.append(("browser session", self.session.close))

        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.error(f"[STREAMER] Error stopping {name}: {e}")
        logger.info("[STREAMER] Stopped")

    def _on_stop_signal(self, sig: signal.Signals) -> None:
        logger.info(f"[STREAMER] Received {sig.name}, stopping gracefully")
        self.request_shutdown(ExitCode.OK)

    def _on_refresh_signal(self, sig: signal.Signals) -> None:
        logger.info(f"[STREAMER] Received {sig.name}, refreshing page")
        self.request_refresh()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        refresh_sig = getattr(signal, self.config.refresh_signal)
        stop_sigs = {getattr(signal, self.config.graceful_stop_signal), signal.SIGINT, signal.SIGTERM}

        handlers = [(refresh_sig, self._on_refresh_signal)]
        handlers.extend((sig, self._on_stop_signal) for sig in stop_sigs)
        for sig, handler in handlers:
            try:
                loop.add_signal_handler(sig, handler, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"[STREAMER] Cannot install handler for {sig.name}: {e}")
                continue
            if sig not in self._installed_signals:
                self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._installed_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals = []
