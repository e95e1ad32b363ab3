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

"""Periodic health records and page refresh.

Two optional timer loops run while streaming:
- health: logs one structured ``HealthReport`` per interval
- auto-refresh: reloads the streamed page per interval

Refresh failures are logged and never stop the loop. Operator-triggered
refreshes (signal) go through ``request_refresh`` and share the session's
reentrancy guard with the timer.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import List, Optional

import psutil
from pydantic import BaseModel, Field

from pagestream.core.browser import BrowserSession
from pagestream.core.config import StreamConfig
from pagestream.core.supervisor import EncoderSupervisor
from pagestream.utils.logger import logger


class HealthReport(BaseModel):
    """Structured health record emitted on every health interval."""

    type: str = Field("health", description="Record type")
    ts: str = Field(..., description="ISO-8601 UTC timestamp")
    uptime_sec: float = Field(..., description="Seconds since streaming started")
    ingest: str = Field(..., description="Ingest destination")
    protocol: str = Field(..., description="Ingest protocol family (SRT, RTMP, INGEST)")
    restart_attempt: int = Field(..., description="Cumulative encoder restart attempts")
    last_exit_code: Optional[int] = Field(None, description="Last observed encoder exit code")
    retrying: bool = Field(..., description="Whether a restart is pending")
    infobar_dismiss_tried: bool = Field(False, description="Whether the infobar sweep ran")
    encoder_pid: Optional[int] = Field(None, description="PID of the live encoder")
    encoder_rss_bytes: Optional[int] = Field(None, description="Resident memory of the live encoder")


def _encoder_rss(pid: Optional[int]) -> Optional[int]:
    if pid is None:
        return None
    try:
        return psutil.Process(pid).memory_info().rss
    except psutil.Error:
        return None


class StreamScheduler:
    """Runs the health and auto-refresh timers.

    Attributes:
        config: Stream configuration (intervals, ingest)
        supervisor: Encoder supervisor, read for telemetry
        session: Browser session to refresh, None in video-file mode
    """

    def __init__(
        self,
        config: StreamConfig,
        supervisor: EncoderSupervisor,
        session: Optional[BrowserSession] = None,
        started_at: Optional[float] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            config: Stream configuration
            supervisor: Encoder supervisor
            session: Browser session, None in video-file mode
            started_at: time.monotonic() of the stream session start; defaults to start()
        """
        self.config = config
        self.supervisor = supervisor
        self.session = session
        self._started_at = started_at
        self._health_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._pending_refreshes: List[asyncio.Task] = []

    def start(self) -> None:
        """Start whichever timers have a positive interval."""
        if self._started_at is None:
            self._started_at = time.monotonic()
        if self.config.health_interval_seconds > 0:
            self._health_task = asyncio.create_task(self._health_loop())
        if self.config.auto_refresh_seconds > 0 and self.session is not None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
            logger.info(
                f"[SCHEDULER] Auto-refresh enabled: every {self.config.auto_refresh_seconds:g} seconds."
            )

    async def stop(self) -> None:
        """Cancel every timer and any signal-triggered refresh in flight."""
        tasks = [t for t in (self._health_task, self._refresh_task) if t is not None]
        tasks.extend(self._pending_refreshes)
        self._health_task = None
        self._refresh_task = None
        self._pending_refreshes = []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def build_health_report(self) -> HealthReport:
        supervisor = self.supervisor
        process = supervisor.state.process
        pid = process.pid if supervisor.is_running else None
        return HealthReport(
            ts=datetime.now(timezone.utc).isoformat(),
            uptime_sec=round(self.uptime(), 1),
            ingest=self.config.ingest,
            protocol=self.config.protocol.display_name,
            restart_attempt=supervisor.state.restart_attempt,
            last_exit_code=supervisor.state.last_exit_code,
            retrying=supervisor.restart_pending,
            infobar_dismiss_tried=(
                self.session.state.infobar_dismiss_tried if self.session is not None else False
            ),
            encoder_pid=pid,
            encoder_rss_bytes=_encoder_rss(pid),
        )

    def uptime(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def emit_health(self) -> None:
        logger.info(f"[HEALTH] {self.build_health_report().model_dump_json()}")

    async def refresh_once(self) -> bool:
        """Refresh the page, logging instead of raising on failure."""
        if self.session is None:
            return False
        try:
            return await self.session.refresh()
        except Exception as e:
            logger.error(f"[SCHEDULER] Refresh failed: {e}")
            return False

    def request_refresh(self) -> None:
        """Schedule an on-demand refresh (e.g. from a signal handler)."""
        task = asyncio.create_task(self.refresh_once())
        self._pending_refreshes.append(task)
        task.add_done_callback(self._refresh_finished)

    def _refresh_finished(self, task: asyncio.Task) -> None:
        if task in self._pending_refreshes:
            self._pending_refreshes.remove(task)

    async def _health_loop(self) -> None:
        interval = self.config.health_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                self.emit_health()
            except Exception as e:
                logger.error(f"[HEALTH] Failed to emit health record: {e}")

    async def _refresh_loop(self) -> None:
        interval = self.config.auto_refresh_seconds
        while True:
            await asyncio.sleep(interval)
            await self.refresh_once()
