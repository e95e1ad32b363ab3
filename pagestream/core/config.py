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

"""Stream configuration for page-stream.

StreamConfig is immutable once built. Environment-sourced values (display
id, raw input flags, test mode) are resolved when the object is created so
that everything downstream, in particular the ffmpeg argument builder,
only ever reads the configuration object.
"""

from __future__ import annotations

import dataclasses
import os
import signal
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Tuple

from pagestream.core.ingest import IngestProtocol, classify_ingest
from pagestream.exceptions import ConfigurationError
from pagestream.utils.logger import logger

DEMO_PAGE = str(Path(__file__).resolve().parent.parent / "demo" / "index.html")
DEFAULT_DISPLAY = ":99"

_FALSE_VALUES = ("", "0", "false", "no", "off")


def env_flag(name: str, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Return True when an environment variable is set to a truthy value."""
    env = os.environ if environ is None else environ
    return env.get(name, "").strip().lower() not in _FALSE_VALUES


def _env_display() -> str:
    return os.environ.get("DISPLAY") or DEFAULT_DISPLAY


def _env_input_flags() -> Optional[str]:
    return os.environ.get("INPUT_FFMPEG_FLAGS") or None


def _env_test_mode() -> bool:
    return env_flag("PAGE_STREAM_TEST_MODE")


class CaptureMode(str, Enum):
    """What the encoder captures."""

    PAGE = "page"  # x11grab of the browser window on the virtual display
    FILE = "file"  # a local video file, paced in real time


@dataclass(frozen=True)
class StreamConfig:
    """Configuration for one page (or video file) stream.

    Attributes:
        ingest: Destination URI (srt://..., rtmp://..., or a file path)
        url: Page URL or local HTML path to render
        video_file: Local video file to stream instead of a page
        video_loop: Loop the video file forever (file mode only)
        width: Capture width in pixels
        height: Capture height in pixels
        fps: Capture and output frame rate
        preset: x264 preset
        video_bitrate: Video bitrate, e.g. "2500k"
        audio_bitrate: Audio bitrate, e.g. "128k"; empty or None disables audio
        format: Output container format, e.g. "mpegts" or "flv"
        extra_ffmpeg: Raw encoder arguments appended before the output
        headless: Run Chromium headless (nothing is drawn on the display)
        fullscreen: Launch Chromium in kiosk/fullscreen mode
        app_mode: Use Chromium --app with an ephemeral profile
        reconnect_attempts: Max reconnect attempts, 0 for unbounded
        reconnect_initial_delay_ms: First backoff delay
        reconnect_max_delay_ms: Backoff ceiling
        health_interval_seconds: Health record interval, 0 disables
        auto_refresh_seconds: Page auto-refresh interval, 0 disables
        suppress_automation_banner: Hide the automation banner and webdriver flag
        auto_dismiss_infobar: Try to click the automation infobar away (xdotool)
        crop_infobar: Pixels to crop from the top of the capture
        inject_css: Stylesheet file injected into the page
        inject_js: Script file injected into the page
        refresh_signal: Signal name that triggers a page refresh
        graceful_stop_signal: Signal name that triggers a graceful stop
        display: X display captured in page mode ($DISPLAY)
        input_flags: Raw input-side ffmpeg flags ($INPUT_FFMPEG_FLAGS)
        test_mode: Skip browser/encoder startup ($PAGE_STREAM_TEST_MODE)
        protocol: Ingest protocol family, derived from ``ingest``
    """

    ingest: str
    url: str = DEMO_PAGE
    video_file: Optional[str] = None
    video_loop: bool = False

    width: int = 1280
    height: int = 720
    fps: int = 30

    preset: str = "veryfast"
    video_bitrate: str = "2500k"
    audio_bitrate: Optional[str] = "128k"
    format: str = "mpegts"
    extra_ffmpeg: Tuple[str, ...] = ()

    headless: bool = False
    fullscreen: bool = True
    app_mode: bool = True

    reconnect_attempts: int = 0
    reconnect_initial_delay_ms: int = 1000
    reconnect_max_delay_ms: int = 15000

    health_interval_seconds: float = 30
    auto_refresh_seconds: float = 0

    suppress_automation_banner: bool = True
    auto_dismiss_infobar: bool = False
    crop_infobar: int = 0
    inject_css: Optional[str] = None
    inject_js: Optional[str] = None

    refresh_signal: str = "SIGHUP"
    graceful_stop_signal: str = "SIGTERM"

    display: str = field(default_factory=_env_display)
    input_flags: Optional[str] = field(default_factory=_env_input_flags)
    test_mode: bool = field(default_factory=_env_test_mode)

    protocol: IngestProtocol = field(init=False)

    def __post_init__(self) -> None:
        """Normalize and validate; classify the ingest protocol."""
        object.__setattr__(self, "extra_ffmpeg", tuple(self.extra_ffmpeg))
        if not self.url:
            object.__setattr__(self, "url", DEMO_PAGE)
        self._validate()
        object.__setattr__(self, "protocol", classify_ingest(self.ingest))

    def _validate(self) -> None:
        if not self.ingest or not self.ingest.strip():
            raise ConfigurationError("An ingest destination is required")

        for name in ("width", "height", "fps"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        if self.reconnect_attempts < 0:
            raise ConfigurationError("reconnect_attempts must be >= 0 (0 = unbounded)")
        if self.reconnect_initial_delay_ms <= 0 or self.reconnect_max_delay_ms <= 0:
            raise ConfigurationError("Reconnect delays must be positive")
        if self.reconnect_initial_delay_ms > self.reconnect_max_delay_ms:
            raise ConfigurationError(
                f"reconnect_initial_delay_ms ({self.reconnect_initial_delay_ms}) must not exceed "
                f"reconnect_max_delay_ms ({self.reconnect_max_delay_ms})"
            )

        if self.crop_infobar < 0:
            raise ConfigurationError("crop_infobar must be >= 0")
        if self.health_interval_seconds < 0 or self.auto_refresh_seconds < 0:
            raise ConfigurationError("Intervals must be >= 0 (0 = disabled)")
        if not self.video_bitrate:
            raise ConfigurationError("video_bitrate is required")

        for name in ("refresh_signal", "graceful_stop_signal"):
            signal_name = getattr(self, name)
            if not isinstance(getattr(signal, signal_name, None), signal.Signals):
                raise ConfigurationError(f"Unknown signal for {name}: {signal_name!r}")

    @property
    def capture_mode(self) -> CaptureMode:
        return CaptureMode.FILE if self.video_file else CaptureMode.PAGE

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_bitrate)

    def startup_message(self) -> str:
        """One-line summary logged before anything is launched."""
        geometry = f"{self.width}x{self.height}@{self.fps}fps"
        if self.capture_mode == CaptureMode.FILE:
            loop = ", loop" if self.video_loop else ""
            return (
                f"Streaming video file '{self.video_file}' to ingest "
                f"'{self.ingest}' ({geometry}{loop})"
            )
        return f"Streaming page '{self.url}' to ingest '{self.ingest}' ({geometry})"


def _positive_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def reconcile_display_size(
    config: StreamConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> StreamConfig:
    """Match the capture geometry to the virtual display size.

    When WIDTH and HEIGHT are both set in the environment (the Xvfb screen
    size) and differ from the requested geometry, the environment wins:
    x11grab fails hard when the capture area lies outside the screen.

    Args:
        config: Requested configuration
        environ: Environment mapping, defaults to os.environ

    Returns:
        The same config, or a copy with the display geometry
    """
    env = os.environ if environ is None else environ
    env_width = _positive_int(env.get("WIDTH"))
    env_height = _positive_int(env.get("HEIGHT"))
    if env_width is None or env_height is None:
        return config
    if (env_width, env_height) == (config.width, config.height):
        return config

    logger.warning(
        f"[DISPLAY] Requested capture {config.width}x{config.height} overridden to match "
        f"Xvfb env {env_width}x{env_height}."
    )
    logger.warning(
        "[DISPLAY] Differing sizes cause ffmpeg x11grab errors (capture area outside screen). "
        "Pass matching --width/--height, unset WIDTH/HEIGHT, or set both to the same resolution."
    )
    return dataclasses.replace(config, width=env_width, height=env_height)
