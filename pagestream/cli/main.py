#!/usr/bin/env python3
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
page-stream CLI.

Stream a web page (local file or URL) or a local video file to an ingest
(SRT/RTMP/etc).

Usage:
    page-stream --ingest URI [--url URL | --video-file FILE] [OPTIONS]

Examples:
    # Stream the bundled demo page over SRT
    page-stream --ingest "srt://127.0.0.1:9000?streamid=test"

    # Stream a dashboard to RTMP, refreshing every 10 minutes
    page-stream -i rtmp://live.example.com/app/KEY --format flv \\
        --url https://dashboard.example.com --auto-refresh-seconds 600

    # Loop a video file
    page-stream -i "srt://ingest:9000" --video-file promo.mp4 --video-loop

    # Extra encoder arguments (use = because the value starts with a dash)
    page-stream -i "srt://ingest:9000" --extra-ffmpeg="-loglevel verbose"

Environment Variables:
    DISPLAY                 X display captured in page mode (default :99)
    WIDTH / HEIGHT          Virtual display size; overrides --width/--height when different
    INPUT_FFMPEG_FLAGS      Raw ffmpeg flags spliced before the first input
    PAGE_STREAM_TEST_MODE   Validate and log, but skip browser/ffmpeg startup
    PAGE_STREAM_LOG_LEVEL   Default for --log-level
    FFMPEG_PATH             Default for --ffmpeg-path
"""

from __future__ import annotations

import argparse
import asyncio
import os
import shlex
import sys
from typing import List, Optional

from pagestream.core.config import StreamConfig
from pagestream.core.ingest import ExitCode
from pagestream.exceptions import PageStreamError
from pagestream.streamer import PageStreamer
from pagestream.utils.logger import LogFormat, configure_logging, logger


def get_version() -> str:
    """Get the page-stream version."""
    try:
        import pagestream
        return getattr(pagestream, "__version__", "unknown")
    except ImportError:
        return "unknown"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="page-stream",
        description="Stream a web page (local file or URL) to an ingest (SRT/RTMP/etc)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"page-stream {get_version()}")

    parser.add_argument(
        "-i", "--ingest",
        required=True,
        help="Ingest URI (e.g. srt://host:port?streamid=... or rtmp://...)",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("-u", "--url", default=None, help="Page URL or local file path (default: demo page)")
    target.add_argument("--video-file", default=None, help="Stream a local video file instead of a page")
    parser.add_argument(
        "--video-loop",
        action="store_true",
        help="Loop the video file indefinitely (only with --video-file)",
    )

    # Geometry and encoding
    parser.add_argument("--width", type=int, default=1280, help="Width (default: 1280)")
    parser.add_argument("--height", type=int, default=720, help="Height (default: 720)")
    parser.add_argument("--fps", type=int, default=30, help="Frames per second (default: 30)")
    parser.add_argument("--preset", default="veryfast", help="x264 preset (default: veryfast)")
    parser.add_argument("--video-bitrate", default="2500k", help="Video bitrate (default: 2500k)")
    parser.add_argument(
        "--audio-bitrate",
        default="128k",
        help="Audio bitrate (default: 128k, empty string disables audio)",
    )
    parser.add_argument("--format", default="mpegts", help="Output container format (default: mpegts)")
    parser.add_argument(
        "--extra-ffmpeg",
        action="append",
        default=[],
        metavar="ARGS",
        help="Extra raw ffmpeg args appended before output; repeatable, shell-split",
    )
    parser.add_argument(
        "--ffmpeg-path",
        default=os.environ.get("FFMPEG_PATH", "ffmpeg"),
        help="ffmpeg binary (default: ffmpeg)",
    )

    # Browser
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Run Chromium headless (nothing is drawn for capture; default: off)",
    )
    parser.add_argument(
        "--fullscreen",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Launch Chromium fullscreen (default: on)",
    )
    parser.add_argument(
        "--app-mode",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Use Chromium app mode with a temporary profile (default: on)",
    )
    parser.add_argument(
        "--suppress-automation-banner",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Hide the Chromium automation banner (default: on)",
    )
    parser.add_argument(
        "--auto-dismiss-infobar",
        action="store_true",
        help="Try to click away the automation infobar with xdotool (best effort)",
    )
    parser.add_argument(
        "--crop-infobar",
        type=int,
        default=0,
        metavar="PX",
        help="Crop this many pixels from the top of the captured video",
    )
    parser.add_argument("--inject-css", default=None, metavar="FILE", help="Inject CSS from file into the page")
    parser.add_argument("--inject-js", default=None, metavar="FILE", help="Inject JavaScript from file into the page")

    # Signals
    parser.add_argument("--refresh-signal", default="SIGHUP", help="Signal that triggers a page refresh")
    parser.add_argument("--graceful-stop-signal", default="SIGTERM", help="Signal that stops gracefully")

    # Reconnect, health, refresh
    parser.add_argument(
        "--reconnect-attempts",
        type=int,
        default=0,
        help="Max reconnect attempts for SRT/RTMP (0 = infinite)",
    )
    parser.add_argument("--reconnect-initial-delay-ms", type=int, default=1000, help="Initial reconnect delay (ms)")
    parser.add_argument("--reconnect-max-delay-ms", type=int, default=15000, help="Max reconnect delay (ms)")
    parser.add_argument(
        "--health-interval-seconds",
        type=float,
        default=30,
        help="Interval for structured health log lines (0 = disable)",
    )
    parser.add_argument(
        "--auto-refresh-seconds",
        type=float,
        default=0,
        help="Refresh the page every N seconds (0 = disable)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        default=os.environ.get("PAGE_STREAM_LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log-format",
        default=LogFormat.TEXT.value,
        choices=[f.value for f in LogFormat],
        help="Log output format (default: text)",
    )
    return parser


def split_extra_args(values: List[str]) -> List[str]:
    """Flatten repeated --extra-ffmpeg values into one argument list."""
    args: List[str] = []
    for value in values:
        args.extend(shlex.split(value))
    return args


def config_from_args(args: argparse.Namespace) -> StreamConfig:
    """
    Build a StreamConfig from parsed arguments.

    Raises:
        ConfigurationError: If the values do not form a valid configuration
    """
    if args.video_loop and not args.video_file:
        logger.warning("--video-loop has no effect without --video-file; ignoring")

    options = dict(
        ingest=args.ingest,
        video_file=args.video_file,
        video_loop=bool(args.video_loop and args.video_file),
        width=args.width,
        height=args.height,
        fps=args.fps,
        preset=args.preset,
        video_bitrate=args.video_bitrate,
        audio_bitrate=args.audio_bitrate or None,
        format=args.format,
        extra_ffmpeg=tuple(split_extra_args(args.extra_ffmpeg)),
        headless=args.headless,
        fullscreen=args.fullscreen,
        app_mode=args.app_mode,
        reconnect_attempts=args.reconnect_attempts,
        reconnect_initial_delay_ms=args.reconnect_initial_delay_ms,
        reconnect_max_delay_ms=args.reconnect_max_delay_ms,
        health_interval_seconds=args.health_interval_seconds,
        auto_refresh_seconds=args.auto_refresh_seconds,
        suppress_automation_banner=args.suppress_automation_banner,
        auto_dismiss_infobar=args.auto_dismiss_infobar,
        crop_infobar=args.crop_infobar,
        inject_css=args.inject_css,
        inject_js=args.inject_js,
        refresh_signal=args.refresh_signal.upper(),
        graceful_stop_signal=args.graceful_stop_signal.upper(),
    )
    if args.url:
        options["url"] = args.url
    return StreamConfig(**options)


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, stream until stopped, and return the exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level, log_format=args.log_format)

    try:
        config = config_from_args(args)
    except PageStreamError as e:
        logger.error(f"Invalid configuration: {e}")
        return int(ExitCode.FAILURE)

    streamer = PageStreamer(config, ffmpeg_path=args.ffmpeg_path)
    try:
        return asyncio.run(streamer.run())
    except PageStreamError as e:
        logger.error(str(e))
        return int(ExitCode.FAILURE)
    except KeyboardInterrupt:
        return int(ExitCode.OK)


def main() -> None:
    """Main entry point for the page-stream command."""
    sys.exit(run())


if __name__ == "__main__":
    main()
