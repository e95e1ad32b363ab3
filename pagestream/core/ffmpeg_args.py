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

"""FFmpeg argument builder.

Turns a StreamConfig into the argument vector passed to ffmpeg. Ordering
matters to ffmpeg, so the vector is always laid out as:

    [input flags] [input declarations] [encode flags] [user args] -f FORMAT DEST

Input-side options (format, size, pacing, loop, raw INPUT_FFMPEG_FLAGS)
come before the first ``-i``; encode-side options come after every input;
the output format and destination are always the last two entries.

The builder reads nothing but the configuration object. Its only side
effect is logging advisories about the optional crop filter.
"""

from __future__ import annotations

import re
from typing import List, Sequence

from pagestream.core.config import CaptureMode, StreamConfig
from pagestream.utils.logger import logger

USER_VIDEO_FILTER_FLAGS = ("-vf", "-filter:v", "-filter_complex")
SILENT_AUDIO_SOURCE = "anullsrc=channel_layout=stereo:sample_rate=44100"

_BITRATE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)")


def parse_bitrate_kbps(bitrate: str) -> int:
    """Return the numeric part of a bitrate in kilobits.

    "2500k" -> 2500, "2.5M" -> 2500, "3000" -> 3000 (bare numbers are kbps).
    """
    match = _BITRATE_RE.match(bitrate)
    if not match:
        raise ValueError(f"Unparseable bitrate: {bitrate!r}")
    value = float(match.group(1))
    if match.group(2).lower() == "m":
        value *= 1000
    return int(value)


def has_user_video_filter(extra_args: Sequence[str]) -> bool:
    return any(arg in USER_VIDEO_FILTER_FLAGS for arg in extra_args)


def _input_flags(config: StreamConfig) -> List[str]:
    if not config.input_flags:
        return []
    return config.input_flags.split()


def _encode_flags(config: StreamConfig) -> List[str]:
    bufsize = parse_bitrate_kbps(config.video_bitrate) * 2
    args = [
        "-c:v", "libx264",
        "-preset", config.preset,
        "-tune", "zerolatency",
        "-pix_fmt", "yuv420p",
        "-b:v", config.video_bitrate,
        "-maxrate", config.video_bitrate,
        "-bufsize", f"{bufsize}k",
        "-g", str(config.fps * 2),
    ]
    if config.has_audio:
        args.extend(["-c:a", "aac", "-b:a", config.audio_bitrate])
    return args


def _crop_filter(config: StreamConfig) -> List[str]:
    crop = config.crop_infobar
    if crop <= 0:
        return []
    cropped_height = config.height - crop
    if cropped_height <= 0:
        logger.warning(
            f"[CROP] Requested crop ({crop}px) >= height ({config.height}px); ignoring."
        )
        return []
    if has_user_video_filter(config.extra_ffmpeg):
        logger.warning(
            "[CROP] User-provided video filters detected; automatic crop not injected. "
            "Add crop manually if needed (crop=w:h:0:TOP)."
        )
        return []
    return ["-vf", f"crop={config.width}:{cropped_height}:0:{crop}"]


def _build_page_args(config: StreamConfig) -> List[str]:
    args = [
        "-f", "x11grab",
        "-framerate", str(config.fps),
        "-video_size", f"{config.width}x{config.height}",
        "-i", config.display,
    ]
    if config.has_audio:
        # Silent stereo track; many ingests reject video-only streams
        args.extend(["-f", "lavfi", "-i", SILENT_AUDIO_SOURCE])
    args.extend(_encode_flags(config))
    args.extend(_crop_filter(config))
    return args


def _build_file_args(config: StreamConfig) -> List[str]:
    w, h, fps = config.width, config.height, config.fps
    args: List[str] = []
    if config.video_loop:
        args.extend(["-stream_loop", "-1"])
    args.extend(["-re", "-i", config.video_file])
    args.extend(["-map", "0:v:0"])
    if config.has_audio:
        args.extend(["-map", "0:a:0?"])
    # Scale, letterbox, then retime; user filters are not consulted here
    args.extend(["-vf", f"scale={w}:{h},pad={w}:{h},fps={fps}"])
    args.extend(_encode_flags(config))
    return args


def build_ffmpeg_args(config: StreamConfig) -> List[str]:
    """Build the complete ffmpeg argument vector for a configuration.

    Args:
        config: Stream configuration

    Returns:
        Argument vector (without the ffmpeg binary itself)

    Example:
        >>> args = build_ffmpeg_args(StreamConfig(ingest="srt://127.0.0.1:9000"))
        >>> args[-2:]
        ['mpegts', 'srt://127.0.0.1:9000']
    """
    args = _input_flags(config)
    if config.capture_mode == CaptureMode.FILE:
        args.extend(_build_file_args(config))
    else:
        args.extend(_build_page_args(config))
    args.extend(config.extra_ffmpeg)
    args.extend(["-f", config.format, config.ingest])
    return args
