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

"""Ingest destination classification and process exit codes.

The ingest URI is classified exactly once, when the configuration is
built. Every later decision (retry eligibility, troubleshooting text,
the protocol name in health records) reads the resulting enum instead
of re-inspecting the URI string.
"""

from __future__ import annotations

import re
from enum import Enum, IntEnum
from typing import List

_SRT_RE = re.compile(r"^srt://", re.IGNORECASE)
_RTMP_RE = re.compile(r"^rtmps?://", re.IGNORECASE)
_SRT_HOST_RE = re.compile(r"^srt://(\[[^\]]+\]|[^:/?]+)(?::(\d+))?", re.IGNORECASE)


class ExitCode(IntEnum):
    """Reserved process exit codes."""

    OK = 0
    FAILURE = 1
    RECONNECT_EXHAUSTED = 10
    NON_RETRYABLE = 11


class IngestProtocol(str, Enum):
    """Closed set of ingest protocol families."""

    SRT = "srt"      # UDP-based, reconnect-capable
    RTMP = "rtmp"    # TCP-based (rtmp:// and rtmps://), reconnect-capable
    OTHER = "other"  # files, pipes, anything else: never retried

    @property
    def retry_eligible(self) -> bool:
        return self in (IngestProtocol.SRT, IngestProtocol.RTMP)

    @property
    def display_name(self) -> str:
        if self == IngestProtocol.SRT:
            return "SRT"
        if self == IngestProtocol.RTMP:
            return "RTMP"
        return "INGEST"


def classify_ingest(ingest: str) -> IngestProtocol:
    """Map an ingest URI to its protocol family."""
    if _SRT_RE.match(ingest):
        return IngestProtocol.SRT
    if _RTMP_RE.match(ingest):
        return IngestProtocol.RTMP
    return IngestProtocol.OTHER


def _quoted(ingest: str) -> str:
    return ingest.replace('"', '\\"')


def troubleshooting_guidance(protocol: IngestProtocol, ingest: str) -> List[str]:
    """Return remediation hints shown when reconnect attempts are exhausted.

    Args:
        protocol: Classified protocol of the ingest
        ingest: The ingest URI, used to fill in example commands

    Returns:
        Lines of guidance, empty for protocols that are never retried
    """
    if protocol == IngestProtocol.SRT:
        match = _SRT_HOST_RE.match(ingest)
        host = match.group(1) if match and match.group(1) else "HOST"
        port = match.group(2) if match and match.group(2) else "PORT"
        return [
            "SRT connection failed permanently. Troubleshooting suggestions:",
            f"  - Verify the ingest listener is running and accessible: srt://{host}:{port}",
            "  - Confirm any firewalls / security groups allow UDP on the SRT port.",
            "  - Check that the streamid or query params are correct for the target provider.",
            "  - Test locally:",
            f'      ffmpeg -loglevel info -f mpegts -i "{_quoted(ingest)}" -f null -',
            "  - Or run a local listener to validate output:",
            '      ffmpeg -f mpegts -i "srt://:9000?mode=listener" -f null -',
            '  - Increase verbosity with: --extra-ffmpeg="-loglevel verbose"',
            "  - Enable infinite retries: --reconnect-attempts 0",
        ]
    if protocol == IngestProtocol.RTMP:
        return [
            "RTMP connection failed permanently. Troubleshooting suggestions:",
            "  - Verify the RTMP endpoint is reachable (TCP) and the stream key/path is correct.",
            "  - Check for required application context (e.g. rtmp://host/app/KEY).",
            "  - Validate with a simple publish test:",
            "      ffmpeg -re -f lavfi -i testsrc=size=1280x720:rate=30 -f lavfi -i anullsrc "
            f'-c:v libx264 -t 5 -f flv "{_quoted(ingest)}"',
            "  - Some services require flv muxing: use --format flv",
            '  - Increase verbosity with: --extra-ffmpeg="-loglevel verbose"',
        ]
    return []
