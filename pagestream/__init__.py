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
page-stream - Stream a web page or a video file to a live ingest.

A Chromium window (driven by Playwright) is captured from an X display by
ffmpeg and pushed to an SRT, RTMP or other ffmpeg-supported destination.
Encoder exits are retried with exponential backoff for reconnect-capable
protocols; health records and page refreshes run on timers.
"""

__version__ = "0.4.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from pagestream.core.config import CaptureMode, StreamConfig
from pagestream.core.ingest import ExitCode, IngestProtocol
from pagestream.exceptions import (
    BrowserError,
    ConfigurationError,
    EncoderError,
    InjectionError,
    NavigationError,
    PageStreamError,
)
from pagestream.streamer import PageStreamer

__all__ = [
    # Core
    "CaptureMode",
    "ExitCode",
    "IngestProtocol",
    "PageStreamer",
    "StreamConfig",
    # Exceptions
    "BrowserError",
    "ConfigurationError",
    "EncoderError",
    "InjectionError",
    "NavigationError",
    "PageStreamError",
]
