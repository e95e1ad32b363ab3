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

"""Custom exceptions for page-stream.

All exceptions inherit from PageStreamError so callers can catch every
page-stream failure with a single except clause.

Exception Hierarchy:
    PageStreamError (base)
    ├── ConfigurationError - Invalid configuration, detected before startup
    ├── BrowserError - Browser launch and lifecycle errors
    │   └── NavigationError - Page navigation failures
    ├── EncoderError - Encoder (ffmpeg) process could not be spawned
    └── InjectionError - CSS/JS injection failures (never fatal)

Example:
    try:
        config = StreamConfig(ingest="srt://host:9000", width=0)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
"""


class PageStreamError(Exception):
    """Base exception for all page-stream errors."""
    pass


class ConfigurationError(PageStreamError):
    """Exception raised for invalid stream configuration.

    Configuration errors are detected at startup and are not recoverable:
    the process reports them and exits before any subprocess is spawned.

    Examples:
        - Non-positive width, height or fps
        - Initial reconnect delay larger than the maximum delay
        - Unknown refresh or stop signal name
    """
    pass


class BrowserError(PageStreamError):
    """Exception raised for browser-related errors.

    Raised when launching Chromium, creating the browser context, or
    opening the streamed page fails.
    """
    pass


class NavigationError(BrowserError):
    """Exception raised when the streamed page cannot be loaded."""
    pass


class EncoderError(PageStreamError):
    """Exception raised when the encoder process cannot be started.

    Encoder *exits* are not exceptions: they are handled by the
    supervisor's reconnect state machine. This error only covers
    failures to spawn the process at all (missing binary, permissions).
    """
    pass


class InjectionError(PageStreamError):
    """Exception raised when CSS or JavaScript injection fails.

    Injection is best-effort: callers log this error and continue.
    """
    pass
