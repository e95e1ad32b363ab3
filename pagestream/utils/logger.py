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

"""Logging configuration for page-stream."""

import json
import logging
import sys
from enum import Enum
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LogFormat(str, Enum):
    """Output format for log records."""

    TEXT = "text"
    JSON = "json"


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logger(
    name: str = "pagestream",
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    log_format: LogFormat = LogFormat.TEXT,
) -> logging.Logger:
    """
    Setup and configure a logger for page-stream.

    Args:
        name: Logger name
        level: Logging level
        format_string: Custom format string for text log messages
        log_format: TEXT for human-readable lines, JSON for one object per line

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # Create console handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    # Create formatter
    if log_format == LogFormat.JSON:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    handler.setFormatter(formatter)

    # Add handler to logger
    logger.addHandler(handler)

    return logger


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_format: Union[LogFormat, str] = LogFormat.TEXT,
) -> logging.Logger:
    """Re-apply level and format to the shared package logger.

    Called once by the CLI after argument parsing.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    return setup_logger(level=level, log_format=LogFormat(log_format))


# Default logger instance
logger = setup_logger()
