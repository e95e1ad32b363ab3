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

"""File helpers used by CSS/JS injection."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Union

from pagestream.utils.logger import logger


async def read_file_with_retry(
    path: Union[str, Path],
    retries: int = 3,
    delay: float = 0.1,
) -> str:
    """Read a UTF-8 text file, retrying while it does not exist yet.

    Injection files may be written by a sidecar at the same moment the
    streamer starts, so a missing file is retried a bounded number of
    times with a fixed delay. Any other error, or a file that is still
    missing after the last attempt, is raised to the caller.

    Args:
        path: File to read
        retries: Total number of attempts (at least one is always made)
        delay: Seconds to wait between attempts

    Returns:
        File contents

    Raises:
        FileNotFoundError: If the file is still missing after all attempts
        OSError: For any other read failure
    """
    attempts = max(1, retries)
    for attempt in range(1, attempts + 1):
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            if attempt >= attempts:
                raise
            logger.debug(f"{path} not found (attempt {attempt}/{attempts}), retrying in {delay}s")
            await asyncio.sleep(delay)
    raise FileNotFoundError(path)
