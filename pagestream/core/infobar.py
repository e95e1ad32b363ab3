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

"""Best-effort dismissal of Chromium's automation infobar.

Uses ``wmctrl`` to raise Chromium windows and ``xdotool`` to click across
the strip where the infobar close button usually sits. Nothing here is
fatal: missing tools or failed clicks only end the sweep.
"""

from __future__ import annotations

import asyncio
import re
from typing import List, Tuple

from pagestream.utils.logger import logger

RIGHT_OFFSETS = (20, 40, 60, 90)
CLICK_ROWS = (10, 14, 18, 22)
MAX_WINDOWS = 8

_WIDTH_RE = re.compile(r"WIDTH=(\d+)")
_HEIGHT_RE = re.compile(r"HEIGHT=(\d+)")


def click_positions(width: int, height: int) -> List[Tuple[int, int]]:
    """Candidate click points: near the right edge plus the centre, per row."""
    xs = [width - offset for offset in RIGHT_OFFSETS if width - offset > 0]
    xs.append(width // 2)
    return [(x, y) for x in xs for y in CLICK_ROWS if y < height]


async def _run(*cmd: str) -> Tuple[int, str]:
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    stdout, _ = await process.communicate()
    return process.returncode, stdout.decode("utf-8", errors="replace")


async def _focus_chromium_windows() -> None:
    try:
        _, listing = await _run("wmctrl", "-lx")
    except FileNotFoundError:
        return
    for line in listing.splitlines():
        if "chromium" in line.lower():
            window_id = line.split()[0]
            await _run("wmctrl", "-ia", window_id)


async def _sweep_window(window_id: str, width: int, height: int) -> None:
    _, geometry = await _run("xdotool", "getwindowgeometry", "--shell", window_id)
    width_match = _WIDTH_RE.search(geometry)
    height_match = _HEIGHT_RE.search(geometry)
    if width_match:
        width = int(width_match.group(1))
    if height_match:
        height = int(height_match.group(1))

    for x, y in click_positions(width, height):
        await _run("xdotool", "mousemove", "--window", window_id, str(x), str(y))
        await _run("xdotool", "click", "1")
    # Escape occasionally closes transient bars
    await _run("xdotool", "key", "--window", window_id, "Escape")


async def dismiss_infobar(width: int, height: int, attempts: int = 7) -> None:
    """Run the click sweep several times while the window settles.

    Args:
        width: Fallback window width when xdotool cannot report geometry
        height: Fallback window height
        attempts: Number of sweeps, spaced 0.7s + 0.45s per attempt
    """
    for attempt in range(attempts):
        await asyncio.sleep(0.7 + attempt * 0.45)
        await _focus_chromium_windows()
        try:
            code, found = await _run("xdotool", "search", "--classname", "chromium")
        except FileNotFoundError:
            logger.info("[INFOBAR] xdotool not installed; skipping infobar dismissal")
            return
        if code != 0 or not found.strip():
            continue
        windows = found.split()[:MAX_WINDOWS]
        logger.debug(f"[INFOBAR] Sweep {attempt + 1}/{attempts} over {len(windows)} window(s)")
        for window_id in windows:
            await _sweep_window(window_id, width, height)
