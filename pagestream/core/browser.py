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
Browser session management for page-stream.

This module provides the BrowserSession class which owns the Chromium
instance whose window is captured by ffmpeg. It handles:
- Resolving the page target (URL, local file, or bundled demo page)
- Launching Chromium normally or in app mode with an ephemeral profile
- Hiding automation indicators (banner text, navigator.webdriver)
- CSS/JS injection, fullscreen activation and page refresh
- Best-effort teardown of page, context, browser and profile directory

Everything after the initial launch is best-effort: failures are logged
and never propagate into the encoder restart or teardown paths.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, List, Optional
from urllib.parse import unquote, urlparse

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from pagestream.core.config import DEMO_PAGE, StreamConfig
from pagestream.core.infobar import dismiss_infobar
from pagestream.exceptions import BrowserError, InjectionError, NavigationError
from pagestream.utils.files import read_file_with_retry
from pagestream.utils.logger import logger

_NETWORK_URL_RE = re.compile(r"^https?://", re.IGNORECASE)

# Installed as an init script: hides any element showing the "controlled
# by automated test software" text (re-checked on every DOM mutation) and
# masks navigator.webdriver.
AUTOMATION_SUPPRESSION_SCRIPT = r"""
(() => {
  try {
    const needle = /is being controlled by automated test software/i;
    const hide = () => {
      const root = document.body || document.documentElement;
      if (!root) return;
      const walker = document.createTreeWalker(root, NodeFilter.SHOW_ELEMENT);
      while (walker.nextNode()) {
        const el = walker.currentNode;
        if (!el || !needle.test(el.innerText || '')) continue;
        const childMatches = Array.from(el.children).some(c => needle.test(c.innerText || ''));
        if (!childMatches) {
          el.style.display = 'none';
          el.setAttribute('data-automation-hidden', '1');
        }
      }
    };
    const observe = () => {
      hide();
      new MutationObserver(hide).observe(document.documentElement, { childList: true, subtree: true });
    };
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    if (document.documentElement) observe();
    else document.addEventListener('DOMContentLoaded', observe);
  } catch (e) {}
})();
"""

FOCUS_SCRIPT = "() => { if (document.body) document.body.focus(); }"
FULLSCREEN_SCRIPT = (
    "() => { const el = document.documentElement;"
    " if (el && el.requestFullscreen) el.requestFullscreen().catch(() => {}); }"
)


def resolve_page_url(target: str) -> str:
    """Turn the configured page target into a navigable URL.

    http(s) URLs are returned unchanged. Local paths (or file:// URLs) that
    exist become file:// URLs. Anything else falls back to the bundled
    demo page.
    """
    if _NETWORK_URL_RE.match(target):
        return target
    if target.lower().startswith("file://"):
        if Path(unquote(urlparse(target).path)).exists():
            return target
    elif Path(target).exists():
        return Path(target).resolve().as_uri()

    logger.warning(f"[BROWSER] Provided URL not found locally, falling back to demo page: {target}")
    return Path(DEMO_PAGE).resolve().as_uri()


def chromium_args(config: StreamConfig, start_url: str) -> List[str]:
    """Chromium command-line switches for the configured capture mode."""
    args = [
        "--disable-dev-shm-usage",
        "--no-sandbox",
        f"--window-size={config.width},{config.height}",
    ]
    if config.fullscreen:
        args.extend([
            "--kiosk",
            "--start-fullscreen",
            "--hide-scrollbars",
            "--disable-infobars",
            "--autoplay-policy=no-user-gesture-required",
        ])
    if config.app_mode:
        args.extend([
            f"--app={start_url}",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-features=TranslateUI",
            "--disable-translate",
        ])
    if config.suppress_automation_banner:
        args.append("--disable-blink-features=AutomationControlled")
    return args


@dataclass
class BrowserSessionState:
    """Mutable session state. Only BrowserSession writes to it."""

    playwright: Any = None
    browser: Optional[Browser] = None
    context: Optional[BrowserContext] = None
    page: Optional[Page] = None
    persistent: bool = False
    suppression_installed: bool = False
    refreshing: bool = False
    user_data_dir: Optional[str] = None
    infobar_task: Optional[asyncio.Task] = None
    infobar_dismiss_tried: bool = False


class BrowserSession:
    """
    Owns the Chromium window that is streamed.

    Attributes:
        config: Stream configuration
        state: Session state (context, page, flags, profile directory)
        url: Resolved start URL, set by launch()

    Example:
        >>> session = BrowserSession(config)
        >>> await session.launch()
        >>> await session.refresh()
        >>> await session.close()
    """

    def __init__(self, config: StreamConfig) -> None:
        self.config = config
        self.state = BrowserSessionState()
        self.url: Optional[str] = None

    @property
    def page(self) -> Page:
        """Get the streamed page."""
        if not self.state.page:
            raise BrowserError("No active page. Call launch() first.")
        return self.state.page

    @property
    def context(self) -> BrowserContext:
        """Get the browser context."""
        if not self.state.context:
            raise BrowserError("Browser context not initialized. Call launch() first.")
        return self.state.context

    async def launch(self) -> None:
        """
        Start Chromium and open the streamed page.

        In app mode a persistent context is launched on a fresh temporary
        profile so Chromium honours --app; otherwise an ordinary browser
        and context are used. Injection, fullscreen and infobar dismissal
        follow as best-effort steps.

        Raises:
            BrowserError: If Chromium or the page cannot be started
            NavigationError: If the start URL cannot be loaded
        """
        config = self.config
        start_url = resolve_page_url(config.url)
        self.url = start_url
        viewport = {"width": config.width, "height": config.height}
        launch_options: dict = {
            "headless": config.headless,
            "args": chromium_args(config, start_url),
        }
        if config.suppress_automation_banner:
            launch_options["ignore_default_args"] = ["--enable-automation"]

        try:
            logger.info(
                f"[BROWSER] Starting chromium (headless={config.headless}, "
                f"app_mode={config.app_mode}, fullscreen={config.fullscreen})"
            )
            self.state.playwright = await async_playwright().start()
            chromium = self.state.playwright.chromium

            if config.app_mode:
                self.state.user_data_dir = tempfile.mkdtemp(prefix="pgstream-")
                context = await chromium.launch_persistent_context(
                    self.state.user_data_dir, viewport=viewport, **launch_options
                )
                self.state.context = context
                self.state.persistent = True
                if config.suppress_automation_banner:
                    await self.install_automation_suppression(context)
                # The --app window is normally the first page
                page = context.pages[0] if context.pages else None
                if page is None:
                    page = await context.new_page()
                    self.state.page = page
                    await self._navigate(page, start_url)
                else:
                    self.state.page = page
                    await self._best_effort("wait for app window load", page.wait_for_load_state("load"))
            else:
                browser = await chromium.launch(**launch_options)
                self.state.browser = browser
                context = await browser.new_context(viewport=viewport)
                self.state.context = context
                if config.suppress_automation_banner:
                    await self.install_automation_suppression(context)
                page = await context.new_page()
                self.state.page = page
                await self._navigate(page, start_url)

            logger.info(f"[BROWSER] Browser started on {start_url}")
        except BrowserError:
            raise
        except Exception as e:
            logger.error(f"[BROWSER] Failed to start browser: {e}")
            raise BrowserError(f"Failed to start browser: {e}") from e

        await self.inject_assets()
        if config.fullscreen:
            await self.activate_fullscreen()
        if config.auto_dismiss_infobar:
            self.start_infobar_dismissal()

    async def _navigate(self, page: Page, url: str) -> None:
        try:
            logger.info(f"[BROWSER] Navigating to {url}")
            await page.goto(url, wait_until="load")
        except Exception as e:
            logger.error(f"[BROWSER] Navigation failed: {e}")
            raise NavigationError(f"Failed to navigate to {url}: {e}") from e

    async def _best_effort(
        self,
        description: str,
        operation: Awaitable[Any],
        level: int = logging.DEBUG,
    ) -> bool:
        """Await an operation whose failure must not propagate.

        Returns:
            True if it completed, False if it raised (the error is logged)
        """
        try:
            await operation
            return True
        except Exception as e:
            logger.log(level, f"[BROWSER] {description} failed: {e}")
            return False

    def _log_task_failure(self, description: str):
        def _done(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.debug(f"[BROWSER] {description} failed: {error}")
        return _done

    async def install_automation_suppression(self, context: BrowserContext) -> bool:
        """Hide automation indicators in every page of ``context``.

        Installed at most once per session. The init script covers pages
        created later; open pages get it attached and evaluated directly.

        Returns:
            True if the hook was installed by this call
        """
        if self.state.suppression_installed:
            return False
        self.state.suppression_installed = True

        installed = await self._best_effort(
            "automation banner suppression",
            context.add_init_script(script=AUTOMATION_SUPPRESSION_SCRIPT),
            level=logging.WARNING,
        )
        if not installed:
            return False

        for page in context.pages:
            await self._best_effort(
                "suppression hook on open page",
                page.add_init_script(script=AUTOMATION_SUPPRESSION_SCRIPT),
            )
            await self._best_effort(
                "suppression on open page",
                page.evaluate(AUTOMATION_SUPPRESSION_SCRIPT),
            )
        context.on("page", self._on_new_page)
        logger.debug("[BROWSER] Automation banner suppression installed")
        return True

    def _on_new_page(self, page: Page) -> None:
        task = asyncio.ensure_future(page.add_init_script(script=AUTOMATION_SUPPRESSION_SCRIPT))
        task.add_done_callback(self._log_task_failure("suppression hook on new page"))

    async def inject_file(self, kind: str, path: str) -> None:
        """
        Inject a stylesheet ("css") or script ("js") file into the page.

        Args:
            kind: "css" or "js"
            path: File to read (retried briefly if not yet written)

        Raises:
            InjectionError: If the file cannot be read or injected
        """
        try:
            content = await read_file_with_retry(path)
            if kind == "css":
                await self.page.add_style_tag(content=content)
            else:
                await self.page.add_script_tag(content=content)
        except Exception as e:
            raise InjectionError(f"Failed to inject {kind.upper()} from {path}: {e}") from e

    async def inject_assets(self) -> bool:
        """Inject configured CSS/JS. Failures are logged, not raised.

        Returns:
            True if every configured file was injected
        """
        ok = True
        for kind, path in (("css", self.config.inject_css), ("js", self.config.inject_js)):
            if not path:
                continue
            try:
                await self.inject_file(kind, path)
                logger.info(f"[BROWSER] Injected {kind.upper()} from {path}")
            except InjectionError as e:
                logger.error(f"[BROWSER] {e}")
                ok = False
        return ok

    async def activate_fullscreen(self) -> bool:
        """Ask the page, then the window, to go fullscreen (best effort)."""
        page = self.state.page
        if page is None:
            return False
        results = [
            await self._best_effort("focus page", page.evaluate(FOCUS_SCRIPT)),
            await self._best_effort("requestFullscreen", page.evaluate(FULLSCREEN_SCRIPT)),
            await self._best_effort("F11 key press", page.keyboard.press("F11")),
        ]
        return any(results)

    def start_infobar_dismissal(self) -> None:
        """Start the xdotool infobar sweep once per session."""
        if self.state.infobar_dismiss_tried:
            return
        self.state.infobar_dismiss_tried = True
        task = asyncio.create_task(dismiss_infobar(self.config.width, self.config.height))
        task.add_done_callback(self._log_task_failure("xdotool infobar dismissal"))
        self.state.infobar_task = task

    async def refresh(self) -> bool:
        """
        Reload the page and re-apply CSS/JS injection.

        A refresh already in progress makes this call a no-op.

        Returns:
            True if a reload ran, False if it was skipped

        Raises:
            Exception: Whatever Playwright raised while reloading
        """
        if self.state.refreshing:
            logger.debug("[BROWSER] Refresh already in progress, skipping")
            return False
        page = self.state.page
        if page is None:
            return False

        self.state.refreshing = True
        try:
            logger.info("[BROWSER] Refreshing streamed page...")
            await page.reload(wait_until="networkidle")
            await self.inject_assets()
            logger.info("[BROWSER] Refresh complete.")
            return True
        finally:
            self.state.refreshing = False

    async def close(self) -> None:
        """
        Close page, context and browser and remove the temporary profile.

        Each step runs even if an earlier one failed.
        """
        state = self.state
        logger.info("[BROWSER] Closing browser session")

        task = state.infobar_task
        state.infobar_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if state.page is not None:
            await self._best_effort("close page", state.page.close(), level=logging.WARNING)
        if state.context is not None:
            await self._best_effort("close context", state.context.close(), level=logging.WARNING)
        if state.browser is not None:
            await self._best_effort("close browser", state.browser.close(), level=logging.WARNING)
        if state.playwright is not None:
            await self._best_effort("stop playwright", state.playwright.stop(), level=logging.WARNING)

        if state.user_data_dir:
            try:
                shutil.rmtree(state.user_data_dir)
            except OSError as e:
                logger.warning(f"[BROWSER] Failed to remove profile {state.user_data_dir}: {e}")

        state.page = None
        state.context = None
        state.browser = None
        state.playwright = None
        state.user_data_dir = None
