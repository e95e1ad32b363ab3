# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures for page-stream tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pagestream.core.config import StreamConfig

SRT_INGEST = "srt://127.0.0.1:9000?streamid=test"


@pytest.fixture(autouse=True)
def clean_stream_env(monkeypatch):
    """Isolate tests from the environment variables StreamConfig reads."""
    for name in ("INPUT_FFMPEG_FLAGS", "PAGE_STREAM_TEST_MODE", "WIDTH", "HEIGHT", "FFMPEG_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISPLAY", ":99")
    monkeypatch.setenv("PAGE_STREAM_LOG_LEVEL", "info")


@pytest.fixture
def srt_config():
    """Page-mode config streaming to a local SRT listener."""
    return StreamConfig(ingest=SRT_INGEST)


@pytest.fixture
def mock_page():
    """A Playwright Page double with awaitable methods."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.reload = AsyncMock()
    page.evaluate = AsyncMock()
    page.add_init_script = AsyncMock()
    page.add_style_tag = AsyncMock()
    page.add_script_tag = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.close = AsyncMock()
    page.keyboard.press = AsyncMock()
    return page


@pytest.fixture
def mock_context(mock_page):
    """A BrowserContext double with no pages open yet."""
    context = MagicMock()
    context.pages = []
    context.new_page = AsyncMock(return_value=mock_page)
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()
    return context


@pytest.fixture
def mock_playwright(mock_context):
    """A started Playwright instance whose chromium returns the doubles above."""
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=mock_context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.chromium.launch_persistent_context = AsyncMock(return_value=mock_context)
    playwright.stop = AsyncMock()
    return playwright
