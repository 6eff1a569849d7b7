"""Shared pytest fixtures for talfred tests."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import pytest
from lxml import html as lxml_html

from talfred.config import Settings, get_settings
from talfred.dom.page import Page
from talfred.dom.walker import attach_shadow

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from lxml.html import HtmlElement


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Never let one test's cached Settings leak into another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with short timings so tests do not wait on real defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        runtime={"deactivation_timeout_seconds": 0.2},
        scheduler={
            "tick_seconds": 0.01,
            "default_interval_seconds": 0.02,
            "location_poll_seconds": 0.02,
        },
        debounce={"selection_quiet_seconds": 0.01},
    )


@pytest.fixture
def make_page() -> Callable[[str], Page]:
    """Factory for pages built from a body fragment."""

    def _make(body: str, url: str = "https://example.test/") -> Page:
        return Page(f"<html><body>{body}</body></html>", url=url)

    return _make


def add_shadow(host: HtmlElement, markup: str) -> HtmlElement:
    """Attach an open shadow root to *host* holding *markup*."""
    root = attach_shadow(host)
    for element in lxml_html.fragments_fromstring(markup):
        root.append(element)
    return root


@pytest.fixture
def shadow() -> Callable[[HtmlElement, str], HtmlElement]:
    return add_shadow


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds or the timeout expires."""

    async def _eventually(
        predicate: Callable[[], bool], timeout: float = 2.0, step: float = 0.01
    ) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                pytest.fail(f"condition not met within {timeout}s")
            await asyncio.sleep(step)

    return _eventually
