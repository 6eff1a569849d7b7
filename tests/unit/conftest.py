"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from talfred.api import Runtime

if TYPE_CHECKING:
    from collections.abc import Callable

    from talfred.config import Settings
    from talfred.dom.page import Page


@pytest.fixture
def make_runtime(
    settings: Settings, make_page: Callable[[str], Page]
) -> Callable[[str], Runtime]:
    """Factory for a runtime over a fresh page."""

    def _make(body: str = "") -> Runtime:
        return Runtime(make_page(body), settings)

    return _make
