"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root; the tests directory itself holds shared fakes.
ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.config import Settings  # noqa: E402


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings without reading ``.env`` and without crawl pauses."""

    def build(**overrides: Any) -> Settings:
        base: dict[str, Any] = {
            "CRAWL_RATE_LIMIT_DELAY": 0,
            "WAIT_POLL_INTERVAL": 0.01,
        }
        base.update(overrides)
        return Settings(_env_file=None, **base)  # type: ignore[arg-type]

    return build
