from __future__ import annotations

import pytest

from sample_kit import make_kit
from wireboard import HandlerRegistry
from wireboard.settings import reset_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def kit() -> HandlerRegistry:
    return make_kit()
