import os
import sys

import pytest


# Ensure 'src' is on sys.path for package imports in tests
TESTS_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(TESTS_DIR, os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


from imagebuilder.engine.mock import MockDriver  # noqa: E402
from imagebuilder.lifecycle.config import BuildConfig  # noqa: E402
from imagebuilder.lifecycle.state import BuildState  # noqa: E402


@pytest.fixture
def driver():
    return MockDriver()


@pytest.fixture
def make_state(driver):
    """Build a BuildState from raw builder settings."""

    def _make(raw=None, **overrides):
        settings = {"image": "ubuntu:24.04", "commit": True}
        settings.update(raw or {})
        config, _ = BuildConfig.prepare(settings)
        state = BuildState.initial(config, driver)
        for key, value in overrides.items():
            setattr(state, key, value)
        return state

    return _make
