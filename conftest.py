"""
Root conftest for all tests.

Keeps process-wide state that the service mutates at runtime (logging
handlers, the cached config singleton) from leaking between tests.

IMPORTANT: This file must exist at the project root to be loaded first.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """Restore root logger handlers and level after tests that call configure_logging()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
