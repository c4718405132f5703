import logging

import pytest


@pytest.fixture(autouse=True)
def restore_logging():
    """Drop handlers that CLI tests attach to the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
