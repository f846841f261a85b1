# tests/conftest.py

"""Shared pytest fixtures for all gateway tests."""

import logging
from collections.abc import Generator

import pytest


@pytest.fixture(autouse=True)
def isolate_gateway_logger() -> Generator[None, None, None]:
    """Drop handlers added during a test so runs never share a log file."""
    root_logger = logging.getLogger("search_gateway")
    before = list(root_logger.handlers)
    yield
    for handler in root_logger.handlers:
        if handler not in before:
            handler.close()
    root_logger.handlers = before
