"""Shared pytest fixtures for dihandle tests."""

import pytest

from dihandle.container import Container


@pytest.fixture()
def container() -> Container:
    """Container without parents or metadata."""
    return Container()
