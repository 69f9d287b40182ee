"""
Shared Blocks test configuration.

Every test gets its own MemoryStorage; nothing touches a real database
unless DATABASE_URL is set (see test_postgres_storage.py).
"""

import pytest

from sharedblocks.editor import SharedBlockEditor
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.storage import MemoryStorage


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def registry(storage):
    return SharedBlockRegistry(storage, retries=0)


@pytest.fixture
def editor(storage):
    return SharedBlockEditor(storage, delete_policy="detach", retries=0)
