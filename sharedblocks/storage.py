"""
Shared Blocks -- Storage

The persistence collaborator the registry talks to. Content crosses this
boundary as plain dicts (SharedBlock.to_dict) so any backend that can store
JSON round-trips node kind, attributes and child order.

Implement with Postgres for production (postgres_storage.py), or in-memory
for tests.
"""

from __future__ import annotations

import copy
import json
from itertools import count
from typing import Any

from sharedblocks.errors import PersistenceFailure
from sharedblocks.types import SharedBlock, is_temporary_id, now_iso


class SharedBlockStorage:
    """
    Abstract persistence interface.
    Implementations raise PersistenceFailure when a round trip fails.
    """

    async def persist_create_or_update(self, block: SharedBlock) -> str:
        """
        Create the block (temporary id) or update it (permanent id).
        Returns the permanent id.
        """
        raise NotImplementedError

    async def persist_delete(self, permanent_id: str) -> None:
        """Delete a persisted block. Deleting an unknown id is not an error."""
        raise NotImplementedError

    async def fetch(self, permanent_id: str) -> SharedBlock | None:
        """Fetch one persisted block. Returns None if not found."""
        raise NotImplementedError

    async def fetch_all(self) -> list[SharedBlock]:
        """Fetch every persisted block."""
        raise NotImplementedError


class MemoryStorage(SharedBlockStorage):
    """
    In-memory storage for testing.

    Records are kept as JSON text so content goes through a real
    serialisation round trip. `fail_next(n)` makes the next n calls raise
    PersistenceFailure; `history` lists every record written, in order.
    """

    def __init__(self) -> None:
        self.records: dict[str, str] = {}
        self.history: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.calls = 0
        self._ids = count(1)
        self._failures = 0

    def fail_next(self, times: int = 1) -> None:
        self._failures = times

    def _maybe_fail(self, operation: str) -> None:
        self.calls += 1
        if self._failures > 0:
            self._failures -= 1
            raise PersistenceFailure(f"{operation} failed (injected)")

    async def persist_create_or_update(self, block: SharedBlock) -> str:
        self._maybe_fail("persist_create_or_update")
        if is_temporary_id(block.id):
            permanent_id = str(next(self._ids))
        else:
            permanent_id = block.id
        record = block.to_dict()
        record["id"] = permanent_id
        record["updated_at"] = now_iso()
        self.records[permanent_id] = json.dumps(record)
        self.history.append(copy.deepcopy(record))
        return permanent_id

    async def persist_delete(self, permanent_id: str) -> None:
        self._maybe_fail("persist_delete")
        self.records.pop(permanent_id, None)
        self.deleted.append(permanent_id)

    async def fetch(self, permanent_id: str) -> SharedBlock | None:
        self._maybe_fail("fetch")
        raw = self.records.get(permanent_id)
        return SharedBlock.from_dict(json.loads(raw)) if raw is not None else None

    async def fetch_all(self) -> list[SharedBlock]:
        self._maybe_fail("fetch_all")
        return [SharedBlock.from_dict(json.loads(raw)) for raw in self.records.values()]
