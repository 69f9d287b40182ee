"""
Shared Blocks -- Inserter Catalog

Search index over insertable shared blocks, one entry per registry entity.
Kept in sync by subscribing to registry events; every update happens inside
the registry call that caused it, so search never lags the registry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from itertools import count

from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.types import (
    CREATED,
    DELETED,
    PROMOTED,
    UPDATED,
    InserterEntry,
    RegistryEvent,
    SharedBlock,
)

logger = logging.getLogger(__name__)


def make_entry(block: SharedBlock, modified: int = 0) -> InserterEntry:
    label = block.label
    return InserterEntry(
        label=label,
        match_tokens=tuple(label.lower().split()),
        target_id=block.id,
        modified=modified,
    )


class InserterCatalog:
    def __init__(self, registry: SharedBlockRegistry | None = None):
        self._entries: dict[str, InserterEntry] = {}
        self._clock = count(1)
        self._registry = registry
        if registry is not None:
            for block in registry:
                self.index(block)
            registry.subscribe(self.handle)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def get(self, entity_id: str) -> InserterEntry | None:
        return self._entries.get(entity_id)

    def index(self, block: SharedBlock) -> InserterEntry:
        """Add or regenerate the entry for a block."""
        entry = make_entry(block, next(self._clock))
        self._entries[block.id] = entry
        return entry

    def remove(self, entity_id: str) -> None:
        self._entries.pop(entity_id, None)

    def search(self, query: str = "") -> Iterator[InserterEntry]:
        """
        Entries whose label contains query (case-insensitive), most recently
        modified first, ties by label.
        """
        needle = query.lower()
        matches = [e for e in self._entries.values() if needle in e.label.lower()]
        matches.sort(key=lambda e: (-e.modified, e.label))
        yield from matches

    def handle(self, event: RegistryEvent) -> None:
        """Registry subscriber."""
        if event.kind == DELETED:
            self.remove(event.entity_id)
        elif event.kind == PROMOTED:
            entry = self._entries.pop(event.previous_id, None)
            if entry is not None:
                entry.target_id = event.entity_id
                self._entries[event.entity_id] = entry
        elif event.kind in (CREATED, UPDATED) and self._registry is not None:
            block = self._registry.find(event.entity_id)
            if block is not None:
                self.index(block)
        logger.debug("Catalog handled %s for %s", event.kind, event.entity_id)
