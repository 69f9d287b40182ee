"""
Shared Blocks -- Registry

Owns every shared block entity, keyed by id. Reference nodes hold only the
id; everything that needs a block's content comes through here.

Blocks are created with a temporary id and promoted to the permanent id the
storage assigns on first successful save. Temporary ids are replaced, never
aliased: once promoted, the temporary id is gone from the registry and a
PROMOTED event tells subscribers (catalog, open documents) to follow.

This is where IO happens. save() and delete() await the storage; everything
else is synchronous. Operations on one block are serialised by a per-block
asyncio lock that follows the block across promotion.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from typing import TypeVar

from sharedblocks.config import settings
from sharedblocks.errors import NotFound, PersistenceFailure
from sharedblocks.storage import SharedBlockStorage
from sharedblocks.types import (
    CREATED,
    DELETED,
    PROMOTED,
    UPDATED,
    ContentNode,
    RegistryEvent,
    SharedBlock,
    clone_nodes,
    new_temporary_id,
    now_iso,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[RegistryEvent], None]


class SharedBlockRegistry:
    """
    The set of shared block entities for one storage.
    Subscribers are notified synchronously, inside the call that caused the change.
    """

    def __init__(self, storage: SharedBlockStorage, *, retries: int | None = None):
        self._storage = storage
        self._retries = settings.SAVE_RETRIES if retries is None else retries
        self._blocks: dict[str, SharedBlock] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Bumped on every in-memory change; lets save() tell whether the
        # block was edited again while its round trip was in flight.
        self._revisions: dict[str, int] = {}
        self._listeners: list[Listener] = []

    # -- subscriptions --

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, entity_id: str, previous_id: str | None = None) -> None:
        event = RegistryEvent(kind=kind, entity_id=entity_id, previous_id=previous_id)
        for listener in list(self._listeners):
            listener(event)

    def _get_lock(self, entity_id: str) -> asyncio.Lock:
        """Per-block asyncio lock for single-instance serialization."""
        if entity_id not in self._locks:
            self._locks[entity_id] = asyncio.Lock()
        return self._locks[entity_id]

    def _touch(self, block: SharedBlock) -> None:
        block.updated_at = now_iso()
        self._revisions[block.id] = self._revisions.get(block.id, 0) + 1

    # -- reads --

    def get(self, entity_id: str) -> SharedBlock:
        """The live entity. Callers must not hold on to it past one operation."""
        block = self._blocks.get(entity_id)
        if block is None:
            raise NotFound(f"Shared block '{entity_id}' not found")
        return block

    def find(self, entity_id: str | None) -> SharedBlock | None:
        if entity_id is None:
            return None
        return self._blocks.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._blocks

    def __iter__(self) -> Iterator[SharedBlock]:
        return iter(list(self._blocks.values()))

    def __len__(self) -> int:
        return len(self._blocks)

    def is_saving(self, entity_id: str) -> bool:
        lock = self._locks.get(entity_id)
        return lock is not None and lock.locked()

    # -- in-memory mutations --

    def create_from_content(self, content: Iterable[ContentNode]) -> str:
        """
        Store a copy of content as a new, unsaved block.
        No persistence happens until save().
        """
        block = SharedBlock(
            id=new_temporary_id(),
            title="",
            content=clone_nodes(content),
            is_temporary=True,
            is_dirty=True,
        )
        self._blocks[block.id] = block
        self._touch(block)
        logger.info("Created shared block %s (%d node(s))", block.id, len(block.content))
        self._emit(CREATED, block.id)
        return block.id

    def update_content(self, entity_id: str, content: Iterable[ContentNode]) -> None:
        block = self.get(entity_id)
        block.content = clone_nodes(content)
        block.is_dirty = True
        self._touch(block)
        self._emit(UPDATED, block.id)

    def update_title(self, entity_id: str, title: str) -> None:
        block = self.get(entity_id)
        block.title = title
        block.is_dirty = True
        self._touch(block)
        self._emit(UPDATED, block.id)

    # -- persistence --

    async def save(
        self,
        entity_id: str,
        title: str | None = None,
        content: Iterable[ContentNode] | None = None,
    ) -> SharedBlock:
        """
        Persist a block, optionally with a new title and/or content.

        The registry copy only changes once storage confirms. A temporary block
        is promoted to its permanent id. On failure nothing changes and
        PersistenceFailure propagates.

        A save issued while another save for the same block is in flight waits
        for it (FIFO), so storage always sees complete drafts, in order.
        """
        block = self.get(entity_id)
        async with self._get_lock(block.id):
            if self._blocks.get(block.id) is not block:
                raise NotFound(f"Shared block '{entity_id}' was deleted before it could be saved")

            candidate = SharedBlock(
                id=block.id,
                title=block.title if title is None else title,
                content=clone_nodes(block.content if content is None else content),
                is_temporary=block.is_temporary,
                is_dirty=True,
                updated_at=block.updated_at,
            )
            revision = self._revisions.get(block.id, 0)

            permanent_id = await self._with_retries(
                f"save {block.id}",
                lambda: self._storage.persist_create_or_update(candidate),
            )

            edited_meanwhile = self._revisions.get(block.id, 0) != revision
            if title is not None or not edited_meanwhile:
                block.title = candidate.title
            if content is not None or not edited_meanwhile:
                block.content = candidate.content
            block.is_dirty = edited_meanwhile
            self._touch(block)

            if block.is_temporary:
                self._promote(block, permanent_id)

            logger.info("Saved shared block %s", block.id)
            self._emit(UPDATED, block.id)
            return block

    def _promote(self, block: SharedBlock, permanent_id: str) -> None:
        previous_id = block.id
        del self._blocks[previous_id]
        block.id = permanent_id
        block.is_temporary = False
        self._blocks[permanent_id] = block
        self._locks[permanent_id] = self._locks.pop(previous_id)
        self._revisions[permanent_id] = self._revisions.pop(previous_id, 0)
        logger.info("Promoted shared block %s -> %s", previous_id, permanent_id)
        self._emit(PROMOTED, permanent_id, previous_id=previous_id)

    async def delete(self, entity_id: str) -> None:
        """
        Delete from storage, then from the registry.
        Blocks that were never saved skip the storage call.
        """
        block = self.get(entity_id)
        async with self._get_lock(block.id):
            if self._blocks.get(block.id) is not block:
                raise NotFound(f"Shared block '{entity_id}' not found")

            if not block.is_temporary:
                await self._with_retries(
                    f"delete {block.id}",
                    lambda: self._storage.persist_delete(block.id),
                )

            del self._blocks[block.id]
            self._revisions.pop(block.id, None)
        self._locks.pop(block.id, None)
        logger.info("Deleted shared block %s", block.id)
        self._emit(DELETED, block.id)

    async def fetch_all(self) -> list[str]:
        """
        Load every persisted block. Blocks with unsaved local changes or a
        save in flight keep their local state. Returns the ids loaded.
        """
        stored = await self._storage.fetch_all()
        return [block.id for block in stored if self._merge(block)]

    async def fetch(self, entity_id: str) -> SharedBlock:
        stored = await self._storage.fetch(entity_id)
        if stored is None:
            raise NotFound(f"Shared block '{entity_id}' not found in storage")
        self._merge(stored)
        return self.get(stored.id)

    def _merge(self, stored: SharedBlock) -> bool:
        existing = self._blocks.get(stored.id)
        if existing is None:
            self._blocks[stored.id] = stored
            self._revisions[stored.id] = 0
            self._emit(CREATED, stored.id)
            return True

        if existing.is_dirty or self.is_saving(existing.id):
            logger.debug("Kept local draft of shared block %s over fetched copy", existing.id)
            return False

        existing.title = stored.title
        existing.content = stored.content
        existing.is_dirty = False
        self._touch(existing)
        self._emit(UPDATED, existing.id)
        return True

    async def _with_retries(self, what: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Retry storage failures. Anything else is a bug and propagates as is."""
        attempt = 0
        while True:
            try:
                return await operation()
            except (PersistenceFailure, OSError) as e:
                failure = e if isinstance(e, PersistenceFailure) else PersistenceFailure(f"{what} failed: {e}")
                if attempt >= self._retries:
                    logger.warning("Giving up on %s after %d attempt(s): %s", what, attempt + 1, e)
                    if failure is e:
                        raise
                    raise failure from e
                attempt += 1
                logger.warning("Retrying %s (attempt %d): %s", what, attempt + 1, e)
