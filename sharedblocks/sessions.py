"""
Shared Blocks -- Edit Sessions

Per-block draft/save/cancel lifecycle exposed to an editing surface:

  display --begin_edit--> editing --save--> saving --ok--> display
                          editing <--------- saving --PersistenceFailure
                          editing --cancel--> display

The draft is a private copy of title and content. The registry copy is only
touched by save(), and only once storage confirms. Cancelling never talks to
storage.

Mutual exclusion uses a lease per block id (SessionLeases), shared by every
surface of one editor, plus a one-active-session rule per surface.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Literal

from sharedblocks.errors import Busy, InvalidTransition, NotFound
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.types import PROMOTED, ContentNode, RegistryEvent, SharedBlock, clone_nodes

logger = logging.getLogger(__name__)

SessionState = Literal["display", "editing", "saving"]


class SessionLeases:
    """Which session token currently holds each block id."""

    def __init__(self, registry: SharedBlockRegistry | None = None) -> None:
        self._tokens: dict[str, str] = {}
        self._unsubscribe = registry.subscribe(self.handle) if registry is not None else None

    def close(self) -> None:
        """Stop following registry events."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def holder(self, entity_id: str) -> str | None:
        return self._tokens.get(entity_id)

    def acquire(self, entity_id: str, token: str) -> None:
        current = self._tokens.get(entity_id)
        if current is not None and current != token:
            raise Busy(f"Shared block '{entity_id}' is being edited elsewhere")
        self._tokens[entity_id] = token

    def release(self, entity_id: str, token: str) -> None:
        if self._tokens.get(entity_id) == token:
            del self._tokens[entity_id]

    def handle(self, event: RegistryEvent) -> None:
        """Registry subscriber: a lease follows its block across promotion."""
        if event.kind == PROMOTED and event.previous_id in self._tokens:
            self._tokens[event.entity_id] = self._tokens.pop(event.previous_id)


class EditSession:
    """
    One block's edit session. Created by EditSurface.begin_edit.
    """

    def __init__(self, surface: EditSurface, block: SharedBlock):
        self._surface = surface
        self.token = uuid.uuid4().hex
        self.entity_id = block.id
        self.state: SessionState = "editing"
        self.title = block.title
        self.content: list[ContentNode] = clone_nodes(block.content)
        self.error: Exception | None = None

    @property
    def is_active(self) -> bool:
        return self.state != "display"

    def set_title(self, title: str) -> None:
        self._require("editing", "change the title")
        self.title = title

    def set_content(self, content: Iterable[ContentNode]) -> None:
        self._require("editing", "change the content")
        self.content = clone_nodes(content)

    async def save(self) -> SharedBlock:
        """
        Commit the draft. On PersistenceFailure the session goes back to
        editing with the draft untouched and the error is re-raised.
        """
        self._require("editing", "save")
        self.state = "saving"
        self.error = None
        try:
            block = await self._surface.registry.save(self.entity_id, title=self.title, content=self.content)
        except Exception as e:
            self.state = "editing"
            self.error = e
            logger.warning("Saving shared block %s failed, draft kept: %s", self.entity_id, e)
            raise
        self.entity_id = block.id
        self.state = "display"
        self._surface._finish(self)
        return block

    def cancel(self) -> None:
        """Discard the draft. No storage call is made."""
        self._require("editing", "cancel")
        self.state = "display"
        self._surface._finish(self)
        logger.debug("Cancelled edit of shared block %s", self.entity_id)

    def _require(self, state: SessionState, action: str) -> None:
        if self.state != state:
            raise InvalidTransition(f"Cannot {action} while {self.state}")


class EditSurface:
    """
    One editing surface. At most one block is in editing/saving at a time.
    """

    def __init__(self, registry: SharedBlockRegistry, leases: SessionLeases | None = None):
        self.registry = registry
        self._owns_leases = leases is None
        self.leases = leases if leases is not None else SessionLeases(registry)
        self._active: EditSession | None = None
        self._unsubscribe = registry.subscribe(self._handle)

    @property
    def active(self) -> EditSession | None:
        return self._active

    def state_of(self, entity_id: str) -> SessionState:
        if self._active is not None and self._active.entity_id == entity_id:
            return self._active.state
        return "display"

    def begin_edit(self, entity_id: str) -> EditSession:
        """
        Open a draft over a block. Re-entering the block already being edited
        returns the open session.

        Raises Busy if another block is being edited or saved on this surface,
        if this block is mid-save, or if another surface holds its lease.
        """
        active = self._active
        if active is not None:
            if active.entity_id == entity_id and active.state == "editing":
                return active
            if active.state == "saving":
                raise Busy(f"Shared block '{active.entity_id}' is being saved")
            raise Busy(f"Shared block '{active.entity_id}' is being edited")

        block = self.registry.get(entity_id)
        session = EditSession(self, block)
        self.leases.acquire(block.id, session.token)
        self._active = session
        logger.debug("Editing shared block %s", block.id)
        return session

    def close(self) -> None:
        """Detach from the registry. An open draft is discarded."""
        if self._active is not None and self._active.state == "editing":
            self._active.cancel()
        self._unsubscribe()
        if self._owns_leases:
            self.leases.close()

    def _finish(self, session: EditSession) -> None:
        self.leases.release(session.entity_id, session.token)
        if self._active is session:
            self._active = None

    def _handle(self, event: RegistryEvent) -> None:
        active = self._active
        if active is None:
            return
        if event.kind == PROMOTED and active.entity_id == event.previous_id:
            active.entity_id = event.entity_id
        elif event.entity_id == active.entity_id and event.entity_id not in self.registry:
            # Deleted under an open draft; nothing left to save into.
            active.error = NotFound(f"Shared block '{event.entity_id}' was deleted")
