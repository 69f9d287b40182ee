"""
Shared Blocks -- Exceptions

NotFound, Busy, InvalidTransition and DuplicateNodeId are usage errors:
raised immediately, never retried. PersistenceFailure is surfaced to the
editing caller with the draft intact so the user can retry.

An unresolved reference is not an exception; see types.Unresolved.
"""

from __future__ import annotations


class SharedBlockError(Exception):
    """Base class for everything raised by this package."""
    pass


class NotFound(SharedBlockError, KeyError):
    """Id absent from the registry or from a document tree."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class DuplicateNodeId(SharedBlockError):
    """A node id already exists in the target document tree."""
    pass


class Busy(SharedBlockError):
    """Conflicting edit-session request (another entity is being edited or saved)."""
    pass


class InvalidTransition(SharedBlockError):
    """Edit session asked to move between states it cannot move between."""
    pass


class PersistenceFailure(SharedBlockError):
    """Save or delete round trip to the persistence service failed."""
    pass


class BlockInUse(SharedBlockError):
    """Deletion refused because open documents still reference the block."""

    def __init__(self, entity_id: str, reference_count: int):
        super().__init__(f"Shared block {entity_id} is referenced {reference_count} time(s)")
        self.entity_id = entity_id
        self.reference_count = reference_count
