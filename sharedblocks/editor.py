"""
Shared Blocks -- Editor

Coordinates registry + catalog + resolver + conversion + edit sessions for
one storage, and tracks the documents currently open so that:

- references follow a block when its temporary id is promoted
- deletion can count, keep, or remove references according to policy

Operations: open_document, convert_to_shared, convert_to_regular,
insert_shared_block, delete_shared_block, fetch
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from sharedblocks.catalog import InserterCatalog
from sharedblocks.config import DELETE_POLICIES, settings
from sharedblocks.conversion import ConversionEngine, make_reference
from sharedblocks.errors import BlockInUse
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.resolver import ReferenceResolver
from sharedblocks.sessions import EditSurface, SessionLeases
from sharedblocks.storage import SharedBlockStorage
from sharedblocks.tree import DocumentTree
from sharedblocks.types import PROMOTED, ContentNode, InserterEntry, RegistryEvent, SharedBlock

logger = logging.getLogger(__name__)

# confirm(block, reference_count) -> proceed?
Confirmation = Callable[[SharedBlock, int], bool]


class SharedBlockEditor:
    """
    The shared-block side of an editor.
    Owns nothing but wiring: all block state lives in the registry.
    """

    def __init__(
        self,
        storage: SharedBlockStorage,
        *,
        delete_policy: str | None = None,
        retries: int | None = None,
    ):
        policy = (delete_policy or settings.DELETE_POLICY).lower()
        if policy not in DELETE_POLICIES:
            raise ValueError(f"Unknown delete policy {policy!r}; expected one of {sorted(DELETE_POLICIES)}")

        self.delete_policy = policy
        self.registry = SharedBlockRegistry(storage, retries=retries)
        self.catalog = InserterCatalog(self.registry)
        self.resolver = ReferenceResolver(self.registry)
        self.conversion = ConversionEngine(self.registry, self.resolver)
        self.leases = SessionLeases(self.registry)
        self.surface = EditSurface(self.registry, self.leases)
        self._documents: list[DocumentTree] = []
        self.registry.subscribe(self._handle)

    # -- documents --

    def open_document(self, tree: DocumentTree | None = None) -> DocumentTree:
        tree = tree if tree is not None else DocumentTree()
        if not any(doc is tree for doc in self._documents):
            self._documents.append(tree)
        return tree

    def close_document(self, tree: DocumentTree) -> None:
        self._documents = [doc for doc in self._documents if doc is not tree]

    @property
    def documents(self) -> list[DocumentTree]:
        return list(self._documents)

    def reference_count(self, entity_id: str) -> int:
        """References to entity_id across every open document."""
        return sum(len(doc.references(entity_id)) for doc in self._documents)

    def new_surface(self) -> EditSurface:
        """Another editing surface sharing this editor's leases."""
        return EditSurface(self.registry, self.leases)

    # -- conversions --

    async def convert_to_shared(self, tree: DocumentTree, node_id: str, title: str | None = None) -> SharedBlock:
        """
        Make the node at node_id shared and save it for the first time.

        If the first save fails the reference stays in place, the block stays
        temporary and unsaved with the given title, and PersistenceFailure
        propagates; saving it again from an edit session retries.
        """
        self.open_document(tree)
        entity_id = self.conversion.convert_to_shared(tree, node_id)
        if title is not None:
            self.registry.update_title(entity_id, title)
        surface = EditSurface(self.registry, self.leases)
        try:
            block = await surface.begin_edit(entity_id).save()
        finally:
            surface.close()
        logger.info("Block created: %s (%s)", block.id, block.label)
        return block

    def convert_to_regular(self, tree: DocumentTree, reference: ContentNode) -> ContentNode:
        return self.conversion.convert_to_regular(tree, reference)

    def insert_shared_block(
        self,
        tree: DocumentTree,
        entity_id: str,
        parent_id: str | None = None,
        position: int | None = None,
    ) -> ContentNode:
        """Insert a new reference to an existing block (the inserter action)."""
        self.registry.get(entity_id)
        self.open_document(tree)
        reference = make_reference(entity_id)
        tree.insert(reference, parent_id=parent_id, position=position)
        return reference

    def search(self, query: str = "") -> Iterator[InserterEntry]:
        return self.catalog.search(query)

    # -- deletion --

    async def delete_shared_block(self, entity_id: str, confirm: Confirmation) -> bool:
        """
        Delete a block everywhere, after explicit confirmation.

        confirm(block, reference_count) must return True to proceed; anything
        else leaves everything untouched and returns False. What happens to
        references in open documents depends on the delete policy.
        """
        block = self.registry.get(entity_id)
        count = self.reference_count(block.id)

        if self.delete_policy == "block" and count:
            raise BlockInUse(block.id, count)

        if not confirm(block, count):
            logger.info("Deletion of shared block %s not confirmed", block.id)
            return False

        deleted_id = block.id
        await self.registry.delete(deleted_id)

        if self.delete_policy == "cascade":
            for doc in self._documents:
                doc.remove_nodes([ref.node_id for ref in doc.references(deleted_id)])
            logger.info("Removed %d reference(s) to deleted shared block %s", count, deleted_id)
        return True

    # -- persistence --

    async def fetch(self) -> list[str]:
        """Load every persisted block into the registry (and so the catalog)."""
        return await self.registry.fetch_all()

    def _handle(self, event: RegistryEvent) -> None:
        if event.kind != PROMOTED:
            return
        for doc in self._documents:
            doc.retarget_references(event.previous_id, event.entity_id)
