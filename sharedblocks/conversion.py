"""
Shared Blocks -- Conversion Engine

Moves content between a document tree and the registry:

  convert_to_shared   regular subtree -> new shared block + reference node
  convert_to_regular  reference node  -> independent copy of the block's content

Both run in one synchronous step, so a reader never sees the tree with
neither the old content nor its replacement.
"""

from __future__ import annotations

from sharedblocks.errors import NotFound
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.resolver import ReferenceResolver
from sharedblocks.tree import DocumentTree
from sharedblocks.types import REFERENCE_KIND, ContentNode, Unresolved, clone_nodes, new_node_id


def make_reference(entity_id: str) -> ContentNode:
    """A fresh reference node pointing at entity_id."""
    return ContentNode(node_id=new_node_id(), kind=REFERENCE_KIND, attributes={"ref": entity_id})


class ConversionEngine:
    def __init__(self, registry: SharedBlockRegistry, resolver: ReferenceResolver | None = None):
        self._registry = registry
        self._resolver = resolver or ReferenceResolver(registry)

    def convert_to_shared(self, tree: DocumentTree, node_id: str) -> str:
        """
        Turn the subtree at node_id into a new (unsaved) shared block and put a
        reference to it where the subtree was. Returns the block's id.
        """
        subtree = tree.get(node_id)
        entity_id = self._registry.create_from_content([subtree])
        tree.replace_node(node_id, make_reference(entity_id))
        return entity_id

    def convert_to_regular(self, tree: DocumentTree, reference: ContentNode) -> ContentNode:
        """
        Replace a reference with a copy of its block's current content.
        The copy gets fresh node ids and shares nothing with the block.

        Returns the first inserted node; blocks holding several top-level
        nodes have all of them spliced in at the reference's position.
        The node is re-read from the tree by id, so a stale copy still
        carrying a pre-promotion id converts what the document holds now.
        """
        current = tree.get(reference.node_id)
        if not current.is_reference:
            raise ValueError(f"Node '{current.node_id}' is not a shared block reference")

        resolution = self._resolver.resolve(current)
        if isinstance(resolution, Unresolved):
            raise NotFound(f"Shared block '{resolution.entity_id}' not found")

        nodes = clone_nodes(resolution.content, fresh_ids=True)
        if not nodes:
            raise ValueError(f"Shared block '{resolution.entity_id}' has no content to convert")
        tree.splice(current.node_id, nodes)
        return nodes[0]
