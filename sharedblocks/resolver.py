"""
Shared Blocks -- Reference Resolver

Follows a reference node to its shared block's *current* content. Nothing is
cached: every call reads the registry, so a committed edit shows up through
every reference at once without touching the documents holding them.

A reference to a block that no longer exists resolves to Unresolved, which
renderers show as "block unavailable".
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.tree import DocumentTree
from sharedblocks.types import ContentNode, Resolution, Resolved, Unresolved, clone_nodes


class ReferenceResolver:
    def __init__(self, registry: SharedBlockRegistry):
        self._registry = registry

    def resolve(self, reference: ContentNode) -> Resolution:
        if not reference.is_reference:
            raise ValueError(f"Node '{reference.node_id}' of kind '{reference.kind}' is not a reference")

        block = self._registry.find(reference.ref)
        if block is None:
            return Unresolved(entity_id=reference.ref)
        return Resolved(entity_id=block.id, title=block.title, content=clone_nodes(block.content))

    def resolve_tree(self, tree: DocumentTree) -> Iterator[tuple[ContentNode, Resolution]]:
        """Every reference in a document with what it currently resolves to."""
        for reference in tree.references():
            yield reference, self.resolve(reference)


def text_of(nodes: Iterable[ContentNode]) -> str:
    """Plain text of a node sequence: paragraph content joined by newlines."""
    parts: list[str] = []
    for root in nodes:
        for node in root.walk():
            content = node.attributes.get("content")
            if isinstance(content, str):
                parts.append(content)
    return "\n".join(parts)
