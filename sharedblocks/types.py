"""
Shared Blocks -- Types

Data classes used across the tree, registry, resolver, catalog and sessions.
These are the contracts that bind the package together.

Key shapes:
- ContentNode: one node of a document tree, nested form
- SharedBlock: a named, independently persisted content subtree
- InserterEntry: the searchable face of a shared block
- Resolved / Unresolved: outcome of following a reference node
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PARAGRAPH_KIND = "core/paragraph"
REFERENCE_KIND = "core/block"

TEMPORARY_ID_PREFIX = "tmp_"

UNTITLED_LABEL = "Untitled shared block"

# Registry event kinds
CREATED = "created"
UPDATED = "updated"
PROMOTED = "promoted"
DELETED = "deleted"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ContentNode:
    """
    A node in a document tree: kind, attributes and ordered children.
    A reference node carries only {"ref": entity_id} and no children.
    """

    node_id: str
    kind: str
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list[ContentNode] = field(default_factory=list)

    @property
    def is_reference(self) -> bool:
        return self.kind == REFERENCE_KIND

    @property
    def ref(self) -> str | None:
        if not self.is_reference:
            return None
        return self.attributes.get("ref")

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "kind": self.kind,
            "attributes": copy.deepcopy(self.attributes),
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ContentNode:
        return cls(
            node_id=d.get("node_id") or new_node_id(),
            kind=d["kind"],
            attributes=copy.deepcopy(d.get("attributes", {})),
            children=[cls.from_dict(c) for c in d.get("children", [])],
        )

    def walk(self) -> Iterable[ContentNode]:
        """Depth-first, self first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class SharedBlock:
    """
    A shared block entity, owned by the registry.

    `id` is temporary ("tmp_...") until persistence assigns a permanent one.
    """

    id: str
    title: str = ""
    content: list[ContentNode] = field(default_factory=list)
    is_temporary: bool = True
    is_dirty: bool = True
    updated_at: str = ""

    @property
    def label(self) -> str:
        return self.title or UNTITLED_LABEL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": [n.to_dict() for n in self.content],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SharedBlock:
        """Build a persisted (permanent, clean) block from a stored record."""
        return cls(
            id=str(d["id"]),
            title=d.get("title") or "",
            content=[ContentNode.from_dict(n) for n in d.get("content", [])],
            is_temporary=False,
            is_dirty=False,
            updated_at=d.get("updated_at") or now_iso(),
        )


@dataclass
class InserterEntry:
    """One searchable item in the inserter catalog."""

    label: str
    match_tokens: tuple[str, ...]
    target_id: str
    modified: int = 0


@dataclass
class RegistryEvent:
    """Lifecycle notification emitted by the registry to its subscribers."""

    kind: str
    entity_id: str
    previous_id: str | None = None


@dataclass
class Resolved:
    """A reference whose shared block exists. `content` is a fresh copy."""

    entity_id: str
    title: str
    content: list[ContentNode]

    @property
    def ok(self) -> bool:
        return True


@dataclass
class Unresolved:
    """A reference whose shared block no longer exists: render a placeholder."""

    entity_id: str | None

    @property
    def ok(self) -> bool:
        return False


Resolution = Resolved | Unresolved


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def new_node_id() -> str:
    return str(uuid.uuid4())


def new_temporary_id() -> str:
    return f"{TEMPORARY_ID_PREFIX}{uuid.uuid4().hex}"


def is_temporary_id(value: str) -> bool:
    return value.startswith(TEMPORARY_ID_PREFIX)


def paragraph(content: str, node_id: str | None = None) -> ContentNode:
    """Build a paragraph node holding plain text."""
    return ContentNode(node_id=node_id or new_node_id(), kind=PARAGRAPH_KIND, attributes={"content": content})


def clone_nodes(nodes: Iterable[ContentNode], *, fresh_ids: bool = False) -> list[ContentNode]:
    """
    Deep copy a sequence of nodes.
    With fresh_ids=True every node in every subtree gets a new node_id.
    """
    cloned = [copy.deepcopy(n) for n in nodes]
    if fresh_ids:
        for root in cloned:
            for node in root.walk():
                node.node_id = new_node_id()
    return cloned


def structure_of(node: ContentNode) -> dict[str, Any]:
    """Node shape without identities: kind, attributes, child order."""
    return {
        "kind": node.kind,
        "attributes": node.attributes,
        "children": [structure_of(c) for c in node.children],
    }


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
