"""
Shared Blocks -- Document Tree

One document's content nodes, stored as a flat arena keyed by node id under
an implicit root. Each record holds kind, attributes, parent and the ordered
ids of its children. Nested ContentNode values go in and come out; records
never leave this module.

All operations are synchronous. Unknown ids raise NotFound, id collisions
raise DuplicateNodeId.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Iterator
from typing import Any

from sharedblocks.errors import DuplicateNodeId, NotFound
from sharedblocks.types import REFERENCE_KIND, ContentNode

logger = logging.getLogger(__name__)

ROOT_ID = "block_root"


class DocumentTree:
    """Ordered mapping of node id -> content node data."""

    def __init__(self, nodes: Iterable[ContentNode] | None = None):
        self._records: dict[str, dict[str, Any]] = {
            ROOT_ID: {"id": ROOT_ID, "kind": "root", "parent": None, "attributes": {}, "children": []},
        }
        for node in nodes or []:
            self.insert(node)

    # -- reads --

    def __contains__(self, node_id: object) -> bool:
        return node_id != ROOT_ID and node_id in self._records

    def __len__(self) -> int:
        return len(self._records) - 1

    def get(self, node_id: str) -> ContentNode:
        """Materialise a node and its descendants. The result is a copy."""
        return self._materialise(self._record(node_id))

    def top_level(self) -> list[ContentNode]:
        return [self.get(cid) for cid in self._records[ROOT_ID]["children"]]

    def children(self, node_id: str) -> list[ContentNode]:
        return [self.get(cid) for cid in self._record(node_id)["children"]]

    def parent_of(self, node_id: str) -> str | None:
        """Parent id, or None for top-level nodes."""
        parent = self._record(node_id)["parent"]
        return None if parent == ROOT_ID else parent

    def position_of(self, node_id: str) -> int:
        record = self._record(node_id)
        return self._records[record["parent"]]["children"].index(node_id)

    def walk(self) -> Iterator[ContentNode]:
        """Every node in document order, depth-first."""
        for root in self.top_level():
            yield from root.walk()

    def references(self, entity_id: str | None = None) -> list[ContentNode]:
        """Reference nodes, optionally only those pointing at entity_id."""
        return [
            node for node in self.walk()
            if node.is_reference and (entity_id is None or node.ref == entity_id)
        ]

    def to_list(self) -> list[dict[str, Any]]:
        return [node.to_dict() for node in self.top_level()]

    # -- writes --

    def insert(self, node: ContentNode, parent_id: str | None = None, position: int | None = None) -> None:
        """
        Insert a subtree under parent_id (top level when None).
        A position outside [0, len(children)] appends.
        """
        parent = self._records[ROOT_ID] if parent_id is None else self._record(parent_id)
        self._check_free(node)
        self._attach(parent, [node], position)

    def extract_subtree(self, node_id: str) -> ContentNode:
        """Remove a node and its descendants and return them. Siblings close the gap."""
        record = self._record(node_id)
        node = self._materialise(record)
        self._records[record["parent"]]["children"].remove(node_id)
        self._drop(node_id)
        return node

    def replace_node(self, node_id: str, new_node: ContentNode) -> ContentNode:
        """Swap a node for new_node at the same sibling position. Returns the old subtree."""
        return self.splice(node_id, [new_node])

    def splice(self, node_id: str, nodes: list[ContentNode]) -> ContentNode:
        """
        Replace one node with zero or more nodes at its position.
        Validated up front so the tree is never left half-updated.
        """
        record = self._record(node_id)
        old = self._materialise(record)

        outgoing = {n.node_id for n in old.walk()}
        seen: set[str] = set()
        for new in nodes:
            for n in new.walk():
                if n.node_id in seen or (n.node_id in self._records and n.node_id not in outgoing):
                    raise DuplicateNodeId(n.node_id)
                seen.add(n.node_id)

        parent = self._records[record["parent"]]
        position = parent["children"].index(node_id)
        parent["children"].pop(position)
        self._drop(node_id)
        self._attach(parent, nodes, position)
        return old

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """Bulk delete. Every id is checked before anything is removed."""
        ids = list(node_ids)
        for node_id in ids:
            self._record(node_id)
        for node_id in ids:
            # Already gone with an ancestor removed earlier in this batch
            if node_id not in self._records:
                continue
            record = self._records[node_id]
            self._records[record["parent"]]["children"].remove(node_id)
            self._drop(node_id)
        logger.debug("Removed %d node(s)", len(ids))

    def retarget_references(self, old_id: str, new_id: str) -> int:
        """Point every reference at old_id to new_id instead. Returns the count."""
        count = 0
        for record in self._records.values():
            if record["kind"] == REFERENCE_KIND and record["attributes"].get("ref") == old_id:
                record["attributes"]["ref"] = new_id
                count += 1
        return count

    # -- internals --

    def _record(self, node_id: str) -> dict[str, Any]:
        if node_id == ROOT_ID or node_id not in self._records:
            raise NotFound(f"Node '{node_id}' not found")
        return self._records[node_id]

    def _check_free(self, node: ContentNode) -> None:
        seen: set[str] = set()
        for n in node.walk():
            if n.node_id in self._records or n.node_id in seen:
                raise DuplicateNodeId(n.node_id)
            seen.add(n.node_id)

    def _attach(self, parent: dict[str, Any], nodes: list[ContentNode], position: int | None) -> None:
        siblings = parent["children"]
        if position is None or not 0 <= position <= len(siblings):
            position = len(siblings)
        for offset, node in enumerate(nodes):
            self._store(node, parent["id"])
            siblings.insert(position + offset, node.node_id)

    def _store(self, node: ContentNode, parent_id: str) -> None:
        self._records[node.node_id] = {
            "id": node.node_id,
            "kind": node.kind,
            "parent": parent_id,
            "attributes": copy.deepcopy(node.attributes),
            "children": [c.node_id for c in node.children],
        }
        for child in node.children:
            self._store(child, node.node_id)

    def _drop(self, node_id: str) -> None:
        """Delete a record and all its descendants (the parent link is the caller's job)."""
        to_remove: list[str] = []

        def collect(nid: str) -> None:
            to_remove.append(nid)
            for child in self._records[nid]["children"]:
                collect(child)

        collect(node_id)
        for nid in to_remove:
            self._records.pop(nid, None)

    def _materialise(self, record: dict[str, Any]) -> ContentNode:
        return ContentNode(
            node_id=record["id"],
            kind=record["kind"],
            attributes=copy.deepcopy(record["attributes"]),
            children=[self._materialise(self._records[cid]) for cid in record["children"]],
        )
