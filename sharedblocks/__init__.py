"""
Shared Blocks -- reusable content blocks for a block-based document editor.

Components:
  tree        -- DocumentTree, one document's content nodes
  registry    -- SharedBlockRegistry, the shared block entities + persistence
  resolver    -- ReferenceResolver, live reference -> current content
  catalog     -- InserterCatalog, search index kept in sync with the registry
  conversion  -- ConversionEngine, regular <-> shared
  sessions    -- EditSurface / EditSession, draft/save/cancel lifecycle
  editor      -- SharedBlockEditor, wires the above for one storage
"""

from sharedblocks.catalog import InserterCatalog
from sharedblocks.conversion import ConversionEngine, make_reference
from sharedblocks.editor import SharedBlockEditor
from sharedblocks.errors import (
    BlockInUse,
    Busy,
    DuplicateNodeId,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    SharedBlockError,
)
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.resolver import ReferenceResolver, text_of
from sharedblocks.sessions import EditSession, EditSurface, SessionLeases
from sharedblocks.storage import MemoryStorage, SharedBlockStorage
from sharedblocks.tree import DocumentTree
from sharedblocks.types import ContentNode, InserterEntry, Resolved, SharedBlock, Unresolved, paragraph

__all__ = [
    "ContentNode",
    "SharedBlock",
    "InserterEntry",
    "Resolved",
    "Unresolved",
    "paragraph",
    "DocumentTree",
    "SharedBlockStorage",
    "MemoryStorage",
    "SharedBlockRegistry",
    "ReferenceResolver",
    "text_of",
    "InserterCatalog",
    "ConversionEngine",
    "make_reference",
    "EditSurface",
    "EditSession",
    "SessionLeases",
    "SharedBlockEditor",
    "SharedBlockError",
    "NotFound",
    "DuplicateNodeId",
    "Busy",
    "InvalidTransition",
    "PersistenceFailure",
    "BlockInUse",
]
