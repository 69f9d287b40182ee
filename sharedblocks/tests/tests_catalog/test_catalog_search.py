"""
Shared Blocks Catalog -- Search and Sync Tests

Covers:
  - label is the title, or "Untitled shared block"
  - case-insensitive substring search over the label
  - ordering: most recently modified first, label ascending on ties
  - search is lazy (a generator)
  - registry create / rename / promote / delete keep the catalog in sync
  - title in registry matches catalog label after save
"""

import types

import pytest

from sharedblocks.catalog import InserterCatalog, make_entry
from sharedblocks.registry import SharedBlockRegistry
from sharedblocks.types import SharedBlock, paragraph


def labels(catalog: InserterCatalog, query: str = "") -> list[str]:
    return [entry.label for entry in catalog.search(query)]


# ============================================================================
# Standalone index
# ============================================================================


class TestIndex:
    def test_untitled_label(self):
        entry = make_entry(SharedBlock(id="1"))
        assert entry.label == "Untitled shared block"
        assert entry.match_tokens == ("untitled", "shared", "block")
        assert entry.target_id == "1"

    def test_case_insensitive_substring(self):
        catalog = InserterCatalog()
        catalog.index(SharedBlock(id="1", title="Greeting block"))
        catalog.index(SharedBlock(id="2", title="Footer"))

        assert labels(catalog, "greet") == ["Greeting block"]
        assert labels(catalog, "ETING BL") == ["Greeting block"]
        assert labels(catalog, "nothing") == []

    def test_whitespace_is_part_of_the_query(self):
        catalog = InserterCatalog()
        catalog.index(SharedBlock(id="1", title="Greeting block"))
        catalog.index(SharedBlock(id="2", title="Blocky"))

        assert labels(catalog, " block") == ["Greeting block"]
        assert labels(catalog, "block ") == []

    def test_order_recent_first(self):
        catalog = InserterCatalog()
        catalog.index(SharedBlock(id="1", title="Alpha"))
        catalog.index(SharedBlock(id="2", title="Beta"))
        catalog.index(SharedBlock(id="3", title="Gamma"))
        catalog.index(SharedBlock(id="1", title="Alpha"))

        assert labels(catalog) == ["Alpha", "Gamma", "Beta"]

    def test_ties_break_by_label(self):
        catalog = InserterCatalog()
        catalog._entries = {
            "1": make_entry(SharedBlock(id="1", title="Zed"), modified=5),
            "2": make_entry(SharedBlock(id="2", title="Abe"), modified=5),
            "3": make_entry(SharedBlock(id="3", title="Moe"), modified=1),
        }
        assert labels(catalog) == ["Abe", "Zed", "Moe"]

    def test_search_is_lazy(self):
        catalog = InserterCatalog()
        assert isinstance(catalog.search("x"), types.GeneratorType)

    def test_remove(self):
        catalog = InserterCatalog()
        catalog.index(SharedBlock(id="1", title="Alpha"))
        catalog.remove("1")
        catalog.remove("1")
        assert len(catalog) == 0


# ============================================================================
# Registry sync
# ============================================================================


class TestRegistrySync:
    @pytest.fixture
    def catalog(self, registry):
        return InserterCatalog(registry)

    def test_indexes_existing_blocks(self, registry):
        registry.create_from_content([paragraph("a")])
        catalog = InserterCatalog(registry)
        assert labels(catalog) == ["Untitled shared block"]

    def test_create_is_indexed(self, registry, catalog):
        entity_id = registry.create_from_content([paragraph("a")])
        assert catalog.get(entity_id).label == "Untitled shared block"

    @pytest.mark.asyncio
    async def test_promotion_moves_entry(self, registry, catalog):
        temp_id = registry.create_from_content([paragraph("a")])
        block = await registry.save(temp_id, "Greeting block")

        assert temp_id not in catalog
        assert catalog.get(block.id).label == "Greeting block"
        assert [e.target_id for e in catalog.search("greeting")] == [block.id]
        assert len(catalog) == 1

    @pytest.mark.asyncio
    async def test_rename_regenerates_label(self, registry, catalog):
        block = await registry.save(registry.create_from_content([paragraph("a")]), "Greeting block")

        registry.update_title(block.id, "Surprised greeting block")
        await registry.save(block.id)

        assert registry.get(block.id).title == catalog.get(block.id).label
        assert labels(catalog, "greeting") == ["Surprised greeting block"]

    @pytest.mark.asyncio
    async def test_delete_removes_entry(self, registry, catalog):
        block = await registry.save(registry.create_from_content([paragraph("a")]), "Greeting block")
        await registry.delete(block.id)

        assert labels(catalog, "Greeting") == []
        assert len(catalog) == 0

    @pytest.mark.asyncio
    async def test_fetch_populates(self, storage):
        writer = SharedBlockRegistry(storage)
        await writer.save(writer.create_from_content([paragraph("a")]), "Stored block")

        reader = SharedBlockRegistry(storage)
        catalog = InserterCatalog(reader)
        await reader.fetch_all()

        assert labels(catalog, "stored") == ["Stored block"]
