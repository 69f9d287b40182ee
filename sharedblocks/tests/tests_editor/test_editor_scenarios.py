"""
Shared Blocks Editor -- End-to-End Scenarios

The editor flow: write a paragraph, make it shared, give it a title, insert
it elsewhere, edit it, convert it back, delete it.

Scenarios:
  A. create "Hello there!", convert with title "Greeting block"
  B. convert with no title -> "Untitled shared block"
  C. edit content, cancel -> committed content unchanged
  D. edit content, save -> every reference sees the new content
  E. convert back to regular, delete the orphaned block
Plus:
  - inserting from the catalog creates a new live reference
  - references in open documents follow temporary-id promotion
  - a failed first save leaves a temporary block, its title and a working reference
  - a reference copy taken before promotion still converts back
"""

import pytest

from sharedblocks.editor import SharedBlockEditor
from sharedblocks.errors import NotFound, PersistenceFailure
from sharedblocks.resolver import text_of
from sharedblocks.tree import DocumentTree
from sharedblocks.types import PARAGRAPH_KIND, REFERENCE_KIND, Resolved, Unresolved, paragraph

# ============================================================================
# Helpers
# ============================================================================


def confirm_yes(block, reference_count):
    return True


def new_post(editor, text: str = "Hello there!") -> tuple[DocumentTree, str]:
    node = paragraph(text)
    tree = editor.open_document(DocumentTree([node]))
    return tree, node.node_id


async def create_greeting(editor, title: str | None = "Greeting block"):
    tree, node_id = new_post(editor)
    block = await editor.convert_to_shared(tree, node_id, title=title)
    return tree, block


# ============================================================================
# Scenarios
# ============================================================================


class TestScenarios:
    @pytest.mark.asyncio
    async def test_a_created_with_title(self, editor):
        tree, block = await create_greeting(editor)

        reference = tree.top_level()[0]
        assert reference.kind == REFERENCE_KIND
        assert reference.ref == block.id

        resolved = editor.resolver.resolve(reference)
        assert isinstance(resolved, Resolved)
        assert resolved.title == "Greeting block"
        assert text_of(resolved.content) == "Hello there!"

        results = list(editor.search("Greeting"))
        assert len(results) == 1
        assert results[0].label == "Greeting block"
        assert results[0].target_id == block.id

    @pytest.mark.asyncio
    async def test_b_created_with_no_title(self, editor):
        _, block = await create_greeting(editor, title=None)

        assert editor.registry.get(block.id).title == ""
        assert editor.catalog.get(block.id).label == "Untitled shared block"
        assert [e.target_id for e in editor.search("untitled")] == [block.id]

    @pytest.mark.asyncio
    async def test_c_edit_then_cancel(self, editor, storage):
        tree, block = await create_greeting(editor)
        calls = storage.calls

        session = editor.surface.begin_edit(block.id)
        session.set_content([paragraph("Oh! Hello there!")])
        session.cancel()

        resolved = editor.resolver.resolve(tree.top_level()[0])
        assert text_of(resolved.content) == "Hello there!"
        assert storage.calls == calls

    @pytest.mark.asyncio
    async def test_d_edit_then_save(self, editor):
        tree, block = await create_greeting(editor)
        second_post = editor.open_document()
        editor.insert_shared_block(second_post, block.id)

        session = editor.surface.begin_edit(block.id)
        session.set_title("Surprised greeting block")
        session.set_content([paragraph("Oh! Hello there!")])
        await session.save()

        for doc in (tree, second_post):
            resolved = editor.resolver.resolve(doc.references(block.id)[0])
            assert resolved.title == "Surprised greeting block"
            assert text_of(resolved.content) == "Oh! Hello there!"
        assert [e.label for e in editor.search("greeting")] == ["Surprised greeting block"]

    @pytest.mark.asyncio
    async def test_e_convert_back_then_delete(self, editor, storage):
        tree, block = await create_greeting(editor)
        session = editor.surface.begin_edit(block.id)
        session.set_title("Surprised greeting block")
        session.set_content([paragraph("Oh! Hello there!")])
        await session.save()

        regular = editor.convert_to_regular(tree, tree.top_level()[0])
        assert regular.kind == PARAGRAPH_KIND
        assert text_of([regular]) == "Oh! Hello there!"

        deleted = await editor.delete_shared_block(block.id, confirm_yes)

        assert deleted
        assert block.id not in editor.registry
        assert storage.deleted == [block.id]
        assert text_of(tree.top_level()) == "Oh! Hello there!"
        assert list(editor.search("Surprised greeting block")) == []


# ============================================================================
# Inserter and promotion
# ============================================================================


class TestInsertAndPromotion:
    @pytest.mark.asyncio
    async def test_insert_from_catalog(self, editor):
        _, block = await create_greeting(editor)
        entry = next(editor.search("greeting"))

        post = editor.open_document()
        post.insert(paragraph("intro"))
        reference = editor.insert_shared_block(post, entry.target_id, position=0)

        assert post.top_level()[0].node_id == reference.node_id
        assert text_of(editor.resolver.resolve(reference).content) == "Hello there!"
        assert editor.reference_count(block.id) == 2

    def test_insert_unknown_block(self, editor):
        with pytest.raises(NotFound):
            editor.insert_shared_block(editor.open_document(), "404")

    @pytest.mark.asyncio
    async def test_open_documents_follow_promotion(self, editor):
        tree, node_id = new_post(editor)
        temp_id = editor.conversion.convert_to_shared(tree, node_id)
        other = editor.open_document()
        editor.insert_shared_block(other, temp_id)
        closed = DocumentTree()
        editor.insert_shared_block(closed, temp_id)
        editor.close_document(closed)

        session = editor.surface.begin_edit(temp_id)
        block = await session.save()

        assert block.id != temp_id
        assert len(tree.references(block.id)) == 1
        assert len(other.references(block.id)) == 1
        assert closed.references(block.id) == []
        assert isinstance(editor.resolver.resolve(tree.top_level()[0]), Resolved)

    @pytest.mark.asyncio
    async def test_failed_first_save(self, editor, storage):
        tree, node_id = new_post(editor)
        storage.fail_next()

        with pytest.raises(PersistenceFailure):
            await editor.convert_to_shared(tree, node_id, title="Greeting block")

        reference = tree.top_level()[0]
        block = editor.registry.get(reference.ref)
        assert block.is_temporary
        assert block.is_dirty
        assert block.title == "Greeting block"
        assert editor.catalog.get(block.id).label == "Greeting block"
        assert editor.surface.active is None
        assert text_of(editor.resolver.resolve(reference).content) == "Hello there!"

        # retry from an edit session; the title survived the failure
        session = editor.surface.begin_edit(block.id)
        assert session.title == "Greeting block"
        saved = await session.save()
        assert not saved.is_temporary
        assert saved.title == "Greeting block"
        assert tree.top_level()[0].ref == saved.id

    @pytest.mark.asyncio
    async def test_convert_back_with_reference_from_before_promotion(self, editor, storage):
        tree, node_id = new_post(editor)
        storage.fail_next()
        with pytest.raises(PersistenceFailure):
            await editor.convert_to_shared(tree, node_id, title="Greeting block")
        stale = tree.top_level()[0]

        saved = await editor.surface.begin_edit(stale.ref).save()
        assert stale.ref != saved.id

        regular = editor.convert_to_regular(tree, stale)

        assert regular.kind == PARAGRAPH_KIND
        assert text_of(tree.top_level()) == "Hello there!"
        assert saved.id in editor.registry

    @pytest.mark.asyncio
    async def test_fetch_populates_catalog(self, storage):
        first = SharedBlockEditor(storage, delete_policy="detach")
        await create_greeting(first)

        second = SharedBlockEditor(storage, delete_policy="detach")
        assert list(second.search("Greeting")) == []
        await second.fetch()
        assert [e.label for e in second.search("Greeting")] == ["Greeting block"]

    @pytest.mark.asyncio
    async def test_detached_reference_is_unresolved(self, editor):
        tree, block = await create_greeting(editor)
        await editor.delete_shared_block(block.id, confirm_yes)

        assert isinstance(editor.resolver.resolve(tree.top_level()[0]), Unresolved)
