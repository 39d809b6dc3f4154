import asyncio
from unittest.mock import AsyncMock

import pytest

from criador_mental.core.errors import GenerationBusyError, PersistenceError, ValidationFailure
from criador_mental.db.projects import InMemoryProjectRepository
from criador_mental.document.commands import (
    AddInstruction,
    AddKeyword,
    RemoveKeyword,
    RemovePage,
    SelectPage,
)
from criador_mental.editor.session import EditorSession

DELAY = 0.02


@pytest.fixture
def repository():
    return InMemoryProjectRepository()


@pytest.fixture
async def editor(repository, ideas_snapshot):
    record = await repository.create("user-1", "My Project", ideas_snapshot)
    session = EditorSession(record, repository, autosave_delay=DELAY)
    yield session
    session.discard()


class TestEditing:
    async def test_apply_commits_and_autosaves(self, editor, repository):
        editor.apply(AddKeyword(text="Wire"))
        assert editor.history.can_undo

        await asyncio.sleep(DELAY * 5)
        stored = await repository.get("user-1", editor.project_id)
        assert stored.snapshot.find_page("ideas").keywords == ("Brain", "Light", "Wire")

    async def test_undo_is_autosaved(self, editor, repository):
        editor.apply(AddKeyword(text="Wire"))
        await editor.save()
        editor.undo()
        await editor.save()

        stored = await repository.get("user-1", editor.project_id)
        assert stored.snapshot.find_page("ideas").keywords == ("Brain", "Light")

    async def test_replace_document_resets_history(self, editor, ideas_snapshot):
        editor.apply(AddKeyword(text="Wire"))
        editor.replace_document(ideas_snapshot)
        assert not editor.history.can_undo
        assert editor.autosave.dirty

    async def test_save_reports_failure(self, editor):
        editor._repository = AsyncMock()
        editor._repository.update.side_effect = RuntimeError("disk full")
        editor.apply(AddKeyword(text="Wire"))

        with pytest.raises(PersistenceError):
            await editor.save()
        # The document is not rolled back
        assert "Wire" in editor.present.active_page.keywords


class TestFocus:
    async def test_set_focus_validates_indices(self, editor):
        focus = editor.set_focus(keywords=[1])
        assert focus.page_id == "ideas"
        with pytest.raises(ValidationFailure):
            editor.set_focus(keywords=[5])
        with pytest.raises(ValidationFailure):
            editor.set_focus(instructions=[0])
        with pytest.raises(ValidationFailure):
            editor.set_focus(page_id="missing")

    async def test_keyword_change_clears_keyword_focus(self, editor):
        editor.apply(AddInstruction(text="Blue"))
        editor.set_focus(keywords=[0], instructions=[0])

        editor.apply(RemoveKeyword(index=1))
        assert editor.focus.keywords == frozenset()
        assert editor.focus.instructions == frozenset({0})

    async def test_undo_of_indexed_collection_clears_focus(self, editor):
        editor.apply(AddKeyword(text="Wire"))
        editor.set_focus(keywords=[2])
        editor.undo()
        assert editor.focus.is_empty

    async def test_page_switch_clears_focus(self, editor):
        editor.set_focus(keywords=[0])
        editor.apply(SelectPage(index=0))
        assert editor.focus.page_id is None

    async def test_unrelated_change_keeps_focus(self, editor):
        editor.set_focus(keywords=[0])
        editor.apply(AddInstruction(text="Blue"))
        assert editor.focus.keywords == frozenset({0})


class TestGenerationSupport:
    async def test_generation_slot_is_exclusive_per_page(self, editor):
        with editor.generation_slot("ideas"):
            assert editor.generating_pages == frozenset({"ideas"})
            with pytest.raises(GenerationBusyError):
                with editor.generation_slot("ideas"):
                    pass
            with editor.generation_slot("master"):
                pass
        assert editor.generating_pages == frozenset()

    async def test_set_generated_image_on_removed_page(self, editor):
        editor.apply(RemovePage(page_id="ideas"))
        assert editor.set_generated_image("ideas", "http://img/x.png") is False

    async def test_set_generated_image_commits(self, editor):
        assert editor.set_generated_image("ideas", "http://img/x.png") is True
        assert editor.present.find_page("ideas").generated_image == "http://img/x.png"
        assert len(editor.history.history.past) == 1


async def test_close_flushes_and_deactivates(repository, ideas_snapshot):
    record = await repository.create("user-1", "My Project", ideas_snapshot)
    editor = EditorSession(record, repository, autosave_delay=10)
    editor.apply(AddKeyword(text="Wire"))

    await editor.close()
    stored = await repository.get("user-1", record.id)
    assert "Wire" in stored.snapshot.find_page("ideas").keywords
    assert not editor.autosave.active
