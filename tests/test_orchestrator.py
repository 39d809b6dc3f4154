"""
Generation Orchestrator Tests

The image backend and blob store are replaced by AsyncMocks; the document
lives in a real EditorSession over an in-memory repository.
"""

import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from criador_mental.core.errors import (
    BackendError,
    EmptyResultError,
    GenerationBusyError,
    ValidationFailure,
)
from criador_mental.db.projects import InMemoryProjectRepository
from criador_mental.document.commands import AddKeyword, AddPage, RemoveKeyword, RemovePage, SelectPage
from criador_mental.document.models import Page, Snapshot, new_project_pages
from criador_mental.editor.orchestrator import GenerationOrchestrator
from criador_mental.editor.session import EditorSession
from criador_mental.llm.client import GeneratedImage
from criador_mental.storage.blobs import validate_blob_path

FIXED_NOW = 1_700_000_000.0


@pytest.fixture
def backend(png_bytes):
    mock = AsyncMock()
    mock.generate_image.return_value = GeneratedImage(data=png_bytes(), mime_type="image/png")
    return mock


@pytest.fixture
def blobs():
    mock = AsyncMock()

    async def _write(path, data, content_type):
        return f"http://localhost:8000/blobs/{path}"

    mock.write.side_effect = _write
    return mock


@pytest.fixture
def orchestrator(backend, blobs):
    return GenerationOrchestrator(backend, blobs, clock=lambda: FIXED_NOW)


async def _open(snapshot, owner_id="user-1"):
    repository = InMemoryProjectRepository()
    record = await repository.create(owner_id, "My Project", snapshot)
    return EditorSession(record, repository, autosave_delay=60)


@pytest.fixture
async def editor(ideas_snapshot):
    session = await _open(ideas_snapshot)
    yield session
    session.discard()


def _size_of(data):
    return Image.open(io.BytesIO(data)).size


async def test_rethink_scenario(orchestrator, backend, editor):
    result = await orchestrator.generate(editor, mode="rethink")

    _, mime_type, prompt = backend.generate_image.await_args.args
    assert mime_type == "image/png"
    assert "Brain, Light" in prompt
    assert "RULE 2: EVOLVE" not in prompt

    history = editor.history.history
    assert history.present.pages[1].generated_image == result.image_url
    assert len(history.past) == 1
    assert history.future == ()


async def test_blob_path_uses_owner_project_page_and_time(orchestrator, blobs, editor):
    await orchestrator.generate(editor, mode="rethink")
    path = blobs.write.await_args.args[0]
    assert path == f"user-1/{editor.project_id}/ideas-1700000000000.png"


async def test_page_without_keywords_is_rejected_without_io(orchestrator, backend, blobs, editor):
    editor.apply(AddPage(name="Empty"))

    with pytest.raises(ValidationFailure):
        await orchestrator.generate(editor)

    backend.generate_image.assert_not_called()
    blobs.write.assert_not_called()
    blobs.fetch.assert_not_called()


async def test_master_page_generates_without_keywords(orchestrator, backend, editor):
    editor.apply(SelectPage(index=0))
    await orchestrator.generate(editor, mode="rethink")
    backend.generate_image.assert_awaited_once()


async def test_unknown_page_is_rejected(orchestrator, editor):
    with pytest.raises(ValidationFailure):
        await orchestrator.generate(editor, page_id="missing")


async def test_empty_result_leaves_document_unchanged(orchestrator, backend, editor):
    backend.generate_image.return_value = None
    before = editor.present

    with pytest.raises(EmptyResultError):
        await orchestrator.generate(editor)

    assert editor.present == before
    assert editor.present.pages[1].generated_image is None


async def test_backend_error_message_is_parsed(orchestrator, backend, editor):
    backend.generate_image.side_effect = RuntimeError(
        'Gemini request failed (429): {"error": {"code": 429, "message": "Quota exceeded"}}'
    )

    with pytest.raises(BackendError) as excinfo:
        await orchestrator.generate(editor)

    assert excinfo.value.message == "Quota exceeded"
    assert not editor.history.can_undo


async def test_storage_error_is_backend_error(orchestrator, blobs, editor):
    blobs.write.side_effect = OSError("read-only file system")
    with pytest.raises(BackendError):
        await orchestrator.generate(editor)
    assert editor.present.pages[1].generated_image is None


async def test_busy_page_is_refused(orchestrator, backend, editor):
    with editor.generation_slot("ideas"):
        with pytest.raises(GenerationBusyError):
            await orchestrator.generate(editor)
    backend.generate_image.assert_not_called()


async def test_focus_is_used_once_and_cleared(orchestrator, backend, editor):
    editor.set_focus(keywords=[1])
    await orchestrator.generate(editor)

    prompt = backend.generate_image.await_args.args[2]
    assert 'Focused Keywords: "Light"' in prompt
    assert editor.focus.is_empty


async def test_focus_is_cleared_after_failure(orchestrator, backend, editor):
    backend.generate_image.return_value = None
    editor.set_focus(keywords=[0])
    with pytest.raises(EmptyResultError):
        await orchestrator.generate(editor)
    assert editor.focus.is_empty


async def test_result_commits_against_fresh_present(orchestrator, backend, editor, png_bytes):
    async def _generate(image, mime_type, prompt):
        editor.apply(AddKeyword(text="Added while waiting"))
        return GeneratedImage(data=png_bytes(), mime_type="image/png")

    backend.generate_image.side_effect = _generate
    result = await orchestrator.generate(editor)

    page = editor.present.find_page("ideas")
    assert page.generated_image == result.image_url
    assert "Added while waiting" in page.keywords
    assert len(editor.history.history.past) == 2


async def test_result_for_removed_page_is_dropped(orchestrator, backend, editor, png_bytes):
    async def _generate(image, mime_type, prompt):
        editor.apply(RemovePage(page_id="ideas"))
        return GeneratedImage(data=png_bytes(), mime_type="image/png")

    backend.generate_image.side_effect = _generate
    with pytest.raises(ValidationFailure):
        await orchestrator.generate(editor)
    assert editor.present.find_page("ideas") is None


class TestBaseImage:
    """Choice of the image the backend evolves from."""

    async def test_blank_canvas_without_image(self, orchestrator, backend, editor):
        await orchestrator.generate(editor, mode="evolve")
        base = backend.generate_image.await_args.args[0]
        assert _size_of(base) == (960, 540)

    async def test_evolve_uses_stored_image(self, orchestrator, backend, blobs, png_bytes):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (Page(id="ideas", name="Ideas", keywords=("Brain",), generated_image="http://img/1.png"),),
            active_page_index=1,
        )
        editor = await _open(snapshot)
        blobs.fetch.return_value = png_bytes(color="blue")

        await orchestrator.generate(editor, mode="evolve")

        blobs.fetch.assert_awaited_once_with("http://img/1.png")
        base = Image.open(io.BytesIO(backend.generate_image.await_args.args[0]))
        assert base.size == (960, 540)
        assert base.convert("RGB").getpixel((10, 10)) == (0, 0, 255)
        editor.discard()

    async def test_rendering_overrides_stored_image(self, orchestrator, backend, blobs, png_bytes):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (Page(id="ideas", name="Ideas", keywords=("Brain",), generated_image="http://img/1.png"),),
            active_page_index=1,
        )
        editor = await _open(snapshot)

        await orchestrator.generate(editor, mode="evolve", rendering=png_bytes(color="green"))

        blobs.fetch.assert_not_called()
        base = Image.open(io.BytesIO(backend.generate_image.await_args.args[0]))
        assert base.convert("RGB").getpixel((10, 10)) == (0, 128, 0)
        editor.discard()

    async def test_invalid_rendering_is_rejected(self, orchestrator, backend):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (Page(id="ideas", name="Ideas", keywords=("Brain",), generated_image="http://img/1.png"),),
            active_page_index=1,
        )
        editor = await _open(snapshot)

        with pytest.raises(ValidationFailure):
            await orchestrator.generate(editor, rendering=b"not an image")
        backend.generate_image.assert_not_called()
        editor.discard()

    async def test_fetch_failure_falls_back_to_blank(self, orchestrator, backend, blobs):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (Page(id="ideas", name="Ideas", keywords=("Brain",), generated_image="http://img/1.png"),),
            active_page_index=1,
        )
        editor = await _open(snapshot)
        blobs.fetch.side_effect = OSError("gone")

        await orchestrator.generate(editor, mode="evolve")

        base = Image.open(io.BytesIO(backend.generate_image.await_args.args[0]))
        assert base.convert("RGB").getpixel((10, 10)) == (255, 255, 255)
        editor.discard()

    async def test_rethink_ignores_stored_image(self, orchestrator, blobs):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (Page(id="ideas", name="Ideas", keywords=("Brain",), generated_image="http://img/1.png"),),
            active_page_index=1,
        )
        editor = await _open(snapshot)
        await orchestrator.generate(editor, mode="rethink")
        blobs.fetch.assert_not_called()
        editor.discard()


async def test_owner_id_is_mapped_to_a_safe_path(orchestrator, blobs, ideas_snapshot):
    editor = await _open(ideas_snapshot, owner_id="ana@example.com")

    result = await orchestrator.generate(editor, mode="rethink")

    path = blobs.write.await_args.args[0]
    assert validate_blob_path(path) == path
    assert path.endswith(f"/{editor.project_id}/ideas-1700000000000.png")
    assert editor.present.pages[1].generated_image == result.image_url
    editor.discard()


async def test_invalid_storage_path_is_backend_error(orchestrator, editor, monkeypatch):
    def _bad_path(*args):
        raise ValueError("Invalid blob path")

    monkeypatch.setattr("criador_mental.editor.orchestrator.image_blob_path", _bad_path)
    with pytest.raises(BackendError):
        await orchestrator.generate(editor, mode="rethink")
    assert editor.present.pages[1].generated_image is None


class TestEditsDuringBaseImageFetch:
    """The page is read again after the evolve base image is loaded."""

    @pytest.fixture
    async def drawn_editor(self):
        snapshot = Snapshot(
            pages=new_project_pages()
            + (
                Page(
                    id="ideas",
                    name="Ideas",
                    keywords=("A", "B", "C"),
                    generated_image="http://img/1.png",
                ),
            ),
            active_page_index=1,
        )
        session = await _open(snapshot)
        yield session
        session.discard()

    async def test_prompt_uses_current_keywords_and_focus(
        self, orchestrator, backend, blobs, drawn_editor, png_bytes
    ):
        async def _fetch(reference):
            drawn_editor.apply(RemoveKeyword(index=0))
            drawn_editor.set_focus(keywords=[1])
            return png_bytes()

        blobs.fetch.side_effect = _fetch
        await orchestrator.generate(drawn_editor, mode="evolve")

        prompt = backend.generate_image.await_args.args[2]
        assert '- Focused Keywords: "C"' in prompt
        assert 'All concepts to include: "B, C".' in prompt
        assert '"A, B, C"' not in prompt

    async def test_page_removed_during_fetch(self, orchestrator, backend, blobs, drawn_editor, png_bytes):
        async def _fetch(reference):
            drawn_editor.apply(RemovePage(page_id="ideas"))
            return png_bytes()

        blobs.fetch.side_effect = _fetch
        with pytest.raises(ValidationFailure):
            await orchestrator.generate(drawn_editor, mode="evolve")
        backend.generate_image.assert_not_called()
        assert drawn_editor.focus.is_empty
