"""
Editor Routes

Operations on the project currently open in the caller's session: document
commands, undo/redo, focus selection, image generation, explicit save,
export and import.

Every mutating route answers with the full editor state so the client can
re-render from a single source of truth.
"""

import base64
import binascii
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Response

from .dependencies import get_app_session, get_blob_store, get_orchestrator
from .models import (
    CommandRequest,
    EditorStateResponse,
    FocusRequest,
    GenerateRequest,
    GenerateResponse,
    ImportRequest,
    SessionResponse,
)
from ..core.errors import ValidationFailure
from ..editor.orchestrator import GenerationOrchestrator
from ..exports.bundles import export_json, export_zip, import_payload, json_filename, zip_filename
from ..sessions.application import ApplicationSession
from ..storage.blobs import LocalBlobStore

router = APIRouter(prefix="/editor", tags=["editor"])

SessionDep = Annotated[ApplicationSession, Depends(get_app_session)]


def _decode_rendering(rendering: Optional[str]) -> Optional[bytes]:
    """Decode a base64 payload, with or without a ``data:`` prefix."""
    if rendering is None:
        return None
    encoded = rendering.split(",", 1)[1] if rendering.startswith("data:") else rendering
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationFailure("The current drawing is not valid base64.") from exc


# ---------------------------------------------------------------------
# State & Editing
# ---------------------------------------------------------------------

@router.get("", response_model=EditorStateResponse)
async def get_editor(session: SessionDep) -> EditorStateResponse:
    return EditorStateResponse.from_editor(session.require_editor())


@router.post("/commands", response_model=EditorStateResponse)
async def apply_command(req: CommandRequest, session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    editor.apply(req.command)
    return EditorStateResponse.from_editor(editor)


@router.post("/undo", response_model=EditorStateResponse)
async def undo(session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    editor.undo()
    return EditorStateResponse.from_editor(editor)


@router.post("/redo", response_model=EditorStateResponse)
async def redo(session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    editor.redo()
    return EditorStateResponse.from_editor(editor)


@router.put("/focus", response_model=EditorStateResponse)
async def set_focus(req: FocusRequest, session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    editor.set_focus(req.keywords, req.instructions, page_id=req.page_id)
    return EditorStateResponse.from_editor(editor)


@router.delete("/focus", response_model=EditorStateResponse)
async def clear_focus(session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    editor.clear_focus()
    return EditorStateResponse.from_editor(editor)


# ---------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------

@router.post("/generate", response_model=GenerateResponse)
async def generate(
    req: GenerateRequest,
    session: SessionDep,
    orchestrator: Annotated[GenerationOrchestrator, Depends(get_orchestrator)],
) -> GenerateResponse:
    """
    Generate a drawing for a page (the active page by default).

    The editor state in the response reflects the document *after* the
    result was committed, including edits made while generating.
    """
    editor = session.require_editor()
    result = await orchestrator.generate(
        editor,
        page_id=req.page_id,
        mode=req.mode,
        rendering=_decode_rendering(req.rendering),
    )
    return GenerateResponse(
        page_id=result.page_id,
        mode=result.mode,
        image_url=result.image_url,
        editor=EditorStateResponse.from_editor(editor),
    )


# ---------------------------------------------------------------------
# Persistence & Lifecycle
# ---------------------------------------------------------------------

@router.post("/save", response_model=EditorStateResponse)
async def save(session: SessionDep) -> EditorStateResponse:
    editor = session.require_editor()
    await editor.save()
    return EditorStateResponse.from_editor(editor)


@router.post("/close", response_model=SessionResponse)
async def close(session: SessionDep) -> SessionResponse:
    """Flush pending changes and return to the dashboard."""
    session.require_editor()
    await session.exit_editor()
    return SessionResponse.from_session(session)


# ---------------------------------------------------------------------
# Export / Import
# ---------------------------------------------------------------------

@router.get("/export.json")
async def export_project_json(session: SessionDep) -> Response:
    editor = session.require_editor()
    return Response(
        content=export_json(editor.name, editor.present),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{json_filename(editor.name)}"'},
    )


@router.get("/export.zip")
async def export_project_zip(
    session: SessionDep,
    blobs: Annotated[LocalBlobStore, Depends(get_blob_store)],
) -> Response:
    editor = session.require_editor()
    archive = await export_zip(editor.present, blobs.fetch)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{zip_filename(editor.name)}"'},
    )


@router.post("/import", response_model=EditorStateResponse)
async def import_project(req: ImportRequest, session: SessionDep) -> EditorStateResponse:
    """
    Replace the open document with an exported one. Requires ``confirm``.

    Undo history is discarded; the imported document is autosaved.
    """
    editor = session.require_editor()
    if not req.confirm:
        raise ValidationFailure("Importing replaces the current project and requires confirmation.")
    imported = import_payload(req.project)
    editor.replace_document(imported.snapshot)
    return EditorStateResponse.from_editor(editor)
