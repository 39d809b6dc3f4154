"""
API Models

Pydantic models used for request/response validation across the session,
project, editor and chat endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Document payloads reuse the document model itself (camelCase pages)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from ..db.projects import ProjectRecord
from ..document.commands import EditorCommand
from ..document.models import Page
from ..editor.composer import GenerationMode
from ..editor.session import EditorSession
from ..sessions.application import ApplicationSession


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    Used for create/update/delete-style endpoints.
    """
    status: Literal["updated", "deleted", "created", "ok"]
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------

class SessionResponse(BaseModel):
    status: Literal["loading", "auth", "dashboard", "editor"]
    user_id: Optional[str] = None
    email: Optional[str] = None
    active_project_id: Optional[str] = None

    @classmethod
    def from_session(cls, session: ApplicationSession) -> "SessionResponse":
        state = session.state
        return cls(
            status=state.status,
            user_id=state.user.user_id if state.user else None,
            email=state.user.email if state.user else None,
            active_project_id=state.active_project_id,
        )


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    model_config = ConfigDict(extra="forbid")


class ProjectSummary(BaseModel):
    id: str
    name: str
    page_count: int
    created_at: datetime
    last_modified: datetime

    @classmethod
    def from_record(cls, record: ProjectRecord) -> "ProjectSummary":
        return cls(
            id=record.id,
            name=record.name,
            page_count=len(record.snapshot.pages),
            created_at=record.created_at,
            last_modified=record.last_modified,
        )


# ---------------------------------------------------------------------
# Editor
# ---------------------------------------------------------------------

class FocusState(BaseModel):
    page_id: Optional[str] = None
    keywords: List[int] = Field(default_factory=list)
    instructions: List[int] = Field(default_factory=list)


class AutosaveState(BaseModel):
    pending: bool
    dirty: bool
    last_error: Optional[str] = None
    last_saved_at: Optional[datetime] = None


class EditorStateResponse(BaseModel):
    project_id: str
    name: str
    pages: List[Page]
    active_page_index: int
    can_undo: bool
    can_redo: bool
    focus: FocusState
    generating_page_ids: List[str]
    autosave: AutosaveState

    @classmethod
    def from_editor(cls, editor: EditorSession) -> "EditorStateResponse":
        present = editor.present
        focus = editor.focus
        return cls(
            project_id=editor.project_id,
            name=editor.name,
            pages=list(present.pages),
            active_page_index=present.active_page_index,
            can_undo=editor.history.can_undo,
            can_redo=editor.history.can_redo,
            focus=FocusState(
                page_id=focus.page_id,
                keywords=sorted(focus.keywords),
                instructions=sorted(focus.instructions),
            ),
            generating_page_ids=sorted(editor.generating_pages),
            autosave=AutosaveState(
                pending=editor.autosave.pending,
                dirty=editor.autosave.dirty,
                last_error=editor.autosave.last_error,
                last_saved_at=editor.autosave.last_saved_at,
            ),
        )


class CommandRequest(BaseModel):
    command: EditorCommand


class FocusRequest(BaseModel):
    page_id: Optional[str] = None
    keywords: List[int] = Field(default_factory=list)
    instructions: List[int] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class GenerateRequest(BaseModel):
    page_id: Optional[str] = None
    mode: GenerationMode = "evolve"
    rendering: Optional[str] = Field(
        default=None,
        description="Current drawing as base64 or a data: URI; evolve base override.",
    )

    model_config = ConfigDict(extra="forbid")


class GenerateResponse(BaseModel):
    page_id: str
    mode: GenerationMode
    image_url: str
    editor: EditorStateResponse


class ImportRequest(BaseModel):
    confirm: bool = False
    project: Any


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

class ChatMessage(BaseModel):
    """
    Single message in the brainstorming conversation.
    """
    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class ChatResponse(BaseModel):
    history: List[ChatMessage]
