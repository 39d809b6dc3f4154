"""
Editor Commands

The closed set of user intents that change a document, and the single pure
function that turns one of them into a `SnapshotUpdate` for Commit.

Commands never touch history themselves: `apply_command` only reads the
current snapshot and returns the partial update to submit. Failed
preconditions raise `ValidationFailure` before anything is committed.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .models import MASTER_PAGE_ID, Page, Snapshot, SnapshotUpdate, create_page
from ..core.errors import ValidationFailure


_COMMAND_CONFIG = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------
# Command Variants
# ---------------------------------------------------------------------

class AddPage(BaseModel):
    kind: Literal["add_page"] = "add_page"
    name: str = Field(..., min_length=1)

    model_config = _COMMAND_CONFIG


class RemovePage(BaseModel):
    kind: Literal["remove_page"] = "remove_page"
    page_id: str

    model_config = _COMMAND_CONFIG


class RenamePage(BaseModel):
    kind: Literal["rename_page"] = "rename_page"
    page_id: str
    name: str = Field(..., min_length=1)

    model_config = _COMMAND_CONFIG


class SelectPage(BaseModel):
    kind: Literal["select_page"] = "select_page"
    index: int = Field(..., ge=0)

    model_config = _COMMAND_CONFIG


class AddKeyword(BaseModel):
    kind: Literal["add_keyword"] = "add_keyword"
    text: str

    model_config = _COMMAND_CONFIG


class RemoveKeyword(BaseModel):
    kind: Literal["remove_keyword"] = "remove_keyword"
    index: int = Field(..., ge=0)

    model_config = _COMMAND_CONFIG


class AddInstruction(BaseModel):
    kind: Literal["add_instruction"] = "add_instruction"
    text: str

    model_config = _COMMAND_CONFIG


class RemoveInstruction(BaseModel):
    kind: Literal["remove_instruction"] = "remove_instruction"
    index: int = Field(..., ge=0)

    model_config = _COMMAND_CONFIG


class ToggleContextPage(BaseModel):
    kind: Literal["toggle_context_page"] = "toggle_context_page"
    page_id: str
    context_page_id: str

    model_config = _COMMAND_CONFIG


class SaveVersion(BaseModel):
    kind: Literal["save_version"] = "save_version"
    page_id: str

    model_config = _COMMAND_CONFIG


class RestoreVersion(BaseModel):
    kind: Literal["restore_version"] = "restore_version"
    page_id: str
    index: int = Field(..., ge=0)

    model_config = _COMMAND_CONFIG


EditorCommand = Annotated[
    Union[
        AddPage,
        RemovePage,
        RenamePage,
        SelectPage,
        AddKeyword,
        RemoveKeyword,
        AddInstruction,
        RemoveInstruction,
        ToggleContextPage,
        SaveVersion,
        RestoreVersion,
    ],
    Field(discriminator="kind"),
]

command_adapter: TypeAdapter[EditorCommand] = TypeAdapter(EditorCommand)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _require_page(snapshot: Snapshot, page_id: str) -> Page:
    page = snapshot.find_page(page_id)
    if page is None:
        raise ValidationFailure(f"Page '{page_id}' does not exist.")
    return page


def _require_editable(page: Page) -> None:
    if page.id == MASTER_PAGE_ID:
        raise ValidationFailure(
            "The master page has no keywords or instructions of its own."
        )


def _clean_text(text: str, label: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        raise ValidationFailure(f"The {label} cannot be empty.")
    return cleaned


def _without_index(items: tuple, index: int, label: str) -> tuple:
    if index >= len(items):
        raise ValidationFailure(f"There is no {label} at position {index}.")
    return items[:index] + items[index + 1:]


def new_page_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------

def apply_command(snapshot: Snapshot, command: EditorCommand) -> SnapshotUpdate:
    """
    Translate a command into the partial snapshot to commit.

    Parameters
    ----------
    snapshot : Snapshot
        The current `present`.
    command : EditorCommand
        Any command variant.

    Returns
    -------
    SnapshotUpdate
        The update to pass to `EditHistory.commit`.

    Raises
    ------
    ValidationFailure
        If the command is not applicable to `snapshot`.
    """
    active = snapshot.active_page

    if isinstance(command, AddPage):
        page = create_page(new_page_id(), _clean_text(command.name, "page name"))
        pages = snapshot.pages + (page,)
        return SnapshotUpdate(pages=pages, active_page_index=len(pages) - 1)

    if isinstance(command, RemovePage):
        target = _require_page(snapshot, command.page_id)
        if target.id == MASTER_PAGE_ID:
            raise ValidationFailure("The master page cannot be removed.")
        removed_at = snapshot.index_of(target.id)
        pages = tuple(
            p.replace(context_page_ids=tuple(c for c in p.context_page_ids if c != target.id))
            if target.id in p.context_page_ids else p
            for p in snapshot.pages
            if p.id != target.id
        )
        index = snapshot.active_page_index
        if index > removed_at or index >= len(pages):
            index -= 1
        return SnapshotUpdate(pages=pages, active_page_index=max(index, 0))

    if isinstance(command, RenamePage):
        target = _require_page(snapshot, command.page_id)
        renamed = target.replace(name=_clean_text(command.name, "page name"))
        return SnapshotUpdate(pages=snapshot.with_page(renamed))

    if isinstance(command, SelectPage):
        if command.index >= len(snapshot.pages):
            raise ValidationFailure(f"There is no page at position {command.index}.")
        return SnapshotUpdate(active_page_index=command.index)

    if isinstance(command, AddKeyword):
        _require_editable(active)
        updated = active.replace(
            keywords=active.keywords + (_clean_text(command.text, "keyword"),)
        )
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    if isinstance(command, RemoveKeyword):
        _require_editable(active)
        updated = active.replace(
            keywords=_without_index(active.keywords, command.index, "keyword")
        )
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    if isinstance(command, AddInstruction):
        _require_editable(active)
        updated = active.replace(
            instructions=active.instructions + (_clean_text(command.text, "instruction"),)
        )
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    if isinstance(command, RemoveInstruction):
        _require_editable(active)
        updated = active.replace(
            instructions=_without_index(active.instructions, command.index, "instruction")
        )
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    if isinstance(command, ToggleContextPage):
        target = _require_page(snapshot, command.page_id)
        _require_editable(target)
        context = _require_page(snapshot, command.context_page_id)
        if context.id == MASTER_PAGE_ID or context.id == target.id:
            raise ValidationFailure(
                "Only other non-master pages can be used as context."
            )
        if context.id in target.context_page_ids:
            ids = tuple(c for c in target.context_page_ids if c != context.id)
        else:
            ids = target.context_page_ids + (context.id,)
        return SnapshotUpdate(pages=snapshot.with_page(target.replace(context_page_ids=ids)))

    if isinstance(command, SaveVersion):
        target = _require_page(snapshot, command.page_id)
        if not target.generated_image:
            raise ValidationFailure("There is no drawing to save as a version yet.")
        updated = target.replace(versions=target.versions + (target.generated_image,))
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    if isinstance(command, RestoreVersion):
        target = _require_page(snapshot, command.page_id)
        if command.index >= len(target.versions):
            raise ValidationFailure(f"There is no version at position {command.index}.")
        updated = target.replace(generated_image=target.versions[command.index])
        return SnapshotUpdate(pages=snapshot.with_page(updated))

    raise TypeError(f"Unknown editor command: {type(command).__name__}")
