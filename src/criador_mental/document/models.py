"""
Document Model

Immutable page and snapshot types for a mind-map project.

A project is an ordered sequence of pages. Exactly one page carries the
reserved id ``"master"``; it holds no keywords or instructions of its own and
instead synthesizes every other page when a drawing is generated.

All models are frozen and use tuples for their collections, so a snapshot
that has been pushed into history can never be mutated in place. New
snapshots are produced by copy-on-write (`Page.replace`, `Snapshot.merged`).
Field names are exposed in camelCase on the wire for compatibility with
stored project records and JSON exports.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


MASTER_PAGE_ID = "master"
MASTER_PAGE_NAME = "Master"


_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


# ---------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------

class Page(BaseModel):
    """
    A named content unit of the document.

    `keywords` and `instructions` are ordered; focus selections refer to
    them by index. `versions` is the user's explicit checkpoint history of
    generated images and is independent of undo/redo.
    """

    id: str = Field(..., min_length=1)
    name: str
    keywords: Tuple[str, ...] = ()
    instructions: Tuple[str, ...] = ()
    generated_image: Optional[str] = None
    versions: Tuple[str, ...] = ()
    context_page_ids: Tuple[str, ...] = ()

    model_config = _MODEL_CONFIG

    @model_validator(mode="after")
    def _check_context_ids(self) -> "Page":
        if self.id in self.context_page_ids:
            raise ValueError(f"page '{self.id}' cannot use itself as context")
        if MASTER_PAGE_ID in self.context_page_ids:
            raise ValueError("the master page cannot be used as context")
        if len(set(self.context_page_ids)) != len(self.context_page_ids):
            raise ValueError(f"page '{self.id}' has duplicate context page ids")
        if self.id == MASTER_PAGE_ID and (self.keywords or self.instructions):
            raise ValueError("the master page cannot hold keywords or instructions")
        return self

    def replace(self, **changes: Any) -> "Page":
        """Return a validated copy of this page with `changes` applied."""
        data = self.model_dump()
        data.update(changes)
        return Page.model_validate(data)


def create_page(id: str, name: str) -> Page:
    """Construct a page with empty collections."""
    return Page(id=id, name=name)


def is_master_page(page: Page) -> bool:
    return page.id == MASTER_PAGE_ID


def new_project_pages() -> Tuple[Page, ...]:
    """Pages of a freshly created project: the master page only."""
    return (create_page(MASTER_PAGE_ID, MASTER_PAGE_NAME),)


# ---------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------

class SnapshotUpdate(BaseModel):
    """
    Partial snapshot submitted to Commit.

    Unset fields keep their value from the current `present`.
    """

    pages: Optional[Tuple[Page, ...]] = None
    active_page_index: Optional[int] = Field(default=None, ge=0)

    model_config = _MODEL_CONFIG


class Snapshot(BaseModel):
    """
    One point in the edit history: the pages and the focused page index.

    Validation enforces the structural invariants of a document, so every
    `Snapshot` instance is a valid document state.
    """

    pages: Tuple[Page, ...] = Field(..., min_length=1)
    active_page_index: int = Field(default=0, ge=0)

    model_config = _MODEL_CONFIG

    @model_validator(mode="after")
    def _check_invariants(self) -> "Snapshot":
        ids = [page.id for page in self.pages]

        if len(set(ids)) != len(ids):
            raise ValueError("page ids must be unique")

        if ids.count(MASTER_PAGE_ID) != 1:
            raise ValueError("a document must contain exactly one master page")

        if self.active_page_index >= len(self.pages):
            raise ValueError(
                f"active page index {self.active_page_index} out of range "
                f"for {len(self.pages)} page(s)"
            )

        return self

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def active_page(self) -> Page:
        return self.pages[self.active_page_index]

    def find_page(self, page_id: str) -> Optional[Page]:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None

    def index_of(self, page_id: str) -> Optional[int]:
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return index
        return None

    # ------------------------------------------------------------------
    # Copy-on-write helpers
    # ------------------------------------------------------------------

    def merged(self, update: SnapshotUpdate) -> "Snapshot":
        """Return this snapshot with the fields set on `update` replaced."""
        data: Dict[str, Any] = {
            "pages": self.pages,
            "active_page_index": self.active_page_index,
        }
        if update.pages is not None:
            data["pages"] = update.pages
        if update.active_page_index is not None:
            data["active_page_index"] = update.active_page_index
        return Snapshot(**data)

    def with_page(self, page: Page) -> Tuple[Page, ...]:
        """Return the page tuple with the page of the same id replaced."""
        return tuple(page if p.id == page.id else p for p in self.pages)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def pages_payload(self) -> list:
        """Pages as JSON-compatible dicts, camelCase keys."""
        return [page.model_dump(mode="json", by_alias=True) for page in self.pages]

    @classmethod
    def from_record(cls, pages: Sequence[Any], active_page_index: int = 0) -> "Snapshot":
        """Build a snapshot from a stored or imported page list."""
        return cls.model_validate(
            {"pages": list(pages), "activePageIndex": active_page_index or 0}
        )
