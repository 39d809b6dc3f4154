"""
Editor Session

Everything that belongs to one project open in the editor: the edit
history, the focus selection, the per-page generation lock, the render
cache and the autosave scheduler.

Every present-changing history transition feeds the autosave scheduler and
reconciles the focus selection, so focus indices never outlive the
collection they were taken against.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Iterator, Optional, Set

from .autosave import AutosaveScheduler
from .history import EditHistory, History
from .render_cache import RenderCache
from ..config import settings
from ..core.errors import GenerationBusyError, PersistenceError, ValidationFailure
from ..db.projects import ProjectRecord, ProjectRepository
from ..document.commands import EditorCommand, apply_command
from ..document.models import Snapshot, SnapshotUpdate

logger = logging.getLogger("criador.editor")


# ---------------------------------------------------------------------
# Focus
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class FocusSelection:
    """Single-use priority selection for the next generation of a page."""

    page_id: Optional[str] = None
    keywords: FrozenSet[int] = field(default_factory=frozenset)
    instructions: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.keywords and not self.instructions

    def for_page(self, page_id: str) -> "FocusSelection":
        """This selection if it targets `page_id`, else an empty one."""
        return self if self.page_id == page_id else FocusSelection()


# ---------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------

class EditorSession:
    """
    One project open for editing.

    The session must be created and driven from a running event loop; the
    autosave timer is an asyncio task.
    """

    def __init__(
        self,
        project: ProjectRecord,
        repository: ProjectRepository,
        autosave_delay: Optional[float] = None,
    ) -> None:
        self.project_id = project.id
        self.owner_id = project.owner_id
        self.name = project.name
        self.created_at = project.created_at
        self.last_modified: datetime = project.last_modified

        self._repository = repository
        self.history = EditHistory(project.snapshot)
        self.focus = FocusSelection()
        self.render_cache = RenderCache()
        self._generating: Set[str] = set()

        self.autosave = AutosaveScheduler(
            save=self._persist,
            read_present=lambda: self.history.present,
            delay=settings.autosave_delay_seconds if autosave_delay is None else autosave_delay,
        )
        self.history.subscribe(self._on_history_change)
        self.autosave.activate()

    @property
    def present(self) -> Snapshot:
        return self.history.present

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, snapshot: Snapshot) -> None:
        record = await self._repository.update(self.owner_id, self.project_id, snapshot)
        if record is None:
            raise LookupError(f"Project {self.project_id} no longer exists")
        self.last_modified = record.last_modified

    async def save(self) -> None:
        """
        Persist pending changes now.

        Raises
        ------
        PersistenceError
            If the save failed. The document stays as it is.
        """
        await self.autosave.flush()
        if self.autosave.last_error:
            raise PersistenceError(f"Could not save the project: {self.autosave.last_error}")

    async def close(self) -> None:
        """Flush pending changes and stop autosaving."""
        await self.autosave.flush()
        self.autosave.deactivate()
        self.render_cache.clear()
        logger.info("Closed project %s (%d save(s))", self.project_id, self.autosave.save_count)

    def discard(self) -> None:
        """Stop autosaving without saving (the project was deleted)."""
        self.autosave.deactivate()
        self.render_cache.clear()
        logger.info("Discarded project %s", self.project_id)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def apply(self, command: EditorCommand) -> bool:
        return self.history.commit(apply_command(self.present, command))

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def replace_document(self, snapshot: Snapshot) -> None:
        """Replace the whole document (import) without an undo step back."""
        self.history.reset(snapshot)
        self.autosave.notify()

    def set_generated_image(self, page_id: str, reference: str) -> bool:
        """
        Commit a new image for a page against the current `present`.

        Returns False if the page no longer exists.
        """
        present = self.present
        page = present.find_page(page_id)
        if page is None:
            return False
        updated = page.replace(generated_image=reference)
        self.history.commit(SnapshotUpdate(pages=present.with_page(updated)))
        return True

    def _on_history_change(self, kind: str, previous: Snapshot, history: History) -> None:
        self._reconcile_focus(previous, history.present)
        if kind != "reset":
            self.autosave.notify()

    # ------------------------------------------------------------------
    # Focus
    # ------------------------------------------------------------------

    def set_focus(
        self,
        keywords: Iterable[int] = (),
        instructions: Iterable[int] = (),
        page_id: Optional[str] = None,
    ) -> FocusSelection:
        """
        Select keyword/instruction indices of a page for the next generation.

        Defaults to the active page.

        Raises
        ------
        ValidationFailure
            If the page does not exist or an index is out of range.
        """
        page = self.present.active_page if page_id is None else self.present.find_page(page_id)
        if page is None:
            raise ValidationFailure(f"Page '{page_id}' does not exist.")

        keyword_set = frozenset(keywords)
        instruction_set = frozenset(instructions)
        if any(i < 0 or i >= len(page.keywords) for i in keyword_set):
            raise ValidationFailure("A focused keyword does not exist.")
        if any(i < 0 or i >= len(page.instructions) for i in instruction_set):
            raise ValidationFailure("A focused instruction does not exist.")

        self.focus = FocusSelection(page.id, keyword_set, instruction_set)
        return self.focus

    def clear_focus(self) -> None:
        self.focus = FocusSelection()

    def _reconcile_focus(self, previous: Snapshot, present: Snapshot) -> None:
        focus = self.focus
        if focus.page_id is None:
            return

        before = previous.find_page(focus.page_id)
        after = present.find_page(focus.page_id)
        if (
            before is None
            or after is None
            or previous.active_page.id != present.active_page.id
        ):
            self.clear_focus()
            return

        keywords = focus.keywords if before.keywords == after.keywords else frozenset()
        instructions = (
            focus.instructions if before.instructions == after.instructions else frozenset()
        )
        if not keywords and not instructions:
            self.clear_focus()
        else:
            self.focus = FocusSelection(focus.page_id, keywords, instructions)

    # ------------------------------------------------------------------
    # Generation lock
    # ------------------------------------------------------------------

    @property
    def generating_pages(self) -> FrozenSet[str]:
        return frozenset(self._generating)

    @contextmanager
    def generation_slot(self, page_id: str) -> Iterator[None]:
        """
        Hold the generation lock of a page.

        Raises
        ------
        GenerationBusyError
            If a generation for the page is already in flight.
        """
        if page_id in self._generating:
            raise GenerationBusyError("A drawing for this page is already being generated.")
        self._generating.add(page_id)
        try:
            yield
        finally:
            self._generating.discard(page_id)
