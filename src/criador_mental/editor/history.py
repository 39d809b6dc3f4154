"""
Edit History Engine

Undo/redo state machine over the in-memory document.

The state is a `History` triple ``(past, present, future)``. Transitions are
expressed as a closed set of actions (`Commit`, `Undo`, `Redo`, `Reset`)
consumed by one pure function, `apply_history`. The `EditHistory` engine
object owns the current `History`, applies actions through that function,
and notifies listeners whenever `present` changes.

Commit is the only way new document content enters history. A Commit whose
merged result is deep-equal to `present` is a no-op, so redundant updates
never create history entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Tuple, Union

from ..document.models import Snapshot, SnapshotUpdate

logger = logging.getLogger("criador.history")


# ---------------------------------------------------------------------
# State & Actions
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class History:
    """`past` is ordered oldest to newest, `future` nearest to farthest."""

    present: Snapshot
    past: Tuple[Snapshot, ...] = ()
    future: Tuple[Snapshot, ...] = ()


@dataclass(frozen=True)
class Commit:
    update: SnapshotUpdate
    kind: Literal["commit"] = field(default="commit", init=False)


@dataclass(frozen=True)
class Undo:
    kind: Literal["undo"] = field(default="undo", init=False)


@dataclass(frozen=True)
class Redo:
    kind: Literal["redo"] = field(default="redo", init=False)


@dataclass(frozen=True)
class Reset:
    snapshot: Snapshot
    kind: Literal["reset"] = field(default="reset", init=False)


HistoryAction = Union[Commit, Undo, Redo, Reset]


# ---------------------------------------------------------------------
# Transition Function
# ---------------------------------------------------------------------

def apply_history(history: History, action: HistoryAction) -> History:
    """
    Return the history that results from applying `action`.

    Undo on an empty `past` and Redo on an empty `future` return `history`
    itself. Reset discards both stacks, so it never creates an undo step
    back to the previous document.
    """
    if isinstance(action, Commit):
        merged = history.present.merged(action.update)
        if merged == history.present:
            return history
        return History(
            present=merged,
            past=history.past + (history.present,),
            future=(),
        )

    if isinstance(action, Undo):
        if not history.past:
            return history
        return History(
            present=history.past[-1],
            past=history.past[:-1],
            future=(history.present,) + history.future,
        )

    if isinstance(action, Redo):
        if not history.future:
            return history
        return History(
            present=history.future[0],
            past=history.past + (history.present,),
            future=history.future[1:],
        )

    if isinstance(action, Reset):
        return History(present=action.snapshot)

    raise TypeError(f"Unknown history action: {type(action).__name__}")


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

HistoryListener = Callable[[str, Snapshot, History], None]


class EditHistory:
    """
    Owner of the canonical document state for one open project.

    Listeners are called as ``listener(kind, previous_present, history)``
    after every transition that replaced `present` (including Reset), never
    for no-ops.
    """

    def __init__(self, snapshot: Snapshot) -> None:
        self._history = History(present=snapshot)
        self._listeners: List[HistoryListener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def history(self) -> History:
        return self._history

    @property
    def present(self) -> Snapshot:
        return self._history.present

    @property
    def can_undo(self) -> bool:
        return bool(self._history.past)

    @property
    def can_redo(self) -> bool:
        return bool(self._history.future)

    def subscribe(self, listener: HistoryListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def dispatch(self, action: HistoryAction) -> bool:
        """
        Apply `action` and notify listeners.

        Returns
        -------
        bool
            True if the history changed.
        """
        previous = self._history
        updated = apply_history(previous, action)
        if updated is previous:
            return False

        self._history = updated
        logger.debug(
            "%s applied (past=%d, future=%d)",
            action.kind,
            len(updated.past),
            len(updated.future),
        )
        for listener in list(self._listeners):
            listener(action.kind, previous.present, updated)
        return True

    def commit(self, update: SnapshotUpdate) -> bool:
        return self.dispatch(Commit(update))

    def undo(self) -> bool:
        return self.dispatch(Undo())

    def redo(self) -> bool:
        return self.dispatch(Redo())

    def reset(self, snapshot: Snapshot) -> None:
        self.dispatch(Reset(snapshot))
