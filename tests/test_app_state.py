import pytest

from criador_mental.auth.models import UserContext
from criador_mental.sessions.app_state import (
    AppState,
    EditorExited,
    LoggedOut,
    ProjectDeleted,
    ProjectOpened,
    SessionResolved,
    transition,
)

USER = UserContext(user_id="user-1", email="ana@example.com")


def test_session_resolved_with_user_goes_to_dashboard():
    state = transition(AppState(), SessionResolved(USER))
    assert state.status == "dashboard"
    assert state.user == USER


def test_session_resolved_without_user_goes_to_auth():
    assert transition(AppState(), SessionResolved(None)).status == "auth"
    assert transition(AppState(status="auth"), SessionResolved(USER)).status == "dashboard"


def test_open_and_exit_editor():
    dashboard = AppState(status="dashboard", user=USER)
    editor = transition(dashboard, ProjectOpened("p1"))
    assert editor.status == "editor"
    assert editor.active_project_id == "p1"

    switched = transition(editor, ProjectOpened("p2"))
    assert switched.active_project_id == "p2"

    back = transition(editor, EditorExited())
    assert back.status == "dashboard"
    assert back.active_project_id is None
    assert back.user == USER


def test_deleting_open_project_returns_to_dashboard():
    editor = AppState(status="editor", user=USER, active_project_id="p1")
    assert transition(editor, ProjectDeleted("p1")).status == "dashboard"
    assert transition(editor, ProjectDeleted("other")) is editor


def test_logout_from_anywhere():
    for status in ("loading", "auth", "dashboard", "editor"):
        state = transition(AppState(status=status, user=USER, active_project_id="p1"), LoggedOut())
        assert state == AppState(status="auth")


@pytest.mark.parametrize(
    "state, event",
    [
        (AppState(status="loading"), ProjectOpened("p1")),
        (AppState(status="auth"), EditorExited()),
        (AppState(status="dashboard", user=USER), EditorExited()),
        (AppState(status="dashboard", user=USER), SessionResolved(None)),
        (AppState(status="dashboard", user=USER), ProjectDeleted("p1")),
    ],
)
def test_invalid_events_are_noops(state, event):
    assert transition(state, event) is state


def test_unknown_event_raises():
    with pytest.raises(TypeError):
        transition(AppState(), object())
