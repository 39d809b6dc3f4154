"""
Session Routes

Identity resolution and logout. `GET /session` is the only endpoint that
accepts a missing token: the answer is then the sign-in status.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from .models import SessionResponse
from ..auth.models import UserContext
from ..auth.security import require_user, resolve_optional_user
from ..sessions.store import session_store

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=SessionResponse)
def get_session(
    user: Annotated[Optional[UserContext], Depends(resolve_optional_user)],
) -> SessionResponse:
    if user is None:
        return SessionResponse(status="auth")

    session = session_store.get_or_create(user.user_id)
    if session.state.status in ("loading", "auth"):
        session.resolve(user)
    return SessionResponse.from_session(session)


@router.post("/logout", response_model=SessionResponse)
async def logout(
    user: Annotated[UserContext, Depends(require_user)],
) -> SessionResponse:
    """
    Flush any open project, drop the user's session and chat history.
    """
    session = session_store.get(user.user_id)
    if session is not None:
        try:
            await session.logout()
        finally:
            session_store.remove(user.user_id)
    return SessionResponse(status="auth")
