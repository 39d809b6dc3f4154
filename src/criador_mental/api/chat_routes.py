"""
Chat Routes: Brainstorming Conversation

A per-user conversation with the chat model, used next to the editor to
refine ideas before turning them into keywords and instructions.

Major Responsibilities
----------------------
1. Accept a single new user message.
2. Send the whole stored history (ending with that message) to the chat
   model together with the brainstorming system instruction.
3. Store the reply (or an apology turn on failure) and return the history.

Security Model
--------------
- Authentication via JWT is handled upstream by the `require_user`
  dependency; history lives in the caller's application session.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from .dependencies import get_app_session, get_llm_client
from .models import ChatMessage, ChatRequest, ChatResponse
from ..llm.client import ChatTurn, GeminiClient
from ..sessions.application import ApplicationSession

router = APIRouter(prefix="/chat", tags=["chat"])


def _to_response(history: list[ChatTurn]) -> ChatResponse:
    return ChatResponse(history=[ChatMessage(role=t.role, text=t.text) for t in history])


@router.get("", response_model=ChatResponse)
async def get_history(
    session: Annotated[ApplicationSession, Depends(get_app_session)],
) -> ChatResponse:
    return _to_response(session.chat_history)


@router.post(
    "",
    response_model=ChatResponse,
    summary="Send a brainstorming message to the chat model",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    session: Annotated[ApplicationSession, Depends(get_app_session)],
    llm: Annotated[GeminiClient, Depends(get_llm_client)],
) -> ChatResponse:
    """
    Continue the caller's conversation.

    Returns
    -------
    ChatResponse
        The full history including the model reply.
    """
    history = await session.send_chat_message(llm, req.message)
    return _to_response(history)
