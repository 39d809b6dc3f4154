from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import httpx

from ..config import settings

logger = logging.getLogger("criador.llm")

CHAT_SYSTEM_INSTRUCTION = (
    "You are a helpful AI assistant specialized in brainstorming and refining "
    "creative ideas for mind maps."
)


class GeminiError(RuntimeError):
    """Raised when the Gemini API rejects a request or returns garbage."""


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["user", "model"]
    text: str


class GeminiClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        image_model: str | None = None,
        chat_model: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.gemini_api_key.get_secret_value()
        self.base_url = str(base_url or settings.gemini_api_base_url).rstrip("/")
        self.image_model = image_model or settings.image_model
        self.chat_model = chat_model or settings.chat_model
        self.timeout = timeout or settings.ai_timeout_seconds

    async def _generate_content(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        if resp.is_error:
            # The body carries the {"error": {...}} envelope with the message
            raise GeminiError(f"Gemini request failed ({resp.status_code}): {resp.text}")
        return resp.json()

    @staticmethod
    def _first_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        return (candidates[0].get("content") or {}).get("parts") or []

    async def generate_image(
        self,
        image: bytes,
        mime_type: str,
        prompt: str,
    ) -> Optional[GeneratedImage]:
        """
        Ask the image model to draw from a base image and a prompt.

        Returns None when the model answered without an image part.
        """
        payload = {
            "contents": [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(image).decode("ascii"),
                            }
                        },
                        {"text": prompt},
                    ]
                }
            ],
            "generationConfig": {"responseModalities": ["IMAGE"]},
        }
        data = await self._generate_content(self.image_model, payload)

        for part in self._first_parts(data):
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                return GeneratedImage(
                    data=base64.b64decode(inline["data"]),
                    mime_type=inline.get("mimeType", "image/png"),
                )

        logger.warning("Image model returned no image part")
        return None

    async def chat(self, history: List[ChatTurn]) -> str:
        """
        Continue a conversation. The last turn must come from the user.
        """
        if not history or history[-1].role != "user":
            raise ValueError("Last message must be from the user.")

        payload = {
            "systemInstruction": {"parts": [{"text": CHAT_SYSTEM_INSTRUCTION}]},
            "contents": [
                {"role": turn.role, "parts": [{"text": turn.text}]}
                for turn in history
            ],
        }
        data = await self._generate_content(self.chat_model, payload)

        text = "".join(part.get("text", "") for part in self._first_parts(data))
        if not text:
            raise GeminiError("The chat model returned an empty response.")
        return text
