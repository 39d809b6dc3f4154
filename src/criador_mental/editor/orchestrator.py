"""
Generation Orchestrator

Runs one image generation for one page of an open document:

1. validate the target page (no I/O on failure)
2. take the page's generation lock
3. pick the base image (caller rendering, cached page image, or blank canvas)
4. compose the prompt with the session's focus for that page
5. call the image backend
6. store the result and commit it against the *fresh* document state

No page snapshot is held across an await: the page and its focus are read
again once the base image is ready, and the result is applied to whatever
`present` is when the backend call returns.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .composer import GenerationMode, compose_prompt
from .render_cache import InvalidImageError, blank_canvas_png, decode_image, render_png
from .session import EditorSession
from ..config import settings
from ..core.errors import (
    BackendError,
    EmptyResultError,
    ValidationFailure,
    parse_error_message,
)
from ..document.models import Page, is_master_page
from ..llm.client import GeneratedImage
from ..storage.blobs import image_blob_path

logger = logging.getLogger("criador.generation")

PNG_MIME_TYPE = "image/png"
EMPTY_RESULT_MESSAGE = "The AI did not return an image. Please try again."


def _require_keywords(page: Page) -> Page:
    if not is_master_page(page) and not page.keywords:
        raise ValidationFailure("Add at least one keyword before generating.")
    return page


class ImageBackend(Protocol):
    async def generate_image(self, image: bytes, mime_type: str, prompt: str) -> Optional[GeneratedImage]:
        ...


class BlobStore(Protocol):
    async def write(self, path: str, data: bytes, content_type: str) -> str:
        ...

    async def fetch(self, reference: str) -> bytes:
        ...


@dataclass(frozen=True)
class GenerationResult:
    page_id: str
    mode: GenerationMode
    image_url: str
    prompt: str


class GenerationOrchestrator:
    """
    Stateless service; all per-document state lives on the `EditorSession`.
    """

    def __init__(
        self,
        backend: ImageBackend,
        blobs: BlobStore,
        canvas_width: Optional[int] = None,
        canvas_height: Optional[int] = None,
        canvas_background: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.blobs = blobs
        self.canvas_size = (
            canvas_width or settings.canvas_width,
            canvas_height or settings.canvas_height,
        )
        self.canvas_background = canvas_background or settings.canvas_background
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        session: EditorSession,
        page_id: Optional[str] = None,
        mode: GenerationMode = "evolve",
        rendering: Optional[bytes] = None,
    ) -> GenerationResult:
        """
        Generate a new drawing for a page.

        Parameters
        ----------
        session : EditorSession
            The open document.
        page_id : str, optional
            Target page; defaults to the active page.
        mode : {"evolve", "rethink"}
            Evolve the current drawing or start from a blank canvas.
        rendering : bytes, optional
            The drawing as currently shown to the user. Used as the evolve
            base instead of the stored image.

        Raises
        ------
        ValidationFailure
            Unknown page, regular page without keywords, unreadable
            rendering, or page removed while generating.
        GenerationBusyError
            A generation for this page is already running.
        EmptyResultError
            The backend answered without an image.
        BackendError
            The backend or the blob store failed.
        """
        try:
            page = self._resolve_target(session, page_id)
            with session.generation_slot(page.id):
                return await self._run(session, page, mode, rendering)
        finally:
            session.clear_focus()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_target(session: EditorSession, page_id: Optional[str]) -> Page:
        present = session.present
        page = present.active_page if page_id is None else present.find_page(page_id)
        if page is None:
            raise ValidationFailure(f"Page '{page_id}' does not exist.")
        return _require_keywords(page)

    async def _base_image(
        self,
        session: EditorSession,
        page: Page,
        mode: GenerationMode,
        rendering: Optional[bytes],
    ) -> bytes:
        if mode != "evolve" or not page.generated_image:
            return self._blank()

        if rendering is not None:
            try:
                image = decode_image(rendering)
            except InvalidImageError as exc:
                raise ValidationFailure("The current drawing could not be read.") from exc
            return render_png(image, self.canvas_size, self.canvas_background)

        try:
            image = await session.render_cache.load(
                page.id, page.generated_image, self.blobs.fetch
            )
        except Exception:
            logger.warning(
                "Could not load current drawing of page %s, using a blank canvas",
                page.id,
                exc_info=True,
            )
            return self._blank()
        return render_png(image, self.canvas_size, self.canvas_background)

    @staticmethod
    def _current_page(session: EditorSession, page_id: str) -> Page:
        page = session.present.find_page(page_id)
        if page is None:
            raise ValidationFailure("The page was removed before its drawing could be generated.")
        return _require_keywords(page)

    def _blank(self) -> bytes:
        width, height = self.canvas_size
        return blank_canvas_png(width, height, self.canvas_background)

    async def _run(
        self,
        session: EditorSession,
        page: Page,
        mode: GenerationMode,
        rendering: Optional[bytes],
    ) -> GenerationResult:
        base = await self._base_image(session, page, mode, rendering)

        # The base image fetch may have yielded to edits of this page
        page = self._current_page(session, page.id)
        focus = session.focus.for_page(page.id)
        prompt = compose_prompt(
            session.present.pages,
            page,
            mode,
            focused_keyword_idx=focus.keywords,
            focused_instruction_idx=focus.instructions,
        )

        logger.info(
            "Generating page %s of project %s (mode=%s, focus=%d/%d)",
            page.id,
            session.project_id,
            mode,
            len(focus.keywords),
            len(focus.instructions),
        )

        try:
            generated = await self.backend.generate_image(base, PNG_MIME_TYPE, prompt)
        except Exception as exc:
            logger.warning("Image generation failed for page %s: %s", page.id, exc)
            raise BackendError(parse_error_message(exc)) from exc

        if generated is None:
            raise EmptyResultError(EMPTY_RESULT_MESSAGE)

        try:
            path = image_blob_path(
                session.owner_id,
                session.project_id,
                page.id,
                int(self._clock() * 1000),
                generated.mime_type,
            )
            url = await self.blobs.write(path, generated.data, generated.mime_type)
        except Exception as exc:
            logger.warning("Could not store generated image for page %s: %s", page.id, exc)
            raise BackendError(parse_error_message(exc)) from exc

        if not session.set_generated_image(page.id, url):
            logger.info("Page %s was removed during generation; result dropped", page.id)
            raise ValidationFailure("The page was removed while its drawing was being generated.")

        logger.info("Generated page %s -> %s", page.id, url)
        return GenerationResult(page_id=page.id, mode=mode, image_url=url, prompt=prompt)
