"""
Project Export / Import

- JSON: ``{name, pages, activePageIndex}`` with camelCase page fields, the
  same shape the project store uses. Importing parses and validates the
  whole payload before anything is touched.
- ZIP: one folder per page holding the current drawing
  (``desenho_atual.png``) and a Markdown summary of its ideas
  (``ideias.md``).
"""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from ..core.errors import ImportParseError
from ..document.models import Page, Snapshot, is_master_page

logger = logging.getLogger("criador.exports")

Fetch = Callable[[str], Awaitable[bytes]]

IMAGE_FILENAME = "desenho_atual.png"
IDEAS_FILENAME = "ideias.md"
MASTER_NOTE = "Esta é a página Master, que sintetiza todas as outras páginas."
EMPTY_LIST = "(Nenhuma)"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(frozen=True)
class ImportedProject:
    name: Optional[str]
    snapshot: Snapshot


# ---------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------

def export_payload(name: str, snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "name": name,
        "pages": snapshot.pages_payload(),
        "activePageIndex": snapshot.active_page_index,
    }


def export_json(name: str, snapshot: Snapshot) -> str:
    return json.dumps(export_payload(name, snapshot), ensure_ascii=False, indent=2)


def import_json(raw: str | bytes) -> ImportedProject:
    """
    Parse an exported project.

    Raises
    ------
    ImportParseError
        If the payload is not JSON, lacks a page list, or fails the
        document invariants. Nothing is partially applied.
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ImportParseError("Failed to import project: the file is not valid JSON.") from exc
    return import_payload(data)


def import_payload(data: Any) -> ImportedProject:
    """Validate an already-decoded export payload (see `import_json`)."""
    if not isinstance(data, dict) or not isinstance(data.get("pages"), list):
        raise ImportParseError("Failed to import project: invalid JSON format.")

    active_index = data.get("activePageIndex", 0)
    if not isinstance(active_index, int) or isinstance(active_index, bool):
        raise ImportParseError("Failed to import project: invalid active page index.")

    try:
        snapshot = Snapshot.from_record(data["pages"], active_index)
    except ValidationError as exc:
        logger.info("Rejected import: %s", exc)
        raise ImportParseError(f"Failed to import project: {exc.errors()[0]['msg']}") from exc

    name = data.get("name")
    return ImportedProject(name=name if isinstance(name, str) else None, snapshot=snapshot)


# ---------------------------------------------------------------------
# ZIP
# ---------------------------------------------------------------------

def safe_folder_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name).lower()


def zip_filename(project_name: str) -> str:
    return f"criador_mental_{_UNSAFE_CHARS.sub('_', project_name) or 'projeto'}.zip"


def json_filename(project_name: str) -> str:
    return f"{safe_folder_name(project_name)}_project.json"


def ideas_markdown(page: Page) -> str:
    text = f"# {page.name}\n\n"
    if is_master_page(page):
        return text + MASTER_NOTE + "\n\n"
    keywords = "\n- ".join(page.keywords) or EMPTY_LIST
    instructions = "\n- ".join(page.instructions) or EMPTY_LIST
    text += f"## Palavras-chave\n\n- {keywords}\n\n"
    text += f"## Instruções\n\n- {instructions}\n\n"
    return text


async def export_zip(snapshot: Snapshot, fetch: Fetch) -> bytes:
    """
    Build the ZIP archive of a project.

    A drawing that cannot be fetched is left out of its folder.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for page in snapshot.pages:
            folder = safe_folder_name(page.name)
            if page.generated_image:
                try:
                    image = await fetch(page.generated_image)
                except Exception:
                    logger.warning("Could not fetch image of page %s for export", page.id, exc_info=True)
                else:
                    archive.writestr(f"{folder}/{IMAGE_FILENAME}", image)
            archive.writestr(f"{folder}/{IDEAS_FILENAME}", ideas_markdown(page))
    return buffer.getvalue()
