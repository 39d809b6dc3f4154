"""
Prompt Composer

Builds the text prompt sent to the image model for one page.

The order of clauses for a regular page is part of the contract with the
downstream model: coverage rule, mode rule, focus priority, cross-page
context, instruction summary, keyword summary.
"""

from __future__ import annotations

from typing import Iterable, List, Literal, Sequence

from ..document.models import MASTER_PAGE_ID, Page, is_master_page

GenerationMode = Literal["evolve", "rethink"]

KEYWORD_SEPARATOR = ", "
INSTRUCTION_SEPARATOR = ". "

MASTER_HEADER = (
    "YOUR TASK IS TO CREATE A MASTER MIND MAP. Synthesize all concepts from "
    "all the user's pages into one single, cohesive drawing. Identify and "
    "visualize the connections, overlaps, and high-level themes between them. "
    "The final drawing must be a unified \"brain\" of the entire project."
)

MASTER_EVOLVE_CLAUSE = (
    "Evolve the previous master drawing with this complete context. "
    "Do not start from scratch."
)

COVERAGE_RULE = (
    "GOLDEN RULE: YOU MUST REPRESENT 100% OF ALL KEYWORDS AND FOLLOW 100% OF "
    "ALL INSTRUCTIONS for the page \"{name}\". No concept can be ignored. Use "
    "simple icons, text labels, and arrows. Maintain the hand-drawn, "
    "minimalist style unless an instruction says otherwise."
)

EVOLVE_RULE = (
    "RULE 2: EVOLVE, DO NOT RESTART. Evolve the provided drawing for page "
    "\"{name}\". Integrate all keywords and instructions by modifying, adding "
    "to, or refining the existing visual elements."
)

RETHINK_RULE = (
    "RULE 2: START FRESH. Generate a completely new mind map for page "
    "\"{name}\" from a blank canvas, synthesizing all keywords and instructions."
)

FOCUS_HEADER = (
    "CRITICAL FOCUS FOR THIS UPDATE: The user has specifically highlighted the "
    "following items. Give them maximum priority:"
)

CONTEXT_HEADER = (
    "ADDITIONAL CONTEXT: Use the following page(s) as inspiration. Find visual "
    "connections and synergies with the current page's concepts."
)


def _resolve(items: Sequence[str], indices: Iterable[int]) -> List[str]:
    """Map indices onto `items` in ascending order, ignoring stale ones."""
    return [items[i] for i in sorted(set(indices)) if 0 <= i < len(items)]


def _quoted_list(items: Sequence[str]) -> str:
    return '"' + '", "'.join(items) + '"'


def _compose_master(pages: Sequence[Page], mode: GenerationMode) -> str:
    prompt = MASTER_HEADER
    for page in pages:
        if page.id == MASTER_PAGE_ID or not page.keywords:
            continue
        prompt += (
            f"\n\n- On page \"{page.name}\", the core concepts are: "
            f"\"{KEYWORD_SEPARATOR.join(page.keywords)}\". "
            f"The instructions were: \"{INSTRUCTION_SEPARATOR.join(page.instructions)}\"."
        )
    if mode == "evolve":
        prompt += "\n\n" + MASTER_EVOLVE_CLAUSE
    return prompt


def compose_prompt(
    pages: Sequence[Page],
    target_page: Page,
    mode: GenerationMode,
    focused_keyword_idx: Iterable[int] = (),
    focused_instruction_idx: Iterable[int] = (),
) -> str:
    """
    Compose the generation prompt for `target_page`.

    Parameters
    ----------
    pages : Sequence[Page]
        All pages of the document, in display order.
    target_page : Page
        The page being drawn.
    mode : {"evolve", "rethink"}
        Modify the existing drawing, or start from a blank canvas.
    focused_keyword_idx, focused_instruction_idx : Iterable[int]
        Indices into the target page's current keywords/instructions that
        should receive top priority. Out-of-range indices are ignored.

    Returns
    -------
    str
        The prompt text.
    """
    if is_master_page(target_page):
        return _compose_master(pages, mode)

    name = target_page.name
    clauses: List[str] = [COVERAGE_RULE.format(name=name)]

    clauses.append(
        EVOLVE_RULE.format(name=name) if mode == "evolve" else RETHINK_RULE.format(name=name)
    )

    focused_keywords = _resolve(target_page.keywords, focused_keyword_idx)
    focused_instructions = _resolve(target_page.instructions, focused_instruction_idx)
    if focused_keywords or focused_instructions:
        focus = FOCUS_HEADER
        if focused_keywords:
            focus += f"\n- Focused Keywords: {_quoted_list(focused_keywords)}"
        if focused_instructions:
            focus += f"\n- Focused Instructions: {_quoted_list(focused_instructions)}"
        clauses.append(focus)

    # Ids of removed or never-imported pages are skipped
    by_id = {page.id: page for page in pages}
    context_pages = [by_id[i] for i in target_page.context_page_ids if i in by_id]
    if context_pages:
        context = CONTEXT_HEADER
        for page in context_pages:
            context += (
                f"\n- From page \"{page.name}\": Core concepts are "
                f"\"{KEYWORD_SEPARATOR.join(page.keywords)}\". Key instructions were: "
                f"\"{INSTRUCTION_SEPARATOR.join(page.instructions)}\"."
            )
        clauses.append(context)

    if target_page.instructions:
        clauses.append(
            "Overall instructions to follow: "
            f"\"{INSTRUCTION_SEPARATOR.join(target_page.instructions)}\"."
        )

    clauses.append(
        f"All concepts to include: \"{KEYWORD_SEPARATOR.join(target_page.keywords)}\"."
    )

    return "\n\n".join(clauses)
