"""Splits an ordered block sequence into fixed-height pages.

Heights are estimated from character counts rather than measured glyphs,
so pagination needs no fonts. Blocks are atomic: a block that does not fit
the remaining space moves to the next page, and a block taller than a whole
page is placed alone on its own page.
"""

import math
from typing import List, Optional, Sequence

from faxbridge.core.exceptions import RenderError
from faxbridge.models.content import (
    BarcodeBlock,
    BlankSpaceBlock,
    ContentBlock,
    FooterBlock,
    ImageBlock,
    OptionListBlock,
    TEXT_LIKE_TYPES,
)
from faxbridge.models.document import Document, DocumentDraft, Page, RenderGeometry
from faxbridge.rendering.fonts import LINE_HEIGHT_FACTOR
from faxbridge.rendering.layout_engine import (
    CAPTION_GAP,
    CAPTION_SCALE,
    FOOTER_PADDING,
    MARKER_COLUMN_WIDTH,
    OPTION_GAP_FACTOR,
    OPTION_LINE_HEIGHT_FACTOR,
)
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHAR_WIDTH_FACTOR = 0.5


def estimate_line_count(text: str, font_size: int, width: float) -> int:
    """Approximate wrapped line count; each explicit newline starts a paragraph."""
    if not text:
        return 0
    chars_per_line = max(1, math.floor(width / (font_size * CHAR_WIDTH_FACTOR)))
    return sum(max(1, math.ceil(len(paragraph) / chars_per_line)) for paragraph in text.split("\n"))


def estimate_block_height(block: ContentBlock, geometry: RenderGeometry) -> float:
    """Estimated vertical extent of a block including its margins."""
    return block.margin_top + _estimate_body_height(block, geometry) + block.margin_bottom


def _estimate_body_height(block: ContentBlock, geometry: RenderGeometry) -> float:
    width = geometry.content_width

    if isinstance(block, TEXT_LIKE_TYPES):
        size = block.font_size or geometry.default_font_size
        return estimate_line_count(block.text, size, width) * size * LINE_HEIGHT_FACTOR

    if isinstance(block, OptionListBlock):
        size = block.font_size or geometry.default_font_size
        column = width - MARKER_COLUMN_WIDTH
        total = 0.0
        for option in block.options:
            lines = max(1, estimate_line_count(option.display_text(), size, column))
            total += lines * size * OPTION_LINE_HEIGHT_FACTOR + size * OPTION_GAP_FACTOR
        return total

    if isinstance(block, BarcodeBlock):
        return block.height

    if isinstance(block, ImageBlock):
        height = float(block.height)
        if block.caption:
            size = max(1, round(geometry.default_font_size * CAPTION_SCALE))
            height += CAPTION_GAP + estimate_line_count(block.caption, size, width) * size * LINE_HEIGHT_FACTOR
        return height

    if isinstance(block, BlankSpaceBlock):
        return block.height

    raise RenderError(f"Unsupported block type: {type(block).__name__}")


def page_suffix(page_number: int, total_pages: int) -> str:
    return f" | Page {page_number} of {total_pages}" if total_pages > 1 else ""


def footer_text(
    footer_template: str,
    reference_id: str,
    page_number: int,
    total_pages: int,
    support_contact: Optional[str] = None,
) -> str:
    """Footer text for one page.

    The template, then the reference id and support contact when the template
    lacks them, then the page counter.
    """
    text = footer_template
    if reference_id not in text:
        text = f"{text} | Ref: {reference_id}" if text else f"Ref: {reference_id}"
    if support_contact and support_contact not in text:
        text = f"{text} | {support_contact}"
    return text + page_suffix(page_number, total_pages)


def _make_footer(text: str, geometry: RenderGeometry) -> FooterBlock:
    return FooterBlock(text=text, font_size=_footer_font_size(geometry), alignment="center")


def _footer_font_size(geometry: RenderGeometry) -> int:
    return max(1, round(geometry.default_font_size * CAPTION_SCALE))


def _estimate_footer_reserve(
    footer_template: str,
    reference_id: str,
    block_count: int,
    geometry: RenderGeometry,
    support_contact: Optional[str] = None,
) -> float:
    # The longest possible suffix bounds every page's footer.
    worst_total = max(1, block_count)
    text = footer_text(footer_template, reference_id, worst_total, worst_total, support_contact)
    footer = _make_footer(text, geometry)
    estimated = estimate_block_height(footer, geometry) + FOOTER_PADDING
    return max(float(geometry.footer_reserve), estimated)


def available_height(geometry: RenderGeometry, footer_reserve: float) -> float:
    return geometry.height - geometry.margins.top - geometry.margins.bottom - footer_reserve


def paginate(
    blocks: Sequence[ContentBlock],
    footer_template: str,
    reference_id: str,
    geometry: RenderGeometry,
    support_contact: Optional[str] = None,
) -> List[Page]:
    """Split ``blocks`` into pages, each carrying exactly one footer.

    Args:
        blocks: Body blocks in reading order; footers are not allowed here
        footer_template: Footer text shared by every page
        reference_id: Reference code every footer must carry
        geometry: Page geometry
        support_contact: Support line every footer must carry, when known

    Returns:
        Pages numbered from 1 with ``total_pages`` filled in

    Raises:
        RenderError: If a footer block is passed in ``blocks``
    """
    if any(isinstance(block, FooterBlock) for block in blocks):
        raise RenderError("Footer blocks are added by the paginator and must not appear in the input")

    reserve = _estimate_footer_reserve(footer_template, reference_id, len(blocks), geometry, support_contact)
    budget = available_height(geometry, reserve)

    groups: List[List[ContentBlock]] = [[]]
    used = 0.0
    for block in blocks:
        height = estimate_block_height(block, geometry)
        if groups[-1] and used + height > budget:
            groups.append([])
            used = 0.0
        if height > budget:
            LOGGER.warning(
                "Block taller than one page, placing it alone",
                extra={"block_type": block.type, "estimated_height": height, "budget": budget},
            )
        groups[-1].append(block)
        used += height

    total = len(groups)
    pages = [
        Page(
            content=[
                *group,
                _make_footer(footer_text(footer_template, reference_id, number, total, support_contact), geometry),
            ],
            page_number=number,
            total_pages=total,
        )
        for number, group in enumerate(groups, start=1)
    ]

    LOGGER.debug(
        "Paginated content",
        extra={"reference_id": reference_id, "block_count": len(blocks), "page_count": total, "budget": budget},
    )
    return pages


def paginate_draft(draft: DocumentDraft, geometry: RenderGeometry) -> Document:
    """Paginate a builder draft into a validated document."""
    pages = paginate(draft.blocks, draft.footer_text, draft.reference_id, geometry, draft.support_contact)
    return Document(
        kind=draft.kind,
        reference_id=draft.reference_id,
        pages=pages,
        context_data=draft.context_data,
        support_contact=draft.support_contact,
    )
