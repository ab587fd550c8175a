"""Layout, pagination and PDF assembly of fax documents."""

from faxbridge.rendering.assembler import assemble
from faxbridge.rendering.layout_engine import LayoutEngine, PageLayout, layout, render
from faxbridge.rendering.paginator import estimate_block_height, paginate, paginate_draft
from faxbridge.rendering.renderer import DocumentRenderer, RenderedDocument

__all__ = [
    "assemble",
    "LayoutEngine",
    "PageLayout",
    "layout",
    "render",
    "estimate_block_height",
    "paginate",
    "paginate_draft",
    "DocumentRenderer",
    "RenderedDocument",
]
