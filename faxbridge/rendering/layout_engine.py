"""Single-page layout and rasterization.

Blocks are placed top-down with one vertical cursor. The footer is kept out
of that flow and pinned to the bottom margin, so its position depends only
on the footer itself and the page geometry.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from faxbridge.models.content import (
    Alignment,
    BarcodeBlock,
    BlankSpaceBlock,
    ContentBlock,
    FooterBlock,
    ImageBlock,
    OptionListBlock,
    TEXT_LIKE_TYPES,
)
from faxbridge.models.document import Page, RenderGeometry
from faxbridge.rendering.barcodes import generate_barcode
from faxbridge.rendering.fallbacks import handle_barcode_error, handle_image_error
from faxbridge.rendering.fonts import LINE_HEIGHT_FACTOR, Font, FontStyle, load_font, text_width, wrap_text
from faxbridge.rendering.images import fit_within
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

OPTION_LINE_HEIGHT_FACTOR = 1.4
OPTION_GAP_FACTOR = 0.4
CIRCLE_RADIUS = 14
CHECKBOX_SIZE = 20
MARKER_GAP = 20
MARKER_COLUMN_WIDTH = 2 * CIRCLE_RADIUS + MARKER_GAP
MARKER_STROKE = 3
FOOTER_PADDING = 20
CAPTION_GAP = 10
CAPTION_SCALE = 0.8

BLACK = 0
WHITE = 255


@dataclass
class TextRun:
    """One line of text as drawn on the page."""

    text: str
    x: float
    y: float
    font_size: int
    style: FontStyle = "regular"


@dataclass
class BlockPlacement:
    index: int
    block_type: str
    top: float
    bottom: float
    degraded: bool = False


@dataclass
class PageLayout:
    """Placement record of one rendered page."""

    placements: List[BlockPlacement] = field(default_factory=list)
    text_runs: List[TextRun] = field(default_factory=list)
    footer_height: float = 0.0
    footer_top: float = 0.0
    content_bottom: float = 0.0

    @property
    def overflows_footer(self) -> bool:
        return self.content_bottom > self.footer_top

    def text(self) -> str:
        return "\n".join(run.text for run in self.text_runs)


def measure_footer_height(footers: Sequence[FooterBlock], geometry: RenderGeometry) -> float:
    """Height of the pinned footer area, including the fixed padding."""
    if not footers:
        return 0.0
    total = 0.0
    for footer in footers:
        size = footer.font_size or geometry.default_font_size
        font = load_font(size, "bold" if footer.bold else "regular")
        lines = wrap_text(footer.text, font, geometry.content_width)
        total += footer.margin_top + len(lines) * size * LINE_HEIGHT_FACTOR + footer.margin_bottom
    return total + FOOTER_PADDING


class _Canvas:
    """Drawing surface that records every text run it draws."""

    def __init__(self, geometry: RenderGeometry):
        self.geometry = geometry
        self.image = Image.new("L", (geometry.width, geometry.height), WHITE)
        self.draw = ImageDraw.Draw(self.image)
        self.runs: List[TextRun] = []

    @property
    def left(self) -> int:
        return self.geometry.margins.left

    @property
    def content_width(self) -> int:
        return self.geometry.content_width

    def aligned_x(self, width: float, alignment: Alignment) -> float:
        if alignment == "center":
            return self.left + (self.content_width - width) / 2
        if alignment == "right":
            return self.left + self.content_width - width
        return self.left

    def write(self, text: str, x: float, y: float, font: Font, size: int, style: FontStyle) -> None:
        self.draw.text((x, y), text, font=font, fill=BLACK)
        self.runs.append(TextRun(text=text, x=x, y=y, font_size=size, style=style))

    def write_lines(
        self,
        lines: Sequence[str],
        y: float,
        font: Font,
        size: int,
        style: FontStyle,
        alignment: Alignment,
        line_height: float,
    ) -> float:
        for line in lines:
            self.write(line, self.aligned_x(text_width(font, line), alignment), y, font, size, style)
            y += line_height
        return y


class LayoutEngine:
    """Renders one page to a grayscale bitmap.

    Args:
        barcode_generator: Callable producing the barcode image; any exception
            it raises is turned into the payload printed as text.
    """

    def __init__(self, barcode_generator: Callable[..., Image.Image] = generate_barcode):
        self._barcode_generator = barcode_generator

    def render(self, page: Page, geometry: RenderGeometry) -> Image.Image:
        image, _ = self.render_with_layout(page, geometry)
        return image

    def layout(self, page: Page, geometry: RenderGeometry) -> PageLayout:
        _, page_layout = self.render_with_layout(page, geometry)
        return page_layout

    def render_with_layout(self, page: Page, geometry: RenderGeometry) -> Tuple[Image.Image, PageLayout]:
        """Draw the page and return the bitmap with its placement record."""
        canvas = _Canvas(geometry)
        footers = page.footers
        footer_height = measure_footer_height(footers, geometry)
        footer_top = geometry.height - geometry.margins.bottom - footer_height

        placements: List[BlockPlacement] = []
        y: float = geometry.margins.top
        for index, block in enumerate(page.content):
            if isinstance(block, FooterBlock):
                continue
            top = y
            y += block.margin_top
            y, degraded = self._draw_block(canvas, block, y)
            y += block.margin_bottom
            placements.append(BlockPlacement(index=index, block_type=block.type, top=top, bottom=y, degraded=degraded))

        if y > footer_top:
            LOGGER.warning(
                "Page content runs into the footer area",
                extra={"page_number": page.page_number, "content_bottom": y, "footer_top": footer_top},
            )

        footer_y = footer_top
        for footer in footers:
            footer_y += footer.margin_top
            footer_y = self._draw_text(canvas, footer, footer_y)
            footer_y += footer.margin_bottom

        return canvas.image, PageLayout(
            placements=placements,
            text_runs=canvas.runs,
            footer_height=footer_height,
            footer_top=footer_top,
            content_bottom=y,
        )

    def _draw_block(self, canvas: _Canvas, block: ContentBlock, y: float) -> Tuple[float, bool]:
        if isinstance(block, TEXT_LIKE_TYPES):
            return self._draw_text(canvas, block, y), False
        if isinstance(block, OptionListBlock):
            return self._draw_options(canvas, block, y), False
        if isinstance(block, BarcodeBlock):
            return self._draw_barcode(canvas, block, y)
        if isinstance(block, ImageBlock):
            return self._draw_image(canvas, block, y)
        if isinstance(block, BlankSpaceBlock):
            return y + block.height, False
        raise TypeError(f"Unsupported block type: {type(block).__name__}")

    def _draw_text(self, canvas: _Canvas, block, y: float) -> float:
        size = block.font_size or canvas.geometry.default_font_size
        style: FontStyle = "bold" if block.bold else "regular"
        font = load_font(size, style)
        lines = wrap_text(block.text, font, canvas.content_width)
        return canvas.write_lines(lines, y, font, size, style, block.alignment, size * LINE_HEIGHT_FACTOR)

    def _draw_options(self, canvas: _Canvas, block: OptionListBlock, y: float) -> float:
        size = block.font_size or canvas.geometry.default_font_size
        font = load_font(size)
        line_height = size * OPTION_LINE_HEIGHT_FACTOR
        text_x = canvas.left + MARKER_COLUMN_WIDTH
        column_width = canvas.content_width - MARKER_COLUMN_WIDTH

        for option in block.options:
            center_y = y + line_height / 2
            if block.selection == "circle":
                cx = canvas.left + CIRCLE_RADIUS
                canvas.draw.ellipse(
                    [cx - CIRCLE_RADIUS, center_y - CIRCLE_RADIUS, cx + CIRCLE_RADIUS, center_y + CIRCLE_RADIUS],
                    outline=BLACK,
                    width=MARKER_STROKE,
                )
            else:
                half = CHECKBOX_SIZE / 2
                cx = canvas.left + CIRCLE_RADIUS
                canvas.draw.rectangle(
                    [cx - half, center_y - half, cx + half, center_y + half],
                    outline=BLACK,
                    width=MARKER_STROKE,
                )

            lines = wrap_text(option.display_text(), font, column_width) or [""]
            for line in lines:
                canvas.write(line, text_x, y, font, size, "regular")
                y += line_height
            y += size * OPTION_GAP_FACTOR
        return y

    def _draw_barcode(self, canvas: _Canvas, block: BarcodeBlock, y: float) -> Tuple[float, bool]:
        x = canvas.left + (canvas.content_width - block.width) / 2
        try:
            picture = self._barcode_generator(
                block.payload, block.symbology, block.width, block.height, block.display_value
            )
            canvas.image.paste(picture.convert("L"), (int(x), int(y)))
            return y + block.height, False
        except Exception as e:
            text = handle_barcode_error(e, block)
            size = max(1, min(canvas.geometry.default_font_size, int(block.height / LINE_HEIGHT_FACTOR)))
            font = load_font(size, "mono")
            text_y = y + (block.height - size) / 2
            canvas.write(text, canvas.aligned_x(text_width(font, text), "center"), text_y, font, size, "mono")
            return y + block.height, True

    def _draw_image(self, canvas: _Canvas, block: ImageBlock, y: float) -> Tuple[float, bool]:
        if block.data is None:
            return self._draw_image_fallback(canvas, block, y, ValueError("image data was not resolved"))

        box_width = min(block.width, canvas.content_width)
        try:
            with Image.open(BytesIO(block.data)) as source:
                source.load()
                picture = fit_within(source.convert("L"), box_width, block.height)
        except Exception as e:
            return self._draw_image_fallback(canvas, block, y, e)

        x = canvas.aligned_x(picture.width, block.alignment)
        canvas.image.paste(picture, (int(x), int(y)))
        y += picture.height

        if block.caption:
            y += CAPTION_GAP
            size = max(1, round(canvas.geometry.default_font_size * CAPTION_SCALE))
            font = load_font(size)
            lines = wrap_text(block.caption, font, canvas.content_width)
            y = canvas.write_lines(lines, y, font, size, "regular", block.alignment, size * LINE_HEIGHT_FACTOR)
        return y, False

    def _draw_image_fallback(self, canvas: _Canvas, block: ImageBlock, y: float, error: Exception) -> Tuple[float, bool]:
        text: Optional[str] = handle_image_error(error, block)
        if not text:
            return y, True
        size = canvas.geometry.default_font_size
        font = load_font(size)
        lines = wrap_text(text, font, canvas.content_width)
        return canvas.write_lines(lines, y, font, size, "regular", block.alignment, size * LINE_HEIGHT_FACTOR), True


_DEFAULT_ENGINE = LayoutEngine()


def render(page: Page, geometry: RenderGeometry) -> Image.Image:
    """Render a page with the default engine."""
    return _DEFAULT_ENGINE.render(page, geometry)


def layout(page: Page, geometry: RenderGeometry) -> PageLayout:
    return _DEFAULT_ENGINE.layout(page, geometry)
