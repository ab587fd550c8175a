"""Font loading and greedy word wrapping."""

from functools import lru_cache
from typing import List, Literal, Union

from PIL import ImageFont

from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

FontStyle = Literal["regular", "bold", "mono"]
Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

LINE_HEIGHT_FACTOR = 1.2

_FONT_CANDIDATES = {
    "regular": ("DejaVuSans.ttf", "LiberationSans-Regular.ttf", "Arial.ttf"),
    "bold": ("DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf", "Arial Bold.ttf"),
    "mono": ("DejaVuSansMono.ttf", "LiberationMono-Regular.ttf", "Courier New.ttf"),
}


@lru_cache(maxsize=64)
def load_font(size: int, style: FontStyle = "regular") -> Font:
    """Load a TrueType font of the given pixel size, falling back to Pillow's bundled font."""
    for name in _FONT_CANDIDATES[style]:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    LOGGER.debug("No system font found, using Pillow default", extra={"style": style, "size": size})
    return ImageFont.load_default(size=size)


def text_width(font: Font, text: str) -> float:
    return font.getlength(text)


def wrap_text(text: str, font: Font, max_width: float) -> List[str]:
    """Greedy line breaking: append the next word if it fits, else start a new line.

    Explicit newlines start a new paragraph. A word wider than ``max_width``
    gets a line of its own. Empty text yields no lines.
    """
    if not text:
        return []

    lines: List[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for word in paragraph.split(" "):
            candidate = f"{current} {word}" if current else word
            if current and text_width(font, candidate) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    return lines
