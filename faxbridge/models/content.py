"""Content blocks: the typed units placed on a fax page.

``ContentBlock`` is a closed union discriminated by ``type``. Each variant
carries only the fields it needs; rendering is a function of these fields
and the page geometry alone.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

Alignment = Literal["left", "center", "right"]


class _Block(BaseModel):
    """Fields shared by every block."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    margin_top: int = Field(default=0, ge=0)
    margin_bottom: int = Field(default=0, ge=0)


class _TextLike(_Block):
    text: str = ""
    font_size: Optional[int] = Field(default=None, gt=0, description="Pixels; None uses the geometry default")
    bold: bool = False
    alignment: Alignment = "left"


class TextBlock(_TextLike):
    """Body text, word-wrapped to the content width."""
    type: Literal["text"] = "text"


class HeaderBlock(_TextLike):
    """Branding or title line at the top of a page."""
    type: Literal["header"] = "header"


class FooterBlock(_TextLike):
    """Footer pinned to the bottom of the page; one per page."""
    type: Literal["footer"] = "footer"


class Option(BaseModel):
    """One selectable entry of an option list."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str = Field(..., min_length=1, description="Letter the user circles or ticks")
    description: str
    price: Optional[float] = None
    currency: str = "¥"

    def display_text(self) -> str:
        text = f"{self.label}. {self.description}"
        if self.price is not None:
            amount = int(self.price) if float(self.price).is_integer() else self.price
            text += f" - {self.currency}{amount}"
        return text


class OptionListBlock(_Block):
    """Options drawn with a circle (exclusive) or checkbox (non-exclusive) marker."""
    type: Literal["option_list"] = "option_list"
    selection: Literal["circle", "checkbox"] = "circle"
    options: List[Option] = Field(default_factory=list)
    font_size: Optional[int] = Field(default=None, gt=0)


class BarcodeBlock(_Block):
    """1D barcode or QR code drawn in a fixed pixel box."""
    type: Literal["barcode"] = "barcode"
    payload: str = Field(..., min_length=1)
    symbology: str = "code128"
    width: int = Field(default=300, gt=0)
    height: int = Field(default=60, gt=0)
    display_value: bool = True


class ImageBlock(_Block):
    """Image fitted inside a target box, preserving aspect ratio."""
    type: Literal["image"] = "image"
    data: Optional[bytes] = None
    url: Optional[str] = None
    width: int = Field(default=400, gt=0)
    height: int = Field(default=300, gt=0)
    alignment: Alignment = "center"
    caption: Optional[str] = None
    fallback_text: Optional[str] = None

    @model_validator(mode="after")
    def _check_source(self) -> "ImageBlock":
        if self.data is None and not self.url:
            raise ValueError("image block needs inline data or a url")
        return self


class BlankSpaceBlock(_Block):
    """Reserved vertical space for a handwritten reply."""
    type: Literal["blank_space"] = "blank_space"
    height: int = Field(default=50, ge=0)


ContentBlock = Annotated[
    Union[
        TextBlock,
        HeaderBlock,
        FooterBlock,
        OptionListBlock,
        BarcodeBlock,
        ImageBlock,
        BlankSpaceBlock,
    ],
    Field(discriminator="type"),
]

TEXT_LIKE_TYPES = (TextBlock, HeaderBlock, FooterBlock)

_BLOCK_ADAPTER = TypeAdapter(ContentBlock)


def parse_block(raw: dict) -> ContentBlock:
    """Validate a raw mapping into the matching block variant."""
    return _BLOCK_ADAPTER.validate_python(raw)
