"""Document, page and render geometry models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from faxbridge.models.content import ContentBlock, FooterBlock


class Margins(BaseModel):
    model_config = ConfigDict(frozen=True)

    top: int = Field(default=60, ge=0)
    bottom: int = Field(default=60, ge=0)
    left: int = Field(default=80, ge=0)
    right: int = Field(default=80, ge=0)


class RenderGeometry(BaseModel):
    """Immutable page geometry shared by every layout and pagination call."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1728, gt=0)
    height: int = Field(default=2800, gt=0)
    dpi: int = Field(default=204, gt=0)
    margins: Margins = Field(default_factory=Margins)
    default_font_size: int = Field(default=45, gt=0)
    footer_reserve: int = Field(default=180, ge=0)

    @property
    def content_width(self) -> int:
        return self.width - self.margins.left - self.margins.right

    @property
    def width_points(self) -> float:
        return self.width * 72 / self.dpi

    @property
    def height_points(self) -> float:
        return self.height * 72 / self.dpi

    @classmethod
    def from_settings(cls, render_settings) -> "RenderGeometry":
        """Build the geometry from ``RenderSettings``."""
        return cls(
            width=render_settings.page_width,
            height=render_settings.page_height,
            dpi=render_settings.dpi,
            margins=Margins(
                top=render_settings.margin_top,
                bottom=render_settings.margin_bottom,
                left=render_settings.margin_left,
                right=render_settings.margin_right,
            ),
            default_font_size=render_settings.default_font_size,
            footer_reserve=render_settings.footer_reserve,
        )


class Page(BaseModel):
    """One fixed-size page; ``total_pages`` is back-filled after pagination."""

    content: List[ContentBlock] = Field(default_factory=list)
    page_number: int = Field(..., ge=1)
    total_pages: int = Field(default=0, ge=0)

    @property
    def footers(self) -> List[FooterBlock]:
        return [block for block in self.content if isinstance(block, FooterBlock)]

    @property
    def body(self) -> List[ContentBlock]:
        return [block for block in self.content if not isinstance(block, FooterBlock)]


class Document(BaseModel):
    """Renderer-agnostic description of one response fax."""

    kind: str
    reference_id: str
    pages: List[Page]
    context_data: Dict[str, Any] = Field(default_factory=dict)
    support_contact: Optional[str] = None

    @model_validator(mode="after")
    def _check_pages(self) -> "Document":
        if not self.pages:
            raise ValueError("document must have at least one page")
        for expected, page in enumerate(self.pages, start=1):
            if page.page_number != expected:
                raise ValueError(
                    f"page numbers must be contiguous from 1, got {page.page_number} at position {expected}"
                )
            footers = page.footers
            if len(footers) != 1:
                raise ValueError(f"page {page.page_number} must have exactly one footer, found {len(footers)}")
            if self.reference_id not in footers[0].text:
                raise ValueError(f"footer of page {page.page_number} does not carry {self.reference_id}")
            if self.support_contact and self.support_contact not in footers[0].text:
                raise ValueError(f"footer of page {page.page_number} does not carry the support contact")
        return self

    @property
    def total_pages(self) -> int:
        return len(self.pages)


class DocumentDraft(BaseModel):
    """Builder output: ordered body blocks plus the footer template, before pagination."""

    kind: str
    reference_id: str
    blocks: List[ContentBlock] = Field(default_factory=list)
    footer_text: str
    context_data: Dict[str, Any] = Field(default_factory=dict)
    support_contact: Optional[str] = None
