"""Async rendering facade used by the pipeline.

Layout and PDF encoding are CPU bound, so they run on a bounded thread
pool; image downloads happen on the event loop before that.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from faxbridge.core.exceptions import RenderError
from faxbridge.models.document import Document, DocumentDraft, RenderGeometry
from faxbridge.rendering.assembler import assemble
from faxbridge.rendering.images import ImageResolver
from faxbridge.rendering.layout_engine import LayoutEngine
from faxbridge.rendering.paginator import paginate_draft
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class RenderedDocument:
    reference_id: str
    pdf_bytes: bytes
    page_count: int
    document: Optional[Document] = None


class DocumentRenderer:
    """Paginates drafts and renders documents to fax-ready PDFs.

    Args:
        geometry: Page geometry used for every document
        image_resolver: Inlines remote images before layout; optional
        engine: Layout engine; the default one is used when omitted
        max_workers: Size of the rendering thread pool
    """

    def __init__(
        self,
        geometry: RenderGeometry,
        image_resolver: Optional[ImageResolver] = None,
        engine: Optional[LayoutEngine] = None,
        max_workers: int = 4,
    ):
        self.geometry = geometry
        self.image_resolver = image_resolver
        self.engine = engine or LayoutEngine()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="render")

    def paginate(self, draft: DocumentDraft) -> Document:
        """Paginate a draft; content model violations become ``RenderError``."""
        try:
            return paginate_draft(draft, self.geometry)
        except RenderError:
            raise
        except ValueError as e:
            raise RenderError(f"Invalid document: {str(e)}", original_error=e)

    async def render_draft(self, draft: DocumentDraft) -> RenderedDocument:
        return await self.render(self.paginate(draft))

    async def render(self, document: Document) -> RenderedDocument:
        """Render every page of ``document`` and assemble the PDF."""
        if self.image_resolver is not None:
            document = await self.image_resolver.resolve_document(document)

        loop = asyncio.get_running_loop()
        pdf_bytes = await loop.run_in_executor(self._executor, self._render_pdf, document)

        LOGGER.info(
            "Rendered document",
            extra={
                "reference_id": document.reference_id,
                "kind": document.kind,
                "page_count": document.total_pages,
                "size_bytes": len(pdf_bytes),
            },
        )
        return RenderedDocument(
            reference_id=document.reference_id,
            pdf_bytes=pdf_bytes,
            page_count=document.total_pages,
            document=document,
        )

    async def render_png(self, document: Document) -> bytes:
        """Render the first page as PNG for previews."""
        if self.image_resolver is not None:
            document = await self.image_resolver.resolve_document(document)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._render_first_page_png, document)

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _render_pdf(self, document: Document) -> bytes:
        try:
            bitmaps = [self.engine.render(page, self.geometry) for page in document.pages]
        except Exception as e:
            LOGGER.error(
                f"Page rendering failed: {str(e)}",
                exc_info=True,
                extra={"reference_id": document.reference_id},
            )
            raise RenderError(f"Page rendering failed: {str(e)}", original_error=e)
        return assemble(bitmaps, self.geometry)

    def _render_first_page_png(self, document: Document) -> bytes:
        try:
            bitmap = self.engine.render(document.pages[0], self.geometry)
            output = BytesIO()
            bitmap.save(output, format="PNG")
        except Exception as e:
            raise RenderError(f"Preview rendering failed: {str(e)}", original_error=e)
        return output.getvalue()
