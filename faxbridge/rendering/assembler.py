"""Assembles rendered page bitmaps into a single PDF."""

from io import BytesIO
from typing import Sequence

from fpdf import FPDF
from PIL import Image

from faxbridge.core.exceptions import RenderError
from faxbridge.models.document import RenderGeometry
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def assemble(bitmaps: Sequence[Image.Image], geometry: RenderGeometry) -> bytes:
    """Place each bitmap full-page, in order, into a PDF sized to the fax page.

    Args:
        bitmaps: One rendered image per page
        geometry: Page geometry; the PDF page is ``width * 72 / dpi`` points wide

    Returns:
        The PDF bytes

    Raises:
        RenderError: If there is nothing to assemble or encoding fails
    """
    if not bitmaps:
        raise RenderError("Cannot assemble a document without pages")

    width_pt = geometry.width_points
    height_pt = geometry.height_points

    try:
        pdf = FPDF(unit="pt", format=(width_pt, height_pt))
        pdf.set_margins(0, 0, 0)
        pdf.set_auto_page_break(auto=False)
        for bitmap in bitmaps:
            pdf.add_page()
            pdf.image(bitmap, x=0, y=0, w=width_pt, h=height_pt)

        buffer = BytesIO()
        pdf.output(buffer)
    except Exception as e:
        LOGGER.error(f"PDF assembly failed: {str(e)}", exc_info=True, extra={"page_count": len(bitmaps)})
        raise RenderError(f"PDF assembly failed: {str(e)}", original_error=e)

    pdf_bytes = buffer.getvalue()
    LOGGER.debug("Assembled PDF", extra={"page_count": len(bitmaps), "size_bytes": len(pdf_bytes)})
    return pdf_bytes
