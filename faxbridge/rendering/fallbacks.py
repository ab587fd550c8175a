"""Structured logging and fallback text for render-time degradations.

Barcode and image failures never abort a page; they are logged here and
replaced by text the recipient can still read.
"""

from typing import Any, Dict, Optional

from faxbridge.models.content import BarcodeBlock, ImageBlock
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def handle_barcode_error(error: Exception, block: BarcodeBlock) -> str:
    """Log a barcode generation failure and return the text to print instead."""
    LOGGER.warning(
        f"Barcode generation failed, printing payload instead: {error}",
        extra={
            "content_type": "barcode",
            "symbology": block.symbology,
            "barcode_width": block.width,
            "barcode_height": block.height,
            "payload_length": len(block.payload),
        },
    )
    return barcode_fallback_text(block.payload)


def barcode_fallback_text(payload: str) -> str:
    return payload


def handle_image_error(error: Exception, block: ImageBlock, details: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Log an image failure and return the fallback text, or None to skip the block."""
    LOGGER.warning(
        f"Image could not be rendered: {error}",
        extra={
            "content_type": "image",
            "image_url": block.url,
            "has_data": block.data is not None,
            "image_width": block.width,
            "image_height": block.height,
            **(details or {}),
        },
    )
    return image_fallback_text(block)


def image_fallback_text(block: ImageBlock) -> Optional[str]:
    if block.fallback_text:
        return block.fallback_text
    if block.url:
        suffix = "..." if len(block.url) > 50 else ""
        return f"[Image unavailable: {block.url[:50]}{suffix}]"
    return None
