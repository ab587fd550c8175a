"""Barcode and QR code generation sized to a fixed pixel box."""

import barcode
import qrcode
from barcode.writer import ImageWriter
from PIL import Image

QR_SYMBOLOGIES = {"qr", "qrcode"}


class BarcodeGenerationError(Exception):
    """Raised when a payload cannot be encoded in the requested symbology."""


def generate_barcode(
    payload: str,
    symbology: str = "code128",
    width: int = 300,
    height: int = 60,
    display_value: bool = True,
) -> Image.Image:
    """Encode ``payload`` and return a grayscale image of exactly ``width`` x ``height``.

    QR codes are drawn square (side = the smaller box dimension) and
    centered in the box.

    Raises:
        BarcodeGenerationError: If the symbology is unknown or rejects the payload
    """
    name = symbology.lower()
    try:
        if name in QR_SYMBOLOGIES:
            return _generate_qr(payload, width, height)
        return _generate_linear(payload, name, width, height, display_value)
    except BarcodeGenerationError:
        raise
    except Exception as e:
        raise BarcodeGenerationError(f"Cannot encode payload as {symbology}: {e}") from e


def _generate_linear(payload: str, name: str, width: int, height: int, display_value: bool) -> Image.Image:
    try:
        barcode_class = barcode.get_barcode_class(name)
    except barcode.errors.BarcodeNotFoundError as e:
        raise BarcodeGenerationError(f"Unknown symbology: {name}") from e

    code = barcode_class(payload, writer=ImageWriter())
    rendered = code.render(
        writer_options={
            "write_text": display_value,
            "quiet_zone": 2.0,
            "module_height": 10.0,
            "font_size": 8 if display_value else 0,
            "text_distance": 3.0,
        }
    )
    return rendered.convert("L").resize((width, height), Image.NEAREST)


def _generate_qr(payload: str, width: int, height: int) -> Image.Image:
    qr = qrcode.QRCode(border=1, error_correction=qrcode.constants.ERROR_CORRECT_M)
    qr.add_data(payload)
    qr.make(fit=True)
    matrix = qr.make_image(fill_color="black", back_color="white").get_image().convert("L")

    side = min(width, height)
    matrix = matrix.resize((side, side), Image.NEAREST)
    box = Image.new("L", (width, height), 255)
    box.paste(matrix, ((width - side) // 2, (height - side) // 2))
    return box
