"""
QR artifact rendering

Composes a QR code with visible text (title above, caption lines below) on a
white canvas and stores it as PNG under UPLOADS_DIR/<category>/. Database
rows keep the public path, e.g. /uploads/qr_pagos/qr_reserva_12.png.
"""
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import qrcode
from PIL import Image, ImageDraw, ImageFont

from canchaqr.core.config import settings

logger = logging.getLogger(__name__)

QR_SIZE = 300
PADDING = 30
TITLE_SIZE = 22
LINE_SIZE = 14
LINE_SPACING = 6

RESERVATION_CATEGORY = "qr_pagos"
GUEST_CATEGORY = "guest_invitations"


def _font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def build_qr_image(payload: str, size: int = QR_SIZE) -> Image.Image:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=1,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")
    return image.resize((size, size), Image.NEAREST)


def compose(payload: str, title: str, lines: Sequence[str] = ()) -> Image.Image:
    """Title, QR code and caption lines stacked on one canvas."""
    title_font = _font(TITLE_SIZE, bold=True)
    line_font = _font(LINE_SIZE)

    width = QR_SIZE + PADDING * 2
    title_height = TITLE_SIZE + PADDING
    lines_height = len(lines) * (LINE_SIZE + LINE_SPACING)
    height = title_height + QR_SIZE + lines_height + PADDING * 2

    canvas = Image.new("RGB", (width, height), "white")
    draw = ImageDraw.Draw(canvas)

    _centered(draw, title, PADDING // 2, width, title_font, fill="black")
    canvas.paste(build_qr_image(payload), (PADDING, title_height))

    y = title_height + QR_SIZE + PADDING // 2
    for line in lines:
        _centered(draw, line, y, width, line_font, fill="#2c3e50")
        y += LINE_SIZE + LINE_SPACING

    return canvas


def _centered(draw: ImageDraw.ImageDraw, text: str, y: int, width: int, font, fill: str) -> None:
    text_width = draw.textlength(text, font=font)
    draw.text(((width - text_width) / 2, y), text, font=font, fill=fill)


def public_path(category: str, filename: str) -> str:
    return f"{settings.UPLOADS_URL_PREFIX}/{category}/{filename}"


def artifact_file(path: str) -> Path:
    """Map a stored public path back to the file on disk."""
    relative = path
    prefix = settings.UPLOADS_URL_PREFIX.rstrip("/") + "/"
    if relative.startswith(prefix):
        relative = relative[len(prefix):]
    return Path(settings.UPLOADS_DIR) / relative.lstrip("/")


def render_to_file(
    payload: str,
    title: str,
    category: str,
    filename: str,
    lines: Sequence[str] = (),
) -> str:
    """
    Render a titled QR PNG and return its public path.

    Overwrites an existing file of the same name.
    """
    target = Path(settings.UPLOADS_DIR) / category
    target.mkdir(parents=True, exist_ok=True)

    image = compose(payload, title, lines)
    image.save(target / filename, format="PNG")

    path = public_path(category, filename)
    logger.debug(f"Rendered QR artifact {path}")
    return path


def remove_artifacts(paths: Iterable[Optional[str]]) -> List[str]:
    """
    Best-effort removal of rendered artifacts.

    Failures are logged and never raised. Returns the paths actually removed.
    """
    removed = []
    for path in paths:
        if not path:
            continue
        try:
            artifact_file(path).unlink()
            removed.append(path)
        except FileNotFoundError:
            logger.warning(f"QR artifact already gone: {path}")
        except OSError as e:
            logger.warning(f"Could not remove QR artifact {path}: {e}")
    return removed
