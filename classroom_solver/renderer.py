"""
Turns generated files into downloadable bytes.

Handwritten files become PDFs drawn on ruled notebook paper with reportlab;
everything else is stored as UTF-8 text. Several files can be bundled into a
single zip archive.
"""

import io
import logging
import os
import random
import re
import zipfile
from dataclasses import dataclass
from typing import List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from .models import FileBlob, GeneratedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandwritingFont:
    name: str
    font_id: str
    filename: str


AVAILABLE_FONTS = [
    HandwritingFont('Caveat', 'Caveat', 'Caveat-Regular.ttf'),
    HandwritingFont('Dancing Script', 'DancingScript', 'DancingScript-Regular.ttf'),
    HandwritingFont('Patrick Hand', 'PatrickHand', 'PatrickHand-Regular.ttf'),
]
DEFAULT_FONT = 'Caveat'
FALLBACK_FONT = 'Helvetica-Oblique'
SAMPLE_TEXT = 'The quick brown fox jumps over the lazy dog.'

# Page geometry in millimetres, measured from the top-left corner
PAGE_WIDTH, PAGE_HEIGHT = A4
RULE_START, RULE_END, RULE_STEP = 20, 290, 10
RULE_LEFT, RULE_RIGHT = 15, 195
MARGIN_X, MARGIN_TOP, MARGIN_BOTTOM = 25, 15, 290
TEXT_X, TEXT_Y = 28, 20
TEXT_WIDTH = 165
FONT_SIZE = 14
LEADING = FONT_SIZE * 1.15

RULE_COLOR = (200, 230, 255)
MARGIN_COLOR = (255, 180, 180)
INK_COLOR = (20, 20, 80)

TEXT_MIME_TYPE = 'text/plain; charset=utf-8'
PDF_MIME_TYPE = 'application/pdf'
ZIP_MIME_TYPE = 'application/zip'


def get_font(name: str) -> HandwritingFont:
    for font in AVAILABLE_FONTS:
        if font.name == name:
            return font
    raise ValueError(f"Unknown handwriting font '{name}'. Choose one of: "
                     + ", ".join(f.name for f in AVAILABLE_FONTS))


def font_path(font: HandwritingFont, fonts_dir: str) -> str:
    return os.path.join(fonts_dir, font.filename)


def register_handwriting_font(name: str, fonts_dir: str) -> str:
    """Registers the named TTF with reportlab and returns the font id to draw with."""
    font = get_font(name)
    if font.font_id in pdfmetrics.getRegisteredFontNames():
        return font.font_id
    path = font_path(font, fonts_dir)
    if not os.path.exists(path):
        logger.warning("Font file %s not found, falling back to %s", path, FALLBACK_FONT)
        return FALLBACK_FONT
    pdfmetrics.registerFont(TTFont(font.font_id, path))
    return font.font_id


def _rgb(color):
    return tuple(c / 255 for c in color)


def _top(y_mm: float) -> float:
    """Converts a distance from the top edge into reportlab's bottom-up points."""
    return PAGE_HEIGHT - y_mm * mm


def _draw_ruled_paper(pdf: canvas.Canvas):
    pdf.setStrokeColorRGB(*_rgb(RULE_COLOR))
    pdf.setLineWidth(0.1 * mm)
    for y in range(RULE_START, RULE_END, RULE_STEP):
        pdf.line(RULE_LEFT * mm, _top(y), RULE_RIGHT * mm, _top(y))
    pdf.setStrokeColorRGB(*_rgb(MARGIN_COLOR))
    pdf.setLineWidth(0.2 * mm)
    pdf.line(MARGIN_X * mm, _top(MARGIN_TOP), MARGIN_X * mm, _top(MARGIN_BOTTOM))


def wrap_text(content: str, font_id: str) -> List[str]:
    lines = []
    for paragraph in content.split('\n'):
        lines.extend(simpleSplit(paragraph, font_id, FONT_SIZE, TEXT_WIDTH * mm) or [''])
    return lines


def create_handwritten_pdf(content: str, font_name: str = DEFAULT_FONT, fonts_dir: str = 'fonts',
                           rng: Optional[random.Random] = None) -> bytes:
    rng = rng or random.Random()
    font_id = register_handwriting_font(font_name, fonts_dir)
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)

    def start_page():
        _draw_ruled_paper(pdf)
        pdf.setFont(font_id, FONT_SIZE)
        pdf.setFillColorRGB(*_rgb(INK_COLOR))
        # A slightly different starting point per page reads as handwriting
        x = (TEXT_X + (rng.random() - 0.5) * 2) * mm
        y = _top(TEXT_Y + (rng.random() - 0.5) * 2)
        return x, y

    x, y = start_page()
    bottom = _top(MARGIN_BOTTOM)
    for line in wrap_text(content, font_id):
        if y < bottom:
            pdf.showPage()
            x, y = start_page()
        pdf.drawString(x, y, line)
        y -= LEADING

    pdf.save()
    return buffer.getvalue()


def pdf_name(name: str) -> str:
    stem, ext = os.path.splitext(name)
    return f"{stem if ext else name}.pdf"


def render_files(files: List[GeneratedFile], font_name: str = DEFAULT_FONT,
                 fonts_dir: str = 'fonts') -> List[FileBlob]:
    blobs = []
    for file in files:
        if file.handwritten:
            data = create_handwritten_pdf(file.content, font_name, fonts_dir)
            blobs.append(FileBlob(name=pdf_name(file.name), content=file.content, handwritten=True,
                                  data=data, mime_type=PDF_MIME_TYPE))
        else:
            blobs.append(FileBlob(name=file.name, content=file.content, handwritten=False,
                                  data=file.content.encode('utf-8'), mime_type=TEXT_MIME_TYPE))
    return blobs


def zip_files(blobs: List[FileBlob]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for blob in blobs:
            archive.writestr(blob.name, blob.data)
    return buffer.getvalue()


def solution_zip_name(title: str) -> str:
    return re.sub(r'\s+', '_', title) + '_solution.zip'


def _safe_relative_path(name: str, index: int) -> str:
    path = os.path.normpath(name).lstrip('/\\')
    if path.startswith('..') or os.path.isabs(path):
        path = os.path.basename(path)
    if path in ('', '.', '..') or name.endswith(('/', '\\')):
        path = f'file-{index}.txt'
    return path


def save_files(blobs: List[FileBlob], directory: str) -> List[str]:
    """Writes blobs under ``directory`` and returns the paths written."""
    paths = []
    for index, blob in enumerate(blobs, 1):
        path = os.path.join(directory, _safe_relative_path(blob.name, index))
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'wb') as f:
            f.write(blob.data)
        paths.append(path)
    return paths
