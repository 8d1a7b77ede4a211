"""PDF report generation for LungScan."""

import io
import logging
from typing import Optional, Union

from PIL import Image
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Image as RLImage
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from .errors import ReportGenerationError
from .schemas import RiskBucket


logger = logging.getLogger(__name__)

IMAGE_WIDTH = 300
IMAGE_MAX_HEIGHT = 300
PAGE_MARGIN = 0.5 * inch
DISCLAIMER = (
    "Decision-support output only. Not a diagnosis; findings must be reviewed "
    "by a qualified clinician."
)


def generate_report(
    original_image: Image.Image,
    heatmap_png: bytes,
    risk: Union[RiskBucket, str],
    probability: float,
    label: Optional[str] = None,
    title: str = "Lung Cancer Detection Report",
) -> bytes:
    """Build the single-page report and return PDF bytes."""
    risk_text = risk.value if isinstance(risk, RiskBucket) else str(risk)

    try:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=PAGE_MARGIN,
            leftMargin=PAGE_MARGIN,
            topMargin=PAGE_MARGIN,
            bottomMargin=PAGE_MARGIN,
            title=title,
            invariant=1,
        )
        styles = get_custom_styles()

        story: list = []
        story.append(Paragraph(title, styles['ReportTitle']))
        if label:
            story.append(Paragraph(f"Classification: {label}", styles['ReportLine']))
        story.append(Paragraph(f"Risk Score: {risk_text}", styles['ReportLine']))
        story.append(Paragraph(f"Probability: {probability * 100:.2f}%", styles['ReportLine']))
        story.append(Spacer(1, 8))
        story.append(build_image(_png_bytes(original_image)))
        story.append(Spacer(1, 8))
        story.append(build_image(heatmap_png))

        doc.build(story, onFirstPage=draw_footer)
        pdf_content = buffer.getvalue()
        buffer.close()
    except ReportGenerationError:
        raise
    except Exception as e:
        logger.error(f"PDF generation failed: {e}", exc_info=True)
        raise ReportGenerationError(f"Could not build report: {e}") from e

    logger.info(f"PDF report generated ({len(pdf_content)} bytes)")
    return pdf_content


def get_custom_styles():
    """Get custom styles for the PDF."""
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='ReportTitle',
        parent=styles['Title'],
        fontSize=18,
        leading=22,
        spaceBefore=0,
        spaceAfter=12,
        alignment=TA_CENTER,
    ))

    styles.add(ParagraphStyle(
        name='ReportLine',
        parent=styles['Normal'],
        fontSize=12,
        leading=14.4,
    ))

    return styles


def build_image(data: bytes) -> RLImage:
    """Image flowable 300 points wide, scaled down further if it would be taller than 300."""
    try:
        width, height = ImageReader(io.BytesIO(data)).getSize()
    except Exception as e:
        raise ReportGenerationError(f"Image cannot be embedded: {e}") from e
    if width <= 0 or height <= 0:
        raise ReportGenerationError(f"Image has invalid size {width}x{height}")

    draw_width = float(IMAGE_WIDTH)
    draw_height = draw_width * height / width
    if draw_height > IMAGE_MAX_HEIGHT:
        draw_width *= IMAGE_MAX_HEIGHT / draw_height
        draw_height = float(IMAGE_MAX_HEIGHT)
    return RLImage(io.BytesIO(data), width=draw_width, height=draw_height)


def draw_footer(canvas, doc):
    canvas.saveState()
    canvas.setFont('Helvetica', 8)
    canvas.setFillColor(colors.grey)
    canvas.drawCentredString(letter[0] / 2, PAGE_MARGIN / 2, DISCLAIMER)
    canvas.restoreState()


def _png_bytes(image: Image.Image) -> bytes:
    if image.mode not in ("RGB", "RGBA", "L"):
        raise ReportGenerationError(f"Unsupported image mode for embedding: {image.mode}")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
