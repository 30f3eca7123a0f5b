import io
import logging
from pathlib import Path

from PIL import UnidentifiedImageError
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import PP_ALIGN
from pptx.util import Emu, Inches, Pt

from studytree.errors import PresentationError
from studytree.models import Lecture
from studytree.services.storage import StorageService, safe_title

logger = logging.getLogger(__name__)

# 16:9 widescreen, 13.333 x 7.5 in
SLIDE_WIDTH = Inches(13.333)
SLIDE_HEIGHT = Inches(7.5)
BLANK_LAYOUT = 6

TITLE_BACKGROUND = RGBColor(0x25, 0x75, 0xFC)
WHITE = RGBColor(0xFF, 0xFF, 0xFF)
GREY = RGBColor(0x66, 0x66, 0x66)
LIGHT_GREY = RGBColor(0xCC, 0xCC, 0xCC)


def presentation_filename(title: str) -> str:
    return f"{safe_title(title)}_slides.pptx"


def _format_timestamp(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def _add_text(slide, text: str, left, top, width, height, *, size: int, color,
              bold: bool = False, italic: bool = False, align=PP_ALIGN.CENTER) -> None:
    frame = slide.shapes.add_textbox(left, top, width, height).text_frame
    paragraph = frame.paragraphs[0]
    paragraph.alignment = align
    run = paragraph.add_run()
    run.text = text
    run.font.size = Pt(size)
    run.font.bold = bold
    run.font.italic = italic
    run.font.color.rgb = color


def _add_fitted_picture(slide, image_path: Path, left, top, max_width, max_height) -> None:
    """Place an image scaled to fit (aspect preserved) and centred in the box."""
    picture = slide.shapes.add_picture(str(image_path), left, top)
    scale = min(max_width / picture.width, max_height / picture.height)
    picture.width = Emu(int(picture.width * scale))
    picture.height = Emu(int(picture.height * scale))
    picture.left = Emu(int(left + (max_width - picture.width) / 2))
    picture.top = Emu(int(top + (max_height - picture.height) / 2))


def build_presentation(lecture: Lecture, uploads_root: Path | None = None) -> bytes:
    """Build a .pptx deck of the lecture's captured slides and return its bytes."""
    if not lecture.slides:
        raise PresentationError("No slides found.")

    prs = Presentation()
    prs.slide_width = SLIDE_WIDTH
    prs.slide_height = SLIDE_HEIGHT
    blank = prs.slide_layouts[BLANK_LAYOUT]

    title_slide = prs.slides.add_slide(blank)
    title_slide.background.fill.solid()
    title_slide.background.fill.fore_color.rgb = TITLE_BACKGROUND
    _add_text(title_slide, lecture.title, Inches(0.5), Inches(2.5), Inches(12.3), Inches(1.5),
              size=44, color=WHITE, bold=True)
    _add_text(title_slide, "Generated by Study Tree", Inches(0.5), Inches(4), Inches(12.3),
              Inches(0.6), size=16, color=WHITE, italic=True)

    content_left = int(SLIDE_WIDTH * 0.05)
    content_top = int(SLIDE_HEIGHT * 0.12)
    content_width = int(SLIDE_WIDTH * 0.9)
    content_height = int(SLIDE_HEIGHT * 0.8)

    added = 0
    missing = 0
    for slide in lecture.slides:
        image_path = StorageService.resolve_web_path(slide.image, uploads_root)
        page = prs.slides.add_slide(blank)
        try:
            if not image_path.exists():
                raise FileNotFoundError(image_path)
            _add_fitted_picture(page, image_path, content_left, content_top,
                                content_width, content_height)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("PPT: skipping image for slide at %ss: %s", slide.timestamp, exc)
            missing += 1
            _add_text(page, "Image Not Available", Inches(1), Inches(2.5), Inches(11.3),
                      Inches(1), size=32, color=LIGHT_GREY)
            continue
        _add_text(page, f"Timestamp: {_format_timestamp(slide.timestamp)}", Inches(0.5),
                  Inches(0.2), Inches(12.3), Inches(0.5), size=14, color=GREY,
                  align=PP_ALIGN.RIGHT)
        added += 1

    logger.info("PPT: %d slides added, %d missing", added, missing)
    if added == 0:
        raise PresentationError("No slides could be added")

    buffer = io.BytesIO()
    prs.save(buffer)
    return buffer.getvalue()
