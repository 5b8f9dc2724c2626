"""
Builds the PPTX document from finished slides with python-pptx.

Every slide is drawn on a blank layout: an optional full-bleed background
picture, then text boxes whose colours follow the brightness of that picture,
then accent shapes coloured by the template (or the theme when no template
was supplied), then the page number.
"""

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from PIL import Image, ImageStat
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE, MSO_SHAPE_TYPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.oxml.xmlchemy import OxmlElement
from pptx.slide import Slide as PptxSlide
from pptx.util import Inches, Pt

from design_generation_service.palettes import (
    DARK_TEXT,
    DEFAULT_PALETTE,
    LIGHT_TEXT,
    PLAIN_CANVAS,
    TextPalette,
    accent_for_theme,
    normalize_hex,
)
from shared.errors import AssemblyError
from shared.models import Slide, StyleTheme, TemplateStyle, is_embedded_image

logger = logging.getLogger(__name__)

# --- Canvas ---
SLIDE_WIDTH_IN = 10.0
SLIDE_HEIGHT_IN = 5.625

MAX_BULLETS = 6
BRIGHTNESS_THRESHOLD = 120
BRIGHTNESS_SAMPLE = (100, 100)
# Raster formats python-pptx can place as a picture; anything else is re-encoded
PPTX_IMAGE_FORMATS = {"BMP", "GIF", "JPEG", "PNG", "TIFF"}

FONT_FACE = "Microsoft YaHei"
PAGE_NUMBER_FONT = "Arial"
BULLET_CHAR = "●"

ROLE_BOOKEND = "bookend"
ROLE_CONTENT = "content"

PPTX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


# --- Helper Functions ---

def decode_data_uri(data_uri: str) -> bytes:
    payload = data_uri.split(",", 1)[1] if "," in data_uri else data_uri
    return base64.b64decode(payload, validate=True)


def to_embeddable(image_bytes: bytes) -> bytes:
    """Returns the bytes unchanged when python-pptx accepts the format, else a PNG re-encoding."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        if img.format in PPTX_IMAGE_FORMATS:
            return image_bytes
        buffer = io.BytesIO()
        img.convert("RGBA").save(buffer, format="PNG")
        return buffer.getvalue()


def measure_brightness(image_bytes: bytes) -> float:
    """Mean luminance (0-255) of a 100x100 grayscale thumbnail."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        thumbnail = img.convert("L").resize(BRIGHTNESS_SAMPLE)
        return ImageStat.Stat(thumbnail).mean[0]


def choose_palette(image_url: Optional[str]) -> TextPalette:
    """Dark text on bright art, light text on dark art, the default without art."""
    if not is_embedded_image(image_url):
        return DEFAULT_PALETTE
    try:
        brightness = measure_brightness(decode_data_uri(image_url))
    except (binascii.Error, ValueError, OSError) as e:
        logger.error(f"Failed to analyze image brightness: {e}")
        return DEFAULT_PALETTE
    return DARK_TEXT if brightness > BRIGHTNESS_THRESHOLD else LIGHT_TEXT


def slide_role(page_number: int, total: int) -> str:
    return ROLE_BOOKEND if page_number in (1, total) else ROLE_CONTENT


@dataclass(frozen=True)
class SlideStyle:
    role: str
    palette: TextPalette
    title_color: str
    accent_color: str
    band_color: str


def resolve_style(
    slide: Slide,
    total: int,
    template_style: Optional[TemplateStyle] = None,
    theme: Optional[StyleTheme] = None,
    has_background: bool = True,
) -> SlideStyle:
    """
    Works out every colour and the layout role of one slide, without drawing
    anything. has_background is False when the art could not be placed on the
    slide, in which case the text sits on the plain canvas.
    """
    palette = choose_palette(slide.image_url) if has_background else DEFAULT_PALETTE
    theme_accent = accent_for_theme(theme)
    title_color, accent_color, band_color = palette.title, theme_accent, theme_accent

    if template_style is not None:
        primary = normalize_hex(template_style.primary_color)
        secondary = normalize_hex(template_style.secondary_color)
        if primary is None or secondary is None:
            logger.warning(
                f"Template colors '{template_style.primary_color}'/'{template_style.secondary_color}' "
                f"are not valid hex values, keeping defaults for the invalid ones."
            )
        title_color = primary or title_color
        band_color = primary or band_color
        accent_color = secondary or accent_color

    return SlideStyle(
        role=slide_role(slide.page_number, total),
        palette=palette,
        title_color=title_color,
        accent_color=accent_color,
        band_color=band_color,
    )


def _add_text(
    slide: PptxSlide,
    name: str,
    text: str,
    left: float,
    top: float,
    width: float,
    height: float,
    size: int,
    color: str,
    bold: bool = False,
    align=PP_ALIGN.LEFT,
    anchor=MSO_ANCHOR.TOP,
    font_face: str = FONT_FACE,
):
    box = slide.shapes.add_textbox(Inches(left), Inches(top), Inches(width), Inches(height))
    box.name = name
    tf = box.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = anchor
    p = tf.paragraphs[0]
    p.alignment = align
    run = p.add_run()
    run.text = text
    font = run.font
    font.name = font_face
    font.size = Pt(size)
    font.bold = bold
    font.color.rgb = RGBColor.from_string(color)
    return box


def _set_bullet(paragraph) -> None:
    pPr = paragraph._p.get_or_add_pPr()
    pPr.set("marL", str(Inches(0.3)))
    pPr.set("indent", str(-Inches(0.25)))
    bu_font = OxmlElement("a:buFont")
    bu_font.set("typeface", "Arial")
    pPr.append(bu_font)
    bu_char = OxmlElement("a:buChar")
    bu_char.set("char", BULLET_CHAR)
    pPr.append(bu_char)


def _add_bullets(slide: PptxSlide, points: Sequence[str], top: float, color: str):
    box = slide.shapes.add_textbox(Inches(0.5), Inches(top), Inches(9), Inches(3.0))
    box.name = "Bullets"
    tf = box.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = MSO_ANCHOR.TOP
    for i, point in enumerate(points[:MAX_BULLETS]):
        p = tf.paragraphs[0] if i == 0 else tf.add_paragraph()
        p.space_after = Pt(8)
        _set_bullet(p)
        run = p.add_run()
        run.text = point
        run.font.name = FONT_FACE
        run.font.size = Pt(16)
        run.font.color.rgb = RGBColor.from_string(color)
    return box


def _add_rect(slide: PptxSlide, name: str, left: float, top: float, width: float, height: float, color: str):
    shape = slide.shapes.add_shape(MSO_SHAPE.RECTANGLE, Inches(left), Inches(top), Inches(width), Inches(height))
    shape.name = name
    shape.fill.solid()
    shape.fill.fore_color.rgb = RGBColor.from_string(color)
    shape.line.fill.background()
    shape.shadow.inherit = False
    return shape


class DeckAssembler:
    """Emits a 16:9 PPTX with layout and colours chosen per slide."""

    def __init__(self, author: str = "SlideForge"):
        self.author = author

    def assemble(
        self,
        slides: Sequence[Slide],
        title: str,
        template_style: Optional[TemplateStyle] = None,
        theme: Optional[StyleTheme] = None,
        job_id: str = "-",
    ) -> bytes:
        prs = Presentation()
        prs.slide_width = Inches(SLIDE_WIDTH_IN)
        prs.slide_height = Inches(SLIDE_HEIGHT_IN)
        prs.core_properties.title = title
        prs.core_properties.subject = title
        prs.core_properties.author = self.author

        blank_layout = prs.slide_layouts[6]
        ordered = sorted(slides, key=lambda s: s.page_number)
        total = len(ordered)
        for slide_data in ordered:
            slide = prs.slides.add_slide(blank_layout)
            has_background = self._draw_background(slide, slide_data, job_id)
            style = resolve_style(slide_data, total, template_style, theme, has_background=has_background)
            if style.role == ROLE_BOOKEND:
                self._draw_bookend(slide, slide_data, style, is_cover=slide_data.page_number == 1)
            else:
                self._draw_content(slide, slide_data, style)
            self._draw_page_number(slide, slide_data.page_number, style)

        buffer = io.BytesIO()
        try:
            prs.save(buffer)
        except Exception as e:
            logger.error(f"[{job_id}] PPTX generation failed: {e}", exc_info=True)
            raise AssemblyError(f"PPTX generation failed: {e}") from e

        data = buffer.getvalue()
        if not data:
            raise AssemblyError("PPTX writer produced no output.")
        return data

    def _draw_background(self, slide: PptxSlide, slide_data: Slide, job_id: str) -> bool:
        """Places the full-bleed art, or paints the plain canvas. Returns True if the art was placed."""
        if is_embedded_image(slide_data.image_url):
            try:
                image_stream = io.BytesIO(to_embeddable(decode_data_uri(slide_data.image_url)))
                picture = slide.shapes.add_picture(
                    image_stream, 0, 0, Inches(SLIDE_WIDTH_IN), Inches(SLIDE_HEIGHT_IN)
                )
                picture.name = "Background"
                return True
            except Exception as e:
                logger.warning(f"[{job_id}] Failed to add image for slide {slide_data.page_number}: {e}")
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = RGBColor.from_string(PLAIN_CANVAS)
        return False

    def _draw_bookend(self, slide: PptxSlide, data: Slide, style: SlideStyle, is_cover: bool) -> None:
        colors = style.palette
        _add_rect(slide, "Accent", 4.25, 1.6, 1.5, 0.06, style.accent_color)
        _add_text(slide, "Title", data.title, 0.5, 1.8, 9, 1.2, 44, style.title_color,
                  bold=True, align=PP_ALIGN.CENTER, anchor=MSO_ANCHOR.MIDDLE)
        if data.subtitle:
            _add_text(slide, "Subtitle", data.subtitle, 0.5, 3.0, 9, 0.8, 24, colors.subtitle,
                      align=PP_ALIGN.CENTER, anchor=MSO_ANCHOR.MIDDLE)
        # Only the cover carries a synopsis
        if is_cover and data.content:
            _add_text(slide, "Content", data.content, 1, 4.0, 8, 1, 16, colors.content, align=PP_ALIGN.CENTER)
        _add_rect(slide, "Band", 0, SLIDE_HEIGHT_IN - 0.08, SLIDE_WIDTH_IN, 0.08, style.band_color)

    def _draw_content(self, slide: PptxSlide, data: Slide, style: SlideStyle) -> None:
        colors = style.palette
        _add_rect(slide, "Accent", 0.3, 0.45, 0.08, 0.6, style.accent_color)
        _add_text(slide, "Title", data.title, 0.5, 0.3, 9, 0.8, 32, style.title_color,
                  bold=True, anchor=MSO_ANCHOR.MIDDLE)
        if data.subtitle:
            _add_text(slide, "Subtitle", data.subtitle, 0.5, 1.0, 9, 0.5, 18, colors.subtitle,
                      anchor=MSO_ANCHOR.MIDDLE)
        content_top = 1.6 if data.subtitle else 1.2
        if data.content:
            _add_text(slide, "Content", data.content, 0.5, content_top, 9, 1.0, 14, colors.content)
        if data.bullet_points:
            _add_bullets(slide, data.bullet_points, content_top + 1.1, colors.bullet)
        _add_rect(slide, "Band", 0, SLIDE_HEIGHT_IN - 0.08, SLIDE_WIDTH_IN, 0.08, style.band_color)

    def _draw_page_number(self, slide: PptxSlide, page_number: int, style: SlideStyle) -> None:
        _add_text(slide, "PageNumber", str(page_number), 9, 5.1, 0.5, 0.4, 12, style.palette.page_number,
                  align=PP_ALIGN.RIGHT, font_face=PAGE_NUMBER_FONT)


def describe_deck(pptx_bytes: bytes) -> List[Dict[str, Any]]:
    """
    Reads a generated deck back into plain data: per slide, the text and the
    colour of every named shape, and whether it has a background picture.
    """
    prs = Presentation(io.BytesIO(pptx_bytes))
    described = []
    for slide in prs.slides:
        texts: Dict[str, Any] = {}
        colors: Dict[str, str] = {}
        has_background = False
        for shape in slide.shapes:
            if shape.shape_type == MSO_SHAPE_TYPE.PICTURE:
                has_background = has_background or shape.name == "Background"
                continue
            if shape.has_text_frame and shape.text_frame.text:
                paragraphs = [p.text for p in shape.text_frame.paragraphs]
                texts[shape.name] = paragraphs if shape.name == "Bullets" else shape.text_frame.text
                runs = shape.text_frame.paragraphs[0].runs
                if runs:
                    colors[shape.name] = str(runs[0].font.color.rgb)
            elif shape.shape_type == MSO_SHAPE_TYPE.AUTO_SHAPE:
                colors[shape.name] = str(shape.fill.fore_color.rgb)
        described.append({"texts": texts, "colors": colors, "has_background": has_background})
    return described
