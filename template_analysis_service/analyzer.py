import asyncio
import base64
import binascii
import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from shared.errors import InputValidationError
from shared.json_utils import parse_json_object
from shared.llm import TextCapability, classify_text_error
from shared.models import TEMPLATE_DEFAULTS, TemplateStyle
from shared.retry import OUTLINE_POLICY, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """
You are a professional presentation design analyst. Study this screenshot of a slide
template and extract its visual design style.

Return a single JSON object with exactly these fields:
{
  "primaryColor": "hex code of the dominant color, e.g. #1E40AF",
  "secondaryColor": "hex code of the supporting color, e.g. #60A5FA",
  "backgroundColor": "background type: dark / light / gradient",
  "layout": "layout family: centered / left-aligned / card-based / split",
  "titleStyle": "title style: bold / elegant / minimal / decorative",
  "mood": "overall tone in English, e.g. corporate, creative, academic, playful, modern, vintage",
  "visualElements": "visual element traits in English, e.g. geometric shapes, organic curves, photo-heavy, minimalist, icon-based",
  "imageStylePrompt": "20-30 English words to generate images in a similar style: color tone, style, visual elements, no specific content"
}

Return only the JSON.
"""

_FIELD_KEYS = {
    "primary_color": "primaryColor",
    "secondary_color": "secondaryColor",
    "background_color": "backgroundColor",
    "layout": "layout",
    "title_style": "titleStyle",
    "mood": "mood",
    "visual_elements": "visualElements",
    "image_style_prompt": "imageStylePrompt",
}


def decode_reference_image(image_base64: str) -> Tuple[bytes, str]:
    """Accepts raw base64 or a data URI. Returns the bytes and their MIME type."""
    if not image_base64 or not image_base64.strip():
        raise InputValidationError("No image provided.")
    payload = image_base64.split(",", 1)[1] if image_base64.startswith("data:") else image_base64
    try:
        data = base64.b64decode(payload.strip(), validate=True)
        with Image.open(io.BytesIO(data)) as img:
            mime_type = Image.MIME.get(img.format, "image/jpeg")
    except (binascii.Error, ValueError, UnidentifiedImageError) as e:
        raise InputValidationError(f"The uploaded file is not a readable image: {e}") from e
    return data, mime_type


class TemplateAnalyzer:
    """Turns one uploaded reference image into a fully populated TemplateStyle."""

    def __init__(self, text: TextCapability, policy: RetryPolicy = OUTLINE_POLICY, sleep=asyncio.sleep):
        self.text = text
        self.policy = policy
        self.sleep = sleep

    async def analyze(self, image_base64: str) -> TemplateStyle:
        data, mime_type = decode_reference_image(image_base64)
        logger.info(f"--- Analyzing template image ({len(data)} bytes, {mime_type}) ---")

        raw_text = await run_with_retry(
            lambda: self.text.generate(EXTRACTION_PROMPT, image=data, mime_type=mime_type, temperature=0.3),
            self.policy,
            classify_text_error,
            sleep=self.sleep,
            label="template analysis",
        )
        parsed = parse_json_object(raw_text)

        fields = {}
        for field_name, key in _FIELD_KEYS.items():
            value = parsed.get(key, parsed.get(field_name))
            fields[field_name] = str(value).strip() if value else TEMPLATE_DEFAULTS[field_name]
        style = TemplateStyle(**fields, reference_image=image_base64)

        logger.info(f"--- Template style extracted: {style.primary_color}/{style.secondary_color}, mood '{style.mood}' ---")
        return style
