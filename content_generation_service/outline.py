import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from shared.errors import InputValidationError, MalformedResponseError
from shared.json_utils import parse_json_object
from shared.llm import TextCapability, classify_text_error
from shared.models import DEFAULT_THEME, OutlineResult, SlideOutline, StyleTheme, TemplateStyle
from shared.retry import OUTLINE_POLICY, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

MIN_PAGES = 3
MAX_PAGES = 20

DEFAULT_IMAGE_PROMPT = "blue gradient minimalist abstract background, geometric patterns, no text, 16:9"
FILLER_CLOSING_TITLE = "Summary and Outlook"
FILLER_CONTENT = "Content to be completed."
FILLER_BULLETS = ["Key point 1", "Key point 2", "Key point 3"]


def validate_request(topic: str, page_count: int) -> None:
    if not topic or not topic.strip():
        raise InputValidationError("Missing required field: topic")
    if not isinstance(page_count, int) or isinstance(page_count, bool):
        raise InputValidationError("Page count must be an integer")
    if page_count < MIN_PAGES or page_count > MAX_PAGES:
        raise InputValidationError(f"Page count must be between {MIN_PAGES} and {MAX_PAGES}")


def _template_section(template_style: Optional[TemplateStyle]) -> str:
    if template_style is None:
        return ""
    return f"""
    # --- USER TEMPLATE (AUTHORITATIVE VISUAL IDENTITY) ---
    - Primary color: {template_style.primary_color}
    - Secondary color: {template_style.secondary_color}
    - Background tone: {template_style.background_color}
    - Layout family: {template_style.layout}
    - Title style: {template_style.title_style}
    - Mood: {template_style.mood}
    - Visual elements: {template_style.visual_elements}
    - Image style: {template_style.image_style_prompt}
    The styleTheme MUST use this mood and these visual elements, and every imagePrompt
    MUST match this palette and image style.
    """


def build_outline_prompt(topic: str, page_count: int, template_style: Optional[TemplateStyle] = None) -> str:
    """Builds the single structured-generation prompt for one outline."""
    return f"""
    You are an expert presentation designer. Draft the outline of a slide deck.

    # --- USER REQUEST ---
    - Topic: "{topic}"
    - Number of slides: EXACTLY {page_count}. Not one more, not one less.

    # --- DECK STRUCTURE ---
    - Slide 1: the cover. A strong title, a subtitle and a one-sentence synopsis as content.
    - Slides 2 to {page_count - 1}: content slides. Each carries 4-6 sentences of body text in
      "content" and 4-6 concise bullet points in "bulletPoints".
    - Slide {page_count}: a real closing or summary slide that wraps up the topic. Never a
      placeholder such as "Thank you" or "Questions".

    # --- IMAGE PROMPTS ---
    - Every slide has an English "imagePrompt" describing a concrete background scene for
      that slide's content (not always abstract geometry). History topics suggest vintage
      photography, technology suggests futuristic devices, nature suggests real landscapes,
      business suggests offices and meetings.
    - Decide ONE visual identity for the whole deck ("styleTheme"). Every imagePrompt MUST
      include the same colorTone and style.
    {_template_section(template_style)}
    # --- CRITICAL INSTRUCTIONS ---
    1. Your entire response MUST be a single, clean JSON object.
    2. The "slides" array MUST contain exactly {page_count} elements.
    3. Each slide has the keys "title", "subtitle", "content", "bulletPoints", "imagePrompt".

    # --- EXAMPLE OF THE EXPECTED SHAPE ---
    {{
    "styleTheme": {{"name": "Industrial Heritage", "colorTone": "warm vintage sepia", "style": "photorealistic", "mood": "historical"}},
    "slides": [
        {{
            "title": "The Age of Steam",
            "subtitle": "How machines reshaped society",
            "content": "A journey through the first industrial revolution.",
            "bulletPoints": [],
            "imagePrompt": "Vintage photograph of a 19th century factory, sepia tone, detailed machinery, 16:9"
        }}
    ]
    }}

    Return only the JSON.
    """


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v).strip() for v in value if str(v).strip())
    return str(value).strip()


def _as_bullets(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value)]


def _slide_from_dict(raw: Any, position: int) -> SlideOutline:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Slide {position} is not a JSON object.")
    subtitle = _as_text(raw.get("subtitle"))
    title = _as_text(raw.get("title")) or f"Slide {position}"
    image_prompt = _as_text(raw.get("imagePrompt", raw.get("image_prompt")))
    return SlideOutline(
        title=title,
        subtitle=subtitle or None,
        content=_as_text(raw.get("content")),
        bullet_points=_as_bullets(raw.get("bulletPoints", raw.get("bullet_points", raw.get("points")))),
        image_prompt=image_prompt or f"{title}, {DEFAULT_IMAGE_PROMPT}",
    )


def _theme_from_dict(raw: Any) -> StyleTheme:
    if not isinstance(raw, dict):
        return DEFAULT_THEME
    return StyleTheme(
        name=_as_text(raw.get("name")) or DEFAULT_THEME.name,
        color_tone=_as_text(raw.get("colorTone", raw.get("color_tone"))) or DEFAULT_THEME.color_tone,
        style=_as_text(raw.get("style")) or DEFAULT_THEME.style,
        mood=_as_text(raw.get("mood")) or DEFAULT_THEME.mood,
    )


def parse_outline_response(text: str) -> Tuple[List[SlideOutline], StyleTheme]:
    """Parses the model answer. The slide count is not repaired here."""
    data: Dict[str, Any] = parse_json_object(text)
    raw_slides = data.get("slides")
    if not isinstance(raw_slides, list):
        raise MalformedResponseError("Model response has no 'slides' array.", raw_text=text)
    slides = [_slide_from_dict(raw, i + 1) for i, raw in enumerate(raw_slides)]
    theme = _theme_from_dict(data.get("styleTheme", data.get("theme")))
    return slides, theme


def _filler_slide(position: int, page_count: int, image_prompt: str) -> SlideOutline:
    return SlideOutline(
        title=FILLER_CLOSING_TITLE if position == page_count else f"Part {position}",
        subtitle="",
        content=FILLER_CONTENT,
        bullet_points=list(FILLER_BULLETS),
        image_prompt=image_prompt,
    )


def repair_slide_count(slides: List[SlideOutline], page_count: int) -> List[SlideOutline]:
    """Pads with filler slides or truncates so that exactly page_count remain."""
    repaired = list(slides)
    if len(repaired) > page_count:
        logger.warning(f"Model generated {len(repaired)} slides, expected {page_count}. Trimming...")
        return repaired[:page_count]
    if len(repaired) < page_count:
        logger.warning(f"Model only generated {len(repaired)} slides, expected {page_count}. Padding...")
        while len(repaired) < page_count:
            last_prompt = repaired[-1].image_prompt if repaired and repaired[-1].image_prompt else DEFAULT_IMAGE_PROMPT
            repaired.append(_filler_slide(len(repaired) + 1, page_count, last_prompt))
    return repaired


def align_theme_with_template(theme: StyleTheme, template_style: Optional[TemplateStyle]) -> StyleTheme:
    """The template, not the model, decides style and mood."""
    if template_style is None:
        return theme
    return theme.model_copy(update={
        "style": template_style.visual_elements,
        "mood": template_style.mood,
    })


class OutlineSynthesizer:
    """Turns a topic into exactly page_count slide outlines plus one theme."""

    def __init__(self, text: TextCapability, policy: RetryPolicy = OUTLINE_POLICY, sleep=asyncio.sleep):
        self.text = text
        self.policy = policy
        self.sleep = sleep

    async def synthesize(
        self,
        topic: str,
        page_count: int,
        template_style: Optional[TemplateStyle] = None,
    ) -> OutlineResult:
        validate_request(topic, page_count)
        prompt = build_outline_prompt(topic.strip(), page_count, template_style)
        logger.info(f"--- Generating outline for topic: '{topic[:80]}' ({page_count} slides) ---")

        raw_text = await run_with_retry(
            lambda: self.text.generate(prompt),
            self.policy,
            classify_text_error,
            sleep=self.sleep,
            label="outline generation",
        )

        slides, theme = parse_outline_response(raw_text)
        slides = repair_slide_count(slides, page_count)
        theme = align_theme_with_template(theme, template_style)

        logger.info(f"--- Successfully generated outline with {len(slides)} slides, theme '{theme.name}'. ---")
        return OutlineResult(slides=slides, style_theme=theme)
