# models.py

import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Pydantic models shared by every service and the orchestrator ---
# Attributes are snake_case in Python and camelCase on the wire.


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenWireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class StyleTheme(FrozenWireModel):
    """The single visual identity shared by every slide of one generation run."""
    name: str
    color_tone: str
    style: str
    mood: str


DEFAULT_THEME = StyleTheme(
    name="Professional Blue",
    color_tone="deep blue and white gradient",
    style="minimalist corporate",
    mood="professional",
)


class TemplateStyle(FrozenWireModel):
    """Visual identity extracted from a user-uploaded reference image."""
    primary_color: str
    secondary_color: str
    background_color: str
    layout: str
    title_style: str
    mood: str
    visual_elements: str
    image_style_prompt: str
    reference_image: Optional[str] = None


# Fallback for every field the template analysis may leave out.
TEMPLATE_DEFAULTS = {
    "primary_color": "#1E40AF",
    "secondary_color": "#60A5FA",
    "background_color": "light",
    "layout": "centered",
    "title_style": "bold",
    "mood": "corporate",
    "visual_elements": "minimalist",
    "image_style_prompt": "professional corporate style, clean design, subtle gradients",
}


class SlideOutline(FrozenWireModel):
    title: str
    subtitle: Optional[str] = None
    content: str = ""
    bullet_points: List[str] = Field(default_factory=list)
    image_prompt: str = ""


class Slide(WireModel):
    """The mutable working unit. Only image_url changes after creation."""
    id: str
    page_number: int = Field(ge=1)
    title: str
    subtitle: Optional[str] = None
    content: str = ""
    bullet_points: List[str] = Field(default_factory=list)
    image_url: str = ""
    image_prompt: str = ""

    @classmethod
    def from_outline(cls, outline: SlideOutline, page_number: int) -> "Slide":
        return cls(
            id=str(uuid.uuid4()),
            page_number=page_number,
            title=outline.title,
            subtitle=outline.subtitle,
            content=outline.content,
            bullet_points=list(outline.bullet_points),
            image_url="",
            image_prompt=outline.image_prompt,
        )


class OutlineResult(WireModel):
    slides: List[SlideOutline]
    style_theme: StyleTheme
    background_image: Optional[str] = None


def is_embedded_image(value: Optional[str]) -> bool:
    """True for a self-contained data URI, False for empty values and remote URLs."""
    return bool(value) and value.startswith("data:")
