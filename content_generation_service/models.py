from typing import List, Optional

from shared.models import SlideOutline, StyleTheme, TemplateStyle, WireModel

# --- Input Models ---

class OutlineRequest(WireModel):
    """The incoming request from the orchestrator."""
    topic: str
    page_count: int
    template_style: Optional[TemplateStyle] = None

# --- Output/Result Models ---

class OutlineResponse(WireModel):
    """
    The root object that the /generate-outline endpoint returns: exactly
    page_count slides plus the one theme every image request must carry.
    """
    slides: List[SlideOutline]
    style_theme: StyleTheme
    background_image: Optional[str] = None
