# models.py

from typing import List, Optional

from shared.models import Slide, StyleTheme, TemplateStyle, WireModel

# --- Models for API communication ---
class ExportRequest(WireModel):
    slides: List[Slide] = []
    title: str = ""
    template_style: Optional[TemplateStyle] = None
    style_theme: Optional[StyleTheme] = None
