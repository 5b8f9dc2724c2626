from typing import Optional

from shared.models import TemplateStyle, WireModel


class TemplateAnalyzeRequest(WireModel):
    image_base64: str = ""


class TemplateAnalyzeResponse(WireModel):
    success: bool
    template_style: Optional[TemplateStyle] = None
    error: Optional[str] = None
