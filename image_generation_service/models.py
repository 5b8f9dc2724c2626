from typing import Optional

from shared.models import StyleTheme, TemplateStyle, WireModel

# --- Pydantic models must match between services for communication ---

# Request received by this service
class ImageGenerationRequest(WireModel):
    prompt: str = ""
    style_theme: Optional[StyleTheme] = None
    template_style: Optional[TemplateStyle] = None

# Response sent by this service. imageUrl is a data URI, or "" if the
# generated image could not be embedded.
class ImageServiceResponse(WireModel):
    image_url: str
