import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from shared.config import get_settings
from shared.errors import InputValidationError, MalformedResponseError, RetryExhaustedError
from shared.llm import build_text_capability
from shared.logging_config import configure_logging
from template_analysis_service.analyzer import TemplateAnalyzer
from template_analysis_service.models import TemplateAnalyzeRequest, TemplateAnalyzeResponse

configure_logging()
logger = logging.getLogger(__name__)

# --- FastAPI App and Vertex AI Initialization ------------------------------

app = FastAPI(
    title="Template Analysis Service",
    description="Extracts a reusable visual style from an uploaded slide template image using Gemini.",
    version="1.0.0",
)

_text_capability = build_text_capability(get_settings())
_analyzer: Optional[TemplateAnalyzer] = TemplateAnalyzer(_text_capability) if _text_capability else None


def get_analyzer() -> Optional[TemplateAnalyzer]:
    return _analyzer


def _failure(status_code: int, message: str) -> JSONResponse:
    body = TemplateAnalyzeResponse(success=False, error=message).model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


# --- API Endpoint -----------------------------------------------------------

@app.post("/analyze-template", response_model=TemplateAnalyzeResponse, response_model_exclude_none=True)
async def analyze_template(request: TemplateAnalyzeRequest, analyzer: Optional[TemplateAnalyzer] = Depends(get_analyzer)):
    """Extracts primary/secondary colors, layout, mood and an image-style prompt from one image."""
    if analyzer is None:
        return _failure(500, "Vertex AI model not available.")
    if not request.image_base64:
        return _failure(400, "No image provided.")

    try:
        style = await analyzer.analyze(request.image_base64)
    except InputValidationError as e:
        return _failure(400, str(e))
    except MalformedResponseError as e:
        logger.error(f"Failed to parse template analysis response: {e.raw_text or 'N/A'}")
        return _failure(500, "Could not parse the template style.")
    except RetryExhaustedError as e:
        logger.error(f"Template analysis gave up: {e}")
        return _failure(500, "Template analysis failed, please retry.")

    return TemplateAnalyzeResponse(success=True, template_style=style)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8004)
