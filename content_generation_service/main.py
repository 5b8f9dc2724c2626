import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException

from content_generation_service.models import OutlineRequest, OutlineResponse
from content_generation_service.outline import OutlineSynthesizer
from shared.config import get_settings
from shared.errors import InputValidationError, MalformedResponseError, RetryExhaustedError
from shared.llm import build_text_capability
from shared.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

# --- FastAPI App and Vertex AI Initialization ------------------------------
app = FastAPI(
    title="Content Generation Service",
    description="Drafts slide outlines and one shared visual theme using Gemini.",
    version="3.0.0",
)

_text_capability = build_text_capability(get_settings())
_synthesizer: Optional[OutlineSynthesizer] = OutlineSynthesizer(_text_capability) if _text_capability else None


def get_synthesizer() -> OutlineSynthesizer:
    if _synthesizer is None:
        raise HTTPException(status_code=503, detail="Vertex AI model not available.")
    return _synthesizer


# --- API Endpoints ----------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "ok", "modelReady": _synthesizer is not None}


@app.post("/generate-outline", response_model=OutlineResponse)
async def generate_outline(request: OutlineRequest, synthesizer: OutlineSynthesizer = Depends(get_synthesizer)):
    """
    Generates the full deck outline in a single model call and repairs it to
    exactly request.page_count slides.
    """
    try:
        result = await synthesizer.synthesize(request.topic, request.page_count, request.template_style)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MalformedResponseError as e:
        logger.error(f"--- CRITICAL ERROR in Outline Generation: {e}. Raw AI Response: {e.raw_text or 'N/A'} ---")
        raise HTTPException(status_code=502, detail=f"Failed to generate outline: {e}")
    except RetryExhaustedError as e:
        logger.error(f"--- Outline generation gave up: {e} ---")
        raise HTTPException(status_code=503, detail="The text model is busy. Please retry shortly.")

    return OutlineResponse(slides=result.slides, style_theme=result.style_theme)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8001)
