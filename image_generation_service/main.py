import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException

from image_generation_service.models import ImageGenerationRequest, ImageServiceResponse
from image_generation_service.providers import build_capabilities
from image_generation_service.worker import ImageEmbedder, ImageWorker
from shared.config import get_settings
from shared.errors import ImageGenerationError, InputValidationError
from shared.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Image Generation Service",
    description="Generates themed, embeddable background art for presentation slides.",
)

# --- Initialize image providers ---
settings = get_settings()
_primary, _fallback = build_capabilities(settings)
_worker: Optional[ImageWorker] = None
if _primary is not None:
    _worker = ImageWorker(
        _primary,
        _fallback,
        embedder=ImageEmbedder(timeout=settings.embed_timeout),
        budget=settings.image_request_budget,
    )
else:
    logger.critical("No image provider could be initialized.")


def get_worker() -> ImageWorker:
    if _worker is None:
        raise HTTPException(status_code=503, detail="No image model available.")
    return _worker


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "primary": _primary.name if _primary else None,
        "fallback": _fallback.name if _fallback else None,
    }


@app.post("/generate-image", response_model=ImageServiceResponse)
async def generate_image(request: ImageGenerationRequest, worker: ImageWorker = Depends(get_worker)):
    """
    Generates one background image for a slide, styled by the run's shared
    theme and optional template, and returns it as an embedded data URI.
    """
    if not request.prompt.strip():
        raise HTTPException(status_code=400, detail="Missing required field: prompt")

    try:
        image_url = await worker.acquire_image(request.prompt, request.style_theme, request.template_style)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImageGenerationError as e:
        logger.error(f"Error generating image: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate image after retries.")

    logger.info(f"✅ Image ready for prompt '{request.prompt[:60]}' (embedded={bool(image_url)}).")
    return ImageServiceResponse(image_url=image_url)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8002)
