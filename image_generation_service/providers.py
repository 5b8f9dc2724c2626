"""
Image capabilities behind one contract: `await capability.generate(prompt)`
returns either a `data:` URI or a remote URL that still has to be embedded.

Quota responses raise RateLimitedError so the worker can wait longer and
retry the same capability instead of falling back.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import httpx
from google.api_core.exceptions import ResourceExhausted, ServiceUnavailable
from vertexai.preview.vision_models import ImageGenerationModel

from shared.config import Settings
from shared.errors import CapabilityUnavailableError, ImageGenerationError, RateLimitedError, UpstreamBusyError
from shared.llm import init_vertex

logger = logging.getLogger(__name__)

IMAGE_WIDTH = 1024
IMAGE_HEIGHT = 576

SD_NEGATIVE_PROMPT = (
    "text, letters, signature, watermark, logo, brand, username, words, writing, "
    "fuzzy, blurry, ugly, bad quality"
)

# When the configured provider fails outright, the first other configured
# provider in this order is tried once.
FALLBACK_ORDER = ("local", "http", "imagen")


class ImageCapability(ABC):
    name = "image"

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        ...


def _raise_for_status(response: httpx.Response, provider: str) -> None:
    if response.status_code == 429:
        raise RateLimitedError(f"{provider} rate limited the request (429).")
    if response.status_code == 503:
        raise UpstreamBusyError(f"{provider} is busy (503).")
    if response.status_code >= 400:
        raise ImageGenerationError(f"{provider} API error: {response.status_code} {response.text[:200]}")


class ImagenCapability(ImageCapability):
    """Vertex AI Imagen. The SDK call is blocking, so it runs in a worker thread."""
    name = "imagen"

    def __init__(self, model_name: str, timeout: float, model=None):
        self.timeout = timeout
        self.model = model or ImageGenerationModel.from_pretrained(model_name)

    async def generate(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.model.generate_images,
                    prompt=prompt,
                    number_of_images=1,
                    aspect_ratio="16:9",
                ),
                timeout=self.timeout,
            )
        except ResourceExhausted as e:
            raise RateLimitedError(f"Imagen quota exceeded: {e}") from e
        except ServiceUnavailable as e:
            raise UpstreamBusyError(f"Imagen unavailable: {e}") from e

        if not response.images:
            raise ImageGenerationError("Imagen returned no image (the prompt may have been filtered).")
        return "data:image/png;base64," + base64.b64encode(response[0]._image_bytes).decode("utf-8")


class StableDiffusionCapability(ImageCapability):
    """A local AUTOMATIC1111 WebUI exposing /sdapi/v1/txt2img."""
    name = "local"

    def __init__(self, base_url: str, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def is_available(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/")
            return response.is_success
        except httpx.HTTPError:
            return False

    async def generate(self, prompt: str) -> str:
        if not await self.is_available():
            raise CapabilityUnavailableError(f"Local Stable Diffusion API at {self.base_url} is not reachable.")

        payload = {
            "prompt": prompt,
            "negative_prompt": SD_NEGATIVE_PROMPT,
            "width": IMAGE_WIDTH,
            "height": IMAGE_HEIGHT,
            "steps": 20,
            "cfg_scale": 7.5,
            "sampler_name": "DPM++ 2M Karras",
            "seed": -1,
            "batch_size": 1,
            "n_iter": 1,
        }
        async with self._client() as client:
            response = await client.post(f"{self.base_url}/sdapi/v1/txt2img", json=payload)
        _raise_for_status(response, "Stable Diffusion")

        images = response.json().get("images") or []
        if not images:
            raise ImageGenerationError("Stable Diffusion generated no images.")
        return f"data:image/png;base64,{images[0]}"


class HttpImageCapability(ImageCapability):
    """An OpenAI-compatible /images/generations endpoint (SiliconFlow Kolors by default)."""
    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "image_size": f"{IMAGE_WIDTH}x{IMAGE_HEIGHT}",
            "num_inference_steps": 20,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(f"{self.base_url}/images/generations", json=payload, headers=headers)
        _raise_for_status(response, "Image API")

        data = response.json()
        for key in ("images", "data"):
            entries = data.get(key) or []
            if entries and entries[0].get("url"):
                return entries[0]["url"]
            if entries and entries[0].get("b64_json"):
                return f"data:image/png;base64,{entries[0]['b64_json']}"
        raise ImageGenerationError("No image in the Image API response.")


def _build_one(name: str, settings: Settings) -> Optional[ImageCapability]:
    try:
        if name == "imagen" and settings.gcp_project:
            init_vertex(settings)
            return ImagenCapability(settings.image_model, timeout=settings.image_timeout)
        if name == "local" and settings.sd_api_url:
            return StableDiffusionCapability(settings.sd_api_url, timeout=settings.image_timeout)
        if name == "http" and settings.image_api_key:
            return HttpImageCapability(
                settings.image_api_url,
                settings.image_api_key,
                settings.image_api_model,
                timeout=settings.image_timeout,
            )
    except Exception as e:
        logger.critical(f"Failed to initialize image provider '{name}': {e}", exc_info=True)
    return None


def build_capabilities(settings: Settings) -> Tuple[Optional[ImageCapability], Optional[ImageCapability]]:
    """
    Returns (primary, fallback). The primary is IMAGE_PROVIDER when it can be
    built; the fallback is the first other provider in FALLBACK_ORDER that can.
    """
    requested = settings.image_provider.strip().lower()
    order = [requested] + [name for name in FALLBACK_ORDER if name != requested]

    built: Dict[str, ImageCapability] = {}
    for name in order:
        capability = _build_one(name, settings)
        if capability is not None:
            built[name] = capability
        if len(built) == 2:
            break

    if requested not in built:
        logger.warning(f"Image provider '{requested}' is not configured.")
    capabilities = list(built.values())
    primary = capabilities[0] if capabilities else None
    fallback = capabilities[1] if len(capabilities) > 1 else None
    if primary:
        logger.info(f"✅ Image providers: primary={primary.name}, fallback={fallback.name if fallback else 'none'}")
    return primary, fallback
