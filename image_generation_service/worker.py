import asyncio
import base64
import io
import logging
from typing import Optional

import httpx
from google.api_core.exceptions import DeadlineExceeded, ResourceExhausted, ServiceUnavailable
from PIL import Image

from image_generation_service.providers import ImageCapability
from shared.errors import (
    CapabilityUnavailableError,
    ImageGenerationError,
    InputValidationError,
    RateLimitedError,
    RetryExhaustedError,
    UpstreamBusyError,
)
from shared.models import StyleTheme, TemplateStyle, is_embedded_image
from shared.retry import IMAGE_SERVER_POLICY, FailureKind, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

QUALITY_SUFFIX = "No text, no faces, 16:9, high resolution, cinematic lighting."
NEUTRAL_PREFIX = "high quality, professional style"


def build_image_prompt(
    prompt: str,
    theme: Optional[StyleTheme] = None,
    template_style: Optional[TemplateStyle] = None,
) -> str:
    """Same inputs always give the same request: style prefix, slide prompt, quality suffix."""
    prefix = []
    if template_style is not None:
        prefix.append(template_style.image_style_prompt.strip().rstrip("."))
        prefix.append(template_style.visual_elements.strip().rstrip("."))
    if theme is not None:
        prefix.append(f"{theme.color_tone}, {theme.style} style")
    prefix = [p for p in prefix if p] or [NEUTRAL_PREFIX]
    return f"{'. '.join(prefix)}. {prompt.strip().rstrip('.')}. {QUALITY_SUFFIX}"


def classify_image_error(error: BaseException) -> Optional[FailureKind]:
    if isinstance(error, (RateLimitedError, ResourceExhausted)):
        return FailureKind.RATE_LIMITED
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429:
        return FailureKind.RATE_LIMITED
    if isinstance(error, (UpstreamBusyError, ServiceUnavailable)):
        return FailureKind.BUSY
    if isinstance(error, (asyncio.TimeoutError, DeadlineExceeded, httpx.TransportError, ConnectionError)):
        return FailureKind.NETWORK
    if isinstance(error, (CapabilityUnavailableError, InputValidationError)):
        return None
    return FailureKind.OTHER


def sniff_mime_type(data: bytes) -> str:
    with Image.open(io.BytesIO(data)) as img:
        return Image.MIME.get(img.format, "image/png")


class ImageEmbedder:
    """Turns a remote image URL into a data URI. Failures yield an empty string."""

    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def embed(self, result: str) -> str:
        if not result:
            return ""
        if is_embedded_image(result):
            return result
        if not result.startswith(("http://", "https://")):
            logger.warning(f"Discarding unsupported image reference: {result[:60]}")
            return ""

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
                response = await client.get(result)
                response.raise_for_status()
            data = response.content
            content_type = response.headers.get("content-type", "").split(";")[0].strip()
            if not content_type.startswith("image/"):
                content_type = sniff_mime_type(data)
            return f"data:{content_type};base64,{base64.b64encode(data).decode('utf-8')}"
        except Exception as e:
            logger.warning(f"Failed to convert remote image to base64, slide will render without art: {e}")
            return ""


class ImageWorker:
    """
    Obtains one slide background. Rate limits retry the same capability; a
    primary that fails outright hands over to the fallback once. With a budget,
    the whole acquisition (retries, fallback and embedding) gives up after
    that many seconds so the caller never times out first.
    """

    def __init__(
        self,
        primary: ImageCapability,
        fallback: Optional[ImageCapability] = None,
        policy: RetryPolicy = IMAGE_SERVER_POLICY,
        embedder: Optional[ImageEmbedder] = None,
        sleep=asyncio.sleep,
        budget: Optional[float] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.policy = policy
        self.embedder = embedder or ImageEmbedder()
        self.sleep = sleep
        self.budget = budget

    async def _run(self, capability: ImageCapability, prompt: str) -> str:
        return await run_with_retry(
            lambda: capability.generate(prompt),
            self.policy,
            classify_image_error,
            sleep=self.sleep,
            label=f"image generation via {capability.name}",
        )

    async def _generate(self, prompt: str) -> str:
        try:
            return await self._run(self.primary, prompt)
        except (RetryExhaustedError, CapabilityUnavailableError) as e:
            rate_limited = isinstance(e, RetryExhaustedError) and e.last_kind == FailureKind.RATE_LIMITED
            if self.fallback is None or rate_limited:
                raise ImageGenerationError(f"Failed to generate image for prompt '{prompt[:80]}': {e}") from e
            logger.warning(f"{self.primary.name} failed ({e}), falling back to {self.fallback.name}...")

        try:
            return await self._run(self.fallback, prompt)
        except (RetryExhaustedError, CapabilityUnavailableError) as e:
            raise ImageGenerationError(f"Failed to generate image for prompt '{prompt[:80]}': {e}") from e

    async def acquire_image(
        self,
        prompt: str,
        theme: Optional[StyleTheme] = None,
        template_style: Optional[TemplateStyle] = None,
    ) -> str:
        if not prompt or not prompt.strip():
            raise InputValidationError("Missing required field: prompt")
        full_prompt = build_image_prompt(prompt, theme, template_style)
        try:
            return await asyncio.wait_for(self._acquire(full_prompt), timeout=self.budget)
        except asyncio.TimeoutError as e:
            raise ImageGenerationError(
                f"Image for prompt '{prompt[:80]}' not ready within {self.budget}s"
            ) from e

    async def _acquire(self, full_prompt: str) -> str:
        result = await self._generate(full_prompt)
        return await self.embedder.embed(result)
