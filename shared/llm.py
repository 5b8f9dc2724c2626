"""Gemini text capability used by the outline and template analysis services."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import vertexai
from google.api_core.exceptions import (
    DeadlineExceeded,
    ResourceExhausted,
    ServiceUnavailable,
)
from vertexai.generative_models import GenerationConfig, GenerativeModel, Part

from shared.config import Settings
from shared.errors import CapabilityUnavailableError, UpstreamBusyError
from shared.retry import FailureKind

logger = logging.getLogger(__name__)


class TextCapability(ABC):
    """Anything that turns a prompt (and optionally one image) into text."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        mime_type: str = "image/jpeg",
        temperature: float = 0.7,
    ) -> str:
        ...


class GeminiTextCapability(TextCapability):
    def __init__(self, model_name: str, timeout: float, max_output_tokens: int = 8192):
        self.model_name = model_name
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.model = GenerativeModel(model_name)

    async def generate(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        mime_type: str = "image/jpeg",
        temperature: float = 0.7,
    ) -> str:
        contents = [prompt]
        if image is not None:
            contents = [Part.from_data(data=image, mime_type=mime_type), prompt]
        config = GenerationConfig(temperature=temperature, max_output_tokens=self.max_output_tokens)
        response = await asyncio.wait_for(
            self.model.generate_content_async(contents, generation_config=config),
            timeout=self.timeout,
        )
        return response.text


def init_vertex(settings: Settings) -> None:
    if not settings.gcp_project:
        raise CapabilityUnavailableError("GCP_PROJECT environment variable is not set.")
    vertexai.init(project=settings.gcp_project, location=settings.gcp_region)


def build_text_capability(settings: Settings) -> Optional[TextCapability]:
    """Initialises Vertex AI and the Gemini model, or returns None if that fails."""
    try:
        init_vertex(settings)
        capability = GeminiTextCapability(settings.text_model, timeout=settings.text_timeout)
        logger.info(f"✅ Gemini model '{settings.text_model}' initialized successfully.")
        return capability
    except Exception as e:
        logger.critical(f"Failed to initialize Gemini model: {e}", exc_info=True)
        return None


def classify_text_error(error: BaseException) -> Optional[FailureKind]:
    """Maps an exception raised by a text call to a retryable failure kind."""
    if isinstance(error, (ServiceUnavailable, ResourceExhausted, UpstreamBusyError)):
        return FailureKind.BUSY
    if isinstance(error, (asyncio.TimeoutError, DeadlineExceeded, ConnectionError)):
        return FailureKind.NETWORK
    return None
