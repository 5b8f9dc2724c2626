import asyncio
import logging
from typing import Optional, Sequence, Type

import httpx

from orchestrator.sources import ExportSink, ImageSource, OutlineSource, TemplateSource
from shared.config import Settings, get_settings
from shared.errors import (
    AssemblyError,
    CapabilityUnavailableError,
    ImageGenerationError,
    InputValidationError,
    MalformedResponseError,
    RateLimitedError,
    RetryExhaustedError,
    SlideForgeError,
    UpstreamBusyError,
)
from shared.models import OutlineResult, Slide, StyleTheme, TemplateStyle
from shared.retry import IMAGE_CLIENT_POLICY, FailureKind, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


def _raise_for_status(response: httpx.Response, error_cls: Type[SlideForgeError]) -> None:
    if response.is_success:
        return
    detail = _error_detail(response)
    code = response.status_code
    if code == 429:
        raise RateLimitedError(detail)
    if code == 503:
        raise UpstreamBusyError(detail)
    if code == 502:
        raise MalformedResponseError(detail)
    if 400 <= code < 500:
        raise InputValidationError(detail)
    raise error_cls(detail)


def classify_client_error(error: BaseException) -> Optional[FailureKind]:
    if isinstance(error, RateLimitedError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, UpstreamBusyError):
        return FailureKind.BUSY
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return FailureKind.NETWORK
    if isinstance(error, InputValidationError):
        return None
    return FailureKind.OTHER


def _dump(model) -> Optional[dict]:
    return model.model_dump(by_alias=True, mode="json") if model is not None else None


class ServiceClient(OutlineSource, ImageSource, TemplateSource, ExportSink):
    """Talks to the four services over HTTP with explicit timeouts."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        image_policy: RetryPolicy = IMAGE_CLIENT_POLICY,
        sleep=asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.timeout = self.settings.client_timeout
        self.transport = transport
        self.image_policy = image_policy
        self.sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def fetch_outline(
        self,
        topic: str,
        page_count: int,
        template_style: Optional[TemplateStyle] = None,
    ) -> OutlineResult:
        payload = {"topic": topic, "pageCount": page_count, "templateStyle": _dump(template_style)}
        async with self._client() as client:
            response = await client.post(f"{self.settings.content_service_url}/generate-outline", json=payload)
        _raise_for_status(response, SlideForgeError)
        return OutlineResult.model_validate(response.json())

    async def _request_image(self, payload: dict) -> str:
        async with self._client() as client:
            response = await client.post(f"{self.settings.image_service_url}/generate-image", json=payload)
        _raise_for_status(response, ImageGenerationError)
        return response.json().get("imageUrl", "")

    async def acquire_image(
        self,
        prompt: str,
        theme: Optional[StyleTheme] = None,
        template_style: Optional[TemplateStyle] = None,
    ) -> str:
        payload = {"prompt": prompt, "styleTheme": _dump(theme), "templateStyle": _dump(template_style)}
        try:
            return await run_with_retry(
                lambda: self._request_image(payload),
                self.image_policy,
                classify_client_error,
                sleep=self.sleep,
                label="image request",
            )
        except RetryExhaustedError as e:
            raise ImageGenerationError(str(e)) from e

    async def analyze_template(self, image_base64: str) -> TemplateStyle:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.settings.template_service_url}/analyze-template",
                    json={"imageBase64": image_base64},
                )
        except httpx.HTTPError as e:
            raise CapabilityUnavailableError(f"Could not connect to the template analysis service: {e}") from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success and body.get("success") and body.get("templateStyle"):
            return TemplateStyle.model_validate(body["templateStyle"])
        message = body.get("error") or _error_detail(response)
        if 400 <= response.status_code < 500:
            raise InputValidationError(message)
        raise MalformedResponseError(message)

    async def export(
        self,
        slides: Sequence[Slide],
        title: str,
        template_style: Optional[TemplateStyle] = None,
        theme: Optional[StyleTheme] = None,
    ) -> bytes:
        payload = {
            "slides": [_dump(s) for s in slides],
            "title": title,
            "templateStyle": _dump(template_style),
            "styleTheme": _dump(theme),
        }
        try:
            async with self._client() as client:
                response = await client.post(f"{self.settings.design_service_url}/export", json=payload)
        except httpx.HTTPError as e:
            raise AssemblyError(f"Could not connect to the presentation service: {e}") from e
        if response.status_code == 400:
            raise InputValidationError(_error_detail(response))
        if not response.is_success:
            raise AssemblyError(_error_detail(response))
        return response.content
