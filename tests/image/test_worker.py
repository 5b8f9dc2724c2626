"""Unit tests for image prompt building, error classification, embedding and fallback."""

import asyncio
import base64

import httpx
import pytest
from google.api_core.exceptions import ResourceExhausted

from image_generation_service.providers import ImageCapability
from image_generation_service.worker import (
    NEUTRAL_PREFIX,
    QUALITY_SUFFIX,
    ImageEmbedder,
    ImageWorker,
    build_image_prompt,
    classify_image_error,
)
from shared.errors import (
    CapabilityUnavailableError,
    ImageGenerationError,
    InputValidationError,
    RateLimitedError,
    UpstreamBusyError,
)
from shared.retry import FailureKind
from tests._helpers.fakes import FakeImageCapability, png_bytes


def test_prompt_is_deterministic_and_carries_theme(theme):
    first = build_image_prompt("Dust storm over Olympus Mons", theme)
    second = build_image_prompt("Dust storm over Olympus Mons", theme)
    assert first == second
    assert first.startswith("rusty red and orange, photorealistic style. ")
    assert "Dust storm over Olympus Mons" in first
    assert first.endswith(QUALITY_SUFFIX)


def test_template_style_leads_the_prompt(theme, template):
    prompt = build_image_prompt("Rover tracks", theme, template)
    assert prompt.startswith(template.image_style_prompt)
    assert template.visual_elements in prompt
    assert prompt.index(template.visual_elements) < prompt.index("Rover tracks")


def test_prompt_without_theme_uses_neutral_prefix():
    assert build_image_prompt("A lab").startswith(NEUTRAL_PREFIX)


@pytest.mark.parametrize("error,kind", [
    (RateLimitedError("429"), FailureKind.RATE_LIMITED),
    (ResourceExhausted("quota"), FailureKind.RATE_LIMITED),
    (UpstreamBusyError("503"), FailureKind.BUSY),
    (httpx.ConnectError("refused"), FailureKind.NETWORK),
    (ImageGenerationError("filtered"), FailureKind.OTHER),
    (CapabilityUnavailableError("down"), None),
    (InputValidationError("empty"), None),
])
def test_error_classification(error, kind):
    assert classify_image_error(error) == kind


@pytest.mark.asyncio
async def test_rate_limit_retries_same_capability_with_long_wait(no_sleep):
    primary = FakeImageCapability([RateLimitedError("429"), "data:image/png;base64,AAAA"], name="primary")
    fallback = FakeImageCapability(name="fallback")
    worker = ImageWorker(primary, fallback, sleep=no_sleep)

    result = await worker.acquire_image("Rover tracks")

    assert result == "data:image/png;base64,AAAA"
    assert len(primary.prompts) == 2
    assert fallback.prompts == []
    assert no_sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_persistent_rate_limit_never_falls_back(no_sleep):
    primary = FakeImageCapability([RateLimitedError("429")], name="primary")
    fallback = FakeImageCapability(name="fallback")
    worker = ImageWorker(primary, fallback, sleep=no_sleep)

    with pytest.raises(ImageGenerationError):
        await worker.acquire_image("Rover tracks")
    assert len(primary.prompts) == 5
    assert fallback.prompts == []


@pytest.mark.asyncio
async def test_unavailable_primary_hands_over_to_fallback(no_sleep):
    primary = FakeImageCapability([CapabilityUnavailableError("sd offline")], name="local")
    fallback = FakeImageCapability(["data:image/png;base64,BBBB"], name="http")
    worker = ImageWorker(primary, fallback, sleep=no_sleep)

    assert await worker.acquire_image("Rover tracks") == "data:image/png;base64,BBBB"
    assert len(primary.prompts) == 1
    assert fallback.prompts == primary.prompts


@pytest.mark.asyncio
async def test_failing_everywhere_raises_image_error(no_sleep):
    primary = FakeImageCapability(fail_markers=["Rover"], name="primary")
    fallback = FakeImageCapability(fail_markers=["Rover"], name="fallback")
    worker = ImageWorker(primary, fallback, sleep=no_sleep)

    with pytest.raises(ImageGenerationError):
        await worker.acquire_image("Rover tracks")
    assert len(primary.prompts) == 5
    assert len(fallback.prompts) == 5


class StalledCapability(ImageCapability):
    name = "stalled"

    def __init__(self):
        self.cancelled = False

    async def generate(self, prompt: str) -> str:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return ""


@pytest.mark.asyncio
async def test_stalled_provider_gives_up_within_budget(no_sleep):
    primary = StalledCapability()
    worker = ImageWorker(primary, sleep=no_sleep, budget=0.05)

    with pytest.raises(ImageGenerationError, match="not ready within 0.05s"):
        await worker.acquire_image("Dust storm")
    assert primary.cancelled


@pytest.mark.asyncio
async def test_budget_does_not_affect_fast_requests(no_sleep):
    worker = ImageWorker(FakeImageCapability(["data:image/png;base64,AAAA"]), sleep=no_sleep, budget=5)
    assert await worker.acquire_image("Dust storm") == "data:image/png;base64,AAAA"


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected(no_sleep):
    worker = ImageWorker(FakeImageCapability(), sleep=no_sleep)
    with pytest.raises(InputValidationError):
        await worker.acquire_image("   ")


@pytest.mark.asyncio
async def test_remote_url_is_embedded_as_data_uri(no_sleep):
    image = png_bytes((10, 200, 10))

    def handler(request):
        assert request.url == "https://cdn.example.com/art.png"
        return httpx.Response(200, content=image, headers={"content-type": "image/png"})

    embedder = ImageEmbedder(transport=httpx.MockTransport(handler))
    worker = ImageWorker(FakeImageCapability(["https://cdn.example.com/art.png"]), embedder=embedder, sleep=no_sleep)

    result = await worker.acquire_image("Green hills")

    assert result == "data:image/png;base64," + base64.b64encode(image).decode("utf-8")


@pytest.mark.asyncio
async def test_missing_content_type_is_sniffed():
    image = png_bytes()
    embedder = ImageEmbedder(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, content=image, headers={"content-type": "application/octet-stream"})
    ))
    assert (await embedder.embed("https://cdn.example.com/x")).startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_unfetchable_url_degrades_to_empty():
    embedder = ImageEmbedder(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    assert await embedder.embed("https://cdn.example.com/gone.png") == ""


@pytest.mark.asyncio
async def test_data_uri_passes_through_and_junk_is_dropped():
    embedder = ImageEmbedder(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    assert await embedder.embed("data:image/jpeg;base64,AAAA") == "data:image/jpeg;base64,AAAA"
    assert await embedder.embed("ftp://nope") == ""
    assert await embedder.embed("") == ""
