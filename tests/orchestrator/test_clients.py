"""ServiceClient tests against mocked service endpoints."""

import json

import httpx
import pytest

from orchestrator.clients import ServiceClient
from shared.config import Settings
from shared.errors import (
    AssemblyError,
    CapabilityUnavailableError,
    ImageGenerationError,
    InputValidationError,
    MalformedResponseError,
    UpstreamBusyError,
)
from tests._helpers.fakes import RecordingSleep, make_outline, make_slides

SETTINGS = Settings(
    CONTENT_SERVICE_URL="http://content",
    IMAGE_SERVICE_URL="http://image",
    DESIGN_SERVICE_URL="http://design",
    TEMPLATE_SERVICE_URL="http://template",
)


def _client(handler, sleep=None):
    return ServiceClient(SETTINGS, transport=httpx.MockTransport(handler), sleep=sleep or RecordingSleep())


@pytest.mark.asyncio
async def test_fetch_outline_posts_camel_case_and_parses_result(template):
    outline = make_outline(3)
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=outline.model_dump(by_alias=True))

    result = await _client(handler).fetch_outline("Mars Exploration", 3, template)

    assert seen["url"] == "http://content/generate-outline"
    assert seen["body"]["pageCount"] == 3
    assert seen["body"]["templateStyle"]["primaryColor"] == template.primary_color
    assert result.slides == outline.slides
    assert result.style_theme == outline.style_theme


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [(400, InputValidationError), (502, MalformedResponseError), (503, UpstreamBusyError)])
async def test_outline_errors_are_typed(status, error):
    client = _client(lambda request: httpx.Response(status, json={"detail": "nope"}))
    with pytest.raises(error, match="nope"):
        await client.fetch_outline("Mars Exploration", 3)


@pytest.mark.asyncio
async def test_image_request_retries_rate_limits_then_succeeds(theme):
    answers = [httpx.Response(429, json={"detail": "slow down"}),
               httpx.Response(200, json={"imageUrl": "data:image/png;base64,AAAA"})]
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return answers.pop(0)

    sleep = RecordingSleep()
    result = await _client(handler, sleep).acquire_image("Rover", theme)

    assert result == "data:image/png;base64,AAAA"
    assert sleep.delays == [5.0]
    assert bodies[0] == bodies[1]
    assert bodies[0]["styleTheme"]["colorTone"] == theme.color_tone


@pytest.mark.asyncio
async def test_image_request_gives_up_as_image_error():
    sleep = RecordingSleep()
    client = _client(lambda request: httpx.Response(500, json={"detail": "Failed to generate image after retries."}), sleep)
    with pytest.raises(ImageGenerationError):
        await client.acquire_image("Rover")
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_bad_image_request_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"detail": "Missing required field: prompt"})

    with pytest.raises(InputValidationError):
        await _client(handler).acquire_image("")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_analyze_template_unwraps_style(template):
    def handler(request):
        assert json.loads(request.content) == {"imageBase64": "data:image/png;base64,AAAA"}
        return httpx.Response(200, json={"success": True, "templateStyle": template.model_dump(by_alias=True)})

    assert await _client(handler).analyze_template("data:image/png;base64,AAAA") == template


@pytest.mark.asyncio
async def test_analyze_template_failure_carries_message():
    client = _client(lambda request: httpx.Response(400, json={"success": False, "error": "No image provided."}))
    with pytest.raises(InputValidationError, match="No image provided."):
        await client.analyze_template("")


@pytest.mark.asyncio
async def test_export_returns_bytes_and_maps_failures(theme):
    slides = make_slides(3)

    def ok(request):
        body = json.loads(request.content)
        assert len(body["slides"]) == 3
        assert body["slides"][0]["pageNumber"] == 1
        assert body["styleTheme"]["name"] == theme.name
        return httpx.Response(200, content=b"PK\x03\x04deck")

    assert await _client(ok).export(slides, "Mars Exploration", theme=theme) == b"PK\x03\x04deck"

    with pytest.raises(AssemblyError):
        await _client(lambda request: httpx.Response(500, json={"detail": "boom"})).export(slides, "Mars")
    with pytest.raises(InputValidationError):
        await _client(lambda request: httpx.Response(400, json={"detail": "Missing required field: slides"})).export([], "Mars")


@pytest.mark.asyncio
async def test_unreachable_design_service_is_an_assembly_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(AssemblyError):
        await _client(handler).export(make_slides(3), "Mars")


@pytest.mark.asyncio
async def test_unreachable_template_service_is_a_typed_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CapabilityUnavailableError, match="template analysis service"):
        await _client(handler).analyze_template("data:image/png;base64,AAAA")


@pytest.mark.asyncio
async def test_template_service_timeout_is_a_typed_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CapabilityUnavailableError):
        await _client(handler).analyze_template("data:image/png;base64,AAAA")
