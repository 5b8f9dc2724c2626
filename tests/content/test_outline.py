"""Unit tests for outline prompting, parsing, count repair and the synthesizer."""

import json

import pytest
from google.api_core.exceptions import ServiceUnavailable

from content_generation_service.outline import (
    DEFAULT_IMAGE_PROMPT,
    FILLER_CLOSING_TITLE,
    OutlineSynthesizer,
    align_theme_with_template,
    build_outline_prompt,
    parse_outline_response,
    repair_slide_count,
    validate_request,
)
from shared.errors import InputValidationError, MalformedResponseError, RetryExhaustedError
from shared.models import DEFAULT_THEME, SlideOutline
from tests._helpers.fakes import FakeTextCapability, outline_json

MARS_THEME = {"name": "Red Planet", "colorTone": "rusty red and orange", "style": "photorealistic", "mood": "adventurous"}


def _outlines(count):
    return [SlideOutline(title=f"S{i}", image_prompt=f"prompt {i}") for i in range(1, count + 1)]


@pytest.mark.parametrize("page_count", range(3, 21))
def test_repair_always_yields_requested_count(page_count):
    for produced in (0, 1, page_count - 1, page_count, page_count + 1, page_count * 2):
        assert len(repair_slide_count(_outlines(produced), page_count)) == page_count


def test_truncation_keeps_the_first_slides():
    repaired = repair_slide_count(_outlines(8), 5)
    assert [s.title for s in repaired] == ["S1", "S2", "S3", "S4", "S5"]


def test_padding_reuses_last_prompt_and_closes_the_deck():
    repaired = repair_slide_count(_outlines(3), 6)
    assert [s.title for s in repaired[3:]] == ["Part 4", "Part 5", FILLER_CLOSING_TITLE]
    assert all(s.image_prompt == "prompt 3" for s in repaired[3:])
    assert all(s.bullet_points for s in repaired[3:])


def test_padding_from_nothing_uses_default_prompt():
    repaired = repair_slide_count([], 3)
    assert [s.image_prompt for s in repaired] == [DEFAULT_IMAGE_PROMPT] * 3
    assert repaired[-1].title == FILLER_CLOSING_TITLE


@pytest.mark.parametrize("topic,page_count", [("", 5), ("   ", 5), ("Mars", 2), ("Mars", 21), ("Mars", True)])
def test_invalid_requests_are_rejected(topic, page_count):
    with pytest.raises(InputValidationError):
        validate_request(topic, page_count)


def test_prompt_names_topic_count_and_template(template):
    prompt = build_outline_prompt("Mars Exploration", 7, template)
    assert '"Mars Exploration"' in prompt
    assert "EXACTLY 7" in prompt
    assert template.image_style_prompt in prompt
    assert "USER TEMPLATE" not in build_outline_prompt("Mars Exploration", 7)


def test_parse_reads_fenced_camel_case_answer():
    slides, theme = parse_outline_response(outline_json(4, MARS_THEME))
    assert len(slides) == 4
    assert slides[0].title == "Slide title 1"
    assert slides[0].bullet_points == ["Point 1.1", "Point 1.2", "Point 1.3", "Point 1.4"]
    assert slides[2].image_prompt == "scene for slide 3"
    assert theme.color_tone == "rusty red and orange"


def test_parse_defaults_missing_theme_and_fills_blank_titles():
    text = json.dumps({"slides": [{"content": "only content", "bulletPoints": "single"}]})
    slides, theme = parse_outline_response(text)
    assert theme == DEFAULT_THEME
    assert slides[0].title == "Slide 1"
    assert slides[0].bullet_points == ["single"]


def test_missing_image_prompt_falls_back_to_title_and_default_style():
    text = json.dumps({"slides": [
        {"title": "Landing sites", "content": "c"},
        {"title": "Rovers", "imagePrompt": "   "},
        {"content": "untitled"},
        {"title": "Habitats", "image_prompt": "dome city on red plains"},
    ]})
    slides, _ = parse_outline_response(text)
    assert slides[0].image_prompt == f"Landing sites, {DEFAULT_IMAGE_PROMPT}"
    assert slides[1].image_prompt == f"Rovers, {DEFAULT_IMAGE_PROMPT}"
    assert slides[2].image_prompt == f"Slide 3, {DEFAULT_IMAGE_PROMPT}"
    assert slides[3].image_prompt == "dome city on red plains"


def test_parse_without_slides_array_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_outline_response('{"styleTheme": {}}')
    with pytest.raises(MalformedResponseError):
        parse_outline_response("Sorry, I can't do that.")


def test_template_decides_style_and_mood(template):
    theme = DEFAULT_THEME
    aligned = align_theme_with_template(theme, template)
    assert aligned.style == template.visual_elements
    assert aligned.mood == template.mood
    assert aligned.color_tone == theme.color_tone
    assert align_theme_with_template(theme, None) is theme


@pytest.mark.asyncio
async def test_synthesizer_repairs_short_answer(no_sleep):
    text = FakeTextCapability([outline_json(3, MARS_THEME)])
    result = await OutlineSynthesizer(text, sleep=no_sleep).synthesize("Mars Exploration", 5)

    assert len(result.slides) == 5
    assert result.slides[-1].title == FILLER_CLOSING_TITLE
    assert result.style_theme.name == "Red Planet"
    assert len(text.calls) == 1


@pytest.mark.asyncio
async def test_synthesizer_retries_busy_model(no_sleep):
    text = FakeTextCapability([ServiceUnavailable("overloaded"), outline_json(5, MARS_THEME)])
    result = await OutlineSynthesizer(text, sleep=no_sleep).synthesize("Mars Exploration", 5)

    assert len(result.slides) == 5
    assert len(text.calls) == 2
    assert no_sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_synthesizer_gives_up_after_three_busy_answers(no_sleep):
    text = FakeTextCapability([ServiceUnavailable("overloaded")])
    with pytest.raises(RetryExhaustedError):
        await OutlineSynthesizer(text, sleep=no_sleep).synthesize("Mars Exploration", 5)
    assert len(text.calls) == 3


@pytest.mark.asyncio
async def test_synthesizer_does_not_retry_malformed_answers(no_sleep):
    text = FakeTextCapability(["no json at all"])
    with pytest.raises(MalformedResponseError):
        await OutlineSynthesizer(text, sleep=no_sleep).synthesize("Mars Exploration", 5)
    assert len(text.calls) == 1


@pytest.mark.asyncio
async def test_synthesizer_validates_before_calling_model(no_sleep):
    text = FakeTextCapability([outline_json(5)])
    with pytest.raises(InputValidationError):
        await OutlineSynthesizer(text, sleep=no_sleep).synthesize("Mars Exploration", 50)
    assert text.calls == []
