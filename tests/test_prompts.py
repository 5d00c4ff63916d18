"""Tests for prompt and message assembly."""

from code_gen_config import AgentProfile
from storefront.models import GenerationRequest, StorefrontGenerateRequest
from storefront.prompts import attach_screenshot, build_system_prompt, build_user_message
from visual.analyzer import build_insights
from visual.models import PageMetadata, ScreenshotAnalysis, Viewport

from conftest import DEFAULT_INSIGHTS, make_image


def make_analysis() -> ScreenshotAnalysis:
    return ScreenshotAnalysis(
        source_url="https://ref.test",
        image=make_image(64, 32, fmt="JPEG"),
        image_width=64,
        image_height=32,
        metadata=PageMetadata(title="Reference Store", viewport=Viewport(1920, 1080), color_scheme="dark"),
        insights=build_insights(DEFAULT_INSIGHTS),
    )


def request(**overrides) -> GenerationRequest:
    fields = {"prompt": "Make it greener", "vendor_id": "v1", "vendor_name": "Green Leaf"}
    fields.update(overrides)
    return GenerationRequest(**fields)


def test_system_prompt_has_session_context():
    prompt = build_system_prompt(AgentProfile(system_prompt="BASE"), request())

    assert prompt.startswith("BASE")
    assert "Vendor: Green Leaf (ID: v1)" in prompt
    assert "Industry: cannabis" in prompt
    assert "EDITING MODE" not in prompt


def test_editing_requires_existing_code():
    profile = AgentProfile()
    assert "EDITING MODE ACTIVE" in build_system_prompt(
        profile, request(full_code="x", is_editing_existing=True)
    )
    assert "EDITING MODE ACTIVE" not in build_system_prompt(profile, request(is_editing_existing=True))


def test_visual_analysis_section():
    prompt = build_system_prompt(AgentProfile(), request(), make_analysis())

    assert "VISUAL ANALYSIS: Reference Store" in prompt
    assert "Layout System: Flexbox" in prompt
    assert "Section 1: Hero (1 images, 2 buttons)" in prompt


def test_user_message_sections():
    message = build_user_message(request(full_code="<main/>", reference_url="https://ref.test"))

    assert message.startswith("Make it greener")
    assert "### Current React Code\n```jsx\n<main/>\n```" in message
    assert message.endswith("### Reference URL\nhttps://ref.test")


def test_attach_screenshot_replaces_last_user_message():
    messages = [
        {"role": "user", "content": "earlier"},
        {"role": "assistant", "content": "ok"},
        {"role": "user", "content": "now"},
    ]

    result = attach_screenshot(messages, make_analysis())

    assert messages[-1]["content"] == "now"
    assert result[:2] == messages[:2]
    image, text = result[-1]["content"]
    assert image["source"]["media_type"] == "image/jpeg"
    assert text == {"type": "text", "text": "now"}


def test_request_body_normalization():
    body = StorefrontGenerateRequest.model_validate({
        "prompt": "  hi  ",
        "vendorId": "v",
        "vendorName": "V",
        "industry": None,
        "referenceUrl": "   ",
        "conversationId": "",
    })

    converted = body.to_generation_request()

    assert converted.prompt == "hi"
    assert converted.industry == "cannabis"
    assert converted.reference_url is None
    assert converted.conversation_id is None
