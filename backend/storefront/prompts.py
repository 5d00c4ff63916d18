"""
Prompt assembly for storefront generation.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from code_gen_config import AgentProfile
from visual.models import ScreenshotAnalysis

from .models import GenerationRequest

RULE = "━" * 70


def format_for_prompt(analysis: ScreenshotAnalysis) -> str:
    """Render a visual analysis as a prompt section"""
    insights = analysis.insights
    lines = [
        RULE,
        f"📸 VISUAL ANALYSIS: {analysis.metadata.title}",
        RULE,
        "",
        f"URL: {analysis.source_url}",
        f"Color Scheme: {analysis.metadata.color_scheme}",
        f"Layout System: {insights.layout_system}",
        "",
        "🎨 Dominant Colors:",
        *[f"• {c}" for c in insights.dominant_colors[:5]],
        "",
        "✍️ Typography:",
        *[f"• {f}" for f in insights.typography_samples[:3]],
        "",
        "📐 Spacing System:",
        f"• {insights.spacing.describe()}",
        "",
        "🧩 Components Detected:",
        *[f"• {c}" for c in insights.components()],
        "",
        RULE,
    ]

    if insights.section_summaries:
        lines += ["", "📋 PAGE STRUCTURE:", *[f"• {s}" for s in insights.section_summaries]]
    if insights.heading_texts:
        lines += ["", "📝 HEADING HIERARCHY:", *[f"• {h}" for h in insights.heading_texts]]
    if insights.button_texts:
        lines += ["", "🔘 CTA TEXT:", *[f"• {b}" for b in insights.button_texts[:5]]]

    return "\n".join(lines)


def build_system_prompt(
    profile: AgentProfile,
    request: GenerationRequest,
    analysis: Optional[ScreenshotAnalysis] = None,
) -> str:
    prompt = profile.system_prompt
    prompt += "\n\n## CURRENT SESSION CONTEXT\n"
    prompt += f"Vendor: {request.vendor_name} (ID: {request.vendor_id})\n"
    prompt += f"Industry: {request.industry}\n"

    if request.editing:
        prompt += "\n⚠️ EDITING MODE ACTIVE\n"
        prompt += f"Current code length: {len(request.full_code)} chars\n"
        prompt += "Task: Make surgical edits only - preserve all existing functionality\n"

    if analysis is not None:
        prompt += "\n\n### VISUAL ANALYSIS OF REFERENCE SITE\n"
        prompt += format_for_prompt(analysis)

    return prompt


def build_user_message(request: GenerationRequest) -> str:
    message = request.prompt
    if request.full_code:
        message += f"\n\n### Current React Code\n```jsx\n{request.full_code}\n```"
    if request.reference_url:
        message += f"\n\n### Reference URL\n{request.reference_url}"
    return message


def attach_screenshot(messages: List[Dict[str, Any]], analysis: ScreenshotAnalysis) -> List[Dict[str, Any]]:
    """
    Replace the last user message with an image + text version.
    Returns a new list; messages is not modified.
    """
    if not messages or messages[-1].get("role") != "user":
        return list(messages)

    last = messages[-1]
    text = last["content"] if isinstance(last["content"], str) else _text_of(last["content"])
    vision = {
        "role": "user",
        "content": [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/jpeg",
                    "data": analysis.image_base64,
                },
            },
            {"type": "text", "text": text},
        ],
    }
    return list(messages[:-1]) + [vision]


def _text_of(blocks: List[Dict[str, Any]]) -> str:
    return "\n".join(b.get("text", "") for b in blocks if b.get("type") == "text")
