"""Shared pytest fixtures and fakes for storefront generator tests."""

from __future__ import annotations

import io
import json
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from agent.llm_client import FinalMessage, Usage
from code_gen_config import AgentProfile, GeneratorSettings
from storefront.events import EventStream
from visual import analyzer as analyzer_module
from visual import bypass as bypass_module

# ============================================================================
# Browser fakes
# ============================================================================


def make_image(width: int = 1920, height: int = 1080, fmt: str = "PNG") -> bytes:
    """Solid-color test image."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (20, 40, 60)).save(buf, format=fmt)
    return buf.getvalue()


DEFAULT_INSIGHTS = {
    "colors": ["BG: rgb(0, 0, 0)", "Text: rgb(255, 255, 255)", "BG: rgb(0, 0, 0)"],
    "hasGrid": False,
    "hasFlex": True,
    "fonts": ["Inter, sans-serif", "Inter, sans-serif", "Georgia, serif"],
    "paddings": [8, 16, 24],
    "counts": {"nav": 1, "header": 1, "footer": 1, "buttons": 4, "images": 6, "forms": 0},
    "sections": [
        {"title": "Hero", "height": 600, "images": 1, "buttons": 2},
        {"title": "", "height": 80, "images": 0, "buttons": 0},
    ],
    "headings": ['H1: "Premium Flower"'],
    "buttons": ["Shop Now", "Learn More"],
}


class FakeControl:
    def __init__(self, text: str, on_click: Optional[Callable[["FakePage"], None]] = None, tag: str = "button"):
        self.text = text
        self.tag = tag
        self.on_click = on_click


class FakePage:
    """Stands in for a Playwright page; scripts are dispatched by identity."""

    def __init__(
        self,
        text: str = "Welcome to our store",
        controls: Optional[List[FakeControl]] = None,
        title: str = "Reference Store",
        background: str = "rgb(10, 10, 10)",
        insights: Optional[Dict[str, Any]] = None,
        screenshot_size: tuple = (1920, 1080),
        goto_error: Optional[BaseException] = None,
    ):
        self.text = text
        self.controls = controls or []
        self._title = title
        self.background = background
        self.insights = insights if insights is not None else DEFAULT_INSIGHTS
        self.screenshot_size = screenshot_size
        self.goto_error = goto_error
        self.clicked: List[str] = []
        self.visited: List[str] = []
        self.screenshot_kwargs: Dict[str, Any] = {}

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_load_state(self, state, timeout=None):
        return None

    async def title(self):
        return self._title

    async def screenshot(self, **kwargs):
        self.screenshot_kwargs = kwargs
        return make_image(*self.screenshot_size, fmt="JPEG")

    async def evaluate(self, script, arg=None):
        if script == bypass_module.VISIBLE_TEXT_JS:
            if isinstance(self.text, BaseException):
                raise self.text
            return self.text
        if script == bypass_module.LIST_CONTROLS_JS:
            return [{"index": i, "text": c.text, "tag": c.tag} for i, c in enumerate(self.controls)]
        if script == bypass_module.CLICK_CONTROL_JS:
            control = self.controls[arg]
            self.clicked.append(control.text)
            if control.on_click:
                control.on_click(self)
            return True
        if script == analyzer_module.SCROLL_DIMENSIONS_JS:
            return {"viewportHeight": 1080, "scrollHeight": 2160}
        if script == analyzer_module.SCROLL_HEIGHT_JS:
            return 2160
        if script == analyzer_module.SCROLL_TO_JS:
            return None
        if script == analyzer_module.BODY_BACKGROUND_JS:
            return self.background
        if script == analyzer_module.EXTRACT_INSIGHTS_JS:
            return self.insights
        raise AssertionError(f"Unexpected script: {script[:40]}")


class FakeSessionFactory:
    """Maps URLs to fake pages; records opened and closed sessions."""

    def __init__(self, pages: Dict[str, FakePage]):
        self.pages = pages
        self.opened = 0
        self.closed = 0
        self.headless: List[bool] = []
        self.current_url: Optional[str] = None

    def for_url(self, url: str) -> FakePage:
        return self.pages[url]

    @asynccontextmanager
    async def session(self, viewport, headless=True):
        self.opened += 1
        self.headless.append(headless)
        try:
            yield _UrlRoutingPage(self)
        finally:
            self.closed += 1


class _UrlRoutingPage:
    """Resolves the fake page on goto() so one factory can serve many URLs."""

    def __init__(self, factory: FakeSessionFactory):
        self._factory = factory
        self._page: Optional[FakePage] = None

    async def goto(self, url, **kwargs):
        self._page = self._factory.for_url(url)
        await self._page.goto(url, **kwargs)

    def __getattr__(self, name):
        return getattr(self._page, name)


# ============================================================================
# LLM fakes
# ============================================================================


def text_message(text: str, input_tokens: int = 100, output_tokens: int = 50) -> FinalMessage:
    return FinalMessage(
        text=text,
        content=[{"type": "text", "text": text}] if text else [],
        usage=Usage(input_tokens, output_tokens),
        stop_reason="end_turn",
    )


def tool_message(calls: List[Dict[str, Any]], text: str = "") -> FinalMessage:
    content: List[Dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    for i, call in enumerate(calls):
        content.append({
            "type": "tool_use",
            "id": call.get("id", f"toolu_{i}"),
            "name": call["name"],
            "input": call.get("input", {}),
        })
    return FinalMessage(text=text, content=content, usage=Usage(10, 5), stop_reason="tool_use")


class FakeLLMClient:
    """Replays scripted FinalMessages and records each call."""

    def __init__(self, responses: List[FinalMessage], chunk_size: int = 20):
        self.responses = list(responses)
        self.chunk_size = chunk_size
        self.calls: List[Dict[str, Any]] = []

    async def stream(self, system, messages, profile, tools=None, on_delta=None,
                     on_usage=None, on_error=None, on_thinking_start=None):
        self.calls.append({"system": system, "messages": json.loads(json.dumps(messages)), "tools": tools})
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]

        if response.error:
            if on_error:
                on_error(response.error)
            return response

        cumulative = ""
        for start in range(0, len(response.text), self.chunk_size):
            fragment = response.text[start:start + self.chunk_size]
            cumulative += fragment
            if on_delta:
                on_delta(fragment, cumulative)
        if on_usage:
            on_usage(response.usage)
        return response


# ============================================================================
# Common fixtures
# ============================================================================


PAGE_TSX = """'use client'

export default function Page() {
  return (
    <main className="min-h-screen bg-black text-white">
      <h1>Premium Flower</h1>
    </main>
  );
}"""


@pytest.fixture
def page_response() -> str:
    return f"Here is your storefront.\n\n```tsx\n// filename: app/page.tsx\n{PAGE_TSX}\n```\n"


@pytest.fixture
def settings(tmp_path) -> GeneratorSettings:
    return GeneratorSettings(
        agent=AgentProfile(name="Test Storefront AI", model="claude-sonnet-4-20250514"),
        data_dir=tmp_path / "conversations",
        settle_millis=0,
        analysis_timeout=5,
        navigation_timeout=5,
    )


async def collect_events(events: EventStream) -> List[Dict[str, Any]]:
    """Decode every frame of a finished stream."""
    decoded = []
    async for frame in events.frames():
        text = frame.decode("utf-8")
        assert text.startswith("data: ") and text.endswith("\n\n")
        decoded.append(json.loads(text[len("data: "):]))
    return decoded
