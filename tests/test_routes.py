"""HTTP surface tests using FastAPI's TestClient."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLMClient, text_message
from conversation import InMemoryConversationStore
from main import app
from storefront.controller import StorefrontGenerationController
from storefront.dependencies import get_controller
from storefront.models import StorefrontGenerateRequest
from storefront.routes import storefront_generate

BODY = {
    "prompt": "Build a storefront",
    "vendorId": "vendor-1",
    "vendorName": "Green Leaf",
}


@pytest.fixture
def client(settings, page_response):
    controller = StorefrontGenerationController(
        settings=settings,
        store=InMemoryConversationStore(),
        client=FakeLLMClient([text_message(page_response)]),
    )
    app.dependency_overrides[get_controller] = lambda: controller
    yield TestClient(app)
    app.dependency_overrides.clear()


def parse_frames(body: str):
    frames = [chunk for chunk in body.split("\n\n") if chunk]
    assert all(f.startswith("data: ") for f in frames)
    return [json.loads(f[len("data: "):]) for f in frames]


def test_generate_streams_events_until_complete(client):
    response = client.post("/api/ai/storefront-generate", json=BODY)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"

    events = parse_frames(response.text)
    assert events[0]["event"] == "status"
    assert events[-1]["event"] == "complete"
    assert events[-1]["files"][0]["filePath"] == "app/page.tsx"


def test_snake_case_fields_are_accepted(client):
    body = {"prompt": "Build a storefront", "vendor_id": "v", "vendor_name": "V"}
    response = client.post("/api/ai/storefront-generate", json=body)
    assert response.status_code == 200


def test_blank_prompt_is_rejected(client):
    response = client.post("/api/ai/storefront-generate", json={**BODY, "prompt": "   "})
    assert response.status_code == 400


def test_missing_vendor_is_a_validation_error(client):
    response = client.post("/api/ai/storefront-generate", json={"prompt": "x", "vendorName": "V"})
    assert response.status_code == 422


def test_health_endpoints(client):
    assert client.get("/api/ai/health").json()["status"] == "healthy"
    assert client.get("/health").json()["service"] == "storefront-generator"
    assert client.get("/").json()["endpoints"]["storefront_generate"] == "/api/ai/storefront-generate"


class HangingController:
    """Emits one status, then waits until cancelled"""

    def __init__(self):
        self.cancelled = asyncio.Event()

    async def run(self, request, events):
        events.status("working")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled.set()
            raise


@pytest.mark.asyncio
async def test_closing_the_response_cancels_generation():
    controller = HangingController()
    body = StorefrontGenerateRequest(prompt="Build a storefront", vendorId="vendor-1", vendorName="Green Leaf")

    response = await storefront_generate(body, controller=controller)
    first = await response.body_iterator.__anext__()
    await response.body_iterator.aclose()

    assert json.loads(first.decode("utf-8")[len("data: "):]) == {"event": "status", "message": "working"}
    await asyncio.wait_for(controller.cancelled.wait(), timeout=1)
