"""Tests for the Exa search client and source readers (HTTP mocked)."""

import base64
import json

import httpx
import pytest

from agent.retry import RetryPolicy
from agent.search import ExaSearchClient, SearchError
from agent.source_reader import CompositeSourceReader, GitHubSourceReader, SnapshotSourceReader


def exa_transport(handler):
    return httpx.MockTransport(handler)


IMMEDIATE_RETRY = RetryPolicy(max_attempts=3, base_delay_s=0, max_delay_s=0, jitter=0)


@pytest.mark.asyncio
async def test_search_clamps_count_and_truncates_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["key"] = request.headers.get("x-api-key")
        results = [
            {"title": f"r{i}", "url": f"https://r{i}.test", "text": "y" * 3000, "highlights": ["h"]}
            for i in range(8)
        ]
        return httpx.Response(200, json={"results": results})

    client = ExaSearchClient("exa-key", transport=exa_transport(handler))

    results = await client.search("cannabis storefront design", num_results=12)

    assert seen["key"] == "exa-key"
    assert seen["body"]["numResults"] == 5
    assert len(results) == 5
    assert len(results[0].text) == 1000
    assert results[0].highlights == ["h"]


@pytest.mark.asyncio
async def test_search_http_error_becomes_search_error_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    client = ExaSearchClient("exa-key", transport=exa_transport(handler), retry=IMMEDIATE_RETRY)

    with pytest.raises(SearchError, match="HTTP 500") as exc_info:
        await client.search("anything")

    assert len(calls) == 3
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_search_timeout_becomes_search_error():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    client = ExaSearchClient("exa-key", timeout=1, transport=exa_transport(handler), retry=IMMEDIATE_RETRY)

    with pytest.raises(SearchError, match="timed out"):
        await client.search("anything")

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_search_recovers_after_one_transient_failure():
    statuses = [503, 200]
    calls = []
    retries = []

    def handler(request):
        calls.append(request)
        status = statuses[len(calls) - 1]
        if status != 200:
            return httpx.Response(status, text="unavailable")
        return httpx.Response(200, json={"results": [{"title": "ok", "url": "https://ok.test"}]})

    client = ExaSearchClient("exa-key", transport=exa_transport(handler), retry=IMMEDIATE_RETRY)

    results = await client.search("anything", on_retry=lambda attempt, error: retries.append((attempt, error)))

    assert [r.title for r in results] == ["ok"]
    assert len(calls) == 2
    assert retries == [(2, "Search failed with HTTP 503")]


@pytest.mark.asyncio
async def test_search_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    client = ExaSearchClient("exa-key", transport=exa_transport(handler), retry=IMMEDIATE_RETRY)

    with pytest.raises(SearchError, match="HTTP 401") as exc_info:
        await client.search("anything")

    assert len(calls) == 1
    assert not exc_info.value.retryable


def test_retry_delay_grows_and_is_capped():
    policy = RetryPolicy(base_delay_s=1.0, max_delay_s=3.0, jitter=0)

    assert [policy.compute_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]
    with pytest.raises(ValueError):
        RetryPolicy(base_delay_s=2.0, max_delay_s=1.0)


@pytest.mark.asyncio
async def test_search_without_key_or_query():
    with pytest.raises(SearchError):
        await ExaSearchClient("").search("query")
    with pytest.raises(SearchError):
        await ExaSearchClient("key").search("   ")


# ============================================================================
# Source readers
# ============================================================================


def github_transport(files):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/contents/", 1)[1]
        if path not in files:
            return httpx.Response(404, json={"message": "Not Found"})
        encoded = base64.b64encode(files[path].encode("utf-8")).decode("ascii")
        return httpx.Response(200, json={"type": "file", "content": encoded, "encoding": "base64"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_github_reader_decodes_content():
    reader = GitHubSourceReader("acme/store", transport=github_transport({"app/page.tsx": "<main/>"}))
    assert await reader.read("app/page.tsx") == "<main/>"


@pytest.mark.asyncio
async def test_github_reader_missing_file_is_none():
    reader = GitHubSourceReader("acme/store", transport=github_transport({}))
    assert await reader.read("app/nothing.tsx") is None


@pytest.mark.asyncio
async def test_composite_prefers_snapshot_then_repository():
    composite = CompositeSourceReader([
        SnapshotSourceReader.from_full_code("snapshot page"),
        GitHubSourceReader(
            "acme/store",
            transport=github_transport({"app/page.tsx": "repo page", "app/layout.tsx": "repo layout"}),
        ),
    ])

    assert await composite.read("app/page.tsx") == "snapshot page"
    assert await composite.read("app/layout.tsx") == "repo layout"
    assert await composite.read("app/none.tsx") is None


def test_snapshot_without_code_is_empty():
    assert SnapshotSourceReader.from_full_code(None).files == {}
