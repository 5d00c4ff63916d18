"""Tests for tool dispatch and error capture."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from agent.search import SearchError, SearchResult
from agent.source_reader import SnapshotSourceReader
from agent.tools import MAX_TOOL_RESULT_LENGTH, TOOL_DEFINITIONS, ToolExecutor, ToolInvocation


def invocation(name, **tool_input):
    return ToolInvocation(tool_use_id=f"id_{name}", tool_name=name, input=tool_input)


def test_definitions_cover_both_tools():
    names = {d["name"] for d in TOOL_DEFINITIONS}
    assert names == {"web_search", "read_current_code"}
    for definition in TOOL_DEFINITIONS:
        assert definition["input_schema"]["type"] == "object"


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_result():
    result = await ToolExecutor().execute(invocation("delete_everything"))

    assert result.is_error
    assert "Unknown tool" in result.error
    block = result.to_tool_result_block()
    assert block["is_error"] is True
    assert block["tool_use_id"] == "id_delete_everything"


@pytest.mark.asyncio
async def test_search_results_are_serialized():
    search = AsyncMock()
    search.search.return_value = [SearchResult("Dispensary UX", "https://example.com", "text", ["hi"])]
    executor = ToolExecutor(search=search)

    result = await executor.execute(invocation("web_search", query="dispensary design", numResults=2))

    assert not result.is_error
    search.search.assert_awaited_once_with("dispensary design", 2, on_retry=executor._search_retrying)
    assert json.loads(result.result)[0]["url"] == "https://example.com"
    assert result.summary == "Found 1 results"


@pytest.mark.asyncio
async def test_search_failure_is_captured():
    search = AsyncMock()
    search.search.side_effect = SearchError("Search failed with HTTP 500")

    result = await ToolExecutor(search=search).execute(invocation("web_search", query="x"))

    assert result.is_error
    assert "HTTP 500" in result.error


@pytest.mark.asyncio
async def test_search_retries_are_reported_as_progress():
    reported = []

    async def search(query, num_results, on_retry=None):
        on_retry(2, "Search failed with HTTP 503")
        return []

    mock = AsyncMock()
    mock.search.side_effect = search
    executor = ToolExecutor(search=mock, on_progress=lambda *args: reported.append(args))

    result = await executor.execute(invocation("web_search", query="x"))

    assert not result.is_error
    assert reported == [("web_search", "🔁 Retrying search (attempt 2)...", "Search failed with HTTP 503")]


@pytest.mark.asyncio
async def test_search_not_configured():
    result = await ToolExecutor().execute(invocation("web_search", query="x"))
    assert result.is_error
    assert "not configured" in result.error


@pytest.mark.asyncio
async def test_read_current_code_without_source():
    result = await ToolExecutor().execute(invocation("read_current_code", filePath="app/page.tsx"))

    assert not result.is_error
    assert json.loads(result.result)["available"] is False


@pytest.mark.asyncio
async def test_read_current_code_missing_file():
    executor = ToolExecutor(source_reader=SnapshotSourceReader({}))

    result = await executor.execute(invocation("read_current_code", filePath="app/missing.tsx"))

    assert json.loads(result.result) == {"found": False, "file_path": "app/missing.tsx"}


@pytest.mark.asyncio
async def test_read_current_code_returns_content():
    executor = ToolExecutor(source_reader=SnapshotSourceReader({"app/page.tsx": "a\nb\nc"}))

    result = await executor.execute(invocation("read_current_code", filePath="/app/page.tsx"))

    payload = json.loads(result.result)
    assert payload["content"] == "a\nb\nc"
    assert payload["lines"] == 3


@pytest.mark.asyncio
async def test_read_requires_file_path():
    executor = ToolExecutor(source_reader=SnapshotSourceReader({}))
    result = await executor.execute(invocation("read_current_code"))
    assert result.is_error


@pytest.mark.asyncio
async def test_execute_all_keeps_request_order():
    delays = {"slow": 0.03, "fast": 0.0}

    async def search(query, num_results, on_retry=None):
        await asyncio.sleep(delays[query])
        return [SearchResult(query, f"https://{query}.test")]

    mock = AsyncMock()
    mock.search.side_effect = search
    executor = ToolExecutor(search=mock)

    results = await executor.execute_all([
        invocation("web_search", query="slow"),
        invocation("nope"),
        invocation("web_search", query="fast"),
    ])

    assert [r.tool_name for r in results] == ["web_search", "nope", "web_search"]
    assert json.loads(results[0].result)[0]["title"] == "slow"
    assert results[1].is_error
    assert json.loads(results[2].result)[0]["title"] == "fast"


def test_long_results_are_truncated():
    call = invocation("web_search")
    call.result = "x" * (MAX_TOOL_RESULT_LENGTH + 100)

    content = call.to_tool_result_block()["content"]

    assert content.startswith("x" * MAX_TOOL_RESULT_LENGTH)
    assert content.endswith("(truncated, too long)")
