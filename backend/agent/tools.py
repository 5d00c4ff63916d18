"""
Storefront Agent Tools

Tool catalog offered to the model plus the executor that runs requested
calls. Every call resolves to a ToolInvocation; failures are captured as
error results and handed back to the model instead of raising.
"""

from __future__ import annotations
import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import ToolExecutionError
from .search import ExaSearchClient, SearchError
from .source_reader import SourceReader

logger = logging.getLogger(__name__)

MAX_TOOL_RESULT_LENGTH = 5000


class ToolKind(str, Enum):
    WEB_SEARCH = "web_search"
    READ_CURRENT_CODE = "read_current_code"


# ============================================
# Tool Definitions (Anthropic format)
# ============================================

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": ToolKind.WEB_SEARCH.value,
        "description": """Search the web for design inspiration, best practices or documentation.

Use this for:
- Design patterns for a specific industry
- Component or library documentation
- Conversion / UX best practices

Returns up to 5 results with title, url, text excerpt and highlights.""",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query"
                },
                "numResults": {
                    "type": "integer",
                    "description": "Number of results (1-5, default: 5)",
                    "minimum": 1,
                    "maximum": 5,
                }
            },
            "required": ["query"]
        }
    },
    {
        "name": ToolKind.READ_CURRENT_CODE.value,
        "description": """Read the current content of a file in the storefront.

Use this before editing a file you have not seen yet.
Returns available=false when the storefront source is not connected.""",
        "input_schema": {
            "type": "object",
            "properties": {
                "filePath": {
                    "type": "string",
                    "description": "File path, e.g. app/page.tsx"
                }
            },
            "required": ["filePath"]
        }
    },
]


# ============================================
# Tool Invocation
# ============================================

@dataclass
class ToolInvocation:
    """One tool call requested by the model in one round"""
    tool_use_id: str
    tool_name: str
    input: Dict[str, Any]
    result: Optional[str] = None
    error: Optional[str] = None
    summary: str = ""

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_tool_result_block(self) -> Dict[str, Any]:
        """Anthropic tool_result block, matched by tool_use_id"""
        content = f"Error: {self.error}" if self.is_error else (self.result or "")
        if len(content) > MAX_TOOL_RESULT_LENGTH:
            content = content[:MAX_TOOL_RESULT_LENGTH] + "\n\n... (truncated, too long)"
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": content,
            "is_error": self.is_error,
        }


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Tuple[str, str]]]

# (tool name, result, details)
ProgressCallback = Callable[[str, str, str], None]


class ToolExecutor:
    """
    Executes tool calls via a ToolKind -> handler table.

    Unknown tool names are rejected with a ToolExecutionError result.
    """

    def __init__(
        self,
        search: Optional[ExaSearchClient] = None,
        source_reader: Optional[SourceReader] = None,
        max_concurrent: int = 5,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.search = search
        self.source_reader = source_reader
        self.on_progress = on_progress
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._handlers: Dict[ToolKind, ToolHandler] = {
            ToolKind.WEB_SEARCH: self._web_search,
            ToolKind.READ_CURRENT_CODE: self._read_current_code,
        }

    @property
    def definitions(self) -> List[Dict[str, Any]]:
        return TOOL_DEFINITIONS

    async def execute(self, invocation: ToolInvocation) -> ToolInvocation:
        """Run one tool call. Never raises (except cancellation)."""
        logger.info(f"[Tools] Executing tool: {invocation.tool_name}")
        try:
            kind = _resolve_kind(invocation.tool_name)
            result, summary = await self._handlers[kind](invocation.input or {})
            invocation.result = result
            invocation.summary = summary
        except ToolExecutionError as e:
            logger.warning(f"[Tools] {e}")
            invocation.error = str(e)
            invocation.summary = "Failed ❌"
        except Exception as e:
            logger.error(f"[Tools] Tool {invocation.tool_name} failed: {e}", exc_info=True)
            invocation.error = f"{invocation.tool_name}: {e}"
            invocation.summary = "Failed ❌"
        return invocation

    async def execute_all(self, invocations: Sequence[ToolInvocation]) -> List[ToolInvocation]:
        """Run every call concurrently (bounded); results keep request order"""

        async def execute_with_semaphore(invocation: ToolInvocation) -> ToolInvocation:
            async with self._semaphore:
                return await self.execute(invocation)

        return list(await asyncio.gather(*[
            execute_with_semaphore(invocation) for invocation in invocations
        ]))

    # ============================================
    # Handlers
    # ============================================

    async def _web_search(self, tool_input: Dict[str, Any]) -> Tuple[str, str]:
        if self.search is None:
            raise ToolExecutionError(ToolKind.WEB_SEARCH.value, "web search is not configured")

        query = str(tool_input.get("query") or "").strip()
        num_results = tool_input.get("numResults", tool_input.get("num_results", 5))
        try:
            results = await self.search.search(
                query, int(num_results or 5), on_retry=self._search_retrying
            )
        except (SearchError, TypeError, ValueError) as e:
            raise ToolExecutionError(ToolKind.WEB_SEARCH.value, str(e)) from e

        payload = [r.to_dict() for r in results]
        return json.dumps(payload, ensure_ascii=False, indent=2), f"Found {len(results)} results"

    def _search_retrying(self, attempt: int, error: str) -> None:
        if self.on_progress:
            self.on_progress(ToolKind.WEB_SEARCH.value, f"🔁 Retrying search (attempt {attempt})...", error)

    async def _read_current_code(self, tool_input: Dict[str, Any]) -> Tuple[str, str]:
        file_path = str(tool_input.get("filePath") or tool_input.get("file_path") or "").strip()

        if self.source_reader is None:
            payload = {
                "available": False,
                "message": "Current code is not available for this storefront",
            }
            return json.dumps(payload), "Source not available"

        if not file_path:
            raise ToolExecutionError(ToolKind.READ_CURRENT_CODE.value, "filePath is required")

        try:
            content = await self.source_reader.read(file_path)
        except Exception as e:
            raise ToolExecutionError(
                ToolKind.READ_CURRENT_CODE.value, f"could not read {file_path}: {e}"
            ) from e

        if content is None:
            return json.dumps({"found": False, "file_path": file_path}), f"{file_path} not found"

        lines = content.count("\n") + 1
        payload = {"file_path": file_path, "content": content, "lines": lines}
        return json.dumps(payload, ensure_ascii=False), f"Read {file_path} ({lines} lines)"


def _resolve_kind(tool_name: str) -> ToolKind:
    try:
        return ToolKind(tool_name)
    except ValueError:
        available = ", ".join(k.value for k in ToolKind)
        raise ToolExecutionError(
            tool_name or "<unnamed>", f"Unknown tool '{tool_name}'. Available tools: {available}"
        ) from None
