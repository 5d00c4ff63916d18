"""
Storefront Agent Module
模型调用、工具执行与工具循环
"""

from .errors import (
    GenerationError,
    ModelStreamError,
    ModelTimeout,
    ToolExecutionError,
    ToolLoopExhausted,
)
from .llm_client import FinalMessage, LLMStreamingClient, Usage
from .orchestrator import OrchestratorObserver, OrchestratorResult, ToolOrchestrator
from .retry import RetryPolicy
from .search import ExaSearchClient, SearchError, SearchResult
from .source_reader import (
    CompositeSourceReader,
    GitHubSourceReader,
    SnapshotSourceReader,
    SourceReader,
)
from .tools import TOOL_DEFINITIONS, ToolExecutor, ToolInvocation, ToolKind

__all__ = [
    "GenerationError",
    "ModelStreamError",
    "ModelTimeout",
    "ToolExecutionError",
    "ToolLoopExhausted",
    "FinalMessage",
    "LLMStreamingClient",
    "Usage",
    "OrchestratorObserver",
    "OrchestratorResult",
    "ToolOrchestrator",
    "RetryPolicy",
    "ExaSearchClient",
    "SearchError",
    "SearchResult",
    "CompositeSourceReader",
    "GitHubSourceReader",
    "SnapshotSourceReader",
    "SourceReader",
    "TOOL_DEFINITIONS",
    "ToolExecutor",
    "ToolInvocation",
    "ToolKind",
]
