"""
Exa Search Client
Web research for the storefront agent (design inspiration, best practices)
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from .retry import RetryPolicy

logger = logging.getLogger(__name__)

EXA_SEARCH_URL = "https://api.exa.ai/search"
MAX_RESULTS = 5
MAX_TEXT_CHARS = 1000

# 2 retries after the first request, 1s then 2s apart
DEFAULT_SEARCH_RETRY = RetryPolicy(max_attempts=3, base_delay_s=1.0, max_delay_s=5.0)

RetryCallback = Callable[[int, str], None]


class SearchError(Exception):
    """Web search could not be performed"""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


@dataclass
class SearchResult:
    title: str
    url: str
    text: str = ""
    highlights: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "text": self.text,
            "highlights": list(self.highlights),
        }


class ExaSearchClient:
    """Thin async client for the Exa search REST API"""

    def __init__(
        self,
        api_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.retry = retry or DEFAULT_SEARCH_RETRY
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        num_results: int = MAX_RESULTS,
        on_retry: Optional[RetryCallback] = None,
    ) -> List[SearchResult]:
        """
        Search the web.

        Timeouts, connection failures and 429/5xx responses are retried with
        exponential backoff; other failures raise immediately.

        Args:
            query: Search query
            num_results: Requested result count (clamped to 1..5)
            on_retry: Called with (next attempt number, error) before each retry

        Returns:
            Ranked results, text truncated to 1000 chars

        Raises:
            SearchError: missing API key, HTTP failure or malformed response
        """
        if not self.configured:
            raise SearchError("Web search is not configured (EXA_API_KEY missing)")
        if not query or not query.strip():
            raise SearchError("Search query is empty")

        count = max(1, min(MAX_RESULTS, int(num_results or MAX_RESULTS)))
        payload = {
            "query": query,
            "numResults": count,
            "type": "neural",
            "useAutoprompt": True,
            "contents": {
                "text": {"maxCharacters": MAX_TEXT_CHARS},
                "highlights": {"numSentences": 3},
            },
        }

        logger.info(f"[Search] Query: {query[:80]} (n={count})")
        attempt = 1
        while True:
            try:
                data = await self._post(payload)
                break
            except SearchError as e:
                if not e.retryable or attempt >= self.retry.max_attempts:
                    raise
                delay = self.retry.compute_delay(attempt)
                attempt += 1
                logger.warning(
                    f"[Search] {e}; retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.retry.max_attempts})"
                )
                if on_retry:
                    on_retry(attempt, str(e))
                await asyncio.sleep(delay)

        results = []
        for item in (data.get("results") or [])[:count]:
            results.append(SearchResult(
                title=item.get("title") or "",
                url=item.get("url") or "",
                text=(item.get("text") or "")[:MAX_TEXT_CHARS],
                highlights=list(item.get("highlights") or []),
            ))

        logger.info(f"[Search] {len(results)} results")
        return results

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """One request; failures become SearchError flagged as retryable or not"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    EXA_SEARCH_URL,
                    json=payload,
                    headers={"x-api-key": self.api_key, "content-type": "application/json"},
                )
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise SearchError(f"Search timed out after {int(self.timeout)}s", retryable=True) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise SearchError(
                f"Search failed with HTTP {status}", retryable=self.retry.retries_status(status)
            ) from e
        except httpx.TransportError as e:
            raise SearchError(f"Search request failed: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise SearchError(f"Search request failed: {e}") from e
        except ValueError as e:
            raise SearchError("Search returned invalid JSON") from e
