"""
Source Readers
读取当前代码（快照优先，仓库兜底）

Give the agent read access to the current storefront code: first the
snapshot sent with the request, then the configured GitHub repository.
"""

from __future__ import annotations
import base64
import logging
from typing import Dict, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

DEFAULT_FILE_PATH = "app/page.tsx"
GITHUB_API = "https://api.github.com"


class SourceReader:
    """Reads the current content of a file, None when it does not exist"""

    async def read(self, file_path: str) -> Optional[str]:
        raise NotImplementedError


class SnapshotSourceReader(SourceReader):
    """Files sent along with the request"""

    def __init__(self, files: Dict[str, str]):
        self.files = dict(files)

    @classmethod
    def from_full_code(cls, full_code: Optional[str]) -> "SnapshotSourceReader":
        return cls({DEFAULT_FILE_PATH: full_code} if full_code else {})

    async def read(self, file_path: str) -> Optional[str]:
        return self.files.get(_normalize(file_path))


class GitHubSourceReader(SourceReader):
    """Files from a GitHub repository via the contents API"""

    def __init__(
        self,
        repo: str,
        token: str = "",
        branch: str = "main",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repo = repo
        self.token = token
        self.branch = branch
        self.timeout = timeout
        self._transport = transport

    async def read(self, file_path: str) -> Optional[str]:
        url = f"{GITHUB_API}/repos/{self.repo}/contents/{_normalize(file_path)}"
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params={"ref": self.branch}, headers=headers)

        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        if isinstance(data, list) or data.get("type") != "file":
            return None
        return base64.b64decode(data.get("content", "")).decode("utf-8")


class CompositeSourceReader(SourceReader):
    """Try readers in order; the first hit wins"""

    def __init__(self, readers: Sequence[SourceReader]):
        self.readers = list(readers)

    async def read(self, file_path: str) -> Optional[str]:
        for reader in self.readers:
            content = await reader.read(file_path)
            if content is not None:
                return content
        return None


def _normalize(file_path: str) -> str:
    return (file_path or "").strip().lstrip("/")
