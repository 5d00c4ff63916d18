"""
Conversation Store Implementation
对话存储实现

Append-only conversation history for the storefront generator.
The core only creates conversations, appends messages and reads the most
recent ones; history is never reordered or deleted.

Directory structure:
    /data/conversations/
    ├── <conversation-id>.json   (manifest + ordered messages)
    └── usage.jsonl              (one usage record per line)
"""

from __future__ import annotations
import asyncio
import json
import logging
import re
import time
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from code_gen_config import DATA_DIR

from .usage import UsageRecord

logger = logging.getLogger(__name__)

MessageContent = Union[str, List[Dict[str, Any]]]

_VALID_ID = re.compile(r"[A-Za-z0-9_-]+")


class PersistenceError(Exception):
    """Conversation data could not be read or written"""


@dataclass
class Message:
    """
    Single conversation message
    单条对话消息
    """
    role: str                           # "user" | "assistant"
    content: MessageContent             # text, or content blocks (text + image)
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)  # tokens_used, model_version

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }

    def to_api_message(self) -> Dict[str, Any]:
        """Message in model API shape"""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            timestamp=data.get("timestamp", 0.0),
            metadata=data.get("metadata", {}),
        )


class ConversationStore:
    """Persistence collaborator interface"""

    async def create_conversation(self, meta: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def append(self, conversation_id: str, message: Message) -> None:
        raise NotImplementedError

    async def list_recent(self, conversation_id: str, limit: int = 10) -> List[Message]:
        """Last `limit` messages, oldest first"""
        raise NotImplementedError

    async def record_usage(self, record: UsageRecord) -> None:
        raise NotImplementedError


class InMemoryConversationStore(ConversationStore):
    """Process-local store (tests and runs without a data directory)"""

    def __init__(self):
        self.conversations: Dict[str, Dict[str, Any]] = {}
        self.messages: Dict[str, List[Message]] = {}
        self.usage: List[UsageRecord] = []

    async def create_conversation(self, meta: Dict[str, Any]) -> str:
        conversation_id = str(uuid.uuid4())
        self.conversations[conversation_id] = dict(meta)
        self.messages[conversation_id] = []
        return conversation_id

    async def append(self, conversation_id: str, message: Message) -> None:
        self.messages.setdefault(conversation_id, []).append(message)

    async def list_recent(self, conversation_id: str, limit: int = 10) -> List[Message]:
        messages = self.messages.get(conversation_id, [])
        return list(messages[-limit:]) if limit > 0 else []

    async def record_usage(self, record: UsageRecord) -> None:
        self.usage.append(record)


class FileConversationStore(ConversationStore):
    """
    File-based conversation store
    基于文件的对话存储

    Appends to the same conversation are serialized with a per-conversation
    lock; file I/O runs in a worker thread.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._usage_lock = asyncio.Lock()
        logger.info(f"[Conversations] Store initialized at: {self.data_dir}")

    # ============================================
    # Conversation Operations
    # ============================================

    async def create_conversation(self, meta: Dict[str, Any]) -> str:
        """
        Create a new conversation
        创建新对话

        Args:
            meta: title, context and other metadata

        Returns:
            Conversation ID
        """
        conversation_id = str(uuid.uuid4())
        now = time.time()
        manifest = {
            "id": conversation_id,
            "title": meta.get("title", ""),
            "context": meta.get("context", {}),
            "created_at": datetime.fromtimestamp(now).isoformat(),
            "updated_at": datetime.fromtimestamp(now).isoformat(),
            "messages": [],
        }
        async with self._lock_for(conversation_id):
            await self._run(self._write_manifest, conversation_id, manifest)
        logger.info(f"[Conversations] Created conversation: {conversation_id}")
        return conversation_id

    async def append(self, conversation_id: str, message: Message) -> None:
        async with self._lock_for(conversation_id):
            manifest = await self._run(self._read_manifest, conversation_id)
            if manifest is None:
                # Unknown id supplied by the caller: start its history here
                manifest = {"id": conversation_id, "title": "", "context": {}, "messages": []}
            manifest["messages"].append(message.to_dict())
            manifest["updated_at"] = datetime.now().isoformat()
            await self._run(self._write_manifest, conversation_id, manifest)

    async def list_recent(self, conversation_id: str, limit: int = 10) -> List[Message]:
        manifest = await self._run(self._read_manifest, conversation_id)
        if manifest is None or limit <= 0:
            return []
        return [Message.from_dict(m) for m in manifest.get("messages", [])[-limit:]]

    async def record_usage(self, record: UsageRecord) -> None:
        async with self._usage_lock:
            await self._run(self._append_usage, record.to_dict())

    # ============================================
    # Helper Methods
    # ============================================

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        # Weak values: the lock lives only while someone holds or awaits it
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def _manifest_path(self, conversation_id: str) -> Path:
        if not conversation_id or not _VALID_ID.fullmatch(conversation_id):
            raise PersistenceError(f"Invalid conversation id: {conversation_id!r}")
        return self.data_dir / f"{conversation_id}.json"

    def _read_manifest(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        path = self._manifest_path(conversation_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_manifest(self, conversation_id: str, manifest: Dict[str, Any]) -> None:
        path = self._manifest_path(conversation_id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)

    def _append_usage(self, data: Dict[str, Any]) -> None:
        with open(self.data_dir / "usage.jsonl", "a", encoding="utf-8") as f:
            f.write(json.dumps(data, ensure_ascii=False) + "\n")

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except PersistenceError:
            raise
        except (OSError, ValueError) as e:
            raise PersistenceError(str(e)) from e
