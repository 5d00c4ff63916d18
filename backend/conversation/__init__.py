"""
Conversation Storage Module
对话存储模块
"""

from .store import (
    ConversationStore,
    FileConversationStore,
    InMemoryConversationStore,
    Message,
    PersistenceError,
)
from .usage import MODEL_PRICING, UsageRecord, calculate_cost

__all__ = [
    "ConversationStore",
    "FileConversationStore",
    "InMemoryConversationStore",
    "Message",
    "PersistenceError",
    "MODEL_PRICING",
    "UsageRecord",
    "calculate_cost",
]
