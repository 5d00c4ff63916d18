"""
Token usage accounting
用量记录与费用估算
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

# USD per million tokens: (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-3-5-sonnet-20241022": (3.0, 15.0),
    "claude-3-5-sonnet-latest": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (1.0, 5.0),
    "claude-3-5-haiku-20241022": (0.8, 4.0),
    "claude-3-5-haiku-latest": (0.8, 4.0),
    "claude-opus-4-1-20250805": (15.0, 75.0),
    "default": (3.0, 15.0),
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated cost in USD"""
    input_price, output_price = MODEL_PRICING.get(model, MODEL_PRICING["default"])
    cost = (input_tokens * input_price + output_tokens * output_price) / 1_000_000
    return round(cost, 6)


@dataclass
class UsageRecord:
    """Token usage of one generation request"""
    vendor_id: str
    conversation_id: str
    model: str
    input_tokens: int
    output_tokens: int
    prompt: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def cost_usd(self) -> float:
        return calculate_cost(self.model, self.input_tokens, self.output_tokens)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "conversation_id": self.conversation_id,
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.input_tokens + self.output_tokens,
            "cost_usd": self.cost_usd,
            "prompt": self.prompt[:500],
            "timestamp": self.timestamp,
        }
