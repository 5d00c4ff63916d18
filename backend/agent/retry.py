"""
Retry policy for collaborator HTTP calls
外部 HTTP 调用的重试策略
"""

from __future__ import annotations
import random
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RetryPolicy(BaseModel):
    """
    Exponential backoff with jitter for transient failures.

    Args:
        max_attempts: Attempts including the first request
        base_delay_s: Delay before the first retry
        max_delay_s: Cap for the exponential growth
        jitter: Randomization as a fraction of the delay (0.15 = ±15%)
        retry_on_status: HTTP status codes treated as transient
    """
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay_s: float = Field(default=1.0, ge=0.0)
    max_delay_s: float = Field(default=5.0, ge=0.0)
    jitter: float = Field(default=0.15, ge=0.0, le=1.0)
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    @field_validator("max_delay_s")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        base = info.data.get("base_delay_s", 1.0)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    def retries_status(self, status_code: int) -> bool:
        return status_code in self.retry_on_status

    def compute_delay(self, attempt: int) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: 1 = first retry after the initial failure
        """
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)
