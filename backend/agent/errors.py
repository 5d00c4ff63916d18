"""
Generation errors raised by the agent pipeline.
"""

from __future__ import annotations


class GenerationError(Exception):
    """A failure that prevents producing any usable artifact"""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ModelTimeout(GenerationError):
    """The model call did not finish within its time budget"""

    def __init__(self, timeout: float):
        super().__init__(
            f"Generation timed out after {int(timeout)} seconds",
            "The AI model took too long to respond. Please try again.",
        )
        self.timeout = timeout


class ModelStreamError(GenerationError):
    """The model stream reported an error"""


class ToolExecutionError(GenerationError):
    """A single tool call failed. Reported back to the model, never fatal."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class ToolLoopExhausted(GenerationError):
    """Round bound reached without any text to fall back on"""

    def __init__(self, rounds: int):
        super().__init__(
            f"Tool loop stopped after {rounds} rounds without a response",
            "The AI kept requesting tools and never produced code.",
        )
        self.rounds = rounds
