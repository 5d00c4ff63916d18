"""
LLM Streaming Client

One streaming completion call per invocation, raced against a hard timeout.
Supports the Anthropic API directly, an Anthropic-native proxy, or an
OpenAI-compatible proxy (chunks converted to Anthropic content blocks).

Callbacks:
    on_delta(fragment, cumulative)  每个文本片段调用一次，按顺序
    on_usage(usage)                 流结束时最多调用一次
    on_error(message)               流内部错误，不向外抛出
    on_thinking_start()             模型进入思考阶段
"""

from __future__ import annotations
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import anthropic
from openai import AsyncOpenAI, APIError as OpenAIAPIError

from code_gen_config import AgentProfile, GeneratorSettings

from .errors import ModelTimeout

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str, str], None]
UsageCallback = Callable[["Usage"], None]
ErrorCallback = Callable[[str], None]
ThinkingCallback = Callable[[], None]


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class FinalMessage:
    """Aggregated result of one streaming call"""
    text: str = ""
    content: List[Dict[str, Any]] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    stop_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def tool_uses(self) -> List[Dict[str, Any]]:
        return [b for b in self.content if b.get("type") == "tool_use"]


class LLMStreamingClient:
    """Streaming model client with a timeout race"""

    def __init__(
        self,
        api_key: str = "",
        use_proxy: bool = False,
        proxy_api_key: str = "",
        proxy_base_url: str = "",
        timeout: float = 120.0,
    ):
        self.timeout = timeout
        self.anthropic_client: Optional[anthropic.AsyncAnthropic] = None
        self.openai_client: Optional[AsyncOpenAI] = None

        if use_proxy:
            if not proxy_api_key:
                raise ValueError("CLAUDE_PROXY_API_KEY environment variable not set")

            # Check if using Anthropic native format
            if "/messages" in proxy_base_url.lower():
                base_url = re.sub(r'/v1/messages', '', proxy_base_url, flags=re.IGNORECASE)
                base_url = re.sub(r'/messages', '', base_url, flags=re.IGNORECASE)
                self.anthropic_client = anthropic.AsyncAnthropic(
                    api_key=proxy_api_key,
                    base_url=base_url,
                    timeout=timeout,
                )
                logger.info(f"[LLM] Using Anthropic-native proxy: {base_url}")
            else:
                self.openai_client = AsyncOpenAI(
                    api_key=proxy_api_key,
                    base_url=proxy_base_url,
                    timeout=timeout,
                )
                logger.info(f"[LLM] Using OpenAI-compatible proxy: {proxy_base_url}")
        else:
            self.anthropic_client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
            logger.info("[LLM] Using direct Anthropic API")

    @classmethod
    def from_settings(cls, settings: GeneratorSettings) -> "LLMStreamingClient":
        return cls(
            api_key=settings.anthropic_api_key,
            use_proxy=settings.use_claude_proxy,
            proxy_api_key=settings.claude_proxy_api_key,
            proxy_base_url=settings.claude_proxy_base_url,
            timeout=settings.generation_timeout,
        )

    async def stream(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        profile: AgentProfile,
        tools: Optional[List[Dict[str, Any]]] = None,
        on_delta: Optional[DeltaCallback] = None,
        on_usage: Optional[UsageCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_thinking_start: Optional[ThinkingCallback] = None,
    ) -> FinalMessage:
        """
        Stream one completion.

        Returns:
            FinalMessage. Stream-level errors are reported through on_error
            and recorded on FinalMessage.error rather than raised.

        Raises:
            ModelTimeout: the call did not finish within self.timeout. The
                in-flight request is cancelled.
        """
        callbacks = _Callbacks(on_delta, on_usage, on_error, on_thinking_start)
        if self.anthropic_client:
            call = self._stream_anthropic(system, messages, profile, tools, callbacks)
        else:
            call = self._stream_openai(system, messages, profile, tools, callbacks)

        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"[LLM] Model call timed out after {self.timeout}s")
            raise ModelTimeout(self.timeout) from None

    # ============================================
    # Anthropic
    # ============================================

    async def _stream_anthropic(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        profile: AgentProfile,
        tools: Optional[List[Dict[str, Any]]],
        callbacks: "_Callbacks",
    ) -> FinalMessage:
        kwargs: Dict[str, Any] = {
            "model": profile.model,
            "max_tokens": profile.max_tokens,
            "system": system,
            "messages": messages,
        }
        if profile.thinking_budget_tokens:
            # Extended thinking requires temperature 1 and max_tokens above the budget
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": profile.thinking_budget_tokens}
            kwargs["max_tokens"] = max(profile.max_tokens, profile.thinking_budget_tokens + 1024)
        else:
            kwargs["temperature"] = profile.temperature
        if tools:
            kwargs["tools"] = tools

        final = FinalMessage()
        try:
            async with self.anthropic_client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type == "content_block_start":
                        if event.content_block.type == "thinking":
                            callbacks.thinking_start()
                    elif event.type == "text":
                        final.text += event.text
                        callbacks.delta(event.text, final.text)

                message = await stream.get_final_message()
        except (anthropic.APIError, OpenAIAPIError) as e:
            logger.error(f"[LLM] API error: {e}")
            final.error = f"API error: {e}"
            callbacks.error(final.error)
            return final
        except Exception as e:
            logger.error(f"[LLM] Stream error: {e}", exc_info=True)
            final.error = str(e) or type(e).__name__
            callbacks.error(final.error)
            return final

        final.content = [_block_to_param(block) for block in message.content]
        final.content = [b for b in final.content if b]
        final.stop_reason = message.stop_reason
        if message.usage:
            final.usage = Usage(message.usage.input_tokens or 0, message.usage.output_tokens or 0)
            callbacks.usage(final.usage)
        return final

    # ============================================
    # OpenAI-compatible proxy
    # ============================================

    async def _stream_openai(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        profile: AgentProfile,
        tools: Optional[List[Dict[str, Any]]],
        callbacks: "_Callbacks",
    ) -> FinalMessage:
        openai_messages = [{"role": "system", "content": system}]
        for msg in messages:
            openai_messages.extend(_convert_message_to_openai(msg))

        kwargs: Dict[str, Any] = {
            "model": profile.model,
            "max_tokens": profile.max_tokens,
            "temperature": profile.temperature,
            "messages": openai_messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = _convert_tools_to_openai(tools)

        final = FinalMessage()
        tool_calls: Dict[int, Dict[str, str]] = {}
        usage: Optional[Usage] = None

        try:
            stream = await self.openai_client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    usage = Usage(chunk.usage.prompt_tokens or 0, chunk.usage.completion_tokens or 0)
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta and delta.content:
                    final.text += delta.content
                    callbacks.delta(delta.content, final.text)
                if delta and delta.tool_calls:
                    for call in delta.tool_calls:
                        entry = tool_calls.setdefault(call.index, {"id": "", "name": "", "arguments": ""})
                        if call.id:
                            entry["id"] = call.id
                        if call.function and call.function.name:
                            entry["name"] += call.function.name
                        if call.function and call.function.arguments:
                            entry["arguments"] += call.function.arguments
                if choice.finish_reason:
                    final.stop_reason = choice.finish_reason
        except (anthropic.APIError, OpenAIAPIError) as e:
            logger.error(f"[LLM] API error: {e}")
            final.error = f"API error: {e}"
            callbacks.error(final.error)
            return final
        except Exception as e:
            logger.error(f"[LLM] Stream error: {e}", exc_info=True)
            final.error = str(e) or type(e).__name__
            callbacks.error(final.error)
            return final

        if final.text:
            final.content.append({"type": "text", "text": final.text})
        for index in sorted(tool_calls):
            entry = tool_calls[index]
            try:
                input_data = json.loads(entry["arguments"]) if entry["arguments"] else {}
            except json.JSONDecodeError:
                input_data = {}
            final.content.append({
                "type": "tool_use",
                "id": entry["id"] or f"call_{index}",
                "name": entry["name"],
                "input": input_data,
            })
        if tool_calls:
            final.stop_reason = "tool_use"

        if usage:
            final.usage = usage
            callbacks.usage(usage)
        return final


# ============================================
# Helpers
# ============================================

class _Callbacks:
    """Optional callbacks; a failing observer never breaks the stream"""

    def __init__(self, on_delta, on_usage, on_error, on_thinking_start):
        self._on_delta = on_delta
        self._on_usage = on_usage
        self._on_error = on_error
        self._on_thinking_start = on_thinking_start
        self._usage_sent = False

    def delta(self, fragment: str, cumulative: str) -> None:
        self._call(self._on_delta, fragment, cumulative)

    def usage(self, usage: Usage) -> None:
        if self._usage_sent:
            return
        self._usage_sent = True
        self._call(self._on_usage, usage)

    def error(self, message: str) -> None:
        self._call(self._on_error, message)

    def thinking_start(self) -> None:
        self._call(self._on_thinking_start)

    @staticmethod
    def _call(callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"[LLM] Stream callback failed: {e}")


def _block_to_param(block: Any) -> Optional[Dict[str, Any]]:
    """Convert a response content block into a request content block"""
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if block.type == "thinking":
        return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
    if block.type == "redacted_thinking":
        return {"type": "redacted_thinking", "data": block.data}
    return None


def _convert_message_to_openai(msg: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Convert one Anthropic message to one or more OpenAI messages"""
    role = msg.get("role")
    content = msg.get("content")

    if isinstance(content, str):
        return [{"role": role, "content": content}]
    if not isinstance(content, list):
        return []

    if role == "assistant":
        text_parts = []
        tool_calls = []
        for block in content:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append({
                    "id": block.get("id"),
                    "type": "function",
                    "function": {
                        "name": block.get("name"),
                        "arguments": json.dumps(block.get("input", {})),
                    }
                })
        result = {"role": "assistant", "content": " ".join(text_parts) if text_parts else None}
        if tool_calls:
            result["tool_calls"] = tool_calls
        return [result]

    tool_results = [b for b in content if b.get("type") == "tool_result"]
    if tool_results:
        return [
            {
                "role": "tool",
                "tool_call_id": block.get("tool_use_id"),
                "content": block.get("content", ""),
            }
            for block in tool_results
        ]

    parts = []
    for block in content:
        if block.get("type") == "text":
            parts.append({"type": "text", "text": block.get("text", "")})
        elif block.get("type") == "image":
            source = block.get("source", {})
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{source.get('media_type')};base64,{source.get('data')}"},
            })
    return [{"role": "user", "content": parts}]


def _convert_tools_to_openai(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert Anthropic tools to OpenAI format"""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.get("name"),
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {}),
            }
        }
        for tool in tools
    ]
