"""
Tool-Use Orchestrator

Bounded agent loop:

    AwaitingModel -> (ToolsRequested -> ExecutingTools -> AwaitingModel)*
                  -> Completed | RoundsExhausted

Each round sends the whole conversation so far to the model. When the
response requests tools, all of them are executed, the assistant message
and ONE user message carrying every tool_result are appended, and the loop
continues. At most max_rounds model calls are made; tools requested in the
last round are not executed.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from code_gen_config import AgentProfile

from .errors import ModelStreamError, ToolLoopExhausted
from .llm_client import LLMStreamingClient, Usage
from .tools import ToolExecutor, ToolInvocation

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5


class OrchestratorObserver:
    """Receives loop progress. Override what you need."""

    def on_round_start(self, round_number: int) -> None:
        pass

    def on_text(self, fragment: str, cumulative: str) -> None:
        pass

    def on_usage(self, usage: Usage) -> None:
        pass

    def on_thinking_start(self) -> None:
        pass

    def on_stream_error(self, message: str) -> None:
        pass

    def on_tool_call(self, invocation: ToolInvocation) -> None:
        pass

    def on_tool_result(self, invocation: ToolInvocation) -> None:
        pass


@dataclass
class OrchestratorResult:
    text: str
    rounds: int
    usage: Usage = field(default_factory=Usage)
    invocations: List[ToolInvocation] = field(default_factory=list)
    exhausted: bool = False


class ToolOrchestrator:
    """Runs the model/tool loop for one generation request"""

    def __init__(
        self,
        client: LLMStreamingClient,
        executor: ToolExecutor,
        profile: AgentProfile,
        max_rounds: int = MAX_TOOL_ROUNDS,
    ):
        self.client = client
        self.executor = executor
        self.profile = profile
        self.max_rounds = max_rounds

    async def run(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        observer: Optional[OrchestratorObserver] = None,
    ) -> OrchestratorResult:
        """
        Run the loop to completion.

        Args:
            system_prompt: System prompt
            messages: Conversation so far (not mutated)
            observer: Optional progress observer

        Returns:
            OrchestratorResult. exhausted=True means the round bound was hit
            and the last available text was used.

        Raises:
            ModelTimeout: a model call timed out
            ModelStreamError: the model stream failed
            ToolLoopExhausted: bound hit with no text produced in any round
        """
        observer = observer or OrchestratorObserver()
        conversation = list(messages)
        usage = Usage()
        invocations: List[ToolInvocation] = []
        last_text = ""

        for round_number in range(1, self.max_rounds + 1):
            logger.info(f"[Orchestrator] Round {round_number}/{self.max_rounds}")
            observer.on_round_start(round_number)

            final = await self.client.stream(
                system_prompt,
                conversation,
                self.profile,
                tools=self.executor.definitions,
                on_delta=observer.on_text,
                on_usage=observer.on_usage,
                on_error=observer.on_stream_error,
                on_thinking_start=observer.on_thinking_start,
            )
            if final.error:
                raise ModelStreamError(final.error)

            usage.add(final.usage)
            if final.text.strip():
                last_text = final.text

            tool_uses = final.tool_uses
            if not tool_uses:
                logger.info(f"[Orchestrator] No tool calls, complete after {round_number} round(s)")
                return OrchestratorResult(
                    text=final.text or last_text,
                    rounds=round_number,
                    usage=usage,
                    invocations=invocations,
                )

            if round_number == self.max_rounds:
                # No model call is left to consume the results
                logger.info(f"[Orchestrator] Skipping {len(tool_uses)} tool call(s) requested in the final round")
                break

            # ========================================
            # Execute every requested tool
            # ========================================
            round_calls = [
                ToolInvocation(
                    tool_use_id=block.get("id", ""),
                    tool_name=block.get("name", ""),
                    input=block.get("input") or {},
                )
                for block in tool_uses
            ]
            logger.info(f"[Orchestrator] Executing {len(round_calls)} tools: {[c.tool_name for c in round_calls]}")
            for call in round_calls:
                observer.on_tool_call(call)

            executed = await self.executor.execute_all(round_calls)
            for call in executed:
                observer.on_tool_result(call)
            invocations.extend(executed)

            failed = sum(1 for c in executed if c.is_error)
            logger.info(f"[Orchestrator] Batch complete: {len(executed) - failed} success, {failed} failed")

            conversation.append({"role": "assistant", "content": final.content})
            conversation.append({
                "role": "user",
                "content": [call.to_tool_result_block() for call in executed],
            })

        if last_text:
            logger.warning(
                f"[Orchestrator] Tool loop stopped after {self.max_rounds} rounds, using last text"
            )
            return OrchestratorResult(
                text=last_text,
                rounds=self.max_rounds,
                usage=usage,
                invocations=invocations,
                exhausted=True,
            )

        logger.error(f"[Orchestrator] Tool loop exhausted after {self.max_rounds} rounds with no text")
        raise ToolLoopExhausted(self.max_rounds)
