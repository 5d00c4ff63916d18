"""
Storefront Generation Controller
店铺代码生成会话控制器

Entry point for one generation request:

    conversation -> (visual analysis) -> tool loop -> extraction & repair
                 -> persistence -> complete

Every path ends in exactly one terminal event (complete | error), after
which the event stream is closed. Failures that still allow an artifact
(visual analysis, tools, persistence) degrade with a status note instead.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional

from agent.errors import GenerationError
from agent.llm_client import LLMStreamingClient, Usage
from agent.orchestrator import OrchestratorObserver, OrchestratorResult, ToolOrchestrator
from agent.search import ExaSearchClient
from agent.source_reader import (
    CompositeSourceReader,
    GitHubSourceReader,
    SnapshotSourceReader,
    SourceReader,
)
from agent.tools import ToolExecutor, ToolInvocation
from code_gen_config import GeneratorSettings
from codegen import GeneratedArtifact, extract
from conversation import (
    ConversationStore,
    FileConversationStore,
    InMemoryConversationStore,
    Message,
    UsageRecord,
)
from visual import AnalysisError, ProgressChannel, ScreenshotAnalysis, VisualAnalyzer, Viewport

from .events import EventStream
from .models import GenerationRequest
from .prompts import attach_screenshot, build_system_prompt, build_user_message

logger = logging.getLogger(__name__)

SCRAPER_TOOL = "playwright_scraper"
ERROR_GRACE_SECONDS = 0.1


class _EventObserver(OrchestratorObserver):
    """Forwards tool-loop progress to the event stream"""

    def __init__(self, events: EventStream):
        self.events = events
        self._prior = ""
        self._full = ""

    def on_round_start(self, round_number: int) -> None:
        self._prior = self._full
        if round_number > 1:
            self.events.status(f"🔄 Continuing with tool results (round {round_number})...")

    def on_text(self, fragment: str, cumulative: str) -> None:
        self._full = self._prior + cumulative
        self.events.text(fragment, self._full)

    def on_usage(self, usage: Usage) -> None:
        self.events.tokens(usage.input_tokens, usage.output_tokens)

    def on_thinking_start(self) -> None:
        self.events.thinking_start()

    def on_stream_error(self, message: str) -> None:
        logger.error(f"[Storefront] Stream error: {message}")

    def on_tool_call(self, invocation: ToolInvocation) -> None:
        self.events.tool_result(invocation.tool_name, "Running...", _describe_input(invocation.input))

    def on_tool_result(self, invocation: ToolInvocation) -> None:
        if invocation.is_error:
            self.events.tool_result(invocation.tool_name, "Failed ❌", invocation.error or "")
        else:
            self.events.tool_result(invocation.tool_name, "Complete ✅", invocation.summary)


class StorefrontGenerationController:
    """
    Sequences one storefront generation request.

    All collaborators are passed in; nothing here reads the environment.
    """

    def __init__(
        self,
        settings: GeneratorSettings,
        store: ConversationStore,
        client: LLMStreamingClient,
        analyzer: Optional[VisualAnalyzer] = None,
        search: Optional[ExaSearchClient] = None,
        repo_reader: Optional[SourceReader] = None,
    ):
        self.settings = settings
        self.store = store
        self.client = client
        self.analyzer = analyzer
        self.search = search
        self.repo_reader = repo_reader

    @classmethod
    def from_settings(
        cls,
        settings: GeneratorSettings,
        store: Optional[ConversationStore] = None,
    ) -> "StorefrontGenerationController":
        if store is None:
            store = FileConversationStore(settings.data_dir) if settings.data_dir else InMemoryConversationStore()

        search = None
        if settings.exa_api_key:
            search = ExaSearchClient(settings.exa_api_key, timeout=settings.search_timeout)

        repo_reader = None
        if settings.github_repo:
            repo_reader = GitHubSourceReader(
                settings.github_repo,
                token=settings.github_token,
                branch=settings.github_branch,
            )

        return cls(
            settings=settings,
            store=store,
            client=LLMStreamingClient.from_settings(settings),
            analyzer=VisualAnalyzer(
                max_sessions=settings.max_browser_sessions,
                navigation_timeout=settings.navigation_timeout,
                manual_window=settings.manual_window,
                screenshot_max_width=settings.screenshot_max_width,
            ),
            search=search,
            repo_reader=repo_reader,
        )

    # ============================================
    # Entry Point
    # ============================================

    async def run(self, request: GenerationRequest, events: EventStream) -> None:
        """
        Run one request to its terminal event.

        Never raises except for cancellation, which closes the stream and
        propagates.
        """
        try:
            await self._generate(request, events)
        except asyncio.CancelledError:
            logger.info("[Storefront] Request cancelled (client disconnected)")
            events.close()
            raise
        except GenerationError as e:
            logger.error(f"[Storefront] Generation failed: {e.message}")
            await self._fail(events, e.message, e.detail)
        except Exception as e:
            logger.error(f"[Storefront] FATAL ERROR in storefront generation: {e}", exc_info=True)
            await self._fail(events, str(e) or "Failed to generate storefront code", type(e).__name__)
        finally:
            if not events.terminated and not events.closed:
                events.error("Generation ended without a result")
            events.close()

    async def _fail(self, events: EventStream, message: str, details: str = "") -> None:
        events.status(f"❌ Fatal error: {message}")
        events.error(message, details or None)
        # Give the client time to receive the error
        await asyncio.sleep(ERROR_GRACE_SECONDS)
        events.close()

    # ============================================
    # Pipeline
    # ============================================

    async def _generate(self, request: GenerationRequest, events: EventStream) -> None:
        profile = self.settings.agent
        events.status("🚀 AI request received, initializing...")
        events.status(f"🤖 {profile.name} ready...")

        conversation_id = request.conversation_id
        if not conversation_id:
            conversation_id = await self._persist(
                "create conversation",
                self.store.create_conversation({
                    "title": request.prompt[:50],
                    "context": {
                        "vendorId": request.vendor_id,
                        "vendorName": request.vendor_name,
                        "industry": request.industry,
                        "type": "code-generation",
                    },
                }),
            )

        history: List[Dict[str, Any]] = []
        if conversation_id:
            recent = await self._persist(
                "load conversation history",
                self.store.list_recent(conversation_id, self.settings.history_limit),
            )
            history = _as_api_history(recent or [])

        user_message = build_user_message(request)
        messages = history + [{"role": "user", "content": user_message}]
        if conversation_id:
            await self._persist(
                "save user message",
                self.store.append(conversation_id, Message(role="user", content=user_message)),
            )

        events.status("💭 Analyzing request...")

        analysis = None
        if request.reference_url:
            analysis = await self._analyze_reference(request, events)

        system_prompt = build_system_prompt(profile, request, analysis)
        if analysis is not None:
            messages = attach_screenshot(messages, analysis)
            events.status("✨ Generating React code with vision...")
            events.status("👁️ Claude analyzing screenshot...")
        else:
            events.status("✨ Generating React code...")

        events.status("🤖 Streaming response from Claude...")
        result = await self._run_tool_loop(request, system_prompt, messages, events)

        artifact = extract(result.text)
        if not artifact.files:
            raise GenerationError(
                "The AI returned an empty response",
                "No code could be extracted from the model output.",
            )
        if artifact.repaired:
            events.status("✅ Auto-fixed syntax errors")

        if conversation_id:
            await self._save_result(request, conversation_id, result)

        self._complete(events, conversation_id, artifact, result)

    async def _run_tool_loop(
        self,
        request: GenerationRequest,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        events: EventStream,
    ) -> OrchestratorResult:
        readers: List[SourceReader] = []
        if request.full_code:
            readers.append(SnapshotSourceReader.from_full_code(request.full_code))
        if self.repo_reader is not None:
            readers.append(self.repo_reader)

        executor = ToolExecutor(
            search=self.search,
            source_reader=CompositeSourceReader(readers) if readers else None,
            max_concurrent=self.settings.max_concurrent_tools,
            on_progress=events.tool_result,
        )
        orchestrator = ToolOrchestrator(
            self.client,
            executor,
            self.settings.agent,
            max_rounds=self.settings.max_tool_rounds,
        )
        result = await orchestrator.run(system_prompt, messages, _EventObserver(events))
        if result.exhausted:
            events.status(f"⚠️ Tool limit reached after {result.rounds} rounds, using latest response")
        return result

    # ============================================
    # Visual Analysis
    # ============================================

    async def _analyze_reference(
        self,
        request: GenerationRequest,
        events: EventStream,
    ) -> Optional[ScreenshotAnalysis]:
        """Screenshot analysis of the reference URL. Failures degrade to None."""
        url = request.reference_url
        events.status("🌐 Opening browser...")
        events.tool_result(SCRAPER_TOOL, "🚀 Launching Chromium browser", f"Target: {url}")

        if self.analyzer is None:
            self._analysis_failed(events, "Visual analysis is not available")
            return None

        error = ""
        channel = ProgressChannel()
        drain = asyncio.create_task(self._forward_progress(channel, events))
        try:
            analysis = await asyncio.wait_for(
                self.analyzer.analyze(
                    url,
                    viewport=Viewport(self.settings.viewport_width, self.settings.viewport_height),
                    wait_millis=0 if request.manual_mode else self.settings.settle_millis,
                    manual_mode=request.manual_mode,
                    progress=channel,
                ),
                timeout=self.settings.analysis_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"[Storefront] Visual analysis timed out for {url}")
            analysis = None
            error = f"Scraping timeout after {int(self.settings.analysis_timeout)}s - site may be too complex"
        except AnalysisError as e:
            logger.error(f"[Storefront] Visual analysis failed ({e.kind.value}): {e}")
            analysis = None
            error = str(e)
        except Exception as e:
            logger.error(f"[Storefront] Visual analysis failed: {e}", exc_info=True)
            analysis = None
            error = str(e) or type(e).__name__
        finally:
            channel.close()
            await drain

        if analysis is None:
            self._analysis_failed(events, error)
            return None

        events.screenshot(
            data=analysis.data_uri,
            width=analysis.image_width,
            height=analysis.image_height,
            title=analysis.metadata.title,
        )
        events.status("✅ Screenshot analysis complete!")
        insights = analysis.insights
        events.tool_result(
            SCRAPER_TOOL,
            "🎉 Visual analysis complete!",
            f"📸 {analysis.size_kb}KB JPEG\n"
            f"📋 {len(insights.section_summaries)} sections\n"
            f"🧩 {len(insights.components())} components\n"
            f"🎨 {len(insights.dominant_colors)} colors\n\n"
            f"✅ Ready to generate matching design!",
        )
        logger.info(f"[Storefront] Visual analysis complete: {analysis.to_summary()}")
        return analysis

    def _analysis_failed(self, events: EventStream, error: str) -> None:
        events.status("⚠️ Screenshot failed, continuing without visual reference...")
        events.tool_result(
            SCRAPER_TOOL,
            "Failed ❌",
            f"{error}\n\n⏩ AI will generate code based on your prompt only (no visual reference)",
        )

    async def _forward_progress(self, channel: ProgressChannel, events: EventStream) -> None:
        async for message in channel:
            events.status(message)
            events.tool_result(SCRAPER_TOOL, message)

    # ============================================
    # Persistence & Completion
    # ============================================

    async def _save_result(
        self,
        request: GenerationRequest,
        conversation_id: str,
        result: OrchestratorResult,
    ) -> None:
        model = self.settings.agent.model
        await self._persist(
            "save assistant message",
            self.store.append(conversation_id, Message(
                role="assistant",
                content=result.text,
                metadata={"tokens_used": result.usage.output_tokens, "model_version": model},
            )),
        )
        await self._persist(
            "record usage",
            self.store.record_usage(UsageRecord(
                vendor_id=request.vendor_id,
                conversation_id=conversation_id,
                model=model,
                input_tokens=result.usage.input_tokens,
                output_tokens=result.usage.output_tokens,
                prompt=request.prompt,
            )),
        )

    async def _persist(self, action: str, operation) -> Any:
        """Await a store call; failures are logged and never block generation"""
        try:
            return await operation
        except Exception as e:
            logger.error(f"[Storefront] Failed to {action}: {e}", exc_info=True)
            return None

    def _complete(
        self,
        events: EventStream,
        conversation_id: Optional[str],
        artifact: GeneratedArtifact,
        result: OrchestratorResult,
    ) -> None:
        logger.info(
            f"[Storefront] Complete: {len(artifact)} file(s), {result.rounds} round(s), "
            f"{len(result.invocations)} tool call(s), "
            f"{result.usage.input_tokens}+{result.usage.output_tokens} tokens"
        )
        events.complete(
            conversationId=conversation_id,
            files=artifact.to_list(),
            code=artifact.primary_code,
            fullResponse=result.text,
            usage=result.usage.to_dict(),
            rounds=result.rounds,
        )


def _as_api_history(messages: List[Message]) -> List[Dict[str, Any]]:
    history = [m.to_api_message() for m in messages if m.role in ("user", "assistant") and m.content]
    while history and history[0]["role"] != "user":
        history.pop(0)
    return history


def _describe_input(tool_input: Dict[str, Any]) -> str:
    if not tool_input:
        return ""
    return ", ".join(f"{k}: {str(v)[:100]}" for k, v in tool_input.items())
