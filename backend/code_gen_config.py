"""
Code Generation Configuration
后端配置文件

All settings for the storefront generator are collected into one
GeneratorSettings object. The HTTP layer builds it once from the
environment and hands it to the session controller.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Default data directory for conversations and usage logs
DATA_DIR = Path(__file__).parent / "data" / "conversations"

# Model max_tokens limits
MODEL_MAX_TOKENS: Dict[str, int] = {
    "claude-haiku-4-5-20251001": 16384,
    "claude-3-5-haiku-20241022": 8192,
    "claude-3-5-haiku-latest": 8192,
    "claude-sonnet-4-5-20250929": 16384,
    "claude-sonnet-4-20250514": 16384,
    "claude-3-5-sonnet-20241022": 8192,
    "claude-3-5-sonnet-latest": 8192,
    "default": 8192,
}

DEFAULT_SYSTEM_PROMPT = """You are WhaleTools Storefront AI, an expert React and Next.js engineer who builds storefronts for vendors.

## OUTPUT RULES
- Return complete, working files. Never return partial snippets.
- Put every file in its own fenced code block.
- The FIRST line inside each code block must be a filename marker comment, e.g.
  // filename: app/page.tsx
- Use Tailwind CSS utility classes for styling.
- Keep existing functionality intact when editing.

## TOOLS
- web_search: look up design inspiration, best practices or documentation.
- read_current_code: read the current content of a file before editing it.
Only call tools when they add real information; otherwise answer directly."""


def get_max_tokens_for_model(model: str) -> int:
    """Get max_tokens limit for a specific model"""
    return MODEL_MAX_TOKENS.get(model, MODEL_MAX_TOKENS["default"])


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class AgentProfile:
    """Model settings and persona for the storefront agent"""
    name: str = "WhaleTools Storefront AI"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8000
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    thinking_budget_tokens: Optional[int] = None

    def __post_init__(self):
        model_max = get_max_tokens_for_model(self.model)
        if self.max_tokens > model_max:
            self.max_tokens = model_max


@dataclass
class GeneratorSettings:
    """Explicit configuration for one generator instance"""
    agent: AgentProfile = field(default_factory=AgentProfile)

    # ==================== Claude Configuration ====================
    anthropic_api_key: str = ""
    use_claude_proxy: bool = False
    claude_proxy_api_key: str = ""
    claude_proxy_base_url: str = ""

    # ==================== Collaborators ====================
    exa_api_key: str = ""
    github_token: str = ""
    github_repo: str = ""  # "owner/name"
    github_branch: str = "main"
    data_dir: Optional[Path] = DATA_DIR

    # ==================== Timeouts (seconds) ====================
    generation_timeout: float = 120.0
    analysis_timeout: float = 90.0
    navigation_timeout: float = 30.0
    manual_window: float = 30.0
    search_timeout: float = 15.0

    # ==================== Loop Bounds ====================
    max_tool_rounds: int = 5
    history_limit: int = 10
    max_concurrent_tools: int = 5

    # ==================== Browser ====================
    viewport_width: int = 1920
    viewport_height: int = 1080
    settle_millis: int = 3000
    max_browser_sessions: int = 2
    screenshot_max_width: int = 1280

    @classmethod
    def from_env(cls) -> "GeneratorSettings":
        """Build settings from environment variables"""
        agent = AgentProfile(
            name=os.getenv("STOREFRONT_AGENT_NAME", AgentProfile.name),
            model=os.getenv("CLAUDE_PROXY_MODEL_MAIN")
            or os.getenv("STOREFRONT_MODEL", AgentProfile.model),
            max_tokens=int(os.getenv("STOREFRONT_MAX_TOKENS", str(AgentProfile.max_tokens))),
            temperature=float(os.getenv("STOREFRONT_TEMPERATURE", str(AgentProfile.temperature))),
            thinking_budget_tokens=int(os.environ["STOREFRONT_THINKING_BUDGET"])
            if os.getenv("STOREFRONT_THINKING_BUDGET") else None,
        )
        prompt_file = os.getenv("STOREFRONT_SYSTEM_PROMPT_FILE")
        if prompt_file and Path(prompt_file).exists():
            agent.system_prompt = Path(prompt_file).read_text(encoding="utf-8")

        data_dir = os.getenv("STOREFRONT_DATA_DIR")

        return cls(
            agent=agent,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            use_claude_proxy=_env_bool("USE_CLAUDE_PROXY"),
            claude_proxy_api_key=os.getenv("CLAUDE_PROXY_API_KEY", ""),
            claude_proxy_base_url=os.getenv("CLAUDE_PROXY_BASE_URL", ""),
            exa_api_key=os.getenv("EXASEARCH_API_KEY") or os.getenv("EXA_API_KEY", ""),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            github_repo=os.getenv("STOREFRONT_GITHUB_REPO", ""),
            github_branch=os.getenv("STOREFRONT_GITHUB_BRANCH", "main"),
            data_dir=Path(data_dir) if data_dir else DATA_DIR,
            generation_timeout=float(os.getenv("STOREFRONT_GENERATION_TIMEOUT", "120")),
            analysis_timeout=float(os.getenv("STOREFRONT_ANALYSIS_TIMEOUT", "90")),
            manual_window=float(os.getenv("STOREFRONT_MANUAL_WINDOW", "30")),
            max_browser_sessions=int(os.getenv("STOREFRONT_MAX_BROWSER_SESSIONS", "2")),
        )


# ==================== Server Configuration ====================
# 服务器配置

SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "5100"))
