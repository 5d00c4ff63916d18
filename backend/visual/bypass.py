"""
Interstitial Bypass
年龄验证 / Cookie 弹窗绕过

Best-effort handling of age gates and consent overlays before a page is
measured. Detection and clicking are kept apart from navigation so each
strategy can be swapped or tested on its own.

Flow:
    1. Read the visible page text.
    2. If it carries no gate signature -> NOT_NEEDED.
    3. Run strategies in order. Each strategy picks controls to try; after
       every click the page text is read again. The first click that changes
       the text AND clears every signature wins -> BYPASSED.
    4. Attempts are bounded across all strategies. Running out -> FAILED.

FAILED is an observed outcome, not an error; analysis continues on whatever
is rendered.
"""

from __future__ import annotations
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Pattern, Sequence, Set

from .models import BypassOutcome

logger = logging.getLogger(__name__)

MAX_BYPASS_ATTEMPTS = 12
CLICK_SETTLE_SECONDS = 1.0

GATE_SIGNATURES: Sequence[str] = (
    r"\b(?:21|18)\s*\+",
    r"\bare you (?:at least |over )?(?:21|18)\b",
    r"\b(?:over|at least) (?:the age of )?(?:21|18)\b",
    r"\bverify (?:your )?age\b",
    r"\bage verification\b",
    r"\blegal (?:drinking |smoking )?age\b",
    r"\bdate of birth\b",
    r"\bmust be (?:21|18)\b",
    r"\bwe use cookies\b",
    r"\baccept (?:all )?cookies\b",
    r"\bcookie (?:policy|preferences|settings|consent)\b",
)

AFFIRMATIVE_PATTERN = re.compile(
    r"\b(?:yes|enter|i am|i'm|21\+?|18\+?|agree|accept|allow|confirm|continue|verify|ok|got it)\b",
    re.IGNORECASE,
)

VISIBLE_TEXT_JS = """() => {
    const body = document.body;
    return body ? (body.innerText || '').slice(0, 20000) : '';
}"""

LIST_CONTROLS_JS = """() => {
    const selector = 'button, a, [role="button"], input[type="button"], input[type="submit"], label';
    const controls = [];
    document.querySelectorAll(selector).forEach((el, index) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        const visible = style.visibility !== 'hidden' && style.display !== 'none'
            && rect.width > 0 && rect.height > 0;
        if (!visible) return;
        const text = (el.innerText || el.value || el.getAttribute('aria-label') || '').trim();
        controls.push({index, text: text.slice(0, 80), tag: el.tagName.toLowerCase()});
    });
    return controls.slice(0, 200);
}"""

CLICK_CONTROL_JS = """(index) => {
    const selector = 'button, a, [role="button"], input[type="button"], input[type="submit"], label';
    const el = document.querySelectorAll(selector)[index];
    if (!el) return false;
    el.click();
    return true;
}"""


@dataclass(frozen=True)
class ClickableControl:
    """A visible clickable element on the page"""
    index: int
    text: str
    tag: str = ""

    @property
    def key(self) -> str:
        if not self.text:
            return f"{self.tag}#{self.index}"
        return f"{self.tag}:{self.text.lower()}"


class GateDetector:
    """Text-signature detection of age / consent gates"""

    def __init__(self, signatures: Iterable[str] = GATE_SIGNATURES):
        self._patterns: List[Pattern[str]] = [re.compile(s, re.IGNORECASE) for s in signatures]

    def matches(self, text: str) -> bool:
        return any(p.search(text or "") for p in self._patterns)


class BypassStrategy:
    """Chooses which controls to try, in order"""

    name = "base"

    def select(self, controls: Sequence[ClickableControl]) -> List[ClickableControl]:
        raise NotImplementedError


class AffirmativeControlStrategy(BypassStrategy):
    """Try controls whose label reads like 'Yes, I am 21' / 'Accept' first"""

    name = "affirmative"

    def select(self, controls: Sequence[ClickableControl]) -> List[ClickableControl]:
        return [c for c in controls if c.text and AFFIRMATIVE_PATTERN.search(c.text)]


class ControlEnumerationStrategy(BypassStrategy):
    """Brute force: every visible control in document order"""

    name = "enumerate"

    def select(self, controls: Sequence[ClickableControl]) -> List[ClickableControl]:
        return list(controls)


DEFAULT_STRATEGIES: Sequence[BypassStrategy] = (
    AffirmativeControlStrategy(),
    ControlEnumerationStrategy(),
)


class InterstitialBypass:
    """Runs the ordered strategies against a live page"""

    def __init__(
        self,
        detector: Optional[GateDetector] = None,
        strategies: Sequence[BypassStrategy] = DEFAULT_STRATEGIES,
        max_attempts: int = MAX_BYPASS_ATTEMPTS,
        settle_seconds: float = CLICK_SETTLE_SECONDS,
    ):
        self.detector = detector or GateDetector()
        self.strategies = list(strategies)
        self.max_attempts = max_attempts
        self.settle_seconds = settle_seconds

    async def run(self, page: Any) -> BypassOutcome:
        """
        Attempt to get past an interstitial.

        Args:
            page: Playwright page (anything with an async evaluate())

        Returns:
            BypassOutcome
        """
        before = await self._visible_text(page) or ""
        if not self.detector.matches(before):
            return BypassOutcome.NOT_NEEDED

        logger.info("[Bypass] Gate signature detected, trying controls")
        attempts = 0
        tried: Set[str] = set()

        for strategy in self.strategies:
            while attempts < self.max_attempts:
                controls = await self._list_controls(page)
                candidate = next(
                    (c for c in strategy.select(controls) if c.key not in tried),
                    None,
                )
                if candidate is None:
                    break

                tried.add(candidate.key)
                attempts += 1
                logger.debug(f"[Bypass] {strategy.name} attempt {attempts}: '{candidate.text}'")

                try:
                    await page.evaluate(CLICK_CONTROL_JS, candidate.index)
                except Exception as e:
                    # Clicks can navigate and destroy the execution context
                    logger.debug(f"[Bypass] Click raised: {e}")

                await asyncio.sleep(self.settle_seconds)

                after = await self._visible_text(page)
                if after is None:
                    # Page may still be navigating; read once more
                    await asyncio.sleep(self.settle_seconds)
                    after = await self._visible_text(page)
                if after is None:
                    logger.debug(f"[Bypass] Page text unreadable after '{candidate.text}', not cleared")
                    continue

                if after != before and not self.detector.matches(after):
                    logger.info(f"[Bypass] Gate cleared by '{candidate.text}' ({strategy.name})")
                    return BypassOutcome.BYPASSED

        logger.warning(f"[Bypass] No control cleared the gate after {attempts} attempts")
        return BypassOutcome.FAILED

    async def _visible_text(self, page: Any) -> Optional[str]:
        """Visible page text, None when it cannot be read"""
        try:
            return await page.evaluate(VISIBLE_TEXT_JS) or ""
        except Exception as e:
            logger.debug(f"[Bypass] Could not read page text: {e}")
            return None

    async def _list_controls(self, page: Any) -> List[ClickableControl]:
        try:
            raw = await page.evaluate(LIST_CONTROLS_JS) or []
        except Exception as e:
            logger.debug(f"[Bypass] Could not list controls: {e}")
            return []
        return [
            ClickableControl(index=int(c["index"]), text=c.get("text", ""), tag=c.get("tag", ""))
            for c in raw
        ]
