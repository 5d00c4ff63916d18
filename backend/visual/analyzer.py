"""
Visual Analyzer Service
参考网站视觉分析服务，使用 Playwright 截图并提取设计信号

主要功能：
- 每次分析使用独立的浏览器会话（并发数受信号量限制）
- 年龄验证 / Cookie 弹窗绕过（尽力而为，失败不影响分析）
- 手动模式：浏览器可见，给用户一段时间自行操作
- 滚动页面触发懒加载
- 颜色 / 布局 / 字体 / 间距 / 组件统计提取
- 视口截图并压缩到最大宽度
"""

from __future__ import annotations
import asyncio
import logging
import math
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeout

from .bypass import InterstitialBypass
from .imaging import downscale_screenshot
from .models import (
    AnalysisError,
    AnalysisErrorKind,
    BypassOutcome,
    DesignInsights,
    PageMetadata,
    ScreenshotAnalysis,
    SpacingSummary,
    Viewport,
)
from .progress import ProgressChannel, publish

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = Viewport(1920, 1080)
MAX_COLORS = 20
MAX_FONTS = 5
MAX_SECTIONS = 12
MIN_SECTION_HEIGHT = 200
SessionFactory = Callable[[Viewport, bool], Any]

SCROLL_DIMENSIONS_JS = """() => {
    return {
        viewportHeight: window.innerHeight,
        scrollHeight: document.body ? document.body.scrollHeight : 0
    };
}"""

SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"

SCROLL_TO_JS = "(y) => window.scrollTo(0, y)"

BODY_BACKGROUND_JS = """() => {
    return document.body ? window.getComputedStyle(document.body).backgroundColor : '';
}"""

EXTRACT_INSIGHTS_JS = """() => {
    const all = Array.from(document.querySelectorAll('*')).slice(0, 5000);
    const transparent = 'rgba(0, 0, 0, 0)';

    // Colors (background, text, border)
    const colors = [];
    for (const el of all) {
        const style = window.getComputedStyle(el);
        if (style.backgroundColor && style.backgroundColor !== transparent) {
            colors.push(`BG: ${style.backgroundColor}`);
        }
        if (style.color) colors.push(`Text: ${style.color}`);
        if (style.borderColor && style.borderColor !== transparent && style.borderStyle !== 'none') {
            colors.push(`Border: ${style.borderColor}`);
        }
        if (colors.length > 400) break;
    }

    // Layout mode
    let hasGrid = false;
    let hasFlex = false;
    for (const el of all) {
        const display = window.getComputedStyle(el).display;
        if (display.includes('grid')) hasGrid = true;
        if (display.includes('flex')) hasFlex = true;
        if (hasGrid && hasFlex) break;
    }

    // Typography
    const fonts = [];
    document.querySelectorAll('h1, h2, h3, p, span, a, button').forEach(el => {
        if (fonts.length < 200) fonts.push(window.getComputedStyle(el).fontFamily);
    });

    // Spacing
    const paddings = [];
    document.querySelectorAll('div, section').forEach(el => {
        if (paddings.length >= 500) return;
        const padding = parseInt(window.getComputedStyle(el).paddingTop || '0', 10);
        if (padding > 0) paddings.push(padding);
    });

    // Structural elements
    const counts = {
        nav: document.querySelectorAll('nav').length,
        header: document.querySelectorAll('header').length,
        footer: document.querySelectorAll('footer').length,
        buttons: document.querySelectorAll('button, a[role="button"]').length,
        images: document.querySelectorAll('img').length,
        forms: document.querySelectorAll('form, input').length,
    };

    // Larger layout blocks
    const sections = [];
    document.querySelectorAll('section, div[class*="section"], main > div, body > div > div').forEach(section => {
        if (sections.length >= 40) return;
        const heading = section.querySelector('h1, h2');
        sections.push({
            title: heading ? (heading.textContent || '').trim().slice(0, 50) : '',
            height: section.clientHeight,
            images: section.querySelectorAll('img').length,
            buttons: section.querySelectorAll('button').length,
        });
    });

    const headings = [];
    document.querySelectorAll('h1, h2').forEach(h => {
        if (headings.length < 10) {
            headings.push(`${h.tagName}: "${(h.textContent || '').trim().slice(0, 100)}"`);
        }
    });

    const buttons = [];
    document.querySelectorAll('button, a[role="button"]').forEach(btn => {
        const text = (btn.textContent || '').trim();
        if (buttons.length < 10 && text) buttons.push(text.slice(0, 60));
    });

    return {colors, hasGrid, hasFlex, fonts, paddings, counts, sections, headings, buttons};
}"""


# ============================================
# Pure helpers (post-processing of in-page data)
# ============================================

def collect_colors(raw: Sequence[str], limit: int = MAX_COLORS) -> Tuple[str, ...]:
    """Deduplicate colors keeping first-seen order, capped at limit"""
    seen = []
    for color in raw:
        if color and color not in seen:
            seen.append(color)
            if len(seen) >= limit:
                break
    return tuple(seen)


def detect_layout(has_grid: bool, has_flex: bool) -> str:
    if has_grid:
        return "CSS Grid"
    if has_flex:
        return "Flexbox"
    return "Traditional"


def summarize_spacing(paddings: Sequence[int], default: int = 16) -> SpacingSummary:
    values = [int(p) for p in paddings if p and int(p) > 0]
    if not values:
        return SpacingSummary(average=default, minimum=default, maximum=default, samples=0)
    return SpacingSummary(
        average=round(sum(values) / len(values)),
        minimum=min(values),
        maximum=max(values),
        samples=len(values),
    )


def count_components(counts: Dict[str, int]) -> Tuple[Tuple[str, int], ...]:
    labels = (
        ("nav", "Navigation"),
        ("header", "Header"),
        ("footer", "Footer"),
        ("buttons", "Buttons"),
        ("images", "Images"),
        ("forms", "Forms/Inputs"),
    )
    return tuple((label, int(counts.get(key, 0) or 0)) for key, label in labels)


def summarize_sections(
    sections: Sequence[Dict[str, Any]],
    min_height: int = MIN_SECTION_HEIGHT,
    limit: int = MAX_SECTIONS,
) -> Tuple[str, ...]:
    """Describe substantial layout blocks, skipping short ones as noise"""
    summaries = []
    for i, section in enumerate(sections):
        if (section.get("height") or 0) <= min_height:
            continue
        title = section.get("title") or f"Section {i + 1}"
        summaries.append(
            f"Section {i + 1}: {title} "
            f"({section.get('images', 0)} images, {section.get('buttons', 0)} buttons)"
        )
        if len(summaries) >= limit:
            break
    return tuple(summaries)


_RGB_PATTERN = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)(?:\s*,\s*([\d.]+))?\s*\)")


def detect_color_scheme(background: str) -> str:
    """'dark' when the body background luminance is low, else 'light'"""
    match = _RGB_PATTERN.search(background or "")
    if not match:
        return "light"
    r, g, b = (int(match.group(i)) for i in (1, 2, 3))
    alpha = float(match.group(4)) if match.group(4) is not None else 1.0
    if alpha == 0:
        return "light"
    luminance = (0.2126 * r + 0.7152 * g + 0.0722 * b) / 255
    return "dark" if luminance < 0.5 else "light"


def build_insights(data: Dict[str, Any]) -> DesignInsights:
    fonts = collect_colors(data.get("fonts") or [], limit=MAX_FONTS)
    return DesignInsights(
        dominant_colors=collect_colors(data.get("colors") or []),
        layout_system=detect_layout(bool(data.get("hasGrid")), bool(data.get("hasFlex"))),
        typography_samples=fonts,
        spacing=summarize_spacing(data.get("paddings") or []),
        component_counts=count_components(data.get("counts") or {}),
        section_summaries=summarize_sections(data.get("sections") or []),
        heading_texts=tuple(data.get("headings") or ())[:10],
        button_texts=tuple(data.get("buttons") or ())[:10],
    )


# ============================================
# Browser session
# ============================================

@asynccontextmanager
async def launch_browser_session(viewport: Viewport, headless: bool = True) -> AsyncIterator[Any]:
    """
    Isolated Chromium session (own process, own context).
    Always closed on exit, including cancellation.
    """
    playwright = await async_playwright().start()
    browser = None
    try:
        browser = await playwright.chromium.launch(
            headless=headless,
            args=[
                '--no-sandbox',
                '--disable-setuid-sandbox',
                '--disable-dev-shm-usage',
                '--disable-gpu',
            ]
        )
        context = await browser.new_context(
            viewport=viewport.to_dict(),
            device_scale_factor=1,
        )
        page = await context.new_page()
        yield page
    finally:
        if browser:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"[Visual] Error closing browser: {e}")
        await playwright.stop()
        logger.debug("[Visual] Browser session closed")


# ============================================
# Visual Analyzer
# ============================================

class VisualAnalyzer:
    """
    Visual analysis of reference websites.

    Each analyze() call owns one browser session. A semaphore bounds the
    number of sessions alive at once since every session is a full browser
    process.
    """

    def __init__(
        self,
        max_sessions: int = 2,
        navigation_timeout: float = 30.0,
        manual_window: float = 30.0,
        manual_tick: float = 5.0,
        scroll_delay: float = 0.3,
        screenshot_max_width: int = 1280,
        session_factory: Optional[SessionFactory] = None,
        bypass: Optional[InterstitialBypass] = None,
    ):
        self.navigation_timeout = navigation_timeout
        self.manual_window = manual_window
        self.manual_tick = manual_tick
        self.scroll_delay = scroll_delay
        self.screenshot_max_width = screenshot_max_width
        self._session_factory = session_factory or launch_browser_session
        self._bypass = bypass or InterstitialBypass()
        self._semaphore = asyncio.Semaphore(max_sessions)

    async def analyze(
        self,
        url: str,
        viewport: Viewport = DEFAULT_VIEWPORT,
        wait_millis: int = 3000,
        manual_mode: bool = False,
        progress: Optional[ProgressChannel] = None,
    ) -> ScreenshotAnalysis:
        """
        Screenshot and analyze a website.

        Args:
            url: Reference URL
            viewport: Browser viewport
            wait_millis: Settle time after load (skipped in manual mode)
            manual_mode: Open a visible browser for the user to interact with
            progress: Optional channel for human readable progress

        Returns:
            ScreenshotAnalysis

        Raises:
            AnalysisError: navigation timed out or the page could not be rendered
        """
        async with self._semaphore:
            logger.info(f"[Visual] Analyzing {url} (manual={manual_mode})")
            publish(progress, f"🧭 Navigating to {url}...")
            try:
                async with self._session_factory(viewport, not manual_mode) as page:
                    return await self._analyze_page(page, url, viewport, wait_millis, manual_mode, progress)
            except AnalysisError:
                raise
            except PlaywrightTimeout as e:
                raise AnalysisError(AnalysisErrorKind.NAVIGATION_TIMEOUT, url, str(e)) from e
            except Exception as e:
                logger.error(f"[Visual] Rendering failed for {url}: {e}", exc_info=True)
                raise AnalysisError(AnalysisErrorKind.RENDERING_FAILURE, url, str(e)) from e

    async def analyze_multiple(self, urls: Sequence[str], **kwargs) -> List[ScreenshotAnalysis]:
        """
        Analyze several sites in parallel, each in its own session.
        Failures are logged and dropped; successes keep input order.
        """
        logger.info(f"[Visual] Analyzing {len(urls)} sites in parallel...")
        results = await asyncio.gather(
            *[self.analyze(url, **kwargs) for url in urls],
            return_exceptions=True,
        )

        analyses = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"[Visual] Failed to analyze {url}: {result}")
                continue
            analyses.append(result)
        return analyses

    async def _analyze_page(
        self,
        page: Any,
        url: str,
        viewport: Viewport,
        wait_millis: int,
        manual_mode: bool,
        progress: Optional[ProgressChannel],
    ) -> ScreenshotAnalysis:
        await self._navigate(page, url)
        publish(progress, "📄 Page loaded")

        if manual_mode:
            await self._manual_window(progress)
            bypass = BypassOutcome.SKIPPED
        else:
            if wait_millis:
                await asyncio.sleep(wait_millis / 1000)
            bypass = await self._bypass.run(page)
            if bypass == BypassOutcome.BYPASSED:
                publish(progress, "🔓 Interstitial dismissed")
            elif bypass == BypassOutcome.FAILED:
                publish(progress, "⚠️ Could not dismiss interstitial, analyzing current view")

        publish(progress, "📜 Scrolling to load lazy content...")
        await self._scroll_to_load_lazy_content(page, scroll_delay=self.scroll_delay)

        publish(progress, "🎨 Extracting design signals...")
        title = await page.title()
        background = await page.evaluate(BODY_BACKGROUND_JS)
        data = await page.evaluate(EXTRACT_INSIGHTS_JS) or {}
        insights = build_insights(data)

        publish(progress, "📸 Capturing screenshot...")
        raw = await page.screenshot(type="jpeg", quality=85, full_page=False)
        image, width, height = await asyncio.to_thread(
            downscale_screenshot, raw, self.screenshot_max_width
        )
        logger.info(f"[Visual] Screenshot captured for {url}: {width}x{height}, {len(image) // 1024}KB")

        return ScreenshotAnalysis(
            source_url=url,
            image=image,
            image_width=width,
            image_height=height,
            metadata=PageMetadata(
                title=title or "",
                viewport=viewport,
                color_scheme=detect_color_scheme(background or ""),
            ),
            insights=insights,
            bypass=bypass,
        )

    async def _navigate(self, page: Any, url: str) -> None:
        """
        Load the page, then wait for network quiescence inside the same
        time budget. A page that loads but never goes idle is still used.
        """
        timeout_ms = int(self.navigation_timeout * 1000)
        loop = asyncio.get_running_loop()
        started = loop.time()

        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

        remaining_ms = timeout_ms - int((loop.time() - started) * 1000)
        if remaining_ms <= 0:
            return
        try:
            await page.wait_for_load_state("networkidle", timeout=remaining_ms)
        except PlaywrightTimeout:
            logger.debug(f"[Visual] Network never went idle for {url}, continuing")

    async def _manual_window(self, progress: Optional[ProgressChannel]) -> None:
        """Keep the visible browser open so a human can click through gates"""
        publish(progress, f"👁️ Browser open for manual interaction ({int(self.manual_window)}s)...")
        elapsed = 0.0
        while elapsed < self.manual_window:
            step = min(self.manual_tick, self.manual_window - elapsed)
            await asyncio.sleep(step)
            elapsed += step
            remaining = self.manual_window - elapsed
            if remaining > 0:
                publish(progress, f"⏳ {math.ceil(remaining)}s remaining for manual interaction...")
        publish(progress, "▶️ Resuming analysis")

    async def _scroll_to_load_lazy_content(
        self,
        page: Any,
        max_scrolls: int = 20,
        scroll_delay: float = 0.3
    ) -> None:
        """
        Scroll through the page to trigger lazy loading, then back to top.

        Args:
            page: Playwright page
            max_scrolls: Bound for infinite-scroll pages
            scroll_delay: Wait after each step (seconds)
        """
        try:
            dimensions = await page.evaluate(SCROLL_DIMENSIONS_JS)
            viewport_height = dimensions['viewportHeight'] or 1
            last_scroll_height = dimensions['scrollHeight']
            current_position = 0
            scroll_count = 0

            while scroll_count < max_scrolls:
                current_position += viewport_height
                await page.evaluate(SCROLL_TO_JS, current_position)
                await asyncio.sleep(scroll_delay)

                new_scroll_height = await page.evaluate(SCROLL_HEIGHT_JS)
                scroll_count += 1

                if current_position >= new_scroll_height and new_scroll_height <= last_scroll_height:
                    break
                last_scroll_height = new_scroll_height

            logger.debug(f"[Visual] Scrolled {scroll_count} times")

            await page.evaluate(SCROLL_TO_JS, 0)
            await asyncio.sleep(min(0.5, scroll_delay * 2))

        except Exception as e:
            logger.warning(f"[Visual] Error while scrolling for lazy content: {e}")
            try:
                await page.evaluate(SCROLL_TO_JS, 0)
            except Exception as scroll_error:
                logger.debug(f"[Visual] Could not scroll back to top: {scroll_error}")
