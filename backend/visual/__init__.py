"""
Visual Analysis Module
参考网站视觉分析模块
"""

from .analyzer import VisualAnalyzer, launch_browser_session
from .bypass import (
    AffirmativeControlStrategy,
    BypassStrategy,
    ClickableControl,
    ControlEnumerationStrategy,
    GateDetector,
    InterstitialBypass,
)
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
from .progress import ProgressChannel

__all__ = [
    "VisualAnalyzer",
    "launch_browser_session",
    "AffirmativeControlStrategy",
    "BypassStrategy",
    "ClickableControl",
    "ControlEnumerationStrategy",
    "GateDetector",
    "InterstitialBypass",
    "AnalysisError",
    "AnalysisErrorKind",
    "BypassOutcome",
    "DesignInsights",
    "PageMetadata",
    "ScreenshotAnalysis",
    "SpacingSummary",
    "Viewport",
    "ProgressChannel",
]
