"""
Visual Analysis Models
视觉分析数据模型

Immutable result types produced by the visual analyzer.
"""

from __future__ import annotations
import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class AnalysisErrorKind(str, Enum):
    """Why a visual analysis failed"""
    NAVIGATION_TIMEOUT = "navigation_timeout"
    RENDERING_FAILURE = "rendering_failure"


class AnalysisError(Exception):
    """Visual analysis could not produce a result"""

    def __init__(self, kind: AnalysisErrorKind, url: str, message: str):
        super().__init__(f"Failed to analyze {url}: {message}")
        self.kind = kind
        self.url = url


class BypassOutcome(str, Enum):
    """Result of best-effort interstitial handling (never an error)"""
    NOT_NEEDED = "not_needed"
    BYPASSED = "bypassed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class PageMetadata:
    """Page level metadata"""
    title: str
    viewport: Viewport
    color_scheme: str  # "light" | "dark"


@dataclass(frozen=True)
class SpacingSummary:
    """Padding statistics over sampled layout blocks (px)"""
    average: int
    minimum: int
    maximum: int
    samples: int

    def describe(self) -> str:
        if not self.samples:
            return f"{self.average}px default (no padded blocks found)"
        return f"{self.average}px average ({self.minimum}px - {self.maximum}px range)"


@dataclass(frozen=True)
class DesignInsights:
    """Design signals extracted from the rendered page"""
    dominant_colors: Tuple[str, ...] = ()
    layout_system: str = "Traditional"
    typography_samples: Tuple[str, ...] = ()
    spacing: SpacingSummary = field(default_factory=lambda: SpacingSummary(16, 16, 16, 0))
    component_counts: Tuple[Tuple[str, int], ...] = ()
    section_summaries: Tuple[str, ...] = ()
    heading_texts: Tuple[str, ...] = ()
    button_texts: Tuple[str, ...] = ()

    def components(self) -> Tuple[str, ...]:
        """Human readable component list, e.g. 'Buttons (12)'"""
        labels = []
        for name, count in self.component_counts:
            if count <= 0:
                continue
            if name in ("Navigation", "Header", "Footer"):
                labels.append(name)
            else:
                labels.append(f"{name} ({count})")
        return tuple(labels)


@dataclass(frozen=True)
class ScreenshotAnalysis:
    """
    One visual analysis of a reference URL.

    Created once per analyze() call and never mutated. The image is a
    downsized viewport-only JPEG.
    """
    source_url: str
    image: bytes
    image_width: int
    image_height: int
    metadata: PageMetadata
    insights: DesignInsights
    bypass: BypassOutcome = BypassOutcome.NOT_NEEDED

    @property
    def image_base64(self) -> str:
        return base64.b64encode(self.image).decode("utf-8")

    @property
    def data_uri(self) -> str:
        return f"data:image/jpeg;base64,{self.image_base64}"

    @property
    def size_kb(self) -> int:
        return round(len(self.image) / 1024)

    def to_summary(self) -> Dict[str, Any]:
        """Convert to summary (without image data)"""
        return {
            "url": self.source_url,
            "title": self.metadata.title,
            "color_scheme": self.metadata.color_scheme,
            "layout": self.insights.layout_system,
            "colors": len(self.insights.dominant_colors),
            "sections": len(self.insights.section_summaries),
            "components": list(self.insights.components()),
            "image": {"width": self.image_width, "height": self.image_height, "kb": self.size_kb},
            "bypass": self.bypass.value,
        }
