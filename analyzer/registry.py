"""Fixed mapping of analyzer kinds to analyzer instances."""

from typing import Dict

from analyzer.base import AnalyzerKind, BaseAnalyzer
from analyzer.cta import CTAAnalyzer
from analyzer.fonts import FontAnalyzer
from analyzer.images import ImageAnalyzer
from analyzer.speed import SpeedAnalyzer

AnalyzerRegistry = Dict[AnalyzerKind, BaseAnalyzer]


def default_analyzers() -> AnalyzerRegistry:
    return {
        AnalyzerKind.SPEED: SpeedAnalyzer(),
        AnalyzerKind.FONT: FontAnalyzer(),
        AnalyzerKind.IMAGE: ImageAnalyzer(),
        AnalyzerKind.CTA: CTAAnalyzer(),
    }
