# Analyzer package - analyzers and report model
from .base import AnalyzerKind, BaseAnalyzer, FailedOutcome, SkippedOutcome, SuccessOutcome
from .report import AnalysisReport, ValidatedURL

__all__ = [
    "AnalyzerKind",
    "BaseAnalyzer",
    "FailedOutcome",
    "SkippedOutcome",
    "SuccessOutcome",
    "AnalysisReport",
    "ValidatedURL",
]
