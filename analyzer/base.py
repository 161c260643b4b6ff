"""
Analyzer interface and outcome types.

Every analyzer invocation resolves to exactly one AnalyzerOutcome:
Success (score + detail), Failed (reason) or Skipped.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from playwright.async_api import Page
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.errors import AnalyzerFailure


class AnalyzerKind(str, Enum):
    SPEED = "speed"
    FONT = "font"
    IMAGE = "image"
    CTA = "cta"


class CamelModel(BaseModel):
    """Immutable model serialized with camelCase keys"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AnalyzerDetail(CamelModel):
    issues: List[str] = []
    recommendations: List[str] = []
    metrics: Dict[str, Any] = {}


class SuccessOutcome(CamelModel):
    status: Literal["success"] = "success"
    score: int = Field(ge=0, le=100)
    detail: AnalyzerDetail = AnalyzerDetail()


class FailedOutcome(CamelModel):
    status: Literal["failed"] = "failed"
    reason: str


class SkippedOutcome(CamelModel):
    status: Literal["skipped"] = "skipped"


AnalyzerOutcome = Annotated[
    Union[SuccessOutcome, FailedOutcome, SkippedOutcome],
    Field(discriminator="status"),
]


@dataclass
class AnalyzerResult:
    """What an analyzer returns on success; the pipeline wraps it in SuccessOutcome"""

    score: float
    issues: List[str]
    recommendations: List[str]
    metrics: Dict[str, Any]

    def to_outcome(self) -> SuccessOutcome:
        return SuccessOutcome(
            score=clamp_score(self.score),
            detail=AnalyzerDetail(
                issues=list(self.issues),
                recommendations=list(self.recommendations),
                metrics=dict(self.metrics),
            ),
        )


@dataclass
class RenderedPage:
    """
    The pipeline's single navigation of the target URL, shared by analyzers.

    When navigation timed out or failed, `degraded` is True and analyzers that
    need page content must fail rather than score an empty page.
    """

    url: str
    page: Optional[Page]
    degraded: bool = False
    navigation_error: Optional[str] = None
    load_time_ms: Optional[float] = None

    @property
    def usable(self) -> bool:
        return self.page is not None and not self.degraded


class BaseAnalyzer(ABC):
    """Abstract base class for all analyzers."""

    kind: AnalyzerKind
    needs_page: bool = True

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def analyze(self, url: str, rendered: Optional[RenderedPage]) -> AnalyzerResult:
        """
        Run analysis on the given URL.

        Args:
            url: The normalized URL being analyzed
            rendered: The shared rendered page, if the run acquired one

        Returns:
            AnalyzerResult with score, issues, recommendations and metrics

        Raises:
            Any exception; the pipeline turns it into a Failed outcome
        """

    def require_page(self, rendered: Optional[RenderedPage]) -> Page:
        """Return the live page or raise when it is missing or degraded"""
        if rendered is None or rendered.page is None:
            raise AnalyzerFailure(self.kind, "No rendered page available")
        if rendered.degraded:
            raise AnalyzerFailure(
                self.kind,
                f"Page did not load: {rendered.navigation_error or 'navigation timeout'}",
            )
        return rendered.page


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(score: float) -> int:
    return max(0, min(100, round_half_up(score)))


def letter_grade(score: float) -> str:
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"
