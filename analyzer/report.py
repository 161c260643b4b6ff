"""
URL validation and the aggregate analysis report.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field

from analyzer.base import (
    AnalyzerKind,
    AnalyzerOutcome,
    CamelModel,
    SuccessOutcome,
    round_half_up,
)
from core.errors import InvalidURLError

SUPPORTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class ValidatedURL:
    """A parsed http(s) URL; equality and cache keys use the normalized form"""

    value: str

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ValidatedURL":
        """
        Validate and normalize a user-supplied URL.

        Lowercases scheme and host, drops default ports and fragments, and
        turns an empty path into "/". Query strings are kept as-is. URLs
        carrying credentials are rejected rather than stripped, since the
        normalized form is what gets navigated, cached and reported.

        Raises:
            InvalidURLError: missing, unparsable, non-http(s) or credentialed URL
        """
        if raw is None or not str(raw).strip():
            raise InvalidURLError("URL is required", url=raw)

        text = str(raw).strip()
        try:
            parts = urlsplit(text)
            port = parts.port
        except ValueError:
            raise InvalidURLError("Invalid URL format", url=text)

        scheme = parts.scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise InvalidURLError("Invalid URL format", url=text)
        if not parts.hostname:
            raise InvalidURLError("Invalid URL format", url=text)
        if parts.username is not None or parts.password is not None:
            raise InvalidURLError("URLs with credentials are not supported", url=text)

        host = parts.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        if port is not None and port != DEFAULT_PORTS[scheme]:
            host = f"{host}:{port}"

        path = parts.path or "/"
        return cls(urlunsplit((scheme, host, path, parts.query, "")))

    @property
    def cache_key(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


def compute_overall_score(outcomes: Mapping[AnalyzerKind, object]) -> int:
    """round(mean of Success scores); 0 when nothing succeeded"""
    scores = [o.score for o in outcomes.values() if isinstance(o, SuccessOutcome)]
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def new_analysis_id() -> str:
    return str(uuid.uuid4())


class AnalysisReport(CamelModel):
    """Immutable aggregate of one pipeline run"""

    url: str
    per_analyzer: Dict[AnalyzerKind, AnalyzerOutcome]
    overall_score: int = Field(ge=0, le=100)
    from_cache: bool = False
    analysis_id: str
    screenshot_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def build(
        cls,
        url: ValidatedURL,
        outcomes: Mapping[AnalyzerKind, object],
        screenshot_url: Optional[str] = None,
        analysis_id: Optional[str] = None,
    ) -> "AnalysisReport":
        return cls(
            url=str(url),
            per_analyzer=dict(outcomes),
            overall_score=compute_overall_score(outcomes),
            analysis_id=analysis_id or new_analysis_id(),
            screenshot_url=screenshot_url,
            created_at=datetime.now(timezone.utc),
        )

    def as_cached(self) -> "AnalysisReport":
        return self.model_copy(update={"from_cache": True})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "AnalysisReport":
        return cls.model_validate_json(data)
