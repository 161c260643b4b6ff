"""
Client-facing analysis session.

A SessionController owns exactly one active AnalysisSession. Submitting a new
URL replaces the session wholesale; results that arrive late for a replaced
session are dropped by identity check instead of being merged.
"""

import asyncio
import functools
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Set

from analyzer.report import AnalysisReport, ValidatedURL
from core.errors import InvalidURLError
from session.backends import AnalysisBackend
from session.email import EmailCaptureCoordinator, EmailCaptureStatus
from utils.email import is_valid_email
from utils.screenshots import capture_in_background

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class AnalysisSession:
    email: EmailCaptureCoordinator
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    current_url: Optional[str] = None
    force_rescan: bool = False
    analysis_id: Optional[str] = None
    report: Optional[AnalysisReport] = None
    error: Optional[str] = None
    screenshot_url: Optional[str] = None

    @property
    def from_cache(self) -> bool:
        return bool(self.report and self.report.from_cache)

    @property
    def finished(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.ERRORED)


class SessionController:
    def __init__(self, backend: AnalysisBackend, on_change: Optional[Callable[[AnalysisSession], None]] = None):
        self.backend = backend
        self.on_change = on_change
        self._tasks: Set[asyncio.Task] = set()
        self._session = self._new_session()

    @property
    def session(self) -> AnalysisSession:
        return self._session

    def is_current(self, session: AnalysisSession) -> bool:
        return session is self._session

    def reset(self) -> AnalysisSession:
        """Drop the current session; any in-flight results become stale"""
        self._session = self._new_session()
        self._notify(self._session)
        return self._session

    async def submit(self, url: Optional[str], force_rescan: bool = False, component: str = "all") -> AnalysisSession:
        """
        Start a new analysis and wait for it to finish.

        Returns the session that was started, which may no longer be current
        if another submission replaced it meanwhile.
        """
        session = self._new_session()
        session.current_url = url
        session.force_rescan = force_rescan
        session.state = SessionState.REQUESTED
        self._session = session
        self._notify(session)

        try:
            normalized = ValidatedURL.parse(url)
        except InvalidURLError as e:
            self._fail(session, str(e))
            return session

        session.current_url = str(normalized)
        session.state = SessionState.RUNNING
        self._notify(session)

        capture_in_background(
            self.backend.capture_screenshot,
            str(normalized),
            functools.partial(self._apply_preview, session),
            self._tasks,
        )

        try:
            report = await self.backend.analyze(str(normalized), force_rescan=force_rescan, component=component)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Analysis failed for {normalized}: {str(e)}")
            self._fail(session, str(e) or "Analysis failed")
            return session

        if not self.is_current(session):
            logger.info(f"Discarding late result for replaced session {session.session_id}")
            return session

        session.report = report
        session.analysis_id = report.analysis_id
        if report.screenshot_url:
            session.screenshot_url = report.screenshot_url
        session.state = SessionState.COMPLETED
        self._notify(session)

        await session.email.on_analysis_id(report.analysis_id)
        return session

    async def submit_email(self, email: str) -> EmailCaptureStatus:
        """
        Raises:
            ValueError: malformed email address
        """
        if not is_valid_email(email):
            raise ValueError("Invalid email format")
        return await self._session.email.submit(email.strip())

    async def drain(self):
        """Wait for background work (preview screenshots) to settle"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _apply_preview(self, session: AnalysisSession, screenshot_url: str):
        if not self.is_current(session):
            return
        # The report's own screenshot supersedes the preview
        if session.report is not None and session.report.screenshot_url:
            return
        session.screenshot_url = screenshot_url
        self._notify(session)

    def _fail(self, session: AnalysisSession, message: str):
        if not self.is_current(session):
            return
        session.error = message
        session.state = SessionState.ERRORED
        self._notify(session)

    def _new_session(self) -> AnalysisSession:
        return AnalysisSession(email=EmailCaptureCoordinator(self.backend.submit_email))

    def _notify(self, session: AnalysisSession):
        if self.on_change is not None and self.is_current(session):
            self.on_change(session)
