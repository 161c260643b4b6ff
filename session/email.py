"""
Email capture for one analysis session.

The visitor may leave an email before the analysis id exists. The address is
then held in a single slot and sent as soon as the id arrives. Each session
sends at most one email; delivery is best-effort.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.errors import EmailDispatchError

logger = logging.getLogger(__name__)

Delivery = Callable[[str, str], Awaitable[None]]


class EmailCaptureStatus(str, Enum):
    NOT_SUBMITTED = "not_submitted"
    PENDING_ANALYSIS_ID = "pending_analysis_id"
    DISPATCHED = "dispatched"


class EmailCaptureCoordinator:
    def __init__(self, deliver: Delivery):
        self._deliver = deliver
        self._status = EmailCaptureStatus.NOT_SUBMITTED
        self._pending_email: Optional[str] = None
        self._analysis_id: Optional[str] = None
        self.dispatched_email: Optional[str] = None

    @property
    def status(self) -> EmailCaptureStatus:
        return self._status

    @property
    def pending_email(self) -> Optional[str]:
        return self._pending_email

    @property
    def analysis_id(self) -> Optional[str]:
        return self._analysis_id

    async def submit(self, email: str) -> EmailCaptureStatus:
        """
        Send the email now if the analysis id is known, otherwise hold it.

        A later submission while pending replaces the held address. Once
        dispatched, further submissions are ignored.
        """
        if self._status == EmailCaptureStatus.DISPATCHED:
            logger.info("📧 Email already dispatched for this session, ignoring new submission")
            return self._status

        if self._analysis_id is None:
            self._pending_email = email
            self._status = EmailCaptureStatus.PENDING_ANALYSIS_ID
            logger.info("📧 Email held until the analysis id is available")
            return self._status

        await self._dispatch(email, self._analysis_id)
        return self._status

    async def on_analysis_id(self, analysis_id: str) -> EmailCaptureStatus:
        """Record the analysis id and flush the held email, if any"""
        if self._analysis_id is not None:
            return self._status

        self._analysis_id = analysis_id
        if self._status == EmailCaptureStatus.PENDING_ANALYSIS_ID:
            email = self._pending_email
            self._pending_email = None
            await self._dispatch(email, analysis_id)
        return self._status

    async def _dispatch(self, email: str, analysis_id: str):
        # Claim the slot before the first await so a concurrent submit or
        # flush can never send a second time
        self._status = EmailCaptureStatus.DISPATCHED
        self.dispatched_email = email

        try:
            await self._deliver(email, analysis_id)
        except EmailDispatchError as e:
            logger.warning(f"⚠️  {str(e)}")
        except Exception as e:
            logger.exception(f"❌ Unexpected email delivery error: {e}")
