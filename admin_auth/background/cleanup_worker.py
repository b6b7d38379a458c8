"""
Session Cleanup Worker
Background task that periodically expires stale admin state
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from admin_auth.core.config import settings
from admin_auth.services.mfa_service import MfaStepUpHandler
from admin_auth.services.session_service import AdminSessionManager

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    purged_tokens: int
    expired_sessions: int


class CleanupWorker:
    """
    Background worker for admin state housekeeping.

    Each cycle:
    - Purges MFA pending tokens past their TTL
    - Deactivates admin sessions past their expiry
    """

    def __init__(
        self,
        mfa: MfaStepUpHandler,
        sessions: AdminSessionManager,
        interval_seconds: Optional[int] = None
    ):
        self.mfa = mfa
        self.sessions = sessions
        self.interval_seconds = (
            settings.CLEANUP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )

        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the cleanup worker."""
        if self.running:
            logger.warning("Cleanup worker is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run_loop())
        logger.info(f"Cleanup worker started (interval {self.interval_seconds}s)")

    async def stop(self):
        """Stop the cleanup worker."""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("Cleanup worker stopped")

    def run_once(self) -> CleanupResult:
        """Run one cleanup cycle synchronously"""
        purged = self.mfa.purge_expired()
        expired = self.sessions.deactivate_expired()
        if purged or expired:
            logger.info(f"Cleanup cycle: {purged} MFA tokens purged, {expired} sessions expired")
        return CleanupResult(purged_tokens=purged, expired_sessions=expired)

    async def _run_loop(self):
        while self.running:
            try:
                await asyncio.to_thread(self.run_once)
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in cleanup loop: {e}", exc_info=True)
                await asyncio.sleep(min(60, self.interval_seconds * 2))
