# src/focus_companion/sessions/recovery.py

from __future__ import annotations

import logging

from ..core.clock import SystemClock, to_epoch
from ..core.ports import Clock
from ..storage.db import Database
from .session_models import CancelledBy, SessionStatus, SessionType

logger = logging.getLogger(__name__)

# Timer mode a client lands in after recovery.
RECOVERED_TIMER_MODE = SessionType.SHORT_BREAK


class RecoveryReconciler:
    """
    Repairs sessions abandoned by a crash or reload.

    Meant to run once per client bootstrap, before the client starts anything new.
    """

    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self._db = db
        self._clock: Clock = clock or SystemClock()

    def reset(self, owner_id: str) -> int:
        """
        Cancel every in_progress session of the owner (cancelled_by=recovery)
        in one bulk update. Returns how many sessions were reset; 0 once clean.
        """
        with self._db.unit_of_work() as uow:
            cur = uow.execute(
                """
                UPDATE sessions
                SET status = ?, cancelled_by = ?, ended_at = ?
                WHERE owner_id = ? AND status = ?
                """,
                (
                    SessionStatus.CANCELLED.value,
                    CancelledBy.RECOVERY.value,
                    to_epoch(self._clock.now()),
                    owner_id,
                    SessionStatus.IN_PROGRESS.value,
                ),
            )
            reset_count = max(0, cur.rowcount)

        if reset_count:
            logger.warning("Recovery cancelled %d dangling session(s) owner=%s", reset_count, owner_id)
        else:
            logger.debug("Recovery found nothing to reset owner=%s", owner_id)
        return reset_count
