"""
Session registry: active-session bookkeeping and revocation.

All state changes are conditional UPDATE/DELETE statements so they stay
correct when several API instances act on the same user at once:

- revoke() only matches rows whose revoked_at is still NULL (idempotent)
- touch() only matches non-revoked rows, so activity never resurrects a session
- purge_older_than() deletes by last_active_at only. A session used within the
  retention window is kept even if it has been revoked. Since touch() cannot
  update a revoked session, last_active_at <= revoked_at always holds and a
  session revoked before the cutoff is purged as well.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from pulse.core.config import settings
from pulse.core.database import utcnow
from pulse.core.exceptions import AuthenticationError, NotFoundError
from pulse.models.session import UserSession
from pulse.schemas.session import (
    BulkRevokeError,
    BulkRevokeResult,
    SecurityAlert,
    SecurityAlertType,
    SessionStats,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        concurrency_alert_threshold: int = settings.SESSION_CONCURRENCY_ALERT_THRESHOLD,
    ):
        self.db = db
        self.clock = clock
        self.concurrency_alert_threshold = concurrency_alert_threshold

    # ---------- Creation & lookup ----------

    def create(
        self,
        user_id: int,
        token: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UserSession:
        now = self.clock()
        session = UserSession(
            user_id=user_id,
            token=token,
            user_agent=user_agent,
            ip_address=ip_address,
            last_active_at=now,
            created_at=now,
        )
        self.db.add(session)
        self.db.flush()
        return session

    def find_by_token(self, token: str) -> Optional[UserSession]:
        if not token:
            return None
        return self.db.execute(
            select(UserSession).where(UserSession.token == token)
        ).scalar_one_or_none()

    def get(self, session_id: int, user_id: Optional[int] = None) -> Optional[UserSession]:
        stmt = select(UserSession).where(UserSession.id == session_id)
        if user_id is not None:
            stmt = stmt.where(UserSession.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_user(
        self,
        user_id: int,
        active: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[UserSession], int]:
        """
        Page through a user's sessions, most recently active first.

        Args:
            active: True for non-revoked only, False for revoked only, None for all

        Returns:
            (sessions on this page, total matching sessions)
        """
        conditions = [UserSession.user_id == user_id]
        if active is True:
            conditions.append(UserSession.revoked_at.is_(None))
        elif active is False:
            conditions.append(UserSession.revoked_at.is_not(None))

        total = self.db.execute(
            select(func.count(UserSession.id)).where(*conditions)
        ).scalar_one()
        sessions = self.db.execute(
            select(UserSession)
            .where(*conditions)
            .order_by(UserSession.last_active_at.desc(), UserSession.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(sessions), total

    # ---------- Revocation ----------

    def revoke(self, session_id: int, user_id: Optional[int] = None) -> bool:
        """
        Revoke one session.

        Args:
            user_id: when given, only a session owned by this user matches

        Returns:
            bool: True if this call revoked it, False if missing or already revoked
        """
        conditions = [UserSession.id == session_id, UserSession.revoked_at.is_(None)]
        if user_id is not None:
            conditions.append(UserSession.user_id == user_id)

        result = self.db.execute(
            update(UserSession)
            .where(*conditions)
            .values(revoked_at=self.clock())
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def revoke_all_except(self, user_id: int, keep_session_id: Optional[int] = None) -> int:
        """
        Revoke every active session of the user except keep_session_id.

        Pass keep_session_id=None to revoke all of them.

        Returns:
            int: number of sessions revoked by this call
        """
        conditions = [UserSession.user_id == user_id, UserSession.revoked_at.is_(None)]
        if keep_session_id is not None:
            conditions.append(UserSession.id != keep_session_id)

        result = self.db.execute(
            update(UserSession)
            .where(*conditions)
            .values(revoked_at=self.clock())
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount:
            logger.info(f"Revoked {result.rowcount} sessions for user {user_id}")
        return result.rowcount

    def bulk_revoke(self, session_ids: Iterable[int], user_id: Optional[int] = None) -> BulkRevokeResult:
        """Revoke several sessions, reporting per-session outcome."""
        outcome = BulkRevokeResult()
        for session_id in session_ids:
            if self.revoke(session_id, user_id=user_id):
                outcome.success += 1
            else:
                outcome.failed += 1
                outcome.errors.append(
                    BulkRevokeError(session_id=session_id, error="Session not found or already revoked")
                )
        return outcome

    # ---------- Activity ----------

    def touch(self, session_id: int) -> None:
        """
        Record activity on a session.

        Raises:
            NotFoundError: no such session
            AuthenticationError: the session has been revoked
        """
        result = self.db.execute(
            update(UserSession)
            .where(UserSession.id == session_id, UserSession.revoked_at.is_(None))
            .values(last_active_at=self.clock())
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 1:
            return

        exists = self.db.execute(
            select(UserSession.id).where(UserSession.id == session_id)
        ).first()
        if exists is None:
            raise NotFoundError("Session not found")
        raise AuthenticationError("Session has been revoked")

    # ---------- Maintenance ----------

    def purge_older_than(self, days: int) -> int:
        """
        Delete sessions whose last activity predates now - days.

        Returns:
            int: number of sessions deleted
        """
        if days < 0:
            raise ValueError("days must be non-negative")
        cutoff = self.clock() - timedelta(days=days)
        result = self.db.execute(
            delete(UserSession)
            .where(UserSession.last_active_at < cutoff)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    # ---------- Reporting ----------

    def stats(self, user_id: int) -> SessionStats:
        total = self._count(UserSession.user_id == user_id)
        active = self._count(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        devices = self.db.execute(
            select(func.count(func.distinct(UserSession.user_agent)))
            .where(UserSession.user_id == user_id, UserSession.user_agent.is_not(None))
        ).scalar_one()
        ips = self.db.execute(
            select(func.count(func.distinct(UserSession.ip_address)))
            .where(UserSession.user_id == user_id, UserSession.ip_address.is_not(None))
        ).scalar_one()
        last_activity = self.db.execute(
            select(UserSession.last_active_at)
            .where(UserSession.user_id == user_id)
            .order_by(UserSession.last_active_at.desc())
            .limit(1)
        ).scalar_one_or_none()

        return SessionStats(
            total_sessions=total,
            active_sessions=active,
            revoked_sessions=total - active,
            unique_devices=devices,
            unique_ip_addresses=ips,
            last_activity=last_activity,
        )

    def security_alerts(
        self,
        user_id: int,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> List[SecurityAlert]:
        """
        Compare an incoming login against the user's session history.

        Call before creating the new session. A user's very first login
        produces no device/location alerts.
        """
        now = self.clock()
        alerts: List[SecurityAlert] = []
        has_history = self._count(UserSession.user_id == user_id) > 0

        if has_history and user_agent and not self._count(
            UserSession.user_id == user_id, UserSession.user_agent == user_agent
        ):
            alerts.append(SecurityAlert(
                type=SecurityAlertType.NEW_DEVICE,
                user_id=user_id,
                details={"user_agent": user_agent},
                timestamp=now,
            ))

        if has_history and ip_address and not self._count(
            UserSession.user_id == user_id, UserSession.ip_address == ip_address
        ):
            alerts.append(SecurityAlert(
                type=SecurityAlertType.NEW_LOCATION,
                user_id=user_id,
                details={"ip_address": ip_address},
                timestamp=now,
            ))

        active = self._count(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        if active > self.concurrency_alert_threshold:
            alerts.append(SecurityAlert(
                type=SecurityAlertType.CONCURRENT_SESSIONS,
                user_id=user_id,
                details={"active_sessions": active + 1},
                timestamp=now,
            ))

        return alerts

    def _count(self, *conditions) -> int:
        return self.db.execute(
            select(func.count(UserSession.id)).where(*conditions)
        ).scalar_one()


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
