"""
Session management endpoints.

Users can list, inspect and revoke their own sessions; admins can revoke any
session and trigger the stale-session purge.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pulse.core.config import settings
from pulse.core.database import get_db
from pulse.core.deps import AuthContext, get_current_auth, get_session_registry, require_role
from pulse.core.exceptions import NotFoundError
from pulse.core.permissions import has_role_at_least
from pulse.crud.sessions import SessionRegistry, page_count
from pulse.models.user import User, UserRole
from pulse.schemas.session import (
    BulkRevokeRequest,
    BulkRevokeResult,
    Pagination,
    PurgeResponse,
    RevokeCountResponse,
    SessionListResponse,
    SessionResponse,
    SessionStats,
)

router = APIRouter(tags=["Sessions"])
logger = logging.getLogger(__name__)


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    active: Optional[bool] = Query(None, description="true: active only, false: revoked only"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(get_current_auth),
    sessions: SessionRegistry = Depends(get_session_registry)
):
    """List the current user's sessions, most recently active first."""
    items, total = sessions.list_for_user(auth.user.id, active=active, page=page, limit=limit)
    return SessionListResponse(
        sessions=[SessionResponse.model_validate(s) for s in items],
        pagination=Pagination(page=page, limit=limit, total=total, pages=page_count(total, limit)),
    )


@router.get("/sessions/stats", response_model=SessionStats)
def session_stats(
    auth: AuthContext = Depends(get_current_auth),
    sessions: SessionRegistry = Depends(get_session_registry)
):
    return sessions.stats(auth.user.id)


@router.delete("/sessions/{session_id}", response_model=RevokeCountResponse)
def revoke_session(
    session_id: int,
    auth: AuthContext = Depends(get_current_auth),
    sessions: SessionRegistry = Depends(get_session_registry),
    db: Session = Depends(get_db)
):
    """
    Revoke one session.

    Owners may revoke their own sessions, admins any session. Revoking an
    already revoked session succeeds with revoked=0.
    """
    target = sessions.get(session_id)
    # Other users' sessions look missing to non-admins
    if target is None or (
        target.user_id != auth.user.id and not has_role_at_least(db, auth.user.id, UserRole.ADMIN)
    ):
        raise NotFoundError("Session not found")

    revoked = sessions.revoke(session_id)
    db.commit()

    if revoked:
        logger.info(f"Session {session_id} revoked by user {auth.user.id}")
    return RevokeCountResponse(revoked=1 if revoked else 0)


@router.post("/sessions/revoke-others", response_model=RevokeCountResponse)
def revoke_other_sessions(
    auth: AuthContext = Depends(get_current_auth),
    sessions: SessionRegistry = Depends(get_session_registry),
    db: Session = Depends(get_db)
):
    """Sign out everywhere except the session making this request."""
    revoked = sessions.revoke_all_except(auth.user.id, keep_session_id=auth.session.id)
    db.commit()
    return RevokeCountResponse(revoked=revoked)


@router.post("/sessions/bulk-revoke", response_model=BulkRevokeResult)
def bulk_revoke_sessions(
    body: BulkRevokeRequest,
    auth: AuthContext = Depends(get_current_auth),
    sessions: SessionRegistry = Depends(get_session_registry),
    db: Session = Depends(get_db)
):
    """Revoke several of the current user's sessions, reporting per-session failures."""
    result = sessions.bulk_revoke(body.session_ids, user_id=auth.user.id)
    db.commit()
    return result


@router.post("/admin/sessions/purge", response_model=PurgeResponse)
def purge_sessions(
    retention_days: int = Query(settings.SESSION_RETENTION_DAYS, ge=0),
    admin: User = Depends(require_role(UserRole.ADMIN)),
    sessions: SessionRegistry = Depends(get_session_registry),
    db: Session = Depends(get_db)
):
    """Delete sessions with no activity in the last retention_days days."""
    deleted = sessions.purge_older_than(retention_days)
    db.commit()
    logger.info(f"Admin {admin.id} purged {deleted} sessions older than {retention_days} days")
    return PurgeResponse(deleted=deleted, retention_days=retention_days)
