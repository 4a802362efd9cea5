"""
Periodic maintenance tasks, scheduled by Celery beat (see celery_app).
"""

import logging
from celery import shared_task

from pulse.core.config import settings
from pulse.core.database import SessionLocal
from pulse.crud.sessions import SessionRegistry
from pulse.crud.single_use_tokens import SingleUseTokenRegistry

logger = logging.getLogger(__name__)


@shared_task(name="purge_stale_sessions")
def purge_stale_sessions(retention_days: int = None):
    """Delete sessions with no activity inside the retention window."""
    days = retention_days if retention_days is not None else settings.SESSION_RETENTION_DAYS
    db = SessionLocal()
    try:
        deleted = SessionRegistry(db).purge_older_than(days)
        db.commit()
        logger.info(f"Purged {deleted} sessions inactive for more than {days} days")
        return {"status": "success", "deleted_count": deleted}
    except Exception as e:
        db.rollback()
        logger.error(f"Error purging stale sessions: {str(e)}")
        raise
    finally:
        db.close()


@shared_task(name="cleanup_expired_single_use_tokens")
def cleanup_expired_single_use_tokens():
    """Delete expired tokens and used tokens past their retention window."""
    db = SessionLocal()
    try:
        deleted = SingleUseTokenRegistry(db).cleanup_expired(settings.USED_TOKEN_RETENTION_HOURS)
        db.commit()
        logger.info(f"Cleaned up {deleted} expired single-use tokens")
        return {"status": "success", "deleted_count": deleted}
    except Exception as e:
        db.rollback()
        logger.error(f"Error cleaning up single-use tokens: {str(e)}")
        raise
    finally:
        db.close()
