"""
Fire-and-forget notification hand-off for single-use tokens.

The auth flows call ``send()`` after their transaction has committed. Queueing
goes through ``queue_task_safely`` so a broker outage is logged and the flow
still succeeds.
"""

import logging
from typing import Optional

from pulse.core.celery_utils import queue_task_safely
from pulse.models.single_use_token import TokenPurpose

logger = logging.getLogger(__name__)


class EmailNotifier:
    def send(
        self,
        recipient: str,
        token: str,
        purpose: TokenPurpose,
        user_name: Optional[str] = None,
    ) -> bool:
        # Imported here so the tasks module (and the email service it pulls in)
        # is only loaded when something is actually sent
        from pulse.tasks.email_tasks import send_auth_email_task

        try:
            queued = queue_task_safely(
                send_auth_email_task,
                to_email=recipient,
                token=token,
                purpose=purpose.value,
                user_name=user_name,
            )
        except Exception as e:
            logger.error(f"Failed to hand off {purpose.value} email for {recipient}: {str(e)}")
            return False

        if not queued:
            logger.warning(f"{purpose.value} email for {recipient} was not queued")
        return queued
