"""
Celery tasks for email operations.

Handles asynchronous delivery of single-use token emails with retry logic.
"""

import logging
from typing import Optional
from celery import shared_task
from pulse.models.single_use_token import TokenPurpose
from pulse.services.email_service import email_service

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SES did not accept the message; raised so Celery retries."""


@shared_task(
    bind=True,
    name="send_auth_email_task",
    max_retries=3,
    default_retry_delay=60,  # Retry after 60 seconds
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,  # Max 10 minutes between retries
    retry_jitter=True
)
def send_auth_email_task(
    self,
    to_email: str,
    token: str,
    purpose: str,
    user_name: Optional[str] = None
):
    """
    Celery task to send a password-reset or email-verification link.

    Args:
        to_email: Recipient email address
        token: Raw single-use token embedded in the link
        purpose: TokenPurpose value ("password-reset" or "email-verification")
        user_name: Optional user's name for the greeting

    Raises:
        ValueError: Unknown purpose (not retried)
        EmailDeliveryError: If email sending fails (retried with backoff)
    """
    kind = TokenPurpose(purpose)
    logger.info(f"Sending {kind.value} email to {to_email} (attempt {self.request.retries + 1})")

    if kind == TokenPurpose.PASSWORD_RESET:
        send = email_service.send_password_reset_email
    else:
        send = email_service.send_verification_email

    if not send(to_email=to_email, token=token, user_name=user_name):
        if self.request.retries >= self.max_retries:
            logger.error(f"All retry attempts exhausted for {to_email}")
        raise EmailDeliveryError(f"Failed to send {kind.value} email to {to_email}")

    logger.info(f"{kind.value} email sent successfully to {to_email}")
    return {"status": "success", "email": to_email, "purpose": kind.value}
