"""
AWS SES Email Service for account emails.

Sends the email-verification and password-reset links carrying single-use
tokens.
"""

import logging
from typing import Optional
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from pulse.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via AWS SES.

    The boto3 client is created on first use so importing this module (e.g.
    in the API process or tests) never needs AWS configuration.
    """

    def __init__(self):
        self._ses_client = None

    @property
    def ses_client(self):
        if self._ses_client is None:
            session_kwargs = {
                'region_name': settings.AWS_REGION,
            }
            # Add credentials if provided (otherwise uses IAM role)
            if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
                session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY
            self._ses_client = boto3.client('ses', **session_kwargs)
        return self._ses_client

    def send_verification_email(self, to_email: str, token: str, user_name: Optional[str] = None) -> bool:
        link = f"{settings.FRONTEND_URL}/verify-email?token={token}"
        hours = settings.EMAIL_VERIFICATION_TOKEN_TTL_SECONDS // 3600
        return self._send(
            to_email=to_email,
            subject=f"Verify Your Email - {settings.AWS_SES_FROM_NAME}",
            heading="Verify Your Email Address",
            intro="Thanks for signing up! Confirm your email address to activate your account:",
            button_label="Verify Email",
            link=link,
            expiry_note=f"This link will expire in {hours} hours.",
            user_name=user_name,
        )

    def send_password_reset_email(self, to_email: str, token: str, user_name: Optional[str] = None) -> bool:
        link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
        minutes = settings.PASSWORD_RESET_TOKEN_TTL_SECONDS // 60
        return self._send(
            to_email=to_email,
            subject=f"Reset Your Password - {settings.AWS_SES_FROM_NAME}",
            heading="Reset Your Password",
            intro="We received a request to reset your password. Use the link below to choose a new one:",
            button_label="Reset Password",
            link=link,
            expiry_note=f"This link will expire in {minutes} minutes and can only be used once.",
            user_name=user_name,
        )

    def _send(
        self,
        to_email: str,
        subject: str,
        heading: str,
        intro: str,
        button_label: str,
        link: str,
        expiry_note: str,
        user_name: Optional[str] = None,
    ) -> bool:
        """
        Send one templated email.

        Returns:
            bool: True if SES accepted the message, False otherwise
        """
        greeting = f"Hi {user_name}," if user_name else "Hi there,"
        html_body = self._build_html(greeting, heading, intro, button_label, link, expiry_note)
        text_body = self._build_text(greeting, intro, link, expiry_note)

        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to_email]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {
                        'Html': {'Data': html_body, 'Charset': 'UTF-8'},
                        'Text': {'Data': text_body, 'Charset': 'UTF-8'}
                    }
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Email '{subject}' sent to {to_email} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error(f"Email rejected: {error_message}")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender email not verified in SES")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False

    def _build_html(self, greeting: str, heading: str, intro: str, button_label: str, link: str, expiry_note: str) -> str:
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{heading}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
    <table role="presentation" style="width: 100%; border-collapse: collapse;">
        <tr>
            <td align="center" style="padding: 40px 0;">
                <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px;">
                    <tr>
                        <td style="padding: 40px 40px 20px 40px; text-align: center;">
                            <h1 style="margin: 0; color: #333333; font-size: 28px; font-weight: 600;">{heading}</h1>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 0 40px 40px 40px;">
                            <p style="margin: 0 0 20px 0; color: #666666; font-size: 16px; line-height: 1.5;">{greeting}</p>
                            <p style="margin: 0 0 30px 0; color: #666666; font-size: 16px; line-height: 1.5;">{intro}</p>
                            <div style="text-align: center; margin: 0 0 30px 0;">
                                <a href="{link}" style="background-color: #4F46E5; color: #ffffff; padding: 14px 28px; border-radius: 6px; text-decoration: none; font-weight: 600;">{button_label}</a>
                            </div>
                            <p style="margin: 0 0 20px 0; color: #666666; font-size: 14px; line-height: 1.5;">{expiry_note}</p>
                            <p style="margin: 0; color: #999999; font-size: 13px; line-height: 1.5;">
                                If you didn't request this, you can safely ignore this email.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""

    def _build_text(self, greeting: str, intro: str, link: str, expiry_note: str) -> str:
        return f"""{greeting}

{intro}

{link}

{expiry_note}

If you didn't request this, you can safely ignore this email.

---
{settings.AWS_SES_FROM_NAME}
"""


# Singleton instance
email_service = EmailService()
