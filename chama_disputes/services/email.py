"""Email service for dispute notification emails."""

import os
import smtplib
import socket
import logging
from html import escape
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

logger = logging.getLogger(__name__)


class EmailService:
    """
    SMTP email sender.

    When SMTP credentials are missing the service runs in DEV MODE: the
    message is logged instead of sent and send_email() returns True so the
    calling flow continues.
    """

    def __init__(self):
        self.smtp_host = os.getenv('SMTP_HOST', 'smtp.gmail.com')
        self.smtp_port = int(os.getenv('SMTP_PORT', '587'))
        self.smtp_user = os.getenv('SMTP_USER', '')
        self.smtp_password = os.getenv('SMTP_PASSWORD', '')
        self.from_email = os.getenv('FROM_EMAIL', self.smtp_user)
        self.from_name = os.getenv('FROM_NAME', 'Chama Disputes')
        self.frontend_url = os.getenv('FRONTEND_URL', 'http://localhost:3000')
        # Timeout for SMTP operations (in seconds)
        self.smtp_timeout = int(os.getenv('SMTP_TIMEOUT', '10'))

    @property
    def is_configured(self):
        return bool(self.smtp_user and self.smtp_password)

    def _create_connection(self):
        """Create SMTP connection with timeout."""
        server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.smtp_timeout)
        server.starttls()
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
        return server

    def send_email(self, to_email, subject, html_content, text_content=None):
        """
        Send an email.

        Returns:
            bool: True if sent (or logged in dev mode), False otherwise
        """
        if not self.is_configured:
            logger.info(f'[EMAIL] SMTP not configured - DEV MODE. To: {to_email} Subject: {subject}')
            return True

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            with self._create_connection() as server:
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f'[EMAIL] Sent "{subject}" to {to_email}')
            return True

        except socket.timeout:
            logger.error(f'[EMAIL] SMTP connection timed out after {self.smtp_timeout}s')
            return False
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f'[EMAIL] SMTP Authentication failed: {e}')
            return False
        except smtplib.SMTPException as e:
            logger.error(f'[EMAIL] SMTP error: {e}')
            return False
        except OSError as e:
            logger.error(f'[EMAIL] Failed to send email to {to_email}: {e}')
            return False

    def send_dispute_email(self, to_email, recipient_name, subject, message, dispute_id):
        """Send a dispute notification with a link to the dispute page."""
        dispute_link = f"{self.frontend_url}/disputes/{dispute_id}"

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: #083232; padding: 20px; border-radius: 10px 10px 0 0; text-align: center;">
                <h1 style="color: white; margin: 0; font-size: 22px;">Dispute Notification</h1>
            </div>

            <div style="background: #f9f9f9; padding: 24px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
                <p>Dear <strong>{escape(recipient_name)}</strong>,</p>
                <p>{escape(message)}</p>
                <div style="text-align: center; margin: 24px 0;">
                    <a href="{dispute_link}" style="background: #083232; color: white; padding: 12px 26px; text-decoration: none; border-radius: 8px; font-weight: 600; display: inline-block;">View Dispute</a>
                </div>
            </div>
        </body>
        </html>
        """

        text_content = f"""
        Dear {recipient_name},

        {message}

        View the dispute: {dispute_link}
        """

        return self.send_email(to_email, subject, html_content, text_content)


# Singleton instance
email_service = EmailService()
