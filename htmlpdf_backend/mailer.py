from __future__ import annotations

import html
import logging
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from .config import SMTP_FROM, SMTP_HOST, SMTP_PASS, SMTP_PORT, SMTP_STARTTLS, SMTP_USER
from .errors import MailDeliveryError, ValidationError


logger = logging.getLogger(__name__)

SUBJECT = "Your PDF Document"


def build_share_email(
    sender: str,
    recipient: str,
    link_url: str,
    expiration_days: int,
    message: Optional[str] = None,
) -> EmailMessage:
    """Plain-text + HTML email pointing the recipient at a share link."""
    note = (message or "").strip()

    text_lines = [
        "Your PDF document is ready.",
        "",
        f"Download it here: {link_url}",
        f"This link will expire in {expiration_days} days.",
    ]
    if note:
        text_lines += ["", f"Message: {note}"]
    text_lines += ["", "This is an automated message, please do not reply."]

    note_html = ""
    if note:
        note_html = (
            '<p style="margin-top: 20px; padding: 10px; background-color: #f3f4f6; '
            f'border-left: 4px solid #d1d5db;">Message: {html.escape(note)}</p>'
        )
    body_html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px;">
          <h2 style="color: #1E40AF;">Your PDF Document is Ready</h2>
          <p>You can download your document using the link below:</p>
          <p><a href="{html.escape(link_url, quote=True)}" style="display: inline-block; background-color: #1E40AF; color: white; padding: 10px 20px; text-decoration: none; border-radius: 4px;">Download Document</a></p>
          <p style="margin-top: 20px;">This link will expire in {expiration_days} days.</p>
          {note_html}
          <p style="margin-top: 30px; font-size: 12px; color: #6b7280;">This is an automated message, please do not reply.</p>
        </div>
    """

    msg = EmailMessage()
    try:
        msg["From"] = f'"PDF Service" <{sender}>'
        msg["To"] = recipient
    except ValueError as e:
        raise ValidationError(f"Invalid email address: {e}") from e
    msg["Subject"] = SUBJECT
    msg.set_content("\n".join(text_lines))
    msg.add_alternative(body_html, subtype="html")
    return msg


class Mailer:
    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        username: str = SMTP_USER,
        password: str = SMTP_PASS,
        sender: str = SMTP_FROM,
        start_tls: bool = SMTP_STARTTLS,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.start_tls = start_tls

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    async def send_share_link(
        self,
        recipient: str,
        link_url: str,
        expiration_days: int,
        message: Optional[str] = None,
    ) -> bool:
        """Send the share email. Returns False when SMTP is not configured."""
        msg = build_share_email(self.sender, recipient, link_url, expiration_days, message)

        if not self.configured:
            logger.info("SMTP not configured; email to %s would contain link %s", recipient, link_url)
            return False

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
            )
        except aiosmtplib.SMTPException as e:
            raise MailDeliveryError(f"SMTP delivery to {recipient} failed: {e}") from e
        except OSError as e:
            raise MailDeliveryError(f"SMTP connection to {self.host}:{self.port} failed: {e}") from e

        logger.info("Share email sent to %s", recipient)
        return True
