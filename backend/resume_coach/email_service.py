import os
import logging
from typing import List, Optional

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

logger = logging.getLogger(__name__)

_mail_client: Optional[FastMail] = None


def get_mail_client() -> Optional[FastMail]:
    """
    Build the FastMail client on first use. Returns None when SMTP is not
    configured so the app can still start without mail.
    """
    global _mail_client
    if _mail_client is not None:
        return _mail_client

    if not os.getenv("MAIL_SERVER") or not os.getenv("MAIL_FROM"):
        logger.error("MAIL_SERVER or MAIL_FROM is not set. Email sending is disabled.")
        return None

    conf = ConnectionConfig(
        MAIL_USERNAME=os.getenv("MAIL_USERNAME", ""),
        MAIL_PASSWORD=os.getenv("MAIL_PASSWORD", ""),
        MAIL_FROM=os.getenv("MAIL_FROM"),
        MAIL_FROM_NAME=os.getenv("MAIL_FROM_NAME", "Resume Coach"),
        MAIL_PORT=int(os.getenv("MAIL_PORT", 587)),
        MAIL_SERVER=os.getenv("MAIL_SERVER"),
        MAIL_STARTTLS=os.getenv("MAIL_STARTTLS", "True").lower() == "true",
        MAIL_SSL_TLS=os.getenv("MAIL_SSL_TLS", "False").lower() == "true",
        USE_CREDENTIALS=bool(os.getenv("MAIL_USERNAME")),
        VALIDATE_CERTS=True,
    )
    _mail_client = FastMail(conf)
    return _mail_client


async def send_email(to: List[str], subject: str, html_content: str, bcc: bool = False) -> bool:
    """
    Send one HTML message. With bcc=True the addresses are hidden from each
    other and the message is addressed to the sender. Returns False on failure.
    """
    fm = get_mail_client()
    if fm is None:
        return False

    if bcc:
        message = MessageSchema(
            subject=subject,
            recipients=[fm.config.MAIL_FROM],
            bcc=to,
            body=html_content,
            subtype=MessageType.html,
        )
    else:
        message = MessageSchema(subject=subject, recipients=to, body=html_content, subtype=MessageType.html)

    try:
        logger.info(f"Sending email '{subject}' to {len(to)} recipient(s)")
        await fm.send_message(message)
    except Exception as e:
        logger.error(f"FAILED to send email '{subject}'. Error: {e}", exc_info=True)
        return False
    return True
