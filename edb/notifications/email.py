from email.message import EmailMessage

import aiosmtplib

from edb.config import settings


def smtp_configured() -> bool:
    return bool(settings.SMTP_HOST)


async def send_email_async(subject: str, email_to: str, body: str):
    message = EmailMessage()
    message["From"] = settings.SMTP_FROM
    message["To"] = email_to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(
        message,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER or None,
        password=settings.SMTP_PASSWORD or None,
        use_tls=settings.SMTP_SECURE,
        start_tls=not settings.SMTP_SECURE,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
