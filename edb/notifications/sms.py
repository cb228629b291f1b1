import logging

import requests
from fastapi.concurrency import run_in_threadpool

from edb.config import settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def twilio_configured() -> bool:
    return bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER)


def _post_twilio_message(phone: str, body: str) -> dict:
    response = requests.post(
        TWILIO_MESSAGES_URL.format(sid=settings.TWILIO_ACCOUNT_SID),
        data={"From": settings.TWILIO_PHONE_NUMBER, "To": phone, "Body": body},
        auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()


async def send_sms_async(phone: str, body: str):
    """Envoie un SMS via l'API REST Twilio.

    Sans identifiants Twilio le message est seulement journalisé.
    """
    if not twilio_configured():
        logger.info(f"📱 SMS (non envoyé, Twilio non configuré) à {phone}: {body[:80]}")
        return None

    result = await run_in_threadpool(_post_twilio_message, phone, body)
    logger.info(f"📱 SMS envoyé à {phone} (sid={result.get('sid')})")
    return result
