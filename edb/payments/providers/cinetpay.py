import requests

from edb.config import settings
from edb.payments.providers.base import PaymentProvider

CINETPAY_PAYMENT_URL = "https://api-checkout.cinetpay.com/v2/payment"
CINETPAY_CHECK_URL = "https://api-checkout.cinetpay.com/v2/payment/check"


class CinetPayProvider(PaymentProvider):
    name = "CinetPay"
    test_host = "cinetpay"

    def credentials(self) -> tuple:
        return settings.CINETPAY_API_KEY, settings.CINETPAY_SITE_ID

    def _request_checkout(self, payment_id: int, amount: float) -> str:
        response = requests.post(
            CINETPAY_PAYMENT_URL,
            json={
                "apikey": settings.CINETPAY_API_KEY,
                "site_id": settings.CINETPAY_SITE_ID,
                "transaction_id": str(payment_id),
                "amount": amount,
                "currency": self.currency,
                "description": "Abonnement École de la Bourse",
                "notify_url": settings.CINETPAY_NOTIFY_URL,
                "return_url": self.return_url("success"),
                "channels": "ALL",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["data"]["payment_url"]

    def _request_status(self, reference: str) -> dict:
        response = requests.post(
            CINETPAY_CHECK_URL,
            json={
                "apikey": settings.CINETPAY_API_KEY,
                "site_id": settings.CINETPAY_SITE_ID,
                "transaction_id": reference,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
