import requests

from edb.config import settings
from edb.payments.providers.base import PaymentProvider

ORANGE_MONEY_WEBPAYMENT_URL = "https://api.orange.com/orange-money-webpay/dev/v1/webpayment"


class OrangeMoneyProvider(PaymentProvider):
    name = "Orange Money"
    test_host = "orange-money"

    def credentials(self) -> tuple:
        return settings.ORANGE_MONEY_API_KEY, settings.ORANGE_MONEY_MERCHANT_KEY

    def _request_checkout(self, payment_id: int, amount: float) -> str:
        response = requests.post(
            ORANGE_MONEY_WEBPAYMENT_URL,
            json={
                "merchant_key": settings.ORANGE_MONEY_MERCHANT_KEY,
                "currency": self.currency,
                "order_id": str(payment_id),
                "amount": amount,
                "return_url": self.return_url("success"),
                "cancel_url": self.return_url("cancel"),
                "notif_url": settings.ORANGE_MONEY_CALLBACK_URL,
            },
            headers=self._bearer_headers(settings.ORANGE_MONEY_API_KEY),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["payment_url"]

    def _request_status(self, reference: str) -> dict:
        response = requests.get(
            f"{ORANGE_MONEY_WEBPAYMENT_URL}/{reference}",
            headers=self._bearer_headers(settings.ORANGE_MONEY_API_KEY),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
