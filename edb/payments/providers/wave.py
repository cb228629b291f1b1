import requests

from edb.config import settings
from edb.payments.providers.base import PaymentProvider, format_amount

WAVE_CHECKOUT_URL = "https://api.wave.com/v1/checkout/sessions"


class WaveProvider(PaymentProvider):
    name = "Wave"
    test_host = "wave"

    def credentials(self) -> tuple:
        return (settings.WAVE_API_KEY,)

    def _request_checkout(self, payment_id: int, amount: float) -> str:
        response = requests.post(
            WAVE_CHECKOUT_URL,
            json={
                # Wave attend le montant sous forme de chaîne
                "amount": format_amount(amount),
                "currency": self.currency,
                "error_url": self.return_url("error"),
                "success_url": self.return_url("success"),
                "webhook_url": settings.WAVE_CALLBACK_URL,
                "client_reference": str(payment_id),
            },
            headers=self._bearer_headers(settings.WAVE_API_KEY),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["wave_launch_url"]

    def _request_status(self, reference: str) -> dict:
        response = requests.get(
            f"{WAVE_CHECKOUT_URL}/{reference}",
            headers=self._bearer_headers(settings.WAVE_API_KEY),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
