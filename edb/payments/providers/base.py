import logging

import requests
from fastapi.concurrency import run_in_threadpool

from edb.config import settings

logger = logging.getLogger(__name__)


def format_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


class ProviderError(Exception):
    pass


class PaymentProvider:
    """Adaptateur d'un prestataire de paiement en ligne.

    Les sous-classes implémentent les appels HTTP synchrones
    (``_request_checkout`` et ``_request_status``), exécutés dans le
    threadpool pour ne pas bloquer la boucle d'événements.
    """

    name = ""
    test_host = ""

    def __init__(self):
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS
        self.currency = settings.PAYMENT_CURRENCY

    @staticmethod
    def return_url(outcome: str) -> str:
        return f"{settings.APP_URL}/payment/{outcome}"

    def test_url(self, payment_id: int, amount: float) -> str:
        return f"https://payment-test.{self.test_host}.com?id={payment_id}&amount={format_amount(amount)}"

    def _bearer_headers(self, api_key: str) -> dict:
        return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    def credentials(self) -> tuple:
        raise NotImplementedError

    def configured(self) -> bool:
        return all(self.credentials())

    def _request_checkout(self, payment_id: int, amount: float) -> str:
        raise NotImplementedError

    def _request_status(self, reference: str) -> dict:
        raise NotImplementedError

    async def initiate_payment(self, payment_id: int, amount: float) -> str:
        if not self.configured():
            logger.warning(f"{self.name} non configuré : URL de test pour le paiement {payment_id}")
            return self.test_url(payment_id, amount)

        try:
            url = await run_in_threadpool(self._request_checkout, payment_id, amount)
            if not url:
                raise ProviderError("URL de paiement absente de la réponse")
            return url
        except (requests.RequestException, ProviderError, KeyError, TypeError, ValueError) as e:
            # Sans prestataire joignable, une URL de test permet de poursuivre le parcours
            logger.error(f"{self.name} : échec de l'initialisation du paiement {payment_id} ({e})")
            return self.test_url(payment_id, amount)

    async def verify_payment(self, reference: str) -> dict:
        try:
            return await run_in_threadpool(self._request_status, reference)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"{self.name} : erreur de vérification pour {reference} ({e})")
            raise ProviderError(str(e)) from e
