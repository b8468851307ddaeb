import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import requests

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


def to_minor_units(price) -> int:
    """Convert a decimal price (e.g. dollars) to whole cents, rounding half up."""
    if isinstance(price, bool) or price is None:
        raise ValueError("Price must be a number.")
    try:
        amount = Decimal(str(price)) * 100
    except InvalidOperation as exc:
        raise ValueError("Price must be a number.") from exc
    if not amount.is_finite():
        raise ValueError("Price must be a number.")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeGateway:
    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com"):
        self.secret_key = (secret_key or "").strip()
        self.api_base = api_base.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def create_intent(self, amount: int, currency: str) -> str:
        payload = {
            "amount": amount,
            "currency": currency,
            "payment_method_types[]": "card",
        }
        try:
            response = requests.post(
                f"{self.api_base}/v1/payment_intents",
                data=payload,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        except requests.RequestException as exc:
            logger.error("Stripe request failed: %s", exc)
            raise PaymentGatewayError("Payment provider is unreachable.") from exc

        if response.status_code >= 300:
            logger.error("Stripe payment intent failed: %s", response.text)
            raise PaymentGatewayError("Payment provider rejected the request.")

        try:
            client_secret = response.json().get("client_secret")
        except ValueError:
            client_secret = None
        if not client_secret:
            raise PaymentGatewayError("Payment provider returned no client secret.")
        return client_secret
