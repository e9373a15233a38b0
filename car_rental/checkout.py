import os
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import httpx

from car_rental.circuit_breaker import CircuitBreaker, CircuitOpenError
from car_rental.errors import CheckoutError

logger = logging.getLogger(__name__)

CHECKOUT_API_URL = os.getenv("CHECKOUT_API_URL", "https://api.stripe.com")
CHECKOUT_API_KEY = os.getenv("CHECKOUT_API_KEY", "")
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "usd")
CHECKOUT_SUCCESS_URL = os.getenv(
    "CHECKOUT_SUCCESS_URL",
    "http://localhost:8000/payment/success?session_id={CHECKOUT_SESSION_ID}"
)
CHECKOUT_CANCEL_URL = os.getenv("CHECKOUT_CANCEL_URL", "http://localhost:8000/payments/cancel")
CHECKOUT_TIMEOUT = float(os.getenv("CHECKOUT_TIMEOUT", "10"))


def to_minor_units(amount: float) -> int:
    """199.99 -> 19999"""
    cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


@dataclass
class CheckoutSession:
    session_id: str
    redirect_url: Optional[str] = None
    payment_status: Optional[str] = None
    status: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict) -> "CheckoutSession":
        return cls(
            session_id=data["id"],
            redirect_url=data.get("url"),
            payment_status=data.get("payment_status"),
            status=data.get("status"),
            metadata=data.get("metadata") or {}
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def is_expired(self) -> bool:
        return self.status == "expired"


class CheckoutClient:
    def __init__(
        self,
        base_url: str = CHECKOUT_API_URL,
        api_key: str = CHECKOUT_API_KEY,
        timeout: float = CHECKOUT_TIMEOUT,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(name="checkout")
        self.transport = transport

    async def open_session(
        self,
        amount_minor_units: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict
    ) -> CheckoutSession:
        form = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": currency,
            "line_items[0][price_data][unit_amount]": str(amount_minor_units),
            "line_items[0][price_data][product_data][name]": description,
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = str(value)

        session = await self._request("POST", "/v1/checkout/sessions", data=form)
        if not session.redirect_url:
            raise CheckoutError("Checkout provider returned no redirect URL")
        logger.info(f"Opened checkout session {session.session_id} for {amount_minor_units} {currency}")
        return session

    async def get_session(self, session_id: str) -> CheckoutSession:
        return await self._request("GET", f"/v1/checkout/sessions/{session_id}")

    async def _request(self, method: str, path: str, **kwargs) -> CheckoutSession:
        async def send():
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    **kwargs
                )
                response.raise_for_status()
                return CheckoutSession.from_json(response.json())

        try:
            return await self.breaker.call(send)
        except CircuitOpenError as e:
            logger.error(f"Checkout call {method} {path} skipped: {str(e)}")
            raise CheckoutError()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Checkout call {method} {path} failed with {e.response.status_code}: {e.response.text}"
            )
            raise CheckoutError()
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Checkout call {method} {path} failed: {str(e)}")
            raise CheckoutError()


checkout_client = CheckoutClient()


def get_checkout_client() -> CheckoutClient:
    return checkout_client
