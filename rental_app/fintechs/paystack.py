import logging
import urllib.parse
from decimal import Decimal
from typing import Optional

import httpx
from dateutil import parser as date_parser

from core.breaker import CircuitBreaker, gateway_breaker
from core.date_helper import to_naive_utc
from core.exceptions import UpstreamFailureError
from core.settings import settings

from .gateway import (
    PaymentGateway,
    PaymentGatewayError,
    PaymentSession,
    PaymentVerification,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class PaystackClient(PaymentGateway):
    name = "paystack"

    def __init__(
        self,
        secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.secret = secret or settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS
        self.transport = transport
        self.breaker = breaker or gateway_breaker
        self.headers = {
            "Authorization": f"Bearer {self.secret}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    @staticmethod
    def _raise_for_status(res: httpx.Response, action: str):
        # 4xx is Paystack refusing this request, not Paystack being down.
        if res.is_client_error:
            try:
                message = res.json().get("message")
            except ValueError:
                message = None
            raise PaymentGatewayError(message or f"Paystack rejected {action}")
        res.raise_for_status()

    async def _guarded(self, handler, action: str):
        try:
            return await self.breaker.call(handler)
        except PaymentGatewayError as e:
            logger.warning(f"Paystack refused {action}: {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"Paystack {action} failed: {e}")
            raise UpstreamFailureError(f"Payment provider error during {action}")

    async def initialize(
        self,
        *,
        email: str,
        amount: Decimal,
        callback_url: str,
        reference: Optional[str] = None,
    ) -> PaymentSession:
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "callback_url": callback_url,
        }
        if reference:
            payload["reference"] = reference

        async def handler():
            async with self._client() as client:
                res = await client.post("/transaction/initialize", json=payload)

            self._raise_for_status(res, "initialize")
            data = res.json()

            if not data.get("status"):
                raise PaymentGatewayError(data.get("message", "Paystack init failed"))

            body = data["data"]
            return PaymentSession(
                redirect_url=body["authorization_url"],
                reference=body.get("reference") or reference,
                access_code=body.get("access_code"),
            )

        return await self._guarded(handler, "initialize")

    async def verify(self, reference: str) -> PaymentVerification:
        encoded = urllib.parse.quote(reference, safe="")

        async def handler():
            async with self._client() as client:
                res = await client.get(f"/transaction/verify/{encoded}")

            self._raise_for_status(res, "verify")
            payload = res.json()

            if not payload.get("status"):
                raise PaymentGatewayError(payload.get("message", "Verification failed"))

            tx = payload["data"]
            paid_at = tx.get("paid_at") or tx.get("paidAt")
            return PaymentVerification(
                status=tx.get("status") or "unknown",
                amount_minor=int(tx.get("amount") or 0),
                reference=tx.get("reference") or reference,
                channel=tx.get("channel"),
                paid_at=to_naive_utc(date_parser.isoparse(paid_at)) if paid_at else None,
            )

        return await self._guarded(handler, "verify")


def get_payment_gateway() -> PaymentGateway:
    return PaystackClient()
