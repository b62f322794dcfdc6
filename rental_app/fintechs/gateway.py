from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from core.exceptions import UpstreamFailureError


class PaymentGatewayError(UpstreamFailureError):
    """The provider answered but refused the request.

    An AppError, so the circuit breaker treats a refusal as a healthy answer.
    """


@dataclass(frozen=True)
class PaymentSession:
    redirect_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass(frozen=True)
class PaymentVerification:
    status: str
    amount_minor: int
    reference: str
    channel: Optional[str] = None
    paid_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def amount_major(self) -> Decimal:
        return (Decimal(self.amount_minor) / 100).quantize(Decimal("0.01"))


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class PaymentGateway:
    name = "gateway"

    async def initialize(
        self,
        *,
        email: str,
        amount: Decimal,
        callback_url: str,
        reference: Optional[str] = None,
    ) -> PaymentSession:
        raise NotImplementedError

    async def verify(self, reference: str) -> PaymentVerification:
        raise NotImplementedError
