"""
Payment processor collaborator.

The verification pipeline only needs two calls from the processor:
create an order and fetch a payment's authoritative record. Razorpay is the
production implementation; tests supply an in-memory one.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from config import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """The processor could not be reached or rejected the request"""


@dataclass
class OrderDescriptor:
    order_id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str] = None


@dataclass
class ProcessorPayment:
    """The processor's own record of a payment"""
    payment_id: str
    status: str
    order_id: Optional[str]
    amount: int  # minor units
    currency: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_captured(self) -> bool:
        return self.status == "captured"


def to_minor_units(price) -> int:
    """Convert a decimal price (e.g. 99.50) to minor units (9950)"""
    return int((Decimal(str(price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentProcessor(ABC):
    """Narrow interface over the external payment processor"""

    name: str = "processor"

    @abstractmethod
    async def create_order(self, amount: int, currency: str, notes: Dict[str, str]) -> OrderDescriptor:
        ...

    @abstractmethod
    async def fetch_payment(self, payment_id: str) -> ProcessorPayment:
        ...


class RazorpayProcessor(PaymentProcessor):
    """
    Razorpay implementation.

    The razorpay SDK is synchronous; calls run in a worker thread so the
    event loop is never blocked.
    """

    name = "razorpay"

    def __init__(self, key_id: str, key_secret: str):
        import razorpay

        self.key_id = key_id
        self._client = razorpay.Client(auth=(key_id, key_secret))

    async def create_order(self, amount: int, currency: str, notes: Dict[str, str]) -> OrderDescriptor:
        receipt = f"receipt_{int(time.time() * 1000)}"
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        try:
            order = await asyncio.to_thread(self._client.order.create, payload)
        except Exception as e:
            logger.error(f"Razorpay order creation failed: {e}")
            raise PaymentGatewayError(str(e)) from e

        return OrderDescriptor(
            order_id=order["id"],
            amount=int(order["amount"]),
            currency=order["currency"],
            receipt=order.get("receipt", receipt),
        )

    async def fetch_payment(self, payment_id: str) -> ProcessorPayment:
        try:
            payment = await asyncio.to_thread(self._client.payment.fetch, payment_id)
        except Exception as e:
            logger.error(f"Razorpay payment fetch failed for {payment_id}: {e}")
            raise PaymentGatewayError(str(e)) from e

        return ProcessorPayment(
            payment_id=payment.get("id", payment_id),
            status=payment.get("status", ""),
            order_id=payment.get("order_id"),
            amount=int(payment.get("amount", 0)),
            currency=payment.get("currency", ""),
            raw=payment,
        )


def get_payment_processor() -> Optional[PaymentProcessor]:
    """Get the configured processor, or None when credentials are missing"""
    if not settings.payments_configured:
        return None
    try:
        return RazorpayProcessor(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
    except ImportError:
        logger.error("razorpay package is not installed; payments are disabled")
        return None
