# payments.py
"""
Razorpay order creation, callback signature check and plan grant.

The checkout itself happens client-side; the server only creates the order
and, afterwards, checks that the `razorpay_signature` returned to the
browser really is HMAC-SHA256(order_id|payment_id) under our key secret
before upgrading the user.
"""

import hashlib
import hmac
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError
import requests

from .common import PAID_PLANS, Plan
from .credits import credits_for_plan
from .user_store import UserRecord

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """The gateway refused or failed to create the order."""


class PaymentConfigError(PaymentError):
    pass


@dataclass(frozen=True)
class Order:
    id: str
    amount: int
    currency: str


def parse_paid_plan(value) -> Plan:
    plan = Plan.parse(value)
    if plan not in PAID_PLANS:
        raise ValueError(f"Invalid plan: {value!r}")
    return plan


def parse_amount(value) -> float:
    if isinstance(value, bool):
        raise ValueError("Invalid amount")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    payload = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    if not (order_id and payment_id and signature and secret):
        return False
    expected = compute_signature(str(order_id), str(payment_id), secret)
    return hmac.compare_digest(expected.encode("utf-8"), str(signature).encode("utf-8"))


def grant_plan(store, identifier: str, plan: Plan, now: Optional[datetime] = None) -> UserRecord:
    now = now or datetime.now(timezone.utc)
    return store.update(identifier, {
        "plan": plan,
        "credits": credits_for_plan(plan),
        "last_payment": now,
    })


class PaymentGateway:
    def __init__(self, key_id: Optional[str], key_secret: Optional[str],
                 currency: str = "INR", timeout: float = 30, client=None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    @property
    def client(self):
        if self._client is None:
            if not self.configured:
                raise PaymentConfigError("Razorpay keys missing")
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(self, amount: float, plan: Plan, identifier: Optional[str]) -> Order:
        data = {
            "amount": int(round(amount * 100)),
            "currency": self.currency,
            "receipt": f"rcpt_{int(time.time() * 1000)}",
            "notes": {"email": identifier or "", "plan": plan.value},
        }
        try:
            order = self.client.order.create(data=data, timeout=self.timeout)
        except (BadRequestError, GatewayError, ServerError) as exc:
            logger.error("Razorpay order creation failed: %s", exc)
            raise PaymentError(str(exc)) from exc
        except requests.RequestException as exc:
            logger.error("Razorpay unreachable: %s", exc)
            raise PaymentError("Payment gateway unreachable") from exc

        try:
            return Order(id=order["id"], amount=int(order["amount"]), currency=order["currency"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Unexpected Razorpay order payload: %.500s", order)
            raise PaymentError("Malformed order response from payment gateway") from exc

    def order_plan(self, order_id: str) -> Optional[Plan]:
        """Plan recorded in the order notes at creation time, None if absent."""
        try:
            order = self.client.order.fetch(order_id, timeout=self.timeout)
        except (BadRequestError, GatewayError, ServerError) as exc:
            logger.error("Razorpay order %s fetch failed: %s", order_id, exc)
            raise PaymentError(str(exc)) from exc
        except requests.RequestException as exc:
            logger.error("Razorpay unreachable: %s", exc)
            raise PaymentError("Payment gateway unreachable") from exc

        # Razorpay returns [] for an order without notes
        notes = order.get("notes") if isinstance(order, dict) else None
        if not isinstance(notes, dict) or not notes.get("plan"):
            return None
        try:
            return Plan.parse(notes["plan"])
        except ValueError:
            return None

    def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            raise PaymentConfigError("Razorpay key secret missing")
        return verify_signature(order_id, payment_id, signature, self.key_secret)
