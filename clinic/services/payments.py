"""
Razorpay payment helpers: order creation, signature verification and the
payment status a new appointment starts with.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from clinic.config import PAYMENT_CURRENCY, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET
from clinic.core.errors import ClinicError
from clinic.models.appointment import PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)

_client = None


class PaymentGatewayError(ClinicError):
    status_code = 502


def get_razorpay_client():
    global _client
    if _client is None:
        import razorpay

        if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
            raise PaymentGatewayError("Razorpay keys are not configured")
        _client = razorpay.Client(auth=(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET))
        logger.info(f"Razorpay client initialized with key_id: {RAZORPAY_KEY_ID}")
    return _client


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


def create_order(amount: float, notes: Optional[dict] = None) -> dict:
    """Create a Razorpay order for ``amount`` rupees. Razorpay expects paise."""
    options = {
        "amount": to_paise(amount),
        "currency": PAYMENT_CURRENCY,
        "receipt": f"receipt_{int(time.time() * 1000)}",
        "payment_capture": 1,
        "notes": notes or {},
    }
    try:
        order = get_razorpay_client().order.create(data=options)
    except PaymentGatewayError:
        raise
    except Exception as e:
        logger.error(f"Razorpay order creation error: {e}")
        raise PaymentGatewayError(str(e)) from e
    logger.info(f"Razorpay order created: {order.get('id')}")
    return order


def fetch_order(order_id: str) -> dict:
    try:
        return get_razorpay_client().order.fetch(order_id)
    except PaymentGatewayError:
        raise
    except Exception as e:
        logger.error(f"Razorpay order fetch error for {order_id}: {e}")
        raise PaymentGatewayError(f"Could not fetch payment order: {e}") from e


def order_matches_amount(order_id: str, amount: float) -> bool:
    """True when the Razorpay order was created for exactly ``amount`` rupees."""
    order = fetch_order(order_id)
    return int(order.get("amount", -1)) == to_paise(amount)


def compute_signature(order_id: str, payment_id: str, secret: Optional[str] = None) -> str:
    key = (secret if secret is not None else RAZORPAY_KEY_SECRET).encode()
    return hmac.new(key, f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    if not RAZORPAY_KEY_SECRET:
        logger.error("Cannot verify payment signature: RAZORPAY_KEY_SECRET not set")
        return False
    expected = compute_signature(order_id, payment_id)
    return hmac.compare_digest(expected, signature or "")


def derive_payment_status(payment_method: PaymentMethod, payment_id: Optional[str]) -> PaymentStatus:
    if payment_method == PaymentMethod.ONLINE and payment_id:
        return PaymentStatus.COMPLETED
    return PaymentStatus.PENDING
