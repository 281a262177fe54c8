import asyncio
import hmac
import logging
import random
from datetime import datetime
from typing import Any, Dict, Optional

from ..common.config import settings
from ..common.database import (
    claim_payment,
    expire_payment,
    fetch_order,
    fetch_order_with_products,
    find_payment_by_order_id,
    find_payment_by_transaction_id,
    release_payment_claim,
    settle_payment,
    update_order_status,
    update_payment,
)
from ..common.db import utcnow
from ..common.errors import (
    InvalidPaymentData,
    InvalidVerificationCode,
    OrderAlreadyProcessed,
    OrderNotFound,
    PaymentAlreadyExists,
    PaymentExpired,
    PaymentNotFound,
    PaymentNotVerifiable,
)
from ..common.events import PAYMENT_EXPIRED, PAYMENT_INITIATED, PAYMENT_SETTLED, publish_event
from ..common.metrics import PAYMENT_OUTCOMES
from ..common.validation import as_amount, as_int
from ..orders.model import ORDER_PAID, ORDER_PENDING
from .gateway import PaymentRequest, check_payment_status, dump_response, process_payment, verify_payment
from .model import PAYMENT_EXPIRED as STATUS_EXPIRED, PAYMENT_PROCESSING, PAYMENT_SUCCESS

_logger = logging.getLogger(__name__)

BANK_METHOD = "transfer_bank"
AMOUNT_TOLERANCE = 0.01


def _order_summary(order: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": order["id"],
        "total_amount": order["total_amount"],
        "status": order["status"],
        "items": order["items"],
    }


def _is_expired(payment: Dict[str, Any], now: datetime) -> bool:
    expires_at = payment.get("expires_at")
    return bool(expires_at) and now > datetime.fromisoformat(expires_at)


async def initiate_payment(data: Dict[str, Any], *, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    order_id = as_int(data.get("order_id"))
    user_id = as_int(data.get("user_id"))
    amount = as_amount(data.get("amount"))
    method = data.get("method")
    bank = data.get("bank") or None

    if not order_id or not user_id or amount is None or amount <= 0 or not isinstance(method, str) or not method.strip():
        raise InvalidPaymentData("Payment data is incomplete or invalid")
    method = method.strip().lower()
    if bank is not None and not isinstance(bank, str):
        raise InvalidPaymentData("bank must be a string")
    if method == BANK_METHOD and not bank:
        raise InvalidPaymentData("A bank must be selected for bank transfer payments")

    order = await fetch_order(order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    if order["user_id"] != user_id:
        raise InvalidPaymentData("Order does not belong to this user")
    if order["status"] != ORDER_PENDING:
        raise OrderAlreadyProcessed("Order has already been paid or cancelled")
    if order.get("payment") is not None:
        raise PaymentAlreadyExists(f"A payment already exists for order {order_id}")
    if abs(amount - order["total_amount"]) > AMOUNT_TOLERANCE:
        raise InvalidPaymentData("Payment amount does not match the order total")

    # The unique order_id on the claim decides concurrent initiations
    claim = await claim_payment(order_id, amount, method, bank)
    _logger.info("Payment claimed | order_id=%s payment_id=%s method=%s", order_id, claim["id"], method)

    try:
        result = await process_payment(
            PaymentRequest(order_id=order_id, amount=amount, method=method, user_id=user_id, bank=bank),
            rng=rng,
        )
        payment = await update_payment(
            claim["id"],
            status=result.status,
            transaction_id=result.transaction_id,
            verification_code=result.verification_code,
            expires_at=result.expires_at,
            gateway_response=dump_response(result.response),
        )
    except BaseException:
        # a claim without a transaction id can never be verified
        await asyncio.shield(release_payment_claim(claim["id"]))
        _logger.warning("Payment claim released | order_id=%s payment_id=%s", order_id, claim["id"])
        raise
    PAYMENT_OUTCOMES.labels(stage="initiate", method=method, status=result.status).inc()

    if result.status == PAYMENT_SUCCESS:
        await update_order_status(order_id, ORDER_PAID, expected=ORDER_PENDING)
        order["status"] = ORDER_PAID

    if result.success:
        _logger.info(
            "Payment processing | order_id=%s transaction_id=%s expires_at=%s",
            order_id, result.transaction_id, result.expires_at,
        )
    else:
        _logger.warning(
            "Payment failed at gateway | order_id=%s transaction_id=%s method=%s",
            order_id, result.transaction_id, method,
        )
    await publish_event(PAYMENT_INITIATED, {
        "order_id": order_id,
        "transaction_id": result.transaction_id,
        "method": method,
        "status": result.status,
    })

    return {
        "success": result.success,
        "message": result.message,
        "payment": payment,
        "order": _order_summary(order),
    }


async def verify(data: Dict[str, Any], *, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    transaction_id = data.get("transaction_id")
    code = data.get("verification_code")
    if not isinstance(transaction_id, str) or not transaction_id.strip() or code in (None, ""):
        raise InvalidPaymentData("transaction_id and verification_code are required")
    transaction_id = transaction_id.strip()
    code = str(code).strip()

    payment = await find_payment_by_transaction_id(transaction_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {transaction_id} not found")

    if payment["status"] == PAYMENT_SUCCESS:
        return {"success": True, "message": "Payment was already verified", "payment": payment}
    if payment["status"] == STATUS_EXPIRED:
        raise PaymentExpired("Payment has expired")
    if payment["status"] != PAYMENT_PROCESSING:
        raise PaymentNotVerifiable(f"Payment is {payment['status']} and cannot be verified")

    if _is_expired(payment, utcnow()):
        await _expire(payment)
        raise PaymentExpired("Payment has expired")

    if not hmac.compare_digest(code.encode(), (payment["verification_code"] or "").encode()):
        _logger.warning("Verification code mismatch | transaction_id=%s", transaction_id)
        raise InvalidVerificationCode("Verification code is invalid")

    result = await verify_payment(
        transaction_id,
        code,
        rng=rng,
        success_rate=settings.GATEWAY_VERIFY_SUCCESS_RATE,
    )
    PAYMENT_OUTCOMES.labels(stage="verify", method=payment["method"], status=result.status).inc()

    if result.status != PAYMENT_SUCCESS:
        # stays processing, the customer may retry until expiry
        payment = await update_payment(payment["id"], gateway_response=dump_response(result.response))
        _logger.warning("Verification declined by gateway | transaction_id=%s", transaction_id)
        return {"success": False, "message": result.message, "payment": payment}

    settled = await settle_payment(payment["id"], dump_response(result.response), utcnow())
    current = await find_payment_by_transaction_id(transaction_id)
    if not settled:
        if current["status"] == PAYMENT_SUCCESS:
            # a concurrent verification got there first
            return {"success": True, "message": "Payment was already verified", "payment": current}
        if current["status"] == PAYMENT_PROCESSING and _is_expired(current, utcnow()):
            await _expire(current)
            raise PaymentExpired("Payment has expired")
        raise PaymentNotVerifiable(f"Payment is {current['status']} and cannot be verified")

    _logger.info("Payment settled | transaction_id=%s order_id=%s", transaction_id, current["order_id"])
    await publish_event(PAYMENT_SETTLED, {
        "order_id": current["order_id"],
        "transaction_id": transaction_id,
        "amount": current["amount"],
        "paid_at": current["paid_at"],
    })
    return {"success": True, "message": result.message, "payment": current}


async def _expire(payment: Dict[str, Any]) -> None:
    if await expire_payment(payment["id"]):
        _logger.info("Payment expired | transaction_id=%s", payment["transaction_id"])
        await publish_event(PAYMENT_EXPIRED, {
            "order_id": payment["order_id"],
            "transaction_id": payment["transaction_id"],
        })


async def query_payment(transaction_id: Optional[str] = None, order_id: Optional[Any] = None) -> Dict[str, Any]:
    if transaction_id:
        payment = await find_payment_by_transaction_id(transaction_id)
    elif order_id is not None:
        parsed = as_int(order_id)
        if parsed is None:
            raise InvalidPaymentData("order_id must be an integer")
        payment = await find_payment_by_order_id(parsed)
    else:
        raise InvalidPaymentData("transaction_id or order_id is required")
    if payment is None:
        raise PaymentNotFound("Payment not found")
    payment["order"] = await fetch_order_with_products(payment["order_id"])
    return payment


async def poll_gateway_status(transaction_id: Optional[str], *, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Ask the gateway about a transaction without touching the stored payment."""
    if not transaction_id:
        raise InvalidPaymentData("transaction_id is required")
    payment = await find_payment_by_transaction_id(transaction_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {transaction_id} not found")
    result = await check_payment_status(transaction_id, rng=rng)
    return {
        "success": result.success,
        "transaction_id": transaction_id,
        "status": result.status,
        "message": result.message,
    }
