import asyncio
import json
import logging
import random
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from ..common.config import settings
from ..common.db import utcnow

_logger = logging.getLogger(__name__)

_default_rng = random.Random()

VERIFY_SUCCESS_RATE = 0.9
STATUS_CHECK_SUCCESS_RATE = 0.8
DEFAULT_SUCCESS_RATE = 0.90

SUCCESS_RATES = {
    "dana": 0.95,
    "gopay": 0.93,
    "shopeepay": 0.92,
    "linkaja": 0.91,
    "transfer_bank": 0.98,
    "debit": 0.96,
    "credit_card": 0.94,
    "debit_card": 0.95,
}

_WALLETS = {
    "dana": "DANA",
    "gopay": "GoPay",
    "shopeepay": "ShopeePay",
    "linkaja": "LinkAja",
}

_CARD_LABELS = {
    "transfer_bank": "Bank transfer",
    "debit": "Debit",
    "credit_card": "Credit card",
    "debit_card": "Debit card",
}


# -- structured gateway payloads -------------------------------------------

@dataclass(frozen=True)
class ProcessingResponse:
    transaction_id: str
    amount: float
    method: str
    bank: Optional[str]
    timestamp: str
    status: str = field(default="processing", init=False)


@dataclass(frozen=True)
class SuccessResponse:
    transaction_id: str
    timestamp: str
    verification_code: Optional[str] = None
    status: str = field(default="success", init=False)


@dataclass(frozen=True)
class PendingResponse:
    transaction_id: str
    timestamp: str
    status: str = field(default="pending", init=False)


@dataclass(frozen=True)
class FailedResponse:
    transaction_id: str
    timestamp: str
    error: str
    amount: Optional[float] = None
    method: Optional[str] = None
    bank: Optional[str] = None
    verification_code: Optional[str] = None
    status: str = field(default="failed", init=False)


GatewayResponse = Union[ProcessingResponse, SuccessResponse, PendingResponse, FailedResponse]

_RESPONSE_TYPES = {
    "processing": ProcessingResponse,
    "success": SuccessResponse,
    "pending": PendingResponse,
    "failed": FailedResponse,
}


def dump_response(response: GatewayResponse) -> str:
    return json.dumps(asdict(response))


def load_response(raw: Optional[str]) -> Optional[GatewayResponse]:
    if not raw:
        return None
    data = json.loads(raw)
    cls = _RESPONSE_TYPES[data.pop("status")]
    return cls(**data)


@dataclass(frozen=True)
class PaymentRequest:
    order_id: int
    amount: float
    method: str
    user_id: int
    bank: Optional[str] = None


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    transaction_id: str
    status: str
    message: str
    response: GatewayResponse
    expires_at: Optional[datetime] = None
    verification_code: Optional[str] = None


# -- helpers ----------------------------------------------------------------

def generate_transaction_id() -> str:
    suffix = uuid.uuid4().hex[:9].upper()
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


def generate_verification_code(rng: random.Random) -> str:
    return f"{rng.randint(100000, 999999):06d}"


def method_success_rate(method: str) -> float:
    return SUCCESS_RATES.get(method, DEFAULT_SUCCESS_RATE)


def processing_message(method: str, bank: Optional[str] = None) -> str:
    if method in _WALLETS:
        wallet = _WALLETS[method]
        return (
            f"{wallet} payment is being processed. Please transfer to "
            f"{settings.MERCHANT_WALLET_NUMBER} ({settings.MERCHANT_NAME}) in the {wallet} app."
        )
    if method == "transfer_bank":
        return f"{(bank or '').upper()} bank transfer is being processed. Please transfer as instructed."
    if method == "debit":
        return "Debit payment is being processed. Please enter your debit card PIN."
    if method == "credit_card":
        return "Credit card payment is being processed. Please enter your credit card details."
    if method == "debit_card":
        return "Debit card payment is being processed. Please enter your debit card details."
    return "Payment is being processed."


def failure_message(method: str) -> str:
    label = _WALLETS.get(method) or _CARD_LABELS.get(method)
    if label is None:
        return "Payment failed. Please try again."
    return f"{label} payment failed. Please try again or choose another payment method."


async def _simulate_latency(rng: random.Random, min_delay: Optional[float], max_delay: Optional[float]) -> None:
    lo = settings.GATEWAY_MIN_DELAY if min_delay is None else min_delay
    hi = settings.GATEWAY_MAX_DELAY if max_delay is None else max_delay
    await asyncio.sleep(rng.uniform(lo, hi) if hi > 0 else 0)


def _timestamp() -> str:
    return utcnow().isoformat()


# -- gateway operations -----------------------------------------------------

async def process_payment(
    request: PaymentRequest,
    *,
    rng: Optional[random.Random] = None,
    min_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> GatewayResult:
    rng = rng or _default_rng
    transaction_id = generate_transaction_id()
    try:
        await _simulate_latency(rng, min_delay, max_delay)

        if rng.random() < method_success_rate(request.method):
            expires_at = utcnow() + timedelta(hours=settings.PAYMENT_EXPIRY_HOURS)
            return GatewayResult(
                success=True,
                transaction_id=transaction_id,
                status="processing",
                message=processing_message(request.method, request.bank),
                response=ProcessingResponse(
                    transaction_id=transaction_id,
                    amount=request.amount,
                    method=request.method,
                    bank=request.bank,
                    timestamp=_timestamp(),
                ),
                expires_at=expires_at,
                verification_code=generate_verification_code(rng),
            )

        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            message=failure_message(request.method),
            response=FailedResponse(
                transaction_id=transaction_id,
                timestamp=_timestamp(),
                error="Payment gateway temporarily unavailable",
                amount=request.amount,
                method=request.method,
                bank=request.bank,
            ),
        )
    except Exception as e:
        _logger.exception("Gateway fault while processing | order_id=%s", request.order_id)
        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            message="The payment system encountered an error",
            response=FailedResponse(
                transaction_id=transaction_id,
                timestamp=_timestamp(),
                error=str(e) or type(e).__name__,
                amount=request.amount,
                method=request.method,
                bank=request.bank,
            ),
        )


async def verify_payment(
    transaction_id: str,
    verification_code: str,
    *,
    rng: Optional[random.Random] = None,
    success_rate: float = VERIFY_SUCCESS_RATE,
    min_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> GatewayResult:
    rng = rng or _default_rng
    try:
        await _simulate_latency(rng, min_delay, max_delay)

        if rng.random() < success_rate:
            return GatewayResult(
                success=True,
                transaction_id=transaction_id,
                status="success",
                message="Payment verified successfully!",
                response=SuccessResponse(
                    transaction_id=transaction_id,
                    verification_code=verification_code,
                    timestamp=_timestamp(),
                ),
            )
        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            message="Verification code is invalid or expired",
            response=FailedResponse(
                transaction_id=transaction_id,
                timestamp=_timestamp(),
                error="Invalid verification code",
                verification_code=verification_code,
            ),
        )
    except Exception as e:
        _logger.exception("Gateway fault while verifying | transaction_id=%s", transaction_id)
        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            message="Failed to verify payment",
            response=FailedResponse(
                transaction_id=transaction_id,
                timestamp=_timestamp(),
                error=str(e) or type(e).__name__,
                verification_code=verification_code,
            ),
        )


async def check_payment_status(
    transaction_id: str,
    *,
    rng: Optional[random.Random] = None,
    min_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> GatewayResult:
    rng = rng or _default_rng
    try:
        await _simulate_latency(rng, min_delay, max_delay)

        if rng.random() < STATUS_CHECK_SUCCESS_RATE:
            return GatewayResult(
                success=True,
                transaction_id=transaction_id,
                status="success",
                message="Payment confirmed",
                response=SuccessResponse(transaction_id=transaction_id, timestamp=_timestamp()),
            )
        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="pending",
            message="Payment is still being processed",
            response=PendingResponse(transaction_id=transaction_id, timestamp=_timestamp()),
        )
    except Exception as e:
        _logger.exception("Gateway fault while checking status | transaction_id=%s", transaction_id)
        return GatewayResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            message="Failed to check payment status",
            response=FailedResponse(transaction_id=transaction_id, timestamp=_timestamp(), error=str(e) or type(e).__name__),
        )
