# ridepay/services/payment_status_mapper.py
"""
Provider status vocabularies mapped onto the shared status enums.

Mapping is total: an unknown or missing provider status always lands on a
non-terminal value, never on `completed`. These functions decide which
status to *request*; whether the move is legal is decided by the payment
state machine in PaymentService.
"""

from typing import Dict, Optional

from ridepay.core.enums import PaymentProvider, PaymentStatus, PayoutStatus, RefundStatus

_MTN_STATUSES: Dict[str, PaymentStatus] = {
    "SUCCESSFUL": PaymentStatus.COMPLETED,
    "SUCCESS": PaymentStatus.COMPLETED,
    "FAILED": PaymentStatus.FAILED,
    "REJECTED": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.FAILED,
    "PENDING": PaymentStatus.PROCESSING,
    "ONGOING": PaymentStatus.PROCESSING,
    "DELAYED": PaymentStatus.PROCESSING,
}

_ORANGE_STATUSES: Dict[str, PaymentStatus] = {
    **_MTN_STATUSES,
    "INITIATED": PaymentStatus.PENDING,
}

_PAWAPAY_STATUSES: Dict[str, PaymentStatus] = {
    "COMPLETED": PaymentStatus.COMPLETED,
    "SUCCESSFUL": PaymentStatus.COMPLETED,
    "FAILED": PaymentStatus.FAILED,
    "FAILURE": PaymentStatus.FAILED,
    "REJECTED": PaymentStatus.FAILED,
    "ACCEPTED": PaymentStatus.PROCESSING,
    "SUBMITTED": PaymentStatus.PROCESSING,
    "PROCESSING": PaymentStatus.PROCESSING,
    "ENQUEUED": PaymentStatus.PROCESSING,
    "PENDING": PaymentStatus.PROCESSING,
}

_TABLES: Dict[PaymentProvider, Dict[str, PaymentStatus]] = {
    PaymentProvider.MTN: _MTN_STATUSES,
    PaymentProvider.ORANGE: _ORANGE_STATUSES,
    PaymentProvider.PAWAPAY: _PAWAPAY_STATUSES,
}


def normalize_provider_status(raw_status: Optional[str]) -> str:
    token = (raw_status or "").strip().upper()
    # Orange spells it with a double L on some endpoints.
    if token == "SUCCESSFULL":
        return "SUCCESSFUL"
    return token


def map_payment_status(provider: "str | PaymentProvider", raw_status: Optional[str]) -> PaymentStatus:
    """Provider status string to PaymentStatus; unknown values map to pending."""
    try:
        table = _TABLES[PaymentProvider.parse(provider)]
    except ValueError:
        table = _MTN_STATUSES
    return table.get(normalize_provider_status(raw_status), PaymentStatus.PENDING)


def map_payout_status(
    provider: "str | PaymentProvider",
    raw_status: Optional[str],
    *,
    has_transaction_id: bool = True,
) -> PayoutStatus:
    """Payouts already submitted to the provider are at least processing."""
    status = map_payment_status(provider, raw_status)
    if status == PaymentStatus.COMPLETED:
        return PayoutStatus.COMPLETED
    if status == PaymentStatus.FAILED:
        return PayoutStatus.FAILED
    if status == PaymentStatus.PENDING and not has_transaction_id:
        return PayoutStatus.PENDING
    return PayoutStatus.PROCESSING


def map_refund_status(provider: "str | PaymentProvider", raw_status: Optional[str]) -> RefundStatus:
    status = map_payment_status(provider, raw_status)
    if status == PaymentStatus.COMPLETED:
        return RefundStatus.COMPLETED
    if status == PaymentStatus.FAILED:
        return RefundStatus.FAILED
    return RefundStatus.PROCESSING
