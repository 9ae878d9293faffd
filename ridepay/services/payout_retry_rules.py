"""Classify provider failures as transient (retry) or permanent (give up)."""

from typing import FrozenSet, Optional

RETRYABLE_TOKENS: FrozenSet[str] = frozenset(
    {
        "PENDING",
        "ONGOING",
        "DELAYED",
        "SERVICE_UNAVAILABLE",
        "INTERNAL_PROCESSING_ERROR",
        "INTERNAL_ERROR",
        "INSUFFICIENT_BALANCE",
        "TIMEOUT",
        "TIMED_OUT",
        "NOT_ENOUGH_FUNDS_IN_DISBURSEMENT_ACCOUNT",
    }
)

PERMANENT_TOKENS: FrozenSet[str] = frozenset(
    {
        "FAILED",
        "REJECTED",
        "EXPIRED",
        "NOT_ENOUGH_FUNDS",
        "PAYEE_NOT_ALLOWED_TO_RECEIVE",
        "PAYER_NOT_ALLOWED",
        "NOT_ALLOWED",
        "INVALID_CURRENCY",
        "INVALID_CALLBACK_URL_HOST",
        "ACCOUNT_NOT_FOUND",
        "ACCOUNT_HOLDER_NOT_FOUND",
        "INVALID_ACCOUNT",
        "ZERO_BALANCE",
        "NEGATIVE_BALANCE",
        "NOT_ALLOWED_TARGET_ENVIRONMENT",
        "RESOURCE_NOT_FOUND",
    }
)


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().upper().replace(" ", "_")


def _reason_contains(reason: str, tokens: FrozenSet[str]) -> bool:
    return any(token in reason for token in tokens)


def _permanent_in_reason(reason: str) -> bool:
    # NOT_ENOUGH_FUNDS inside NOT_ENOUGH_FUNDS_IN_DISBURSEMENT_ACCOUNT is not permanent.
    for token in PERMANENT_TOKENS:
        if token not in reason:
            continue
        longer = [r for r in RETRYABLE_TOKENS if token in r and r in reason]
        if not longer:
            return True
    return False


def should_retry(status: Optional[str], reason: Optional[str] = None) -> bool:
    """
    True for transient failures worth another disbursement attempt.

    An exact status token decides first. Otherwise the reason text is scanned
    and a permanent marker wins over a retryable one.
    """
    status_token = _normalize(status)
    if status_token in RETRYABLE_TOKENS:
        return True
    if status_token in PERMANENT_TOKENS:
        return False

    reason_text = _normalize(reason)
    if not reason_text:
        return False
    if _permanent_in_reason(reason_text):
        return False
    return _reason_contains(reason_text, RETRYABLE_TOKENS)


def is_permanent_failure(status: Optional[str], reason: Optional[str] = None) -> bool:
    status_token = _normalize(status)
    if status_token in PERMANENT_TOKENS:
        return True
    if status_token in RETRYABLE_TOKENS:
        return False
    return _permanent_in_reason(_normalize(reason))
