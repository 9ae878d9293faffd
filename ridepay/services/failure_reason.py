"""Turn pawaPay `failureReason` payloads into passenger-facing messages."""

import json
from typing import Any

GENERIC_FAILURE_MESSAGE = "Le paiement a échoué. Veuillez réessayer."
INSUFFICIENT_BALANCE_MESSAGE = (
    "Votre solde est insuffisant pour effectuer ce paiement. "
    "Veuillez recharger votre compte et réessayer."
)


def parse_failure_reason(failure_reason: Any) -> str:
    """
    Accepts the object form `{failureCode, failureMessage}`, a JSON string of it,
    or a plain string (returned as-is).
    """
    if not failure_reason:
        return GENERIC_FAILURE_MESSAGE

    if isinstance(failure_reason, str):
        try:
            parsed = json.loads(failure_reason)
        except ValueError:
            return failure_reason
        if isinstance(parsed, str):
            return parsed or GENERIC_FAILURE_MESSAGE
        return parse_failure_reason(parsed)

    if isinstance(failure_reason, dict):
        code = failure_reason.get("failureCode")
        message = failure_reason.get("failureMessage")
        if code == "INSUFFICIENT_BALANCE":
            return INSUFFICIENT_BALANCE_MESSAGE
        if message:
            return str(message)
        if code:
            return f"Le paiement a échoué. Code d'erreur: {code}. Veuillez réessayer."

    return GENERIC_FAILURE_MESSAGE


def failure_code(failure_reason: Any) -> str:
    """Best-effort extraction of the machine-readable code for retry decisions."""
    if isinstance(failure_reason, dict):
        return str(failure_reason.get("failureCode") or failure_reason.get("failureMessage") or "")
    if isinstance(failure_reason, str):
        try:
            parsed = json.loads(failure_reason)
        except ValueError:
            return failure_reason
        return failure_code(parsed)
    return ""
