"""Cameroon mobile-money phone number helpers."""

import re
import secrets
import string
from typing import Optional
import unicodedata

CAMEROON_CALLING_CODE = "237"

_MTN_PATTERN = re.compile(r"^6(7[0-9]|(8|5)[0-4])[0-9]{6}$")
_ORANGE_PATTERN = re.compile(r"^6(9[0-9]|5[5-9])[0-9]{6}$")
_NON_DIGITS = re.compile(r"[^\d]")
_ID_ALPHABET = string.ascii_letters + string.digits


def remove_calling_code(phone_number: Optional[str]) -> Optional[str]:
    """Return the 9-digit national number, or None when the input is not a Cameroon number."""
    if not phone_number:
        return None
    cleaned = _NON_DIGITS.sub("", phone_number)
    if cleaned.startswith(CAMEROON_CALLING_CODE) and len(cleaned) == 12:
        return cleaned[3:]
    if len(cleaned) == 9:
        return cleaned
    return None


def format_phone(phone_number: str) -> str:
    """Digits only, always prefixed with the Cameroon calling code."""
    cleaned = _NON_DIGITS.sub("", phone_number or "")
    if cleaned.startswith(CAMEROON_CALLING_CODE):
        return cleaned
    return f"{CAMEROON_CALLING_CODE}{cleaned}"


def is_mtn_phone_number(phone_number: Optional[str]) -> bool:
    local = remove_calling_code(phone_number)
    return bool(local and _MTN_PATTERN.match(local))


def is_orange_phone_number(phone_number: Optional[str]) -> bool:
    local = remove_calling_code(phone_number)
    return bool(local and _ORANGE_PATTERN.match(local))


def pawapay_provider_code(phone_number: str) -> str:
    """pawaPay correspondent for a number; MTN when the operator cannot be told."""
    if is_orange_phone_number(phone_number):
        return "ORANGE_CM"
    return "MTN_CM"


def strip_special_characters(text: str) -> str:
    """Providers reject accents and punctuation in payment descriptions."""
    decomposed = unicodedata.normalize("NFD", text or "")
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-zA-Z]", " ", without_marks)


def random_id(length: int = 15) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))
