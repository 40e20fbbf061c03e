"""Phone number normalization and comparison.

Gateways and contact lists format the same number differently
(``+1 (555) 123-4567``, ``5551234567``, ``15551234567``), so every
lookup compares normalized digits.
"""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str | None) -> str:
    """Strip formatting and a leading US country code.

    Returns:
        Digits only; 11-digit numbers starting with 1 lose the 1
    """
    if not phone:
        return ""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def phones_match(first: str | None, second: str | None) -> bool:
    """Compare two numbers by their last 10 digits.

    Short numbers (under 10 digits) only match on exact digit equality.
    """
    a = normalize_phone(first)
    b = normalize_phone(second)
    if not a or not b:
        return False
    if len(a) >= 10 and len(b) >= 10:
        return a[-10:] == b[-10:]
    return a == b


def to_e164(phone: str) -> str:
    """Format a number for outbound sending (``+1XXXXXXXXXX`` for US numbers)."""
    digits = normalize_phone(phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if phone.strip().startswith("+"):
        return f"+{_NON_DIGITS.sub('', phone)}"
    return f"+{digits}"
