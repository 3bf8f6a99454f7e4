"""
Dial-by-Name Directory - Telephony Number Utilities

Phone number masking and classification for the webhook layer.

IMPORTANT:
    Caller numbers (ANI) and dialed numbers (DNIS) must never be logged in
    cleartext. Use mask_phone_number() for anything that reaches a log line.
"""

import re
from typing import Optional

# Numbers this long look like full public network numbers rather than
# internal extensions.
EXTERNAL_NUMBER_MIN_DIGITS = 10


def digits_only(value: Optional[str]) -> str:
    """Strip everything except 0-9."""
    if not value:
        return ""
    return re.sub(r'\D', '', str(value))


def mask_phone_number(number: Optional[str], show_last_digits: int = 2) -> str:
    """
    Mask a phone number for privacy.

    Examples:
        +14155551234 → ***34
        1001         → ***01
        None         → unknown
    """
    if not number:
        return "unknown"

    digits = digits_only(number)

    if len(digits) < show_last_digits:
        return "***"

    return f"***{digits[-show_last_digits:]}"


def is_external_number(number: Optional[str]) -> bool:
    """True if the number has enough digits to be a public network number."""
    return len(digits_only(number)) >= EXTERNAL_NUMBER_MIN_DIGITS
