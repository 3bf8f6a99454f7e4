"""
Dial-by-Name Directory - Keypad Name Encoding

Converts a person's name into the digits a caller presses to spell it on a
standard telephone keypad.
"""

from typing import Optional

KEYPAD_LAYOUT = {
    "2": "ABC",
    "3": "DEF",
    "4": "GHI",
    "5": "JKL",
    "6": "MNO",
    "7": "PQRS",
    "8": "TUV",
    "9": "WXYZ",
}

_LETTER_TO_DIGIT = {
    letter: digit
    for digit, letters in KEYPAD_LAYOUT.items()
    for letter in letters + letters.lower()
}


def encode(name: Optional[str]) -> str:
    """
    Encode a name as keypad digits.

    Case-insensitive. Anything that is not an ASCII letter A-Z (spaces,
    apostrophes, hyphens, accented letters, digits) is dropped.

    Examples:
        encode("Smith")   → "76484"
        encode("O'Brien") → "627436"
        encode(None)      → ""
    """
    if not name:
        return ""
    return "".join(_LETTER_TO_DIGIT.get(char, "") for char in name)
