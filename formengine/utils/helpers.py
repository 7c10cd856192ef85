"""
Utility helpers for the survey form engine

Small value-handling functions shared by the formula and validation
engines, plus session id generation.
"""

import math
import uuid


def generate_session_id(short=True):
    """
    Generate unique form-filling session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def is_blank(value):
    """
    True if value counts as "no answer".

    None and strings that are empty after trimming whitespace are blank.
    Numbers and booleans never are.

    Examples:
        >>> is_blank(None), is_blank("   "), is_blank(0)
        (True, True, False)
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def to_number(value):
    """
    Coerce an answer to int or float, or return None if it is not numeric.

    Accepts ints, floats and numeric strings (surrounding whitespace ignored).
    Booleans, blanks, non-finite numbers and anything else return None.
    Integral strings become int so "2" + "3" stays an integer sum.

    Examples:
        >>> to_number(" 42 "), to_number("2.5"), to_number("abc"), to_number(True)
        (42, 2.5, None, None)
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def normalize_number(number):
    """Collapse integral floats to int (6 / 3 -> 2)."""
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number
