"""
Revision code sequencing.

Revision codes are base-26 letter sequences with letter-for-letter carry:

    A, B, ..., Z, AA, AB, ..., AZ, BA, ..., ZZ, AAA, ...

Pure functions, no database access. Malformed codes raise ValidationError.

Usage:
    from plm.services.revision_sequencer import next_code

    next_code(None)   # "A"
    next_code("AZ")   # "BA"
"""

import re

from plm.core.exceptions import ValidationError

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
FIRST_CODE = "A"

_CODE_RE = re.compile(r"^[A-Z]+$")


def validate_code(code: str | None) -> bool:
    """Return True iff *code* is non-empty and all uppercase letters."""
    if not isinstance(code, str):
        return False
    return bool(_CODE_RE.fullmatch(code))


def _require_valid(code) -> None:
    if not validate_code(code):
        raise ValidationError(
            f"Invalid revision code: {code!r}",
            details={"revision_code": "must match ^[A-Z]+$"},
        )


def next_code(current: str | None) -> str:
    """Return the code following *current*; ``"A"`` when *current* is None."""
    if current is None:
        return FIRST_CODE
    _require_valid(current)

    chars = list(current)
    pos = len(chars) - 1
    while pos >= 0:
        idx = ALPHABET.index(chars[pos])
        if idx < len(ALPHABET) - 1:
            chars[pos] = ALPHABET[idx + 1]
            return "".join(chars)
        # Z wraps to A and carries left
        chars[pos] = ALPHABET[0]
        pos -= 1

    return ALPHABET[0] + "".join(chars)


def previous_code(current: str) -> str | None:
    """Return the code preceding *current*; None when *current* is ``"A"``."""
    _require_valid(current)
    if current == FIRST_CODE:
        return None

    chars = list(current)
    pos = len(chars) - 1
    while pos >= 0:
        idx = ALPHABET.index(chars[pos])
        if idx > 0:
            chars[pos] = ALPHABET[idx - 1]
            return "".join(chars)
        chars[pos] = ALPHABET[-1]
        pos -= 1

    # Every position borrowed (AA.. -> ZZ..): the code loses one letter
    return "".join(chars[1:])


def compare_codes(a: str, b: str) -> int:
    """Return -1, 0 or 1. Shorter codes sort first, then lexicographic."""
    _require_valid(a)
    _require_valid(b)
    if len(a) != len(b):
        return -1 if len(a) < len(b) else 1
    if a == b:
        return 0
    return -1 if a < b else 1


def sort_key(code: str) -> tuple[int, str]:
    """Key function equivalent to :func:`compare_codes`."""
    return (len(code), code)


def sort_codes(codes) -> list[str]:
    """Return *codes* sorted ascending in revision order."""
    codes = list(codes)
    for code in codes:
        _require_valid(code)
    return sorted(codes, key=sort_key)
