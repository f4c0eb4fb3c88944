"""Coercion of loosely typed request values shared by the services."""

from plm.core.exceptions import ValidationError


def as_int(value, field: str) -> int:
    """``int(value)``, or ValidationError naming *field*. Booleans are refused."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value}) from None


def clean_text(value) -> str | None:
    """Stripped text of any JSON scalar; None for None or blank."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None
