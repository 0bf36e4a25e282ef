from __future__ import annotations

from typing import Any, Iterable

from .errors import InvalidRequest


def coerce_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for request payloads.

    Accepts ints and plain digit strings; rejects bools, floats, decimals
    and scientific notation.
    """
    if value is None:
        raise InvalidRequest(f"{field} is required")

    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidRequest(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise InvalidRequest(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise InvalidRequest(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidRequest(f"{field} must be an integer")
    elif isinstance(value, float):
        raise InvalidRequest(f"{field} must be an integer, not a decimal")
    else:
        raise InvalidRequest(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        if minimum == 1:
            raise InvalidRequest(f"{field} must be positive", details={field: result})
        raise InvalidRequest(f"{field} must be at least {minimum}", details={field: result})
    return result


def coerce_choice(value: Any, field: str, choices: Iterable[str], *, default: str | None = None) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise InvalidRequest(f"{field} is required")
    normalized = str(value).strip().upper()
    allowed = tuple(choices)
    if normalized not in allowed:
        raise InvalidRequest(
            f"{field} must be one of {', '.join(allowed)}",
            details={field: value},
        )
    return normalized
