from __future__ import annotations

from typing import Any


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Largest quantity accepted on a single line
MAX_LINE_QUANTITY = 1_000_000


class InventoryError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


class ValidationError(InventoryError, ValueError):
    """400-level input problem. Raised before any write."""

    status_code = 400


class NotFoundError(InventoryError, LookupError):
    """404: the referenced transfer, exchange or held bill does not exist."""

    status_code = 404


class AuthorizationError(InventoryError):
    """403: the actor is neither sender nor receiver for the transition."""

    status_code = 403


class StateConflictError(InventoryError):
    """409-level business rule conflict (e.g., settling an exchange twice)."""

    status_code = 409


class ConflictError(StateConflictError):
    """409: unique business key already taken (e.g., a client hold token)."""


class IllegalTransitionError(StateConflictError):
    """Transition not permitted from the current state; reported as 403."""

    status_code = 403


class LinesNotEditableError(StateConflictError):
    """Lines edited after the transfer left Pending; reported as 400."""

    status_code = 400


class SettlementError(ValidationError):
    """Payments do not match the amount due."""


class StorageError(InventoryError):
    """Constraint or connectivity failure; callers may retry."""

    status_code = 503

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = True
        return body


class MirrorError(InventoryError):
    """Legacy mirror write failure. Never leaves the mirror service."""


def error_response(exc: InventoryError):
    """(body, status) tuple for a Flask view."""
    return exc.to_dict(), exc.status_code


def coerce_int(value: Any, field: str, *, allow_none: bool = False) -> int | None:
    """
    Strict integer parsing for JSON input.

    Rejects floats, bools, scientific notation and decimal strings
    so that "1.5" never silently becomes 1.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def coerce_optional_id(value: Any, field: str) -> int | None:
    """Nullable foreign reference: None / "" -> None, otherwise a positive int."""
    parsed = coerce_int(value, field, allow_none=True)
    if parsed is not None and parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return parsed


def coerce_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if qty > MAX_LINE_QUANTITY:
        raise ValidationError(f"{field} exceeds maximum of {MAX_LINE_QUANTITY}")
    return qty


def coerce_price_cents(value: Any, field: str = "unit_price_cents") -> int:
    if value is None or value == "":
        return 0
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return cents


def clean_str(value: Any, field: str, *, max_length: int, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_list(value: Any, field: str, *, non_empty: bool = False) -> list:
    if value is None:
        value = []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    if non_empty and not value:
        raise ValidationError(f"{field}[] required")
    return value


def require_object(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object")
    return value
