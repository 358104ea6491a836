"""
Utility functions for the ration engine.

This module contains general-purpose helper functions used throughout
the ration engine, including:
- Input validation with a single exception type
- Mathematical operations with safety checks
- Display rounding
- Standardized warning messages
"""

from decimal import Decimal, ROUND_HALF_UP

import numpy as np


class InputValidationError(ValueError):
    """Malformed or out-of-range input. Raised before any computation."""

    def __init__(self, field, message):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


def _check_number(value, field):
    if value is None or isinstance(value, bool):
        raise InputValidationError(field, f"expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(field, f"expected a number, got {value!r}") from None
    if not np.isfinite(number):
        raise InputValidationError(field, f"must be finite, got {value!r}")
    return number


def require_positive(value, field):
    number = _check_number(value, field)
    if number <= 0:
        raise InputValidationError(field, f"must be > 0, got {value}")
    return number


def require_non_negative(value, field):
    number = _check_number(value, field)
    if number < 0:
        raise InputValidationError(field, f"must be >= 0, got {value}")
    return number


def require_range(value, field, low, high):
    number = _check_number(value, field)
    if number < low or number > high:
        raise InputValidationError(field, f"must be between {low} and {high}, got {value}")
    return number


def safe_divide(numerator, denominator, default_value=0.0):
    """Safely divide, avoiding division by zero"""
    if abs(denominator) < 1e-12:  # Very small number
        return default_value
    return numerator / denominator


def safe_sum(array):
    """Safely sum an array, handling NaN values"""
    array = np.array(array, dtype=float)
    array = np.nan_to_num(array, nan=0.0)  # Replace NaN with 0
    return float(np.sum(array))


def round_half_up(value, decimal_places=2):
    """
    Round a value for display using commercial rounding (0.5 rounds away from zero).

    Args:
        value: The value to round (int, float or numeric string)
        decimal_places: Number of decimal places to round to (default: 2)

    Returns:
        Rounded float value, or None for None, NaN and infinite input

    Examples:
        >>> round_half_up(2.675)
        2.68
        >>> round_half_up(0.5, 0)
        1.0
        >>> round_half_up(float("inf"))
        None
    """
    if value is None:
        return None
    try:
        decimal_value = Decimal(str(value))
    except (ValueError, ArithmeticError):
        return None
    if not decimal_value.is_finite():
        return None

    quantum = Decimal(1).scaleb(-decimal_places)
    rounded = decimal_value.quantize(quantum, rounding=ROUND_HALF_UP)
    # Avoid "-0.0" in reports
    return float(rounded) + 0.0


def format_number(value, decimal_places=2):
    """Rounded value as text, without a trailing '.0' for whole numbers."""
    rounded = round_half_up(value, decimal_places)
    if rounded is None:
        return "n/a"
    if decimal_places <= 0 or float(rounded).is_integer():
        return str(int(rounded))
    return f"{rounded:.{decimal_places}f}".rstrip("0").rstrip(".")


def _msg(level, code, where, summary, detail=None, hint=None, autofix=False):
    """
    Create a standardized message dictionary.

    Args:
        level (str): Message level (e.g., 'info', 'warning', 'error')
        code (str): Message code identifier
        where (str): Location where message originated
        summary (str): Brief summary of the message
        detail (str, optional): Detailed message content
        hint (str, optional): Hint for resolving the issue
        autofix (bool, optional): Whether an autofix was applied

    Returns:
        dict: Standardized message dictionary
    """
    return {
        "level": level, "code": code, "where": where,
        "summary": summary, "detail": detail, "hint": hint,
        "autofix_applied": bool(autofix)
    }
