"""
Kubernetes resource quantity parsing.

Quantities such as "512Mi", "1Gi", "500m" or "2e3" are compared numerically
when defaulting memory requests. The original string is always what ends up
in generated manifests; parsing is only used for comparison.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from ..errors import InvalidSpecError

_BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}

_QUANTITY_RE = re.compile(r"^([+-]?[0-9.]+)([eE][+-]?[0-9]+|[a-zA-Z]*)$")


def parse_quantity(value: str | int | float) -> Decimal:
    """Parse a Kubernetes quantity into a Decimal number of base units.

    Args:
        value: Quantity string or plain number

    Returns:
        Decimal value in base units (bytes for memory, cores for cpu)

    Raises:
        InvalidSpecError: If the value is not a valid quantity
    """
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    match = _QUANTITY_RE.match(value.strip())
    if not match:
        raise InvalidSpecError(f"Invalid quantity: {value!r}", field_name="resources")

    number_str, suffix = match.groups()
    try:
        number = Decimal(number_str)
    except InvalidOperation:
        raise InvalidSpecError(f"Invalid quantity: {value!r}", field_name="resources")

    if suffix[:1] in ("e", "E"):
        return number * (Decimal(10) ** int(suffix[1:]))
    if suffix in _BINARY_SUFFIXES:
        return number * _BINARY_SUFFIXES[suffix]
    if suffix in _DECIMAL_SUFFIXES:
        return number * _DECIMAL_SUFFIXES[suffix]

    raise InvalidSpecError(f"Unknown quantity suffix in {value!r}", field_name="resources")


def compare_quantities(left: str, right: str) -> int:
    """Compare two quantities.

    Returns:
        -1, 0 or 1 as left is less than, equal to or greater than right
    """
    a, b = parse_quantity(left), parse_quantity(right)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0
