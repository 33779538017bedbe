"""
Unit tests for resource quantity parsing.

Tests cover:
- Binary and decimal suffixes
- Exponent notation
- Comparison across units
- Invalid input
"""

from decimal import Decimal

import pytest

from controlplane.thanos_operator.errors import InvalidSpecError
from controlplane.thanos_operator.resources.quantity import compare_quantities, parse_quantity


class TestParseQuantity:
    """Tests for parse_quantity."""

    def test_binary_suffixes(self):
        """Ki/Mi/Gi are powers of 1024."""
        assert parse_quantity("1Ki") == 1024
        assert parse_quantity("512Mi") == 512 * 2**20
        assert parse_quantity("1Gi") == 2**30

    def test_decimal_suffixes(self):
        """k/M/G are powers of 1000; m is milli."""
        assert parse_quantity("250M") == 250_000_000
        assert parse_quantity("2G") == 2_000_000_000
        assert parse_quantity("500m") == Decimal("0.5")

    def test_plain_numbers(self):
        """Numbers without suffix are base units."""
        assert parse_quantity("1024") == 1024
        assert parse_quantity(3) == 3

    def test_exponent(self):
        """Exponent notation is supported."""
        assert parse_quantity("2e3") == 2000
        assert parse_quantity("1E6") == 1_000_000

    def test_fractional_binary(self):
        """Fractional values scale correctly."""
        assert parse_quantity("1.5Gi") == Decimal("1.5") * 2**30

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3Gi", "10Qi", "Gi"])
    def test_invalid_quantity_raises(self, value):
        """Malformed quantities raise InvalidSpecError."""
        with pytest.raises(InvalidSpecError):
            parse_quantity(value)


class TestCompareQuantities:
    """Tests for compare_quantities."""

    def test_less_than(self):
        assert compare_quantities("512Mi", "1Gi") == -1

    def test_equal_across_units(self):
        """Same amount in different units compares equal."""
        assert compare_quantities("1024Mi", "1Gi") == 0

    def test_greater_than(self):
        assert compare_quantities("2Gi", "1Gi") == 1

    def test_decimal_vs_binary(self):
        """1G is less than 1Gi."""
        assert compare_quantities("1G", "1Gi") == -1
