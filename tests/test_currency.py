"""Tests for cedi amount helpers."""

from decimal import Decimal

import pytest

from welfare_loans.currency import (
    format_currency,
    format_currency_abbreviated,
    format_currency_for_input,
    parse_currency,
    round_currency,
    to_decimal,
)


class TestToDecimal:
    """Tests for to_decimal."""

    def test_float_has_no_binary_artefacts(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_passes_decimal_through(self) -> None:
        value = Decimal("12.345")
        assert to_decimal(value) is value

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Not a currency amount"):
            to_decimal("twelve")


class TestRoundCurrency:
    """Tests for round_currency."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("858.333", "858.33"),
            ("0.005", "0.01"),
            ("2.675", "2.68"),
            ("-0.005", "-0.01"),
            (100, "100.00"),
        ],
    )
    def test_half_up(self, value: object, expected: str) -> None:
        assert round_currency(value) == Decimal(expected)  # type: ignore[arg-type]


class TestFormatting:
    """Tests for formatting and parsing cedi amounts."""

    def test_format_with_symbol(self) -> None:
        assert format_currency(Decimal("1234.5")) == "₵1,234.50"

    def test_format_without_symbol(self) -> None:
        assert format_currency(1234567, show_symbol=False) == "1,234,567.00"

    def test_format_decimals(self) -> None:
        assert format_currency(Decimal("10.555"), decimals=1) == "₵10.6"

    def test_format_for_input(self) -> None:
        assert format_currency_for_input(Decimal("5150")) == "5,150.00"

    def test_parse(self) -> None:
        assert parse_currency("₵1,234.56") == Decimal("1234.56")

    def test_parse_non_number(self) -> None:
        assert parse_currency("n/a") == Decimal("0")

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            (Decimal("950"), "₵950.00"),
            (Decimal("1500"), "₵1.5K"),
            (Decimal("2500000"), "₵2.5M"),
            (Decimal("3000000000"), "₵3.0B"),
        ],
    )
    def test_abbreviated(self, amount: Decimal, expected: str) -> None:
        assert format_currency_abbreviated(amount) == expected
