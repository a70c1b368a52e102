import pytest

from consolidator.utils.amounts import (
    format_ui_amount,
    lamports_to_sol_str,
    parse_ui_amount,
    sol_to_lamports,
)


@pytest.mark.parametrize(
    "raw, decimals, expected",
    [
        (500000, 6, "0.5"),
        (0, 6, "0"),
        (1, 9, "0.000000001"),
        (123456789, 0, "123456789"),
        (1_000_000, 6, "1"),
        (2**53 - 1, 9, "9007199.254740991"),
    ],
)
def test_format_ui_amount(raw, decimals, expected):
    assert format_ui_amount(raw, decimals) == expected


def test_round_trip_is_exact_for_every_decimal_count():
    raws = [0, 1, 7, 10, 999_999, 500_000, 123_456_789_012, 2**53 - 1, 2**64 - 1]
    for decimals in range(10):
        for raw in raws:
            assert parse_ui_amount(format_ui_amount(raw, decimals), decimals) == raw


def test_parse_rejects_excess_precision():
    with pytest.raises(ValueError):
        parse_ui_amount("0.1234567", 6)


@pytest.mark.parametrize("text", ["", "abc", "1.2.3", ".", "1e5"])
def test_parse_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_ui_amount(text, 6)


def test_parse_accepts_trailing_zeros_and_bare_fraction():
    assert parse_ui_amount("0.5000000", 6) == 500000
    assert parse_ui_amount(".25", 2) == 25


def test_sol_helpers():
    assert lamports_to_sol_str(10_000_000) == "0.01"
    assert sol_to_lamports("1.5") == 1_500_000_000
