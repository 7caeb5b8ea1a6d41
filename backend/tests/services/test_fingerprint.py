from datetime import date, datetime
from decimal import Decimal

from fintrack.services.fingerprint import fingerprint, normalize_amount, normalize_date


def test_same_inputs_give_same_fingerprint():
    first = fingerprint(-12.5, date(2024, 3, 1), "Coffee Shop", "user-1", "bank-1")
    second = fingerprint(-12.5, date(2024, 3, 1), "Coffee Shop", "user-1", "bank-1")

    assert first == second
    assert len(first) == 64


def test_amount_representations_are_equivalent():
    as_int = fingerprint(42, "2024-03-01", "Shop", "user-1", "bank-1")
    as_string = fingerprint("42.00", "2024-03-01", "Shop", "user-1", "bank-1")
    as_decimal = fingerprint(Decimal("42.0"), "2024-03-01", "Shop", "user-1", "bank-1")

    assert as_int == as_string == as_decimal


def test_sign_distinguishes_debit_from_credit():
    assert fingerprint(-10, "2024-03-01", "Shop", "u", "b") != fingerprint(10, "2024-03-01", "Shop", "u", "b")


def test_date_forms_collapse_to_calendar_day():
    from_date = fingerprint(5, date(2024, 3, 1), "Shop", "u", "b")
    from_datetime = fingerprint(5, datetime(2024, 3, 1, 18, 30), "Shop", "u", "b")
    from_iso = fingerprint(5, "2024-03-01T18:30:00Z", "Shop", "u", "b")

    assert from_date == from_datetime == from_iso


def test_merchant_case_and_whitespace_are_ignored():
    assert fingerprint(5, "2024-03-01", "  Blue   Bottle ", "u", "b") == fingerprint(5, "2024-03-01", "blue bottle", "u", "b")


def test_missing_fields_do_not_raise():
    result = fingerprint(None, None, None, None, None)

    assert result == fingerprint("", "", "", "", "")


def test_each_field_changes_the_fingerprint():
    base = ("10.00", "2024-03-01", "Shop", "user-1", "bank-1")
    reference = fingerprint(*base)

    for index, replacement in enumerate(["10.01", "2024-03-02", "Other", "user-2", "bank-2"]):
        changed = list(base)
        changed[index] = replacement
        assert fingerprint(*changed) != reference


def test_normalize_amount():
    assert normalize_amount(10) == "10.00"
    assert normalize_amount("-0") == "0.00"
    assert normalize_amount(1.005) == "1.01"
    assert normalize_amount(None) == ""


def test_normalize_date():
    assert normalize_date(date(2024, 1, 9)) == "2024-01-09"
    assert normalize_date("2024-01-09") == "2024-01-09"
    assert normalize_date(None) == ""
