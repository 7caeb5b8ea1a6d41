"""
Transaction fingerprinting for deduplication.

A fingerprint is a SHA-256 digest over the normalized semantic fields of a
transaction. The ledger enforces uniqueness on it, so the same aggregator
transaction can be ingested any number of times and still produce one row.
"""
import hashlib
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Union

_CENTS = Decimal("0.01")


def normalize_amount(amount: Any) -> str:
    """Render an amount as a fixed-point string with two decimals ("10" -> "10.00")."""
    if amount is None or amount == "":
        return ""
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return str(amount).strip()
    if not value.is_finite():
        return str(amount).strip()
    normalized = value.quantize(_CENTS, rounding=ROUND_HALF_UP)
    # -0.00 and 0.00 are the same amount
    if normalized == 0:
        normalized = abs(normalized)
    return f"{normalized:f}"


def normalize_date(value: Union[str, date, datetime, None]) -> str:
    """Reduce a date, datetime or ISO string to YYYY-MM-DD."""
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    text = str(value).strip()
    # ISO datetimes ("2024-01-01T10:00:00Z") keep only the calendar date
    return text[:10] if len(text) >= 10 and text[4:5] == "-" else text


def _normalize_text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def fingerprint(
    amount: Any,
    date: Union[str, date, datetime, None],
    merchant: Optional[str],
    user_id: Optional[str],
    sender_bank_id: Optional[str],
) -> str:
    """
    Generate a stable transaction fingerprint.

    Missing fields become empty strings instead of raising; a weaker
    fingerprint is better than failing the ingestion.

    Args:
        amount: Signed amount (number or numeric string)
        date: Transaction date
        merchant: Merchant or display name
        user_id: Owning user ID
        sender_bank_id: Owning bank link ID

    Returns:
        SHA-256 hex digest string
    """
    parts = "|".join([
        normalize_amount(amount),
        normalize_date(date),
        _normalize_text(merchant),
        (user_id or "").strip(),
        (sender_bank_id or "").strip(),
    ])
    return hashlib.sha256(parts.encode("utf-8")).hexdigest()
