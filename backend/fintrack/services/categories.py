"""
Category Mapper

Maps aggregator classification codes to the application's fixed spending
categories. Accepts both Plaid's legacy category hierarchy names
("Food and Drink") and Personal Finance Category primary codes
("FOOD_AND_DRINK"). Adding a code is a table edit.
"""
import logging
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

CATEGORY_TABLE_VERSION = "plaid-2024-01"

UNCATEGORIZED = "Uncategorized"

APP_CATEGORIES = (
    "Food and Drink",
    "Travel",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Healthcare",
    "Utilities",
    "Housing",
    "Income",
    "Payment",
    "Bank Fees",
    "Transfer",
    "Services",
    UNCATEGORIZED,
)

CATEGORY_MAP = {
    # Legacy category hierarchy names
    "Food and Drink": "Food and Drink",
    "Restaurants": "Food and Drink",
    "Coffee Shop": "Food and Drink",
    "Fast Food": "Food and Drink",
    "Supermarkets and Groceries": "Food and Drink",
    "Travel": "Travel",
    "Airlines and Aviation Services": "Travel",
    "Lodging": "Travel",
    "Taxi": "Transportation",
    "Gas Stations": "Transportation",
    "Public Transportation Services": "Transportation",
    "Parking": "Transportation",
    "Shops": "Shopping",
    "Shopping": "Shopping",
    "Recreation": "Entertainment",
    "Entertainment": "Entertainment",
    "Gyms and Fitness Centers": "Entertainment",
    "Healthcare": "Healthcare",
    "Pharmacies": "Healthcare",
    "Utilities": "Utilities",
    "Telecommunication Services": "Utilities",
    "Rent": "Housing",
    "Home Improvement": "Housing",
    "Payroll": "Income",
    "Interest": "Income",
    "Deposit": "Income",
    "Payment": "Payment",
    "Credit Card": "Payment",
    "Loans and Mortgages": "Payment",
    "Bank Fees": "Bank Fees",
    "Overdraft": "Bank Fees",
    "ATM": "Bank Fees",
    "Transfer": "Transfer",
    "Debit": "Transfer",
    "Credit": "Transfer",
    "Service": "Services",
    "Community": "Services",
    "Tax": "Services",

    # Personal Finance Category primary codes
    "FOOD_AND_DRINK": "Food and Drink",
    "TRAVEL": "Travel",
    "TRANSPORTATION": "Transportation",
    "GENERAL_MERCHANDISE": "Shopping",
    "ENTERTAINMENT": "Entertainment",
    "PERSONAL_CARE": "Services",
    "MEDICAL": "Healthcare",
    "RENT_AND_UTILITIES": "Utilities",
    "HOME_IMPROVEMENT": "Housing",
    "INCOME": "Income",
    "LOAN_PAYMENTS": "Payment",
    "BANK_FEES": "Bank Fees",
    "TRANSFER_IN": "Transfer",
    "TRANSFER_OUT": "Transfer",
    "GENERAL_SERVICES": "Services",
    "GOVERNMENT_AND_NON_PROFIT": "Services",
}


def map_category(code: Union[str, Iterable[str], None]) -> str:
    """
    Map an aggregator category code to an application category.

    Args:
        code: A single code, a category hierarchy (most general first), or None

    Returns:
        Application category name, or "Uncategorized" for unknown/absent codes
    """
    if code is None:
        return UNCATEGORIZED

    if isinstance(code, str):
        candidates = [code]
    else:
        try:
            candidates = list(code)
        except TypeError:
            return UNCATEGORIZED

    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        mapped = CATEGORY_MAP.get(candidate.strip())
        if mapped:
            return mapped

    if candidates:
        logger.debug(f"No category mapping for {candidates}, using {UNCATEGORIZED}")
    return UNCATEGORIZED


def raw_category_code(category: Optional[Iterable[str]], pfc_primary: Optional[str] = None) -> Optional[str]:
    """Pick the single raw code to keep for a transaction: PFC primary, else top of the hierarchy."""
    if pfc_primary:
        return pfc_primary
    for entry in category or []:
        if entry:
            return entry
    return None
