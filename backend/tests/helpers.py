from datetime import date
from types import SimpleNamespace

from fintrack.models.schemas import ExternalTransaction

TEST_SECRET_KEY = "test-secret-key-that-is-long-enough-123"


def make_txn(transaction_id, amount=-12.5, txn_date=date(2024, 3, 1), **overrides):
    fields = {
        "transaction_id": transaction_id,
        "account_id": "acc-1",
        "name": f"Merchant {transaction_id}",
        "amount": amount,
        "date": txn_date,
        "payment_channel": "in store",
        "category": "FOOD_AND_DRINK",
        "merchant_name": f"Merchant {transaction_id}",
    }
    fields.update(overrides)
    return ExternalTransaction(**fields)


def page(added=(), modified=(), removed=(), next_cursor=None, has_more=False):
    return {
        "added": list(added),
        "modified": list(modified),
        "removed": list(removed),
        "next_cursor": next_cursor,
        "has_more": has_more,
    }


class FakePlaidClient:
    """
    Serves sync pages keyed by the cursor they are requested with.

    A value in `pages` may be an exception instance, which is raised instead.
    """

    def __init__(self, pages=None, accounts=None, institutions=None):
        self.pages = pages or {}
        self.accounts = accounts or {}
        self.institutions = institutions or {}
        self.sync_calls = []

    def sync_transactions(self, access_token, cursor=None, count=500):
        self.sync_calls.append(cursor)
        response = self.pages[cursor]
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_accounts(self, access_token):
        response = self.accounts[access_token]
        if isinstance(response, Exception):
            raise response
        return response

    def get_institution(self, institution_id):
        response = self.institutions.get(institution_id, {"institution_id": institution_id, "name": None})
        if isinstance(response, Exception):
            raise response
        return response


class FakePaymentsClient:

    def __init__(self, transfer_url="https://api-sandbox.dwolla.com/transfers/t-1", error=None):
        self.transfer_url = transfer_url
        self.error = error
        self.calls = []

    def create_transfer(self, source, destination, amount):
        self.calls.append(SimpleNamespace(source=source, destination=destination, amount=amount))
        if self.error:
            raise self.error
        return self.transfer_url
