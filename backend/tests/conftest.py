import pytest

from fintrack.database.bank_links import BankLinkRepository
from fintrack.database.ledger_store import SqlLedgerStore
from fintrack.database.session import create_session_factory
from fintrack.services.encryption import EncryptionService

from helpers import TEST_SECRET_KEY


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'ledger.db'}")


@pytest.fixture
def encryption():
    return EncryptionService(TEST_SECRET_KEY)


@pytest.fixture
def ledger_store(session_factory):
    return SqlLedgerStore(session_factory)


@pytest.fixture
def bank_links(session_factory, encryption):
    return BankLinkRepository(session_factory, encryption=encryption)


@pytest.fixture
def bank_link(bank_links):
    return bank_links.create_bank_link(
        user_id="user-1",
        access_token="access-sandbox-1",
        item_id="item-1",
        account_id="acc-1",
        funding_source_url="https://api-sandbox.dwolla.com/funding-sources/fs-1",
    )


@pytest.fixture
def other_bank_link(bank_links):
    return bank_links.create_bank_link(
        user_id="user-2",
        access_token="access-sandbox-2",
        item_id="item-2",
        account_id="acc-2",
        funding_source_url="https://api-sandbox.dwolla.com/funding-sources/fs-2",
    )
