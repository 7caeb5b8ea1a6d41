from datetime import date, datetime, timedelta

from fintrack.database.models import BankLink, SyncAuditLog
from fintrack.database.session import session_scope
from fintrack.exceptions import ConsentRequired, PersistenceFailure, TransientSyncFailure
from fintrack.models.schemas import (
    LedgerEntry,
    LedgerTransactionCreate,
    SyncStatus,
    TransactionDirection,
)
from fintrack.services.reconciliation import ReconciliationEngine, merge_ledgers, to_ledger_transaction
from fintrack.services.sync_audit_logger import SyncAuditLogger
from fintrack.services.sync_walker import TransactionSyncWalker

from helpers import FakePlaidClient, make_txn, page


def _engine(client, ledger_store, bank_links, audit_logger=None, max_workers=1):
    walker = TransactionSyncWalker(client, page_size=100, max_pages=10, max_restarts=1)
    return ReconciliationEngine(
        plaid_client=client,
        ledger_store=ledger_store,
        bank_links=bank_links,
        walker=walker,
        audit_logger=audit_logger,
        max_workers=max_workers,
    )


def _entry(entry_id, txn_date, created_at):
    return LedgerEntry(
        id=entry_id,
        name=entry_id,
        amount=1.0,
        type=TransactionDirection.DEBIT,
        user_id="user-1",
        date=txn_date,
        fingerprint=f"fp-{entry_id}",
        created_at=created_at,
    )


def test_merge_ledgers_orders_by_date_then_creation():
    base = datetime(2024, 3, 10)
    first = _entry("first", datetime(2024, 3, 1), base)
    second = _entry("second", datetime(2024, 3, 1), base + timedelta(seconds=1))
    newest = _entry("newest", datetime(2024, 3, 5), base + timedelta(seconds=2))

    merged = merge_ledgers([second, newest], [first, second])

    assert [entry.id for entry in merged] == ["newest", "first", "second"]


def test_direction_follows_amount_sign(bank_link):
    debit = to_ledger_transaction(make_txn("out", amount=-20), bank_link)
    credit = to_ledger_transaction(make_txn("in", amount=20), bank_link)

    assert debit.type == TransactionDirection.DEBIT
    assert debit.sender_bank_id == bank_link.id and debit.receiver_bank_id is None
    assert debit.amount == 20
    assert credit.type == TransactionDirection.CREDIT
    assert credit.receiver_bank_id == bank_link.id and credit.sender_bank_id is None
    assert debit.category == "Food and Drink"


def test_merchant_falls_back_to_name(bank_link):
    name_only = to_ledger_transaction(make_txn("a", merchant_name=None, name="ACH Deposit"), bank_link)
    named = to_ledger_transaction(make_txn("a", merchant_name="ACH Deposit"), bank_link)

    assert name_only.fingerprint == named.fingerprint


def test_reconcile_persists_and_advances_cursor(ledger_store, bank_links, bank_link):
    client = FakePlaidClient(pages={
        None: page(added=[make_txn("A", txn_date=date(2024, 3, 1)), make_txn("B", txn_date=date(2024, 3, 2))],
                   next_cursor="c1"),
    })

    result = _engine(client, ledger_store, bank_links).reconcile(bank_link)

    assert result.status == SyncStatus.COMPLETE
    assert result.access_token is None
    assert [entry.plaid_transaction_id for entry in result.transactions] == ["B", "A"]
    assert bank_links.get_cursor(bank_link.id) == "c1"
    assert bank_links.get_bank_link(bank_link.id).status == "active"


def test_reconcile_is_idempotent(ledger_store, bank_links, bank_link):
    transactions = [make_txn("A"), make_txn("B", amount=-3)]
    client = FakePlaidClient(pages={
        None: page(added=transactions, next_cursor="c1"),
        "c1": page(added=transactions, next_cursor="c2"),
    })
    engine = _engine(client, ledger_store, bank_links)

    first = engine.reconcile(bank_link)
    second = engine.reconcile(bank_link)

    assert ledger_store.count() == 2
    assert {entry.id for entry in first.transactions} == {entry.id for entry in second.transactions}
    assert client.sync_calls == [None, "c1"]


def test_concurrent_ingestion_writes_each_transaction_once(ledger_store, bank_links, bank_link):
    transactions = [make_txn(f"T{i}", amount=-(i + 1)) for i in range(12)]
    client = FakePlaidClient(pages={None: page(added=transactions, next_cursor="c1")})
    engine = _engine(client, ledger_store, bank_links, max_workers=4)

    # Every transaction twice in one batch
    ingested = engine.ingest(bank_link, transactions + transactions)
    result = engine.reconcile(bank_link)

    assert ledger_store.count() == 12
    assert len({entry.id for entry in ingested}) == 12
    assert len(result.transactions) == 12


def test_internal_transfers_show_without_external_transactions(
    ledger_store, bank_links, bank_link, other_bank_link
):
    for direction, sender, receiver in [
        (TransactionDirection.DEBIT, bank_link.id, other_bank_link.id),
        (TransactionDirection.CREDIT, other_bank_link.id, bank_link.id),
    ]:
        ledger_store.create(LedgerTransactionCreate(
            name="Transfer",
            amount=25.0,
            type=direction,
            sender_bank_id=sender,
            receiver_bank_id=receiver,
            user_id="user-1",
            category="Transfer",
            date=datetime(2024, 3, 3),
            fingerprint=f"transfer-{direction.value}",
        ))
    # Rows where this bank is the counterparty belong to the other ledger
    ledger_store.create(LedgerTransactionCreate(
        name="Transfer",
        amount=5.0,
        type=TransactionDirection.CREDIT,
        sender_bank_id=bank_link.id,
        receiver_bank_id=other_bank_link.id,
        user_id="user-2",
        date=datetime(2024, 3, 3),
        fingerprint="transfer-counterparty",
    ))
    client = FakePlaidClient(pages={None: page(next_cursor="c1")})

    result = _engine(client, ledger_store, bank_links).reconcile(bank_link)

    assert result.status == SyncStatus.COMPLETE
    assert sorted(entry.fingerprint for entry in result.transactions) == ["transfer-credit", "transfer-debit"]


def test_consent_required_returns_token_and_keeps_cursor(ledger_store, bank_links, bank_link):
    bank_links.save_cursor(bank_link.id, "c0")
    client = FakePlaidClient(pages={
        "c0": page(added=[make_txn("A")], next_cursor="c1", has_more=True),
        "c1": ConsentRequired("login required", error_code="ITEM_LOGIN_REQUIRED"),
    })

    result = _engine(client, ledger_store, bank_links).reconcile(bank_link)

    assert result.status == SyncStatus.CONSENT_REQUIRED
    assert result.access_token == "access-sandbox-1"
    assert result.error_code == "ITEM_LOGIN_REQUIRED"
    assert [entry.plaid_transaction_id for entry in result.transactions] == ["A"]
    assert bank_links.get_cursor(bank_link.id) == "c0"
    assert bank_links.get_bank_link(bank_link.id).status == "consent_required"


def test_sync_error_returns_stored_ledger_only(ledger_store, bank_links, bank_link):
    client = FakePlaidClient(pages={None: page(added=[make_txn("A")], next_cursor="c1")})
    engine = _engine(client, ledger_store, bank_links)
    engine.reconcile(bank_link)

    client.pages["c1"] = TransientSyncFailure("timeout")
    result = engine.reconcile(bank_link)

    assert result.status == SyncStatus.ERROR
    assert result.access_token is None
    assert [entry.plaid_transaction_id for entry in result.transactions] == ["A"]
    assert bank_links.get_cursor(bank_link.id) == "c1"
    assert bank_links.get_bank_link(bank_link.id).status == "error"


def test_failed_write_is_skipped(ledger_store, bank_links, bank_link):
    class FlakyStore:
        def __getattr__(self, name):
            return getattr(ledger_store, name)

        def create(self, transaction):
            if transaction.plaid_transaction_id == "bad":
                raise PersistenceFailure("disk full")
            return ledger_store.create(transaction)

    client = FakePlaidClient(pages={None: page(added=[make_txn("good"), make_txn("bad", amount=-2)], next_cursor="c1")})

    result = _engine(client, FlakyStore(), bank_links).reconcile(bank_link)

    assert result.status == SyncStatus.COMPLETE
    assert [entry.plaid_transaction_id for entry in result.transactions] == ["good"]


def test_removed_transactions_stay_in_ledger(ledger_store, bank_links, bank_link):
    client = FakePlaidClient(pages={
        None: page(added=[make_txn("A")], next_cursor="c1"),
        "c1": page(removed=["A"], next_cursor="c2"),
    })
    engine = _engine(client, ledger_store, bank_links)
    engine.reconcile(bank_link)

    result = engine.reconcile(bank_link)

    assert [entry.plaid_transaction_id for entry in result.transactions] == ["A"]


def test_modified_transaction_from_earlier_cycle_keeps_stored_row(ledger_store, bank_links, bank_link):
    client = FakePlaidClient(pages={
        None: page(added=[make_txn("A", amount=-12.5)], next_cursor="c1"),
        "c1": page(modified=[make_txn("A", amount=-99.0, name="Renamed")], next_cursor="c2"),
    })
    engine = _engine(client, ledger_store, bank_links)
    original = engine.reconcile(bank_link).transactions[0]

    result = engine.reconcile(bank_link)

    assert result.status == SyncStatus.COMPLETE
    assert ledger_store.count() == 1
    assert [entry.id for entry in result.transactions] == [original.id]
    assert result.transactions[0].amount == 12.5
    assert result.transactions[0].name == original.name
    assert result.transactions[0].fingerprint == original.fingerprint
    assert bank_links.get_cursor(bank_link.id) == "c2"


def test_each_link_only_ingests_its_own_account(ledger_store, bank_links, bank_link):
    # Same item and access token as bank_link, different account
    savings = bank_links.create_bank_link("user-1", "access-sandbox-1", "item-1", "acc-savings", None)
    client = FakePlaidClient(pages={None: page(added=[
        make_txn("C1"),
        make_txn("S1", amount=40, account_id="acc-savings"),
    ], next_cursor="c1")})
    engine = _engine(client, ledger_store, bank_links)

    checking_result = engine.reconcile(bank_link)
    savings_result = engine.reconcile(savings)

    assert [entry.plaid_transaction_id for entry in checking_result.transactions] == ["C1"]
    assert [entry.plaid_transaction_id for entry in savings_result.transactions] == ["S1"]
    assert savings_result.transactions[0].receiver_bank_id == savings.id
    assert ledger_store.count() == 2


def test_each_reconcile_writes_an_audit_row(session_factory, ledger_store, bank_links, bank_link):
    client = FakePlaidClient(pages={None: page(added=[make_txn("A")], next_cursor="c1")})
    engine = _engine(client, ledger_store, bank_links, audit_logger=SyncAuditLogger(session_factory))

    engine.reconcile(bank_link)

    with session_scope(session_factory) as db:
        rows = db.query(SyncAuditLog).all()
        assert len(rows) == 1
        assert rows[0].status == "complete"
        assert rows[0].sync_type == "initial"
        assert rows[0].persisted == 1
        assert "access" not in str(rows[0].response_summary)
        link = db.query(BankLink).filter(BankLink.id == bank_link.id).first()
        assert link.last_synced is not None
