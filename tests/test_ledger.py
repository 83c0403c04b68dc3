"""
Test suite for the transaction ledger

Tests appends, ordering, admin filters, deletion and display ids.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from nivalus_bank.storage import InMemoryStorage
from nivalus_bank.ledger import Transaction, TransactionLedger, TransactionType
from nivalus_bank.errors import InvalidRequest, TransactionNotFound


BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def ledger(storage):
    return TransactionLedger(storage)


def record(ledger, account_id="ACC1", type=TransactionType.TRANSFER, amount="10.00",
           days=0, **kwargs):
    transaction = ledger.new_transaction(
        account_id=account_id,
        type=type,
        amount=Decimal(amount),
        timestamp=BASE_TIME + timedelta(days=days),
        **kwargs
    )
    return ledger.append(transaction)


class TestTransactionType:

    def test_signed_amounts(self):
        assert TransactionType.DEPOSIT.signed(Decimal("5")) == Decimal("5")
        assert TransactionType.WITHDRAWAL.signed(Decimal("5")) == Decimal("-5")
        assert TransactionType.TRANSFER.signed(Decimal("5")) == Decimal("-5")


class TestAppend:

    def test_append_and_get(self, ledger):
        transaction = record(
            ledger, recipient_info={"username": "bob"}, transfer_method="p2p", memo="rent"
        )

        loaded = ledger.get(transaction.id)
        assert loaded == transaction
        assert loaded.recipient_info == {"username": "bob"}
        assert loaded.transfer_method == "p2p"
        assert loaded.memo == "rent"

    def test_display_id_is_seven_digits(self, ledger):
        transaction = record(ledger)
        assert len(transaction.transaction_id) == 7
        assert transaction.transaction_id.isdigit()
        assert 1000000 <= int(transaction.transaction_id) <= 9999999

    def test_non_positive_amount_rejected(self, ledger, storage):
        with pytest.raises(InvalidRequest, match="Invalid amount"):
            record(ledger, amount="0")
        assert storage.count("transactions") == 0

    def test_same_row_cannot_be_appended_twice(self, ledger):
        transaction = record(ledger)
        with pytest.raises(InvalidRequest, match="already recorded"):
            ledger.append(transaction)

    def test_require_missing(self, ledger):
        assert ledger.get("missing") is None
        with pytest.raises(TransactionNotFound, match="Transaction not found"):
            ledger.require("missing")

    def test_naive_timestamp_treated_as_utc(self, ledger):
        transaction = ledger.new_transaction(
            account_id="ACC1", type=TransactionType.DEPOSIT, amount=Decimal("1.00"),
            timestamp=datetime(2024, 1, 1, 8, 0)
        )
        assert transaction.timestamp.tzinfo == timezone.utc


class TestQueries:

    def test_list_for_account_newest_first(self, ledger):
        oldest = record(ledger, days=0)
        newest = record(ledger, days=2)
        middle = record(ledger, days=1)
        record(ledger, account_id="ACC2", days=3)

        ids = [t.id for t in ledger.list_for_account("ACC1")]
        assert ids == [newest.id, middle.id, oldest.id]

    def test_list_all_filters_are_inclusive_and_combined(self, ledger):
        first = record(ledger, days=0)
        second = record(ledger, days=1)
        third = record(ledger, days=2)
        other = record(ledger, account_id="ACC2", days=1)

        everything = ledger.list_all()
        assert len(everything) == 4
        assert everything[0].id == third.id

        window = ledger.list_all(
            start_date=BASE_TIME + timedelta(days=1),
            end_date=BASE_TIME + timedelta(days=2)
        )
        assert {t.id for t in window} == {second.id, third.id, other.id}

        combined = ledger.list_all(
            account_id="ACC1",
            start_date=BASE_TIME,
            end_date=BASE_TIME + timedelta(days=1)
        )
        assert [t.id for t in combined] == [second.id, first.id]

    def test_find_by_display_id(self, ledger):
        transaction = record(ledger, transaction_id="1234567")
        assert ledger.find_by_display_id("1234567").id == transaction.id
        assert ledger.find_by_display_id("7654321") is None

    def test_signed_total(self, ledger):
        record(ledger, type=TransactionType.DEPOSIT, amount="100.00")
        record(ledger, type=TransactionType.TRANSFER, amount="40.00")
        record(ledger, type=TransactionType.WITHDRAWAL, amount="5.50")
        assert ledger.signed_total("ACC1") == Decimal("54.50")


class TestRemoveAndReverse:

    def test_remove(self, ledger):
        transaction = record(ledger)
        assert ledger.remove(transaction.id) is True
        assert ledger.list_for_account("ACC1") == []
        assert ledger.remove(transaction.id) is False

    def test_mark_reversed(self, ledger):
        original = record(ledger)
        marked = ledger.mark_reversed(original.id, "REV1")
        assert marked.reversed_by == "REV1"
        assert ledger.get(original.id).reversed_by == "REV1"


class TestDisplayIdCollisions:

    def test_generator_skips_taken_ids(self, ledger, monkeypatch):
        record(ledger, transaction_id="1000005")
        draws = iter([5, 5, 6])
        monkeypatch.setattr("nivalus_bank.ledger.secrets.randbelow", lambda n: next(draws))

        assert ledger.generate_display_id() == "1000006"

    def test_generator_gives_up(self, ledger, monkeypatch):
        record(ledger, transaction_id="1000005")
        monkeypatch.setattr("nivalus_bank.ledger.secrets.randbelow", lambda n: 5)

        with pytest.raises(RuntimeError, match="unique transaction id"):
            ledger.generate_display_id(max_attempts=3)


def test_transaction_round_trip(ledger):
    transaction = record(ledger, created_by="ADMIN1", receipt="R-1")
    assert Transaction.from_dict(transaction.to_dict()) == transaction
