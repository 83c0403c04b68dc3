"""
Transaction Ledger Module

Append-only record of deposits, withdrawals and transfers. Rows are never
edited after they are written except to link a reversal.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .storage import StorageInterface, StorageRecord
from .errors import InvalidRequest, TransactionNotFound


DISPLAY_ID_MIN = 1000000
DISPLAY_ID_SPAN = 9000000


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"

    @property
    def is_credit(self) -> bool:
        return self == TransactionType.DEPOSIT

    def signed(self, amount: Decimal) -> Decimal:
        """Amount as it applies to the owning account's balance"""
        return amount if self.is_credit else -amount


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Transaction(StorageRecord):
    """
    One ledger row.

    transaction_id is the 7-digit receipt number shown to customers; id is
    the internal key. recipient_info is stored as given and never resolved
    against accounts.
    """
    transaction_id: str
    account_id: str
    type: TransactionType
    amount: Decimal
    timestamp: datetime
    recipient_info: Dict[str, Any] = field(default_factory=dict)
    transfer_method: Optional[str] = None
    created_by: Optional[str] = None
    memo: Optional[str] = None
    receipt: Optional[str] = None
    reverses: Optional[str] = None  # id of the transaction this one compensates
    reversed_by: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.type.signed(self.amount)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['created_at'] = cls.parse_datetime(data['created_at'])
        data['updated_at'] = cls.parse_datetime(data['updated_at'])
        data['timestamp'] = cls.parse_datetime(data['timestamp'])
        data['type'] = TransactionType(data['type'])
        data['amount'] = Decimal(data['amount'])
        return cls(**data)


class TransactionLedger:
    """Stores and queries Transaction rows"""

    TABLE = "transactions"

    def __init__(self, storage: StorageInterface,
                 clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def new_transaction(
        self,
        account_id: str,
        type: TransactionType,
        amount: Decimal,
        recipient_info: Optional[Dict[str, Any]] = None,
        transfer_method: Optional[str] = None,
        memo: Optional[str] = None,
        created_by: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        receipt: Optional[str] = None,
        reverses: Optional[str] = None
    ) -> Transaction:
        """Build an unsaved Transaction with a fresh id and display id"""
        now = self._clock()
        return Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            transaction_id=transaction_id or self.generate_display_id(),
            account_id=account_id,
            type=type,
            amount=amount,
            timestamp=_as_utc(timestamp) if timestamp else now,
            recipient_info=recipient_info or {},
            transfer_method=transfer_method,
            created_by=created_by,
            memo=memo,
            receipt=receipt,
            reverses=reverses
        )

    def append(self, transaction: Transaction) -> Transaction:
        """Insert a new row; amounts must be positive"""
        if transaction.amount <= 0:
            raise InvalidRequest("Invalid amount")
        if self.storage.exists(self.TABLE, transaction.id):
            raise InvalidRequest("Transaction already recorded", id=transaction.id)
        self.storage.save(self.TABLE, transaction.id, transaction.to_dict())
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.TABLE, transaction_id)
        return Transaction.from_dict(data) if data else None

    def require(self, transaction_id: str) -> Transaction:
        transaction = self.get(transaction_id)
        if not transaction:
            raise TransactionNotFound(id=transaction_id)
        return transaction

    def find_by_display_id(self, display_id: str) -> Optional[Transaction]:
        matches = self.storage.find(self.TABLE, {"transaction_id": display_id})
        return Transaction.from_dict(matches[0]) if matches else None

    def list_for_account(self, account_id: str) -> List[Transaction]:
        """All transactions for one account, newest first"""
        rows = self.storage.find(self.TABLE, {"account_id": account_id})
        return self._newest_first(Transaction.from_dict(r) for r in rows)

    def list_all(self, account_id: Optional[str] = None,
                 start_date: Optional[datetime] = None,
                 end_date: Optional[datetime] = None) -> List[Transaction]:
        """
        Admin-wide query, newest first.

        Filters combine with AND; both date bounds are inclusive.
        """
        if account_id:
            rows = self.storage.find(self.TABLE, {"account_id": account_id})
        else:
            rows = self.storage.load_all(self.TABLE)

        transactions = [Transaction.from_dict(r) for r in rows]
        if start_date:
            start = _as_utc(start_date)
            transactions = [t for t in transactions if t.timestamp >= start]
        if end_date:
            end = _as_utc(end_date)
            transactions = [t for t in transactions if t.timestamp <= end]
        return self._newest_first(transactions)

    def remove(self, transaction_id: str) -> bool:
        """Hard delete. The owning account's balance is not touched."""
        return self.storage.delete(self.TABLE, transaction_id)

    def mark_reversed(self, transaction_id: str, reversal_id: str) -> Transaction:
        with self.storage.atomic():
            transaction = self.require(transaction_id)
            transaction.reversed_by = reversal_id
            transaction.updated_at = self._clock()
            self.storage.save(self.TABLE, transaction.id, transaction.to_dict())
            return transaction

    def generate_display_id(self, max_attempts: int = 100) -> str:
        """Draw a random 7-digit receipt number not already in the ledger"""
        for _ in range(max_attempts):
            candidate = str(DISPLAY_ID_MIN + secrets.randbelow(DISPLAY_ID_SPAN))
            if not self.storage.find(self.TABLE, {"transaction_id": candidate}):
                return candidate
        raise RuntimeError("Could not allocate a unique transaction id")

    def signed_total(self, account_id: str) -> Decimal:
        """Sum of signed amounts for an account, used for reconciliation"""
        total = Decimal("0.00")
        for transaction in self.list_for_account(account_id):
            total += transaction.signed_amount
        return total

    @staticmethod
    def _newest_first(transactions) -> List[Transaction]:
        return sorted(transactions, key=lambda t: (t.timestamp, t.created_at), reverse=True)
