"""
Transfer Orchestrator Module

Sequences a customer transfer through validation, PIN verification, debit
and ledger append. The debit and the append run in one storage.atomic()
unit: either both persist or neither does.

Admin-originated deposits, withdrawals and transfers, and explicit
reversals, reuse the same balance primitive (AccountStore.apply_delta).
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import AccountStore, parse_amount
from .ledger import Transaction, TransactionLedger, TransactionType
from .credentials import PinAttemptLimiter, verify_pin
from .errors import (
    AccountInactive, BankingError, InvalidPin, InvalidRequest, PinAttemptsExceeded
)
from .logging_config import get_logger, log_action


logger = get_logger("nivalus.transfers")


class TransferState(Enum):
    """Lifecycle of one transfer request"""
    SUBMITTED = "submitted"
    PIN_PENDING = "pin_pending"
    VERIFIED = "verified"
    DEBITED = "debited"
    RECORDED = "recorded"
    COMPLETE = "complete"
    REJECTED = "rejected"   # bad input
    DECLINED = "declined"   # bad PIN or insufficient funds


@dataclass
class TransferAttempt:
    """Tracks the state of a single initiate_transfer call"""
    account_id: str
    reference: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: TransferState = TransferState.SUBMITTED
    history: List[TransferState] = field(default_factory=lambda: [TransferState.SUBMITTED])
    failure: Optional[str] = None


def parse_transaction_type(value: Union[str, TransactionType]) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise InvalidRequest("Invalid transaction type", type=value)


class TransferOrchestrator:
    """
    Moves money between an account's balance and the ledger.
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        ledger: TransactionLedger,
        audit_trail: AuditTrail,
        pin_limiter: Optional[PinAttemptLimiter] = None,
        observer: Optional[Callable[[TransferAttempt], None]] = None
    ):
        self.storage = storage
        self.accounts = accounts
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.pin_limiter = pin_limiter or PinAttemptLimiter()
        self.observer = observer

    def _advance(self, attempt: TransferAttempt, state: TransferState,
                 failure: Optional[BankingError] = None) -> None:
        attempt.state = state
        attempt.history.append(state)
        extra: Dict[str, Any] = {"reference": attempt.reference, "state": state.value}
        if failure is not None:
            attempt.failure = failure.code
            extra["reason"] = failure.code
        log_action(
            logger, "debug", "Transfer state changed",
            user_id=attempt.account_id, action="transfer", resource="transfer",
            extra=extra
        )
        if self.observer:
            self.observer(attempt)

    def initiate_transfer(
        self,
        account_id: str,
        amount: Any,
        transfer_type: Optional[str],
        recipient_info: Optional[Dict[str, Any]],
        memo: Optional[str] = None,
        pin: Optional[str] = None
    ) -> Transaction:
        """
        Debit an account and record a transfer, gated by the account's PIN.

        Args:
            account_id: Account initiating the transfer
            amount: Positive amount, as a number or numeric string
            transfer_type: Transfer method (direct, wire, bank, card, p2p)
            recipient_info: Method-specific recipient details, stored as given
            memo: Optional note
            pin: The account's 4-digit PIN

        Returns:
            The recorded Transaction

        Raises:
            InvalidRequest: missing fields or non-positive amount
            PinAttemptsExceeded: too many recent PIN failures
            InvalidPin: PIN mismatch
            InsufficientFunds: amount exceeds balance
        """
        attempt = TransferAttempt(account_id=account_id)

        try:
            if not transfer_type or not recipient_info or not pin:
                raise InvalidRequest("Missing required fields")
            value = parse_amount(amount)
            if value <= 0:
                raise InvalidRequest("Invalid amount")
        except InvalidRequest as e:
            self._advance(attempt, TransferState.REJECTED, e)
            raise

        account = self.accounts.require_account(account_id)
        if not account.is_active:
            error = AccountInactive()
            self._advance(attempt, TransferState.REJECTED, error)
            raise error

        self._advance(attempt, TransferState.PIN_PENDING)
        self._verify_pin(attempt, account.id, account.pin_hash, pin)
        self._advance(attempt, TransferState.VERIFIED)

        try:
            with self.storage.atomic():
                self.accounts.apply_delta(account_id, -value)
                self._advance(attempt, TransferState.DEBITED)

                transaction = self.ledger.new_transaction(
                    account_id=account_id,
                    type=TransactionType.TRANSFER,
                    amount=value,
                    recipient_info=recipient_info,
                    transfer_method=transfer_type,
                    memo=memo
                )
                self.ledger.append(transaction)
                self._advance(attempt, TransferState.RECORDED)

                self._audit_created(transaction, account_id)
        except BankingError as e:
            self._advance(attempt, TransferState.DECLINED, e)
            raise

        self._advance(attempt, TransferState.COMPLETE)
        log_action(
            logger, "info", "Transfer completed",
            user_id=account_id, action="transfer",
            resource=f"transaction:{transaction.id}",
            extra={"amount": str(value), "transfer_method": transfer_type}
        )
        return transaction

    def _verify_pin(self, attempt: TransferAttempt, account_id: str,
                    pin_hash: str, pin: str) -> None:
        try:
            failures = self.pin_limiter.acquire(account_id)
        except PinAttemptsExceeded as e:
            self._advance(attempt, TransferState.DECLINED, e)
            raise

        if verify_pin(pin, pin_hash):
            self.pin_limiter.reset(account_id)
            return

        self.audit_trail.log_event(
            event_type=AuditEventType.PIN_FAILED,
            entity_type="account",
            entity_id=account_id,
            metadata={"failures_in_window": failures},
            user_id=account_id
        )
        if failures >= self.pin_limiter.max_attempts:
            self.audit_trail.log_event(
                event_type=AuditEventType.PIN_LOCKED,
                entity_type="account",
                entity_id=account_id,
                metadata={"failures_in_window": failures},
                user_id=account_id
            )
            log_action(
                logger, "warning", "PIN checks locked after repeated failures",
                user_id=account_id, action="pin_locked", resource=f"account:{account_id}"
            )

        error = InvalidPin()
        self._advance(attempt, TransferState.DECLINED, error)
        raise error

    def admin_create_transaction(
        self,
        account_id: str,
        type: Union[str, TransactionType],
        amount: Any,
        recipient_info: Optional[Dict[str, Any]] = None,
        memo: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        created_by: Optional[str] = None,
        transaction_id: Optional[str] = None,
        transfer_method: Optional[str] = None
    ) -> Transaction:
        """
        Record an admin-originated transaction and apply it to the balance.

        Deposits credit the account; withdrawals and transfers debit it with
        the same insufficient-funds guard as customer transfers. No PIN.
        """
        txn_type = parse_transaction_type(type)
        value = parse_amount(amount)
        if value <= 0:
            raise InvalidRequest("Invalid amount")

        with self.storage.atomic():
            self.accounts.require_account(account_id)
            if transaction_id and self.ledger.find_by_display_id(transaction_id):
                raise InvalidRequest("Transaction id already exists", transaction_id=transaction_id)

            self.accounts.apply_delta(account_id, txn_type.signed(value))

            transaction = self.ledger.new_transaction(
                account_id=account_id,
                type=txn_type,
                amount=value,
                recipient_info=recipient_info,
                transfer_method=transfer_method,
                memo=memo,
                created_by=created_by,
                timestamp=timestamp,
                transaction_id=transaction_id
            )
            self.ledger.append(transaction)
            self._audit_created(transaction, created_by)

        log_action(
            logger, "info", "Admin transaction recorded",
            user_id=created_by, action=f"admin_{txn_type.value}",
            resource=f"transaction:{transaction.id}",
            extra={"account_id": account_id, "amount": str(value)}
        )
        return transaction

    def reverse_transaction(self, transaction_id: str, reversed_by: Optional[str] = None,
                            reason: Optional[str] = None) -> Transaction:
        """
        Compensate a transaction: apply the opposite delta and append a
        linked deposit (for debits) or withdrawal (for deposits).
        """
        with self.storage.atomic():
            original = self.ledger.require(transaction_id)
            if original.reversed_by:
                raise InvalidRequest("Transaction already reversed", id=transaction_id)
            if original.reverses:
                raise InvalidRequest("A reversal cannot be reversed", id=transaction_id)

            compensating_type = (
                TransactionType.WITHDRAWAL if original.type.is_credit else TransactionType.DEPOSIT
            )
            self.accounts.apply_delta(original.account_id, -original.signed_amount)

            reversal = self.ledger.new_transaction(
                account_id=original.account_id,
                type=compensating_type,
                amount=original.amount,
                recipient_info={"reversal_of": original.transaction_id},
                memo=reason or f"Reversal of {original.transaction_id}",
                created_by=reversed_by,
                reverses=original.id
            )
            self.ledger.append(reversal)
            self.ledger.mark_reversed(original.id, reversal.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_REVERSED,
                entity_type="transaction",
                entity_id=original.id,
                metadata={
                    "reversal_id": reversal.id,
                    "account_id": original.account_id,
                    "amount": original.amount,
                    "reason": reason
                },
                user_id=reversed_by
            )

        log_action(
            logger, "info", "Transaction reversed",
            user_id=reversed_by, action="reverse_transaction",
            resource=f"transaction:{original.id}", extra={"reversal_id": reversal.id}
        )
        return reversal

    def _audit_created(self, transaction: Transaction, actor: Optional[str]) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction.id,
            metadata={
                "transaction_id": transaction.transaction_id,
                "account_id": transaction.account_id,
                "type": transaction.type,
                "amount": transaction.amount,
                "created_by": transaction.created_by
            },
            user_id=actor
        )
