"""
Admin Mutation Surface

Privileged operations over accounts and the ledger. Every method takes the
acting account first and refuses non-admins with Forbidden.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .accounts import (
    Account, AccountRole, AccountStatus, AccountStore, AmountLike, parse_status
)
from .ledger import Transaction, TransactionLedger
from .transfers import TransferOrchestrator
from .auth import SessionStore
from .errors import Forbidden, InvalidRequest, InvalidStatus, TransactionNotFound
from .logging_config import get_logger, log_action


logger = get_logger("nivalus.admin")


class AdminService:
    """Admin console operations"""

    def __init__(self, accounts: AccountStore, ledger: TransactionLedger,
                 orchestrator: TransferOrchestrator, sessions: SessionStore,
                 audit_trail: AuditTrail):
        self.accounts = accounts
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.sessions = sessions
        self.audit_trail = audit_trail

    @staticmethod
    def require_admin(actor: Optional[Account]) -> Account:
        if actor is None or not actor.is_admin:
            raise Forbidden()
        return actor

    def create_user(
        self,
        actor: Account,
        username: str,
        email: str,
        password: str,
        pin: str,
        balance: AmountLike = "0.00",
        role: Union[str, AccountRole] = AccountRole.USER,
        status: Union[str, AccountStatus] = AccountStatus.ACTIVE
    ) -> Account:
        """Create an account with an explicit opening balance, role and status"""
        self.require_admin(actor)
        try:
            account_role = AccountRole(role)
        except ValueError:
            raise InvalidRequest("Invalid role")
        return self.accounts.create_account(
            username=username,
            email=email,
            password=password,
            pin=pin,
            role=account_role,
            status=parse_status(status),
            balance=balance,
            created_by=actor.id
        )

    def list_users(self, actor: Account, include_all: bool = False) -> List[Account]:
        """Active customer accounts, or every account when include_all is set"""
        self.require_admin(actor)
        if include_all:
            return self.accounts.list_accounts()
        return self.accounts.list_accounts(status=AccountStatus.ACTIVE, role=AccountRole.USER)

    def change_status(self, actor: Account, account_id: str,
                      status: Union[str, AccountStatus]) -> Account:
        """
        Set an account's status. Deleted accounts stay deleted.

        Leaving active signs the account out everywhere: its bearer token is
        cleared and its sessions are revoked, so reactivation needs a fresh login.
        """
        self.require_admin(actor)
        new_status = parse_status(status)
        with self.accounts.storage.atomic():
            account = self.accounts.require_account(account_id)
            if account.status == AccountStatus.DELETED and new_status != AccountStatus.DELETED:
                raise InvalidStatus("Deleted accounts cannot be reactivated")
            updated = self.accounts.set_status(account_id, new_status, changed_by=actor.id)
            if new_status != AccountStatus.ACTIVE:
                updated = self.accounts.set_auth_token(account_id, None)
                revoked = self.sessions.revoke_all_for_account(account_id)
                log_action(
                    logger, "info", "Account signed out on status change",
                    user_id=actor.id, action="revoke_sessions",
                    resource=f"account:{account_id}",
                    extra={"status": new_status.value, "sessions_revoked": revoked}
                )
            return updated

    def create_transaction(
        self,
        actor: Account,
        account_id: str,
        type: str,
        amount: Any,
        recipient_info: Optional[Dict[str, Any]] = None,
        memo: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        transfer_method: Optional[str] = None
    ) -> Transaction:
        self.require_admin(actor)
        return self.orchestrator.admin_create_transaction(
            account_id=account_id,
            type=type,
            amount=amount,
            recipient_info=recipient_info,
            memo=memo,
            timestamp=timestamp,
            created_by=actor.id,
            transaction_id=transaction_id,
            transfer_method=transfer_method
        )

    def list_transactions(self, actor: Account, account_id: Optional[str] = None,
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None) -> List[Transaction]:
        self.require_admin(actor)
        return self.ledger.list_all(account_id=account_id, start_date=start_date, end_date=end_date)

    def delete_transaction(self, actor: Account, transaction_id: str) -> bool:
        """
        Hard-delete a ledger row. The account balance is left as it is;
        use reverse_transaction to compensate.
        """
        self.require_admin(actor)
        with self.ledger.storage.atomic():
            transaction = self.ledger.get(transaction_id)
            if not transaction or not self.ledger.remove(transaction_id):
                raise TransactionNotFound(id=transaction_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_DELETED,
                entity_type="transaction",
                entity_id=transaction_id,
                metadata={
                    "transaction_id": transaction.transaction_id,
                    "account_id": transaction.account_id,
                    "type": transaction.type,
                    "amount": transaction.amount
                },
                user_id=actor.id
            )

        log_action(
            logger, "warning", "Transaction deleted without balance reversal",
            user_id=actor.id, action="delete_transaction",
            resource=f"transaction:{transaction_id}",
            extra={"account_id": transaction.account_id}
        )
        return True

    def reverse_transaction(self, actor: Account, transaction_id: str,
                            reason: Optional[str] = None) -> Transaction:
        self.require_admin(actor)
        return self.orchestrator.reverse_transaction(
            transaction_id, reversed_by=actor.id, reason=reason
        )

    def verify_audit_integrity(self, actor: Account) -> Dict[str, Any]:
        self.require_admin(actor)
        result = self.audit_trail.verify_integrity()
        self.audit_trail.log_event(
            event_type=AuditEventType.AUDIT_INTEGRITY_CHECK,
            entity_type="audit",
            entity_id="audit_events",
            metadata={"valid": result['valid'], "total_events": result['total_events']},
            user_id=actor.id
        )
        return result
