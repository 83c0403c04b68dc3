"""
Admin console endpoints
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status

from .deps import BankingSystem, get_banking_system, http_error, require_admin
from .schemas import (
    CreateTransactionRequest, CreateUserRequest, ReverseTransactionRequest, UpdateStatusRequest
)
from ..accounts import Account
from ..errors import BankingError


router = APIRouter()


@router.get("/users")
def list_users(
    include_all: bool = False,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Active customer accounts (every account with include_all=true)"""
    accounts = system.admin_service.list_users(admin, include_all=include_all)
    return [a.to_public_dict() for a in accounts]


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        account = system.admin_service.create_user(
            admin,
            username=body.username,
            email=body.email,
            password=body.password,
            pin=body.pin,
            balance=body.balance,
            role=body.role,
            status=body.status
        )
    except BankingError as e:
        raise http_error(e)
    return account.to_public_dict()


@router.patch("/users/{account_id}/status")
def update_user_status(
    account_id: str,
    body: UpdateStatusRequest,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        account = system.admin_service.change_status(admin, account_id, body.status)
    except BankingError as e:
        raise http_error(e)
    return account.to_public_dict()


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
def create_transaction(
    body: CreateTransactionRequest,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Record a deposit, withdrawal or transfer against an account"""
    try:
        transaction = system.admin_service.create_transaction(
            admin,
            account_id=body.account_id,
            type=body.type,
            amount=body.amount,
            recipient_info=body.recipient_info,
            memo=body.memo,
            timestamp=body.timestamp,
            transaction_id=body.transaction_id,
            transfer_method=body.transfer_method
        )
    except BankingError as e:
        raise http_error(e)

    return {
        "transaction": transaction.to_dict(),
        "message": "Transaction created successfully"
    }


@router.get("/transactions")
def list_transactions(
    account_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    transactions = system.admin_service.list_transactions(
        admin, account_id=account_id, start_date=start_date, end_date=end_date
    )
    return [t.to_dict() for t in transactions]


@router.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: str,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Delete a ledger row; the account balance is left unchanged"""
    try:
        deleted = system.admin_service.delete_transaction(admin, transaction_id)
    except BankingError as e:
        raise http_error(e)
    return {"deleted": deleted}


@router.post("/transactions/{transaction_id}/reverse", status_code=status.HTTP_201_CREATED)
def reverse_transaction(
    transaction_id: str,
    body: Optional[ReverseTransactionRequest] = None,
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        reversal = system.admin_service.reverse_transaction(
            admin, transaction_id, reason=body.reason if body else None
        )
    except BankingError as e:
        raise http_error(e)

    return {
        "transaction": reversal.to_dict(),
        "message": "Transaction reversed successfully"
    }


@router.get("/audit/integrity")
def verify_audit_integrity(
    admin: Account = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    return system.admin_service.verify_audit_integrity(admin)
