"""
Customer transfer and transaction history endpoints
"""

from fastapi import APIRouter, Depends, status

from .deps import BankingSystem, get_banking_system, get_current_account, http_error
from .schemas import TransferRequest
from ..accounts import Account
from ..errors import BankingError


router = APIRouter()


@router.post("/transfer", status_code=status.HTTP_201_CREATED)
def create_transfer(
    body: TransferRequest,
    account: Account = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Send money from the caller's account, confirmed with their PIN"""
    try:
        transaction = system.orchestrator.initiate_transfer(
            account_id=account.id,
            amount=body.amount,
            transfer_type=body.transfer_type,
            recipient_info=body.recipient_info,
            memo=body.memo,
            pin=body.pin
        )
    except BankingError as e:
        raise http_error(e)

    return {"transaction": transaction.to_dict()}


@router.get("/transactions")
def list_transactions(
    account: Account = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's transactions, newest first"""
    return [t.to_dict() for t in system.ledger.list_for_account(account.id)]
