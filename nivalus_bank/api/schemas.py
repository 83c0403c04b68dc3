"""
Pydantic schemas for API requests
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field


# Auth schemas
class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    pin: str = Field(..., description="4-digit transfer PIN")
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


# Profile schemas
class AvatarRequest(BaseModel):
    avatar: Optional[str] = None


class ThemeRequest(BaseModel):
    theme: Optional[str] = Field(None, description="light, dark or system")


# Transfer schemas
class TransferRequest(BaseModel):
    amount: Optional[Decimal] = None
    recipient_info: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("recipient_info", "recipientInfo")
    )
    transfer_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("transfer_type", "transferType"),
        description="direct, wire, bank, card or p2p"
    )
    pin: Optional[str] = None
    memo: Optional[str] = None


# Admin schemas
class CreateUserRequest(BaseModel):
    username: str
    email: str
    password: str
    pin: str
    balance: Decimal = Decimal("0.00")
    role: str = "user"
    status: str = "active"


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., description="active, inactive or deleted")


class CreateTransactionRequest(BaseModel):
    account_id: str = Field(..., validation_alias=AliasChoices("account_id", "user_id"))
    type: str = Field(..., description="deposit, withdrawal or transfer")
    amount: Decimal
    recipient_info: Optional[Dict[str, Any]] = None
    transfer_method: Optional[str] = None
    memo: Optional[str] = None
    timestamp: Optional[datetime] = None
    transaction_id: Optional[str] = None


class ReverseTransactionRequest(BaseModel):
    reason: Optional[str] = None
