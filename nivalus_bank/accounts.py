"""
Account Store Module

Customer and admin accounts: credentials, balance, role, status and profile
preferences. Balance moves only through apply_delta, which refuses any
change that would take it below zero.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
from enum import Enum
import uuid
import re

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .credentials import hash_password, hash_pin, validate_password, validate_pin_format
from .errors import (
    AccountNotFound, DuplicateEmail, DuplicateUsername, InsufficientFunds,
    InvalidRequest, InvalidStatus
)
from .logging_config import get_logger, log_action


logger = get_logger("nivalus.accounts")

CENTS = Decimal("0.01")

# Largest magnitude accepted from clients; keeps every balance well inside
# the 28-digit decimal context.
MAX_AMOUNT = Decimal("1000000000000000")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

AmountLike = Union[Decimal, str, int, float]


def quantize_money(value: AmountLike) -> Decimal:
    """Round a monetary value to 2 places (half up)"""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """
    Parse client-supplied money into a 2-place Decimal.

    Raises InvalidRequest for anything that is not a finite number, carries
    more than 2 decimal places, or reaches MAX_AMOUNT in magnitude.
    """
    if value is None or isinstance(value, bool):
        raise InvalidRequest("Invalid amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidRequest("Invalid amount")
    if not amount.is_finite() or abs(amount) >= MAX_AMOUNT:
        raise InvalidRequest("Invalid amount")

    cents = amount.quantize(CENTS)
    if cents != amount:
        raise InvalidRequest("Amount cannot have more than 2 decimal places")
    return cents


class AccountRole(Enum):
    USER = "user"
    ADMIN = "admin"


class AccountStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class ThemePreference(Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


def parse_status(value: Union[str, AccountStatus]) -> AccountStatus:
    if isinstance(value, AccountStatus):
        return value
    try:
        return AccountStatus(value)
    except ValueError:
        raise InvalidStatus(status=value)


@dataclass
class Account(StorageRecord):
    """
    A bank customer or administrator.

    password_hash and pin_hash hold "<hash>.<salt>" scrypt values; auth_token
    is the single bearer token currently honoured for this account.
    """
    username: str
    email: str
    password_hash: str
    pin_hash: str
    balance: Decimal = Decimal("0.00")
    role: AccountRole = AccountRole.USER
    status: AccountStatus = AccountStatus.ACTIVE
    last_login: Optional[datetime] = None
    auth_token: Optional[str] = None
    theme_preference: ThemePreference = ThemePreference.SYSTEM
    avatar: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialized form safe to hand to clients (no secrets)"""
        data = self.to_dict()
        for secret in ('password_hash', 'pin_hash', 'auth_token'):
            data.pop(secret, None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['created_at'] = cls.parse_datetime(data['created_at'])
        data['updated_at'] = cls.parse_datetime(data['updated_at'])
        data['last_login'] = cls.parse_datetime(data.get('last_login'))
        data['balance'] = Decimal(data['balance'])
        data['role'] = AccountRole(data['role'])
        data['status'] = AccountStatus(data['status'])
        data['theme_preference'] = ThemePreference(data.get('theme_preference', 'system'))
        return cls(**data)


class AccountStore:
    """
    Persists accounts and owns every mutation of them.
    """

    TABLE = "accounts"

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 password_min_length: int = 6,
                 clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.password_min_length = password_min_length
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_account(
        self,
        username: str,
        email: str,
        password: str,
        pin: str,
        role: AccountRole = AccountRole.USER,
        status: AccountStatus = AccountStatus.ACTIVE,
        balance: AmountLike = Decimal("0.00"),
        avatar: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> Account:
        """
        Create a new account

        Args:
            username: Unique login name
            email: Unique email address
            password: Plaintext password, stored hashed
            pin: Plaintext 4-digit transfer PIN, stored hashed
            role: user or admin
            status: Initial status
            balance: Opening balance (admins only set this explicitly)
            avatar: Optional avatar reference
            created_by: Account id of the admin creating this account

        Returns:
            Created Account object
        """
        username = (username or "").strip()
        email = (email or "").strip()
        if not username or not email:
            raise InvalidRequest("Missing required fields")
        if not EMAIL_PATTERN.match(email):
            raise InvalidRequest("Invalid email address")
        validate_password(password, self.password_min_length)
        validate_pin_format(pin)

        opening_balance = parse_amount(balance)
        if opening_balance < 0:
            raise InvalidRequest("Balance cannot be negative")

        password_hash = hash_password(password)
        pin_hash = hash_pin(pin)

        with self.storage.atomic():
            if self.get_by_username(username):
                raise DuplicateUsername(username=username)
            if self.get_by_email(email):
                raise DuplicateEmail(email=email)

            now = self._clock()
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                username=username,
                email=email,
                password_hash=password_hash,
                pin_hash=pin_hash,
                balance=opening_balance,
                role=role,
                status=status,
                avatar=avatar
            )
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "username": username,
                    "role": role.value,
                    "status": status.value,
                    "opening_balance": opening_balance
                },
                user_id=created_by
            )

        log_action(
            logger, "info", "Account created",
            user_id=created_by or account.id, action="create_account",
            resource=f"account:{account.id}", extra={"role": role.value}
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        data = self.storage.load(self.TABLE, account_id)
        return Account.from_dict(data) if data else None

    def require_account(self, account_id: str) -> Account:
        account = self.get_account(account_id)
        if not account:
            raise AccountNotFound(account_id=account_id)
        return account

    def get_by_username(self, username: str) -> Optional[Account]:
        matches = self.storage.find(self.TABLE, {"username": username})
        return Account.from_dict(matches[0]) if matches else None

    def get_by_email(self, email: str) -> Optional[Account]:
        matches = self.storage.find(self.TABLE, {"email": email})
        return Account.from_dict(matches[0]) if matches else None

    def list_accounts(self, status: Optional[AccountStatus] = None,
                      role: Optional[AccountRole] = None) -> List[Account]:
        """List accounts, optionally filtered by status and role, sorted by username"""
        filters = {}
        if status:
            filters['status'] = status.value
        if role:
            filters['role'] = role.value
        accounts = [Account.from_dict(d) for d in self.storage.find(self.TABLE, filters)]
        return sorted(accounts, key=lambda a: a.username)

    def set_status(self, account_id: str, status: Union[str, AccountStatus],
                   changed_by: Optional[str] = None) -> Account:
        """Overwrite account status; any known status is reachable from any other"""
        new_status = parse_status(status)
        with self.storage.atomic():
            account = self.require_account(account_id)
            old_status = account.status
            account.status = new_status
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_STATUS_CHANGED,
                entity_type="account",
                entity_id=account_id,
                metadata={"old_status": old_status.value, "new_status": new_status.value},
                user_id=changed_by
            )

        log_action(
            logger, "info", "Account status changed",
            user_id=changed_by, action="set_status", resource=f"account:{account_id}",
            extra={"old_status": old_status.value, "new_status": new_status.value}
        )
        return account

    def adjust_balance(self, account_id: str, new_balance: AmountLike) -> Account:
        """
        Overwrite the stored balance.

        Performs no validation of sign or magnitude; money movement goes
        through apply_delta.
        """
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.balance = quantize_money(new_balance)
            self._save_account(account)
            return account

    def apply_delta(self, account_id: str, signed_amount: AmountLike) -> Account:
        """
        Apply a signed change to the balance if the result stays non-negative.

        Raises:
            AccountNotFound: unknown account
            InsufficientFunds: the result would be below zero
        """
        delta = quantize_money(signed_amount)
        with self.storage.atomic():
            account = self.require_account(account_id)
            new_balance = account.balance + delta
            if new_balance < 0:
                raise InsufficientFunds(
                    account_id=account_id, balance=account.balance, requested=-delta
                )
            return self.adjust_balance(account_id, new_balance)

    def set_auth_token(self, account_id: str, token: Optional[str]) -> Account:
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.auth_token = token
            self._save_account(account)
            return account

    def set_avatar(self, account_id: str, avatar: str) -> Account:
        if not avatar or not avatar.strip():
            raise InvalidRequest("Avatar is required")
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.avatar = avatar
            self._save_account(account)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_PROFILE_UPDATED,
                entity_type="account",
                entity_id=account_id,
                metadata={"field": "avatar"},
                user_id=account_id
            )
            return account

    def set_theme_preference(self, account_id: str,
                             theme: Union[str, ThemePreference]) -> Account:
        try:
            preference = ThemePreference(theme)
        except ValueError:
            raise InvalidRequest("Invalid theme preference")
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.theme_preference = preference
            self._save_account(account)
            return account

    def record_login(self, account_id: str) -> Account:
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.last_login = self._clock()
            self._save_account(account)
            return account

    def ensure_default_admin(self, username: str = "admin", password: str = "admin123",
                             pin: str = "0000",
                             email: str = "admin@nivalusbank.com") -> Optional[Account]:
        """Create the bootstrap admin unless an account with that username exists"""
        with self.storage.atomic():
            if self.get_by_username(username):
                return None
            account = self.create_account(
                username=username,
                email=email,
                password=password,
                pin=pin,
                role=AccountRole.ADMIN
            )
        logger.info("Default admin account created")
        return account

    def _save_account(self, account: Account) -> None:
        account.updated_at = self._clock()
        self.storage.save(self.TABLE, account.id, account.to_dict())
