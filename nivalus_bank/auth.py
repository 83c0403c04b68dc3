"""
Authentication Module

Registration, login and logout, plus the strategies that resolve a request's
credentials to an account. Bearer tokens and server-side sessions are two
AuthStrategy implementations composed by an ordered AuthChain.
"""

import hmac
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple, Any

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountStore
from .credentials import TokenService, verify_password
from .errors import AccountInactive, Unauthenticated
from .logging_config import get_logger, log_action


logger = get_logger("nivalus.auth")


@dataclass
class Session(StorageRecord):
    """Server-side browser session"""
    account_id: str
    expires_at: datetime
    is_active: bool = True
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.is_active and self.expires_at > now

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        data = dict(data)
        data['created_at'] = cls.parse_datetime(data['created_at'])
        data['updated_at'] = cls.parse_datetime(data['updated_at'])
        data['expires_at'] = cls.parse_datetime(data['expires_at'])
        return cls(**data)


class SessionStore:
    """Creates, validates and revokes sessions"""

    TABLE = "sessions"

    def __init__(self, storage: StorageInterface, max_age_days: int = 7,
                 clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.max_age = timedelta(days=max_age_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create(self, account_id: str, ip_address: Optional[str] = None,
               user_agent: Optional[str] = None) -> Session:
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            expires_at=now + self.max_age,
            ip_address=ip_address,
            user_agent=user_agent
        )
        self.storage.save(self.TABLE, session.id, session.to_dict())
        return session

    def get_valid(self, session_id: str) -> Optional[Session]:
        """Return the session if it exists, is active and has not expired"""
        data = self.storage.load(self.TABLE, session_id)
        if not data:
            return None
        session = Session.from_dict(data)
        if not session.is_valid(self._clock()):
            return None
        return session

    def revoke(self, session_id: str) -> bool:
        with self.storage.atomic():
            data = self.storage.load(self.TABLE, session_id)
            if not data:
                return False
            data['is_active'] = False
            data['updated_at'] = self._clock().isoformat()
            self.storage.save(self.TABLE, session_id, data)
            return True

    def revoke_all_for_account(self, account_id: str) -> int:
        """Invalidate every active session of an account"""
        revoked = 0
        with self.storage.atomic():
            for data in self.storage.find(self.TABLE, {"account_id": account_id, "is_active": True}):
                data['is_active'] = False
                data['updated_at'] = self._clock().isoformat()
                self.storage.save(self.TABLE, data['id'], data)
                revoked += 1
        return revoked


@dataclass
class Credentials:
    """What the transport layer extracted from a request"""
    bearer_token: Optional[str] = None
    session_id: Optional[str] = None


class AuthStrategy(ABC):
    """
    Resolves one kind of credential to an account.

    authenticate() returns None when its credential is absent, and raises
    Unauthenticated when the credential is present but not acceptable.
    """

    @abstractmethod
    def authenticate(self, credentials: Credentials) -> Optional[Account]:
        pass


class TokenAuth(AuthStrategy):
    """Bearer token matching the single token stored on the account"""

    def __init__(self, tokens: TokenService, accounts: AccountStore):
        self.tokens = tokens
        self.accounts = accounts

    def authenticate(self, credentials: Credentials) -> Optional[Account]:
        token = credentials.bearer_token
        if not token:
            return None

        claims = self.tokens.decode(token)
        account = self.accounts.get_by_username(claims['sub'])
        if not account or not account.auth_token:
            raise Unauthenticated("Invalid token")
        if not hmac.compare_digest(account.auth_token, token):
            raise Unauthenticated("Invalid token")
        if not account.is_active:
            raise Unauthenticated("Account is not active")
        return account


class SessionAuth(AuthStrategy):
    """Server-side session identified by a cookie"""

    def __init__(self, sessions: SessionStore, accounts: AccountStore):
        self.sessions = sessions
        self.accounts = accounts

    def authenticate(self, credentials: Credentials) -> Optional[Account]:
        if not credentials.session_id:
            return None

        session = self.sessions.get_valid(credentials.session_id)
        if not session:
            raise Unauthenticated("Session expired")
        account = self.accounts.get_account(session.account_id)
        if not account or not account.is_active:
            raise Unauthenticated("Account is not active")
        return account


class AuthChain:
    """
    Tries strategies in order. The first to return an account wins; the
    first to raise stops the chain.
    """

    def __init__(self, strategies: List[AuthStrategy]):
        self.strategies = list(strategies)

    def authenticate(self, credentials: Credentials) -> Account:
        for strategy in self.strategies:
            account = strategy.authenticate(credentials)
            if account is not None:
                return account
        raise Unauthenticated("Not authenticated")


class AuthService:
    """Registration, login and logout"""

    def __init__(self, accounts: AccountStore, tokens: TokenService,
                 sessions: SessionStore, audit_trail: AuditTrail):
        self.accounts = accounts
        self.tokens = tokens
        self.sessions = sessions
        self.audit_trail = audit_trail
        self.chain = AuthChain([
            TokenAuth(tokens, accounts),
            SessionAuth(sessions, accounts),
        ])

    def authenticate(self, credentials: Credentials) -> Account:
        return self.chain.authenticate(credentials)

    def register(self, username: str, email: str, password: str, pin: str,
                 avatar: Optional[str] = None, ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None) -> Tuple[Account, str, Session]:
        """
        Create a user account and sign it in.

        Returns:
            (account, bearer token, session)
        """
        account = self.accounts.create_account(
            username=username, email=email, password=password, pin=pin, avatar=avatar
        )
        return self._sign_in(account, ip_address, user_agent)

    def login(self, username: str, password: str, ip_address: Optional[str] = None,
              user_agent: Optional[str] = None) -> Tuple[Account, str, Session]:
        """
        Verify credentials, rotate the account's token and open a session.

        Raises:
            Unauthenticated: unknown username or wrong password
            AccountInactive: credentials are right but status is not active
        """
        account = self.accounts.get_by_username(username or "")
        if not account or not verify_password(password or "", account.password_hash):
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_FAILED,
                entity_type="account",
                entity_id=account.id if account else (username or ""),
                metadata={"reason": "invalid_credentials"}
            )
            log_action(
                logger, "warning", "Login failed",
                action="login", resource="auth", extra={"reason": "invalid_credentials"}
            )
            raise Unauthenticated("Invalid credentials")

        if not account.is_active:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_FAILED,
                entity_type="account",
                entity_id=account.id,
                metadata={"reason": "inactive", "status": account.status},
                user_id=account.id
            )
            raise AccountInactive()

        return self._sign_in(account, ip_address, user_agent)

    def logout(self, account: Account, session_id: Optional[str] = None) -> None:
        """Clear the stored token and revoke the presented session"""
        self.accounts.set_auth_token(account.id, None)
        if session_id:
            self.sessions.revoke(session_id)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOGOUT,
            entity_type="account",
            entity_id=account.id,
            metadata={"session_id": session_id},
            user_id=account.id
        )
        log_action(logger, "info", "User logged out",
                   user_id=account.id, action="logout", resource="auth")

    def _sign_in(self, account: Account, ip_address: Optional[str],
                 user_agent: Optional[str]) -> Tuple[Account, str, Session]:
        token = self.tokens.issue(account.username)
        with self.accounts.storage.atomic():
            self.accounts.set_auth_token(account.id, token)
            account = self.accounts.record_login(account.id)
            session = self.sessions.create(account.id, ip_address, user_agent)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_SUCCESS,
                entity_type="account",
                entity_id=account.id,
                metadata={"session_id": session.id},
                user_id=account.id
            )

        log_action(logger, "info", "User authenticated successfully",
                   user_id=account.id, action="login", resource="auth")
        return account, token, session
