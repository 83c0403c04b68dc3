"""
Authentication and authorization dependencies
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..accounts import Account, AccountStore
from ..ledger import TransactionLedger
from ..credentials import PinAttemptLimiter, TokenService
from ..transfers import TransferOrchestrator
from ..auth import AuthService, Credentials, SessionStore
from ..admin import AdminService
from ..config import NivalusConfig, get_config
from ..errors import BankingError


class BankingSystem:
    """Banking core with all components wired to one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[NivalusConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)

        self.audit_trail = AuditTrail(self.storage)
        self.accounts = AccountStore(
            self.storage, self.audit_trail,
            password_min_length=self.config.password_min_length
        )
        self.ledger = TransactionLedger(self.storage)
        self.tokens = TokenService(
            self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            expiry_days=self.config.token_expiry_days
        )
        self.sessions = SessionStore(self.storage, max_age_days=self.config.session_max_age_days)
        self.pin_limiter = PinAttemptLimiter(
            max_attempts=self.config.pin_max_attempts,
            window_minutes=self.config.pin_lockout_minutes
        )
        self.orchestrator = TransferOrchestrator(
            self.storage, self.accounts, self.ledger, self.audit_trail,
            pin_limiter=self.pin_limiter
        )
        self.auth_service = AuthService(self.accounts, self.tokens, self.sessions, self.audit_trail)
        self.admin_service = AdminService(
            self.accounts, self.ledger, self.orchestrator, self.sessions, self.audit_trail
        )

        if self.config.bootstrap_admin:
            self.accounts.ensure_default_admin(
                username=self.config.default_admin_username,
                password=self.config.default_admin_password,
                pin=self.config.default_admin_pin,
                email=self.config.default_admin_email
            )


# Global banking system instance, built on first use
banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system


security = HTTPBearer(auto_error=False)


def http_error(error: BankingError) -> HTTPException:
    """Translate a domain error into the HTTP error it is surfaced as"""
    return HTTPException(status_code=error.status_code, detail=error.message)


def get_credentials(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> Credentials:
    return Credentials(
        bearer_token=bearer.credentials if bearer else None,
        session_id=request.cookies.get(system.config.session_cookie_name)
    )


def get_current_account(
    credentials: Credentials = Depends(get_credentials),
    system: BankingSystem = Depends(get_banking_system)
) -> Account:
    """Dependency that resolves the request's bearer token or session to an account"""
    try:
        return system.auth_service.authenticate(credentials)
    except BankingError as e:
        raise http_error(e)


def require_admin(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_admin:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return account
