"""
Registration, login, logout and profile endpoints
"""

from fastapi import APIRouter, Depends, Request, Response, status

from .deps import (
    BankingSystem, get_banking_system, get_credentials, get_current_account, http_error
)
from .schemas import AvatarRequest, LoginRequest, RegisterRequest, ThemeRequest
from ..accounts import Account
from ..auth import Credentials, Session
from ..errors import BankingError


router = APIRouter()


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


def _set_session_cookie(response: Response, session: Session, system: BankingSystem) -> None:
    response.set_cookie(
        key=system.config.session_cookie_name,
        value=session.id,
        max_age=system.config.session_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=system.config.session_cookie_secure,
        samesite="lax"
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a customer account and sign it in"""
    ip_address, user_agent = _client_info(request)
    try:
        account, token, session = system.auth_service.register(
            username=body.username,
            email=body.email,
            password=body.password,
            pin=body.pin,
            avatar=body.avatar,
            ip_address=ip_address,
            user_agent=user_agent
        )
    except BankingError as e:
        raise http_error(e)

    _set_session_cookie(response, session, system)
    return {**account.to_public_dict(), "auth_token": token}


@router.post("/login")
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate with username and password"""
    ip_address, user_agent = _client_info(request)
    try:
        account, token, session = system.auth_service.login(
            body.username, body.password, ip_address=ip_address, user_agent=user_agent
        )
    except BankingError as e:
        raise http_error(e)

    _set_session_cookie(response, session, system)
    return {**account.to_public_dict(), "auth_token": token}


@router.post("/logout")
def logout(
    response: Response,
    account: Account = Depends(get_current_account),
    credentials: Credentials = Depends(get_credentials),
    system: BankingSystem = Depends(get_banking_system)
):
    system.auth_service.logout(account, session_id=credentials.session_id)
    response.delete_cookie(system.config.session_cookie_name)
    return {"message": "Logged out successfully"}


@router.get("/user")
def get_user(account: Account = Depends(get_current_account)):
    """Current account"""
    return account.to_public_dict()


@router.patch("/user/avatar")
def update_avatar(
    body: AvatarRequest,
    account: Account = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        updated = system.accounts.set_avatar(account.id, body.avatar or "")
    except BankingError as e:
        raise http_error(e)
    return updated.to_public_dict()


@router.patch("/user/theme")
def update_theme(
    body: ThemeRequest,
    account: Account = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        updated = system.accounts.set_theme_preference(account.id, body.theme or "")
    except BankingError as e:
        raise http_error(e)
    return updated.to_public_dict()
