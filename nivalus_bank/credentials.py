"""
Credential & Token Service

Salted scrypt hashing for passwords and PINs, signed bearer tokens, and a
per-account limiter for PIN verification attempts.
"""

import hashlib
import hmac
import re
import secrets
import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, Optional

import jwt

from .errors import InvalidRequest, PinAttemptsExceeded, Unauthenticated


PIN_PATTERN = re.compile(r"^[0-9]{4}$")

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64


def _generate_salt() -> str:
    """Generate random salt for secret hashing"""
    return secrets.token_hex(16)


def _scrypt(plaintext: str, salt: str) -> str:
    return hashlib.scrypt(
        plaintext.encode(),
        salt=salt.encode(),
        n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P,
        dklen=KEY_LENGTH
    ).hex()


def hash_secret(plaintext: str) -> str:
    """
    Hash a secret with a fresh random salt.

    Returns:
        "<hex-hash>.<salt>"
    """
    salt = _generate_salt()
    return f"{_scrypt(plaintext, salt)}.{salt}"


def verify_secret(plaintext: str, stored: Optional[str]) -> bool:
    """Recompute the hash with the stored salt and compare in constant time"""
    if not stored or stored.count(".") != 1:
        return False
    hashed, salt = stored.split(".")
    if not hashed or not salt:
        return False
    candidate = _scrypt(plaintext, salt)
    return hmac.compare_digest(candidate, hashed)


hash_password = hash_secret
hash_pin = hash_secret
verify_password = verify_secret
verify_pin = verify_secret


def validate_pin_format(pin: Optional[str]) -> str:
    if pin is None or not PIN_PATTERN.match(pin):
        raise InvalidRequest("PIN must be exactly 4 digits")
    return pin


def validate_password(password: Optional[str], min_length: int = 6) -> str:
    if password is None or len(password) < min_length:
        raise InvalidRequest(f"Password must be at least {min_length} characters")
    return password


class TokenService:
    """Issues and decodes signed bearer tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_days: int = 7,
                 clock: Optional[Callable[[], datetime]] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.expiry = timedelta(days=expiry_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self, username: str) -> str:
        """Issue a token naming the given username"""
        now = self._clock()
        payload = {
            "sub": username,
            "iat": now,
            "exp": now + self.expiry,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Verify signature and expiry, returning the claims"""
        try:
            payload = jwt.decode(
                token, self.secret, algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]}
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token expired")
        except jwt.InvalidTokenError:
            raise Unauthenticated("Invalid token")

        if not payload.get("sub"):
            raise Unauthenticated("Invalid token")
        return payload


class PinAttemptLimiter:
    """
    Sliding-window limiter on PIN checks, keyed by account id.

    acquire() reserves an attempt before the PIN is verified, so concurrent
    checks cannot overshoot max_attempts. A successful check calls reset();
    a failed one leaves its reservation in the window until it ages out.
    """

    def __init__(self, max_attempts: int = 5, window_minutes: int = 15,
                 clock: Optional[Callable[[], datetime]] = None):
        self.max_attempts = max_attempts
        self.window = timedelta(minutes=window_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._failures: Dict[str, Deque[datetime]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, account_id: str, now: datetime) -> Deque[datetime]:
        failures = self._failures[account_id]
        while failures and now - failures[0] >= self.window:
            failures.popleft()
        return failures

    def acquire(self, account_id: str) -> int:
        """
        Reserve one PIN check, counted as a failure until reset().

        Returns the attempts now in the window; raises PinAttemptsExceeded
        when the window is already full.
        """
        with self._lock:
            now = self._clock()
            failures = self._prune(account_id, now)
            if len(failures) >= self.max_attempts:
                raise PinAttemptsExceeded(account_id=account_id)
            failures.append(now)
            return len(failures)

    def reset(self, account_id: str) -> None:
        with self._lock:
            self._failures.pop(account_id, None)

    def is_locked(self, account_id: str) -> bool:
        with self._lock:
            return len(self._prune(account_id, self._clock())) >= self.max_attempts
