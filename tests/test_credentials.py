"""
Tests for secret hashing, bearer tokens and the PIN attempt limiter
"""

import threading
import pytest
from datetime import datetime, timedelta, timezone

import jwt

from nivalus_bank.credentials import (
    PinAttemptLimiter, TokenService, hash_password, hash_pin, hash_secret,
    validate_password, validate_pin_format, verify_password, verify_pin, verify_secret
)
from nivalus_bank.errors import InvalidRequest, PinAttemptsExceeded, Unauthenticated


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class TestSecretHashing:

    def test_hash_format(self):
        stored = hash_secret("hunter22")
        hashed, salt = stored.split(".")
        assert len(hashed) == 128  # 64-byte key, hex encoded
        assert len(salt) == 32

    def test_verify_round_trip(self):
        stored = hash_password("hunter22")
        assert verify_password("hunter22", stored)
        assert not verify_password("hunter23", stored)

    def test_salts_differ(self):
        assert hash_pin("1234") != hash_pin("1234")

    def test_pin_is_not_stored_in_plaintext(self):
        stored = hash_pin("1234")
        assert "1234" not in stored
        assert verify_pin("1234", stored)
        assert not verify_pin("4321", stored)

    @pytest.mark.parametrize("stored", [None, "", "nosalt", "a.b.c", ".salt", "hash."])
    def test_malformed_stored_values_do_not_verify(self, stored):
        assert verify_secret("anything", stored) is False


class TestValidation:

    @pytest.mark.parametrize("pin", ["0000", "1234", "9876"])
    def test_valid_pins(self, pin):
        assert validate_pin_format(pin) == pin

    @pytest.mark.parametrize("pin", [None, "", "123", "12345", "12a4", " 123"])
    def test_invalid_pins(self, pin):
        with pytest.raises(InvalidRequest, match="PIN must be exactly 4 digits"):
            validate_pin_format(pin)

    def test_password_length(self):
        assert validate_password("secret") == "secret"
        with pytest.raises(InvalidRequest, match="at least 6 characters"):
            validate_password("short")


class TestTokenService:

    def setup_method(self):
        self.clock = FakeClock(datetime.now(timezone.utc))
        self.tokens = TokenService("test-secret", expiry_days=7, clock=self.clock)

    def test_issue_and_decode(self):
        token = self.tokens.issue("alice")
        claims = self.tokens.decode(token)
        assert claims["sub"] == "alice"
        assert "jti" in claims

    def test_tokens_issued_together_differ(self):
        assert self.tokens.issue("alice") != self.tokens.issue("alice")

    def test_expiry_is_seven_days(self):
        claims = self.tokens.decode(self.tokens.issue("alice"))
        assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60

    def test_expired_token_rejected(self):
        self.clock.advance(days=-8)
        token = self.tokens.issue("alice")
        with pytest.raises(Unauthenticated, match="Token expired"):
            self.tokens.decode(token)

    def test_bad_signature_rejected(self):
        other = TokenService("another-secret")
        with pytest.raises(Unauthenticated, match="Invalid token"):
            self.tokens.decode(other.issue("alice"))

    def test_garbage_rejected(self):
        with pytest.raises(Unauthenticated, match="Invalid token"):
            self.tokens.decode("not-a-token")

    def test_missing_subject_rejected(self):
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(days=1)},
            "test-secret", algorithm="HS256"
        )
        with pytest.raises(Unauthenticated):
            self.tokens.decode(token)


class TestPinAttemptLimiter:

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = PinAttemptLimiter(max_attempts=5, window_minutes=15, clock=self.clock)

    def fail(self, times, account_id="acc"):
        for _ in range(times):
            self.limiter.acquire(account_id)

    def test_locks_after_max_attempts(self):
        self.fail(4)
        assert not self.limiter.is_locked("acc")

        assert self.limiter.acquire("acc") == 5
        assert self.limiter.is_locked("acc")
        with pytest.raises(PinAttemptsExceeded):
            self.limiter.acquire("acc")

    def test_refused_attempts_are_not_counted(self):
        self.fail(5)
        for _ in range(3):
            with pytest.raises(PinAttemptsExceeded):
                self.limiter.acquire("acc")

        self.clock.advance(minutes=15)
        assert self.limiter.acquire("acc") == 1

    def test_window_drains(self):
        self.fail(5)
        self.clock.advance(minutes=15)
        assert not self.limiter.is_locked("acc")
        self.limiter.acquire("acc")

    def test_accounts_are_independent(self):
        self.fail(5)
        assert self.limiter.acquire("other") == 1

    def test_reset_clears_attempts(self):
        self.fail(5)
        self.limiter.reset("acc")
        assert self.limiter.acquire("acc") == 1

    def test_concurrent_acquires_never_exceed_limit(self):
        barrier = threading.Barrier(20)
        granted = []
        refused = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                self.limiter.acquire("acc")
                outcome = granted
            except PinAttemptsExceeded:
                outcome = refused
            with lock:
                outcome.append(1)

        threads = [threading.Thread(target=attempt) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(granted) == 5
        assert len(refused) == 15
