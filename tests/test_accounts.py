"""
Test suite for accounts module

Tests account creation, uniqueness, status changes, the balance primitives
and profile mutators.
"""

import pytest
from decimal import Decimal

from nivalus_bank.storage import InMemoryStorage
from nivalus_bank.audit import AuditTrail, AuditEventType
from nivalus_bank.accounts import (
    Account, AccountRole, AccountStatus, AccountStore, ThemePreference,
    parse_amount, quantize_money
)
from nivalus_bank.credentials import verify_password, verify_pin
from nivalus_bank.errors import (
    AccountNotFound, DuplicateEmail, DuplicateUsername, InsufficientFunds,
    InvalidRequest, InvalidStatus
)


class TestAmounts:

    @pytest.mark.parametrize("raw,expected", [
        ("40", Decimal("40.00")),
        (40, Decimal("40.00")),
        (40.1, Decimal("40.10")),
        (" 12.34 ", Decimal("12.34")),
        ("1.500", Decimal("1.50")),
        ("1e2", Decimal("100.00")),
        (Decimal("-5"), Decimal("-5.00")),
        ("999999999999999.99", Decimal("999999999999999.99")),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [
        None, True, "", "abc", "NaN", "Infinity", "1e", "--1",
        "1e30", 1e30, "-1e30", "1000000000000000"
    ])
    def test_parse_amount_rejects_invalid(self, raw):
        with pytest.raises(InvalidRequest, match="Invalid amount"):
            parse_amount(raw)

    @pytest.mark.parametrize("raw", ["0.005", " 12.345 ", 0.001, "1e-3"])
    def test_parse_amount_rejects_sub_cent_precision(self, raw):
        with pytest.raises(InvalidRequest, match="more than 2 decimal places"):
            parse_amount(raw)

    def test_quantize_money(self):
        assert quantize_money("2.675") == Decimal("2.68")


class TestAccountStore:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.store = AccountStore(self.storage, self.audit_trail)

    def _create(self, username="alice", email="alice@example.com", **kwargs):
        return self.store.create_account(
            username=username, email=email, password="secret1", pin="1234", **kwargs
        )

    def test_create_account_defaults(self):
        account = self._create()

        assert account.balance == Decimal("0.00")
        assert account.role == AccountRole.USER
        assert account.status == AccountStatus.ACTIVE
        assert account.theme_preference == ThemePreference.SYSTEM
        assert account.auth_token is None
        assert verify_password("secret1", account.password_hash)
        assert verify_pin("1234", account.pin_hash)

        loaded = self.store.get_account(account.id)
        assert loaded == account

    def test_create_account_is_audited(self):
        account = self._create()
        events = self.audit_trail.get_events_for_entity("account", account.id)
        assert events[0].event_type == AuditEventType.ACCOUNT_CREATED
        assert events[0].metadata["username"] == "alice"

    def test_duplicate_username(self):
        self._create()
        with pytest.raises(DuplicateUsername, match="Username already exists"):
            self._create(email="other@example.com")

    def test_duplicate_email(self):
        self._create()
        with pytest.raises(DuplicateEmail, match="Email already exists"):
            self._create(username="bob")

    def test_username_checked_before_email(self):
        self._create()
        with pytest.raises(DuplicateUsername):
            self._create()

    @pytest.mark.parametrize("kwargs,message", [
        ({"username": ""}, "Missing required fields"),
        ({"email": "not-an-email"}, "Invalid email address"),
    ])
    def test_create_account_validation(self, kwargs, message):
        with pytest.raises(InvalidRequest, match=message):
            self._create(**kwargs)
        assert self.store.list_accounts() == []

    def test_short_password_rejected(self):
        with pytest.raises(InvalidRequest, match="at least 6 characters"):
            self.store.create_account("alice", "alice@example.com", "abc", "1234")

    def test_bad_pin_rejected(self):
        with pytest.raises(InvalidRequest, match="PIN must be exactly 4 digits"):
            self.store.create_account("alice", "alice@example.com", "secret1", "12a4")

    def test_explicit_balance(self):
        account = self._create(balance="250.5")
        assert account.balance == Decimal("250.50")

    def test_negative_opening_balance_rejected(self):
        with pytest.raises(InvalidRequest, match="Balance cannot be negative"):
            self._create(balance="-1")

    def test_lookups(self):
        account = self._create()
        assert self.store.get_by_username("alice").id == account.id
        assert self.store.get_by_email("alice@example.com").id == account.id
        assert self.store.get_by_username("nobody") is None
        assert self.store.get_account("missing") is None

        with pytest.raises(AccountNotFound, match="User not found"):
            self.store.require_account("missing")

    def test_list_accounts_filters_and_sorts(self):
        self._create(username="zed", email="zed@example.com")
        self._create(username="amy", email="amy@example.com")
        self._create(username="root", email="root@example.com", role=AccountRole.ADMIN)
        self._create(username="old", email="old@example.com", status=AccountStatus.INACTIVE)

        names = [a.username for a in self.store.list_accounts()]
        assert names == ["amy", "old", "root", "zed"]

        users = self.store.list_accounts(status=AccountStatus.ACTIVE, role=AccountRole.USER)
        assert [a.username for a in users] == ["amy", "zed"]

    def test_set_status_is_unconditional(self):
        account = self._create()
        self.store.set_status(account.id, "deleted")
        restored = self.store.set_status(account.id, AccountStatus.ACTIVE)
        assert restored.status == AccountStatus.ACTIVE

    def test_set_status_unknown(self):
        account = self._create()
        with pytest.raises(InvalidStatus, match="Invalid status"):
            self.store.set_status(account.id, "frozen")
        with pytest.raises(AccountNotFound):
            self.store.set_status("missing", "inactive")

    def test_adjust_balance_overwrites(self):
        account = self._create(balance="10.00")
        updated = self.store.adjust_balance(account.id, "3.5")
        assert updated.balance == Decimal("3.50")
        assert self.store.get_account(account.id).balance == Decimal("3.50")

    def test_apply_delta(self):
        account = self._create(balance="100.00")
        assert self.store.apply_delta(account.id, Decimal("-40.00")).balance == Decimal("60.00")
        assert self.store.apply_delta(account.id, "25").balance == Decimal("85.00")

    def test_apply_delta_to_exactly_zero(self):
        account = self._create(balance="100.00")
        assert self.store.apply_delta(account.id, "-100.00").balance == Decimal("0.00")

    def test_apply_delta_refuses_negative_result(self):
        account = self._create(balance="100.00")
        with pytest.raises(InsufficientFunds, match="Insufficient funds"):
            self.store.apply_delta(account.id, "-100.01")
        assert self.store.get_account(account.id).balance == Decimal("100.00")

    def test_auth_token_set_and_cleared(self):
        account = self._create()
        assert self.store.set_auth_token(account.id, "tok").auth_token == "tok"
        assert self.store.set_auth_token(account.id, None).auth_token is None

    def test_avatar(self):
        account = self._create()
        assert self.store.set_avatar(account.id, "avatar-3").avatar == "avatar-3"
        with pytest.raises(InvalidRequest, match="Avatar is required"):
            self.store.set_avatar(account.id, "  ")

    def test_theme_preference(self):
        account = self._create()
        updated = self.store.set_theme_preference(account.id, "dark")
        assert updated.theme_preference == ThemePreference.DARK
        with pytest.raises(InvalidRequest, match="Invalid theme preference"):
            self.store.set_theme_preference(account.id, "sepia")

    def test_record_login(self):
        account = self._create()
        assert account.last_login is None
        assert self.store.record_login(account.id).last_login is not None

    def test_public_dict_has_no_secrets(self):
        account = self.store.set_auth_token(self._create().id, "tok")
        public = account.to_public_dict()
        assert "password_hash" not in public
        assert "pin_hash" not in public
        assert "auth_token" not in public
        assert public["balance"] == "0.00"
        assert public["role"] == "user"

    def test_round_trip_through_storage(self):
        account = self.store.record_login(self._create(balance="12.34").id)
        assert Account.from_dict(account.to_dict()) == account


class TestDefaultAdmin:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.store = AccountStore(self.storage, AuditTrail(self.storage))

    def test_bootstraps_admin_once(self):
        admin = self.store.ensure_default_admin()
        assert admin.username == "admin"
        assert admin.email == "admin@nivalusbank.com"
        assert admin.is_admin
        assert verify_password("admin123", admin.password_hash)
        assert verify_pin("0000", admin.pin_hash)

        assert self.store.ensure_default_admin() is None
        assert len(self.store.list_accounts()) == 1
