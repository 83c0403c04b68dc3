"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from nivalus_bank.storage import InMemoryStorage
from nivalus_bank.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimals, datetimes and enums in metadata become JSON values"""
        now = datetime.now(timezone.utc)

        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id="TXN001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("40.00"),
                "timestamp": now,
                "type": AuditEventType.TRANSACTION_CREATED,
                "nested": {"values": [Decimal("1.50")]}
            }
        )

        assert event.metadata["amount"] == "40.00"
        assert event.metadata["timestamp"] == now.isoformat()
        assert event.metadata["type"] == "transaction_created"
        assert event.metadata["nested"]["values"] == ["1.50"]

    def test_hash_is_deterministic(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT002",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.LOGIN_SUCCESS,
            entity_type="account",
            entity_id="ACC001",
            previous_hash="abc",
            current_hash="",
            metadata={"session_id": "S1"}
        )
        event.current_hash = event.calculate_hash()

        assert event.verify_hash()
        assert len(event.current_hash) == 64

        event.metadata["session_id"] = "S2"
        assert not event.verify_hash()


class TestAuditTrail:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_events_are_chained(self):
        first = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "ACC001", {"username": "alice"}
        )
        second = self.audit_trail.log_event(
            AuditEventType.LOGIN_SUCCESS, "account", "ACC001", user_id="ACC001"
        )

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.count_events() == 2

    def test_integrity_of_untampered_chain(self):
        for i in range(5):
            self.audit_trail.log_event(
                AuditEventType.TRANSACTION_CREATED, "transaction", f"TXN{i}",
                {"amount": Decimal("10.00")}
            )

        result = self.audit_trail.verify_integrity()
        assert result["valid"] is True
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampered_metadata_is_detected(self):
        event = self.audit_trail.log_event(
            AuditEventType.TRANSACTION_CREATED, "transaction", "TXN001",
            {"amount": "40.00"}
        )
        self.audit_trail.log_event(
            AuditEventType.TRANSACTION_DELETED, "transaction", "TXN001"
        )

        data = self.storage.load("audit_events", event.id)
        data["metadata"]["amount"] = "4000.00"
        self.storage.save("audit_events", event.id, data)

        result = self.audit_trail.verify_integrity()
        assert result["valid"] is False
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_deleted_event_breaks_chain(self):
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "account", "A")
        middle = self.audit_trail.log_event(AuditEventType.LOGOUT, "account", "A")
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "account", "A")

        self.storage.delete("audit_events", middle.id)

        result = self.audit_trail.verify_integrity()
        assert result["valid"] is False
        assert len(result["chain_breaks"]) == 1

    def test_query_by_entity_and_type(self):
        self.audit_trail.log_event(AuditEventType.PIN_FAILED, "account", "A")
        self.audit_trail.log_event(AuditEventType.PIN_FAILED, "account", "B")
        self.audit_trail.log_event(AuditEventType.LOGOUT, "account", "A")

        events_a = self.audit_trail.get_events_for_entity("account", "A")
        assert [e.event_type for e in events_a] == [
            AuditEventType.PIN_FAILED, AuditEventType.LOGOUT
        ]
        assert len(self.audit_trail.get_events_by_type(AuditEventType.PIN_FAILED)) == 2
        assert len(self.audit_trail.get_events_by_type(AuditEventType.PIN_FAILED, limit=1)) == 1

    def test_failed_unit_leaves_no_event(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.TRANSACTION_CREATED, "transaction", "T")
                raise RuntimeError("record failed")

        assert self.audit_trail.count_events() == 0
        assert self.audit_trail.verify_integrity()["valid"] is True
