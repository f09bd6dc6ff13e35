"""Tests for the settlement logging helpers."""

from settlement.utils.logging import get_log_level, mask, mask_sensitive_fields


class TestMask:
    def test_keeps_last_four(self):
        assert mask("acct_1Nv0FG") == "***v0FG"

    def test_short_values_are_fully_hidden(self):
        assert mask("abc") == "***"


class TestMaskSensitiveFields:
    def test_payout_destination_is_masked(self):
        event = {"event": "Transfer created", "destination": "acct_seller_1", "amount_cents": 880}

        result = mask_sensitive_fields(None, "info", event)

        assert result == {"event": "Transfer created", "destination": "***er_1", "amount_cents": 880}

    def test_signature_is_masked(self):
        result = mask_sensitive_fields(None, "warning", {"event": "Bad signature", "signature": "t=1,v1=abcdef"})
        assert result["signature"] == "***cdef"

    def test_empty_values_are_left_alone(self):
        result = mask_sensitive_fields(None, "info", {"event": "Seller has no payout account", "payout_account_id": None})
        assert result["payout_account_id"] is None


class TestLogLevel:
    def test_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.setenv("PROTEAN_ENV", "production")
        assert get_log_level() == "INFO"

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_log_level() == "ERROR"
