"""
Unit tests for sale webhook payloads and signatures.

Tests cover:
- SaleEvent validation and defaults
- parse_sale_event error mapping
- HMAC signature verification
"""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.services.commission.sale_events import (
    DEFAULT_CURRENCY,
    SaleEvent,
    parse_sale_event,
    verify_sale_signature,
)
from app.utils.exceptions import ValidationError
from app.utils.security import compute_signature, mask_sensitive


def payload(**overrides) -> bytes:
    """Serialized sale payload."""
    data = {
        "user_id": 42,
        "amount": "100.50",
        "transaction_id": "tx-001",
        "currency": "SCICENT",
        "timestamp": "2026-10-19T12:00:00Z",
    }
    data.update(overrides)
    return json.dumps(data).encode()


class TestSaleEvent:
    """Test payload model."""

    def test_parse_valid(self):
        """Valid payload parses to typed fields."""
        event = parse_sale_event(payload())

        assert event.user_id == 42
        assert event.amount == Decimal("100.50")
        assert event.trigger_id == "sale:tx-001"

    def test_missing_currency_defaults(self):
        """Empty currency means the platform token."""
        event = parse_sale_event(payload(currency=""))

        assert event.currency == DEFAULT_CURRENCY

    @pytest.mark.parametrize(
        "override",
        [
            {"amount": "0"},
            {"amount": "-5"},
            {"user_id": 0},
            {"transaction_id": ""},
            {"timestamp": "not-a-date"},
        ],
    )
    def test_invalid_payload_raises_validation_error(self, override):
        """Bad fields surface as a rewards validation error."""
        with pytest.raises(ValidationError):
            parse_sale_event(payload(**override))

    def test_malformed_json(self):
        """Non-JSON body is rejected."""
        with pytest.raises(ValidationError):
            parse_sale_event(b"{not json")

    def test_model_is_frozen(self):
        """Events are immutable."""
        event = parse_sale_event(payload())

        with pytest.raises(PydanticValidationError):
            event.user_id = 7

    def test_direct_construction(self):
        """Model accepts Python values."""
        event = SaleEvent(
            user_id=1,
            amount=Decimal("1"),
            transaction_id=" abc ",
            timestamp="2026-10-19T00:00:00Z",
        )

        assert event.transaction_id == "abc"
        assert event.currency == DEFAULT_CURRENCY


class TestSignature:
    """Test webhook signature helpers."""

    def test_signature_format(self):
        """Signature is sha256= plus hex digest."""
        signature = compute_signature(b"body", "secret")

        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_verify_valid(self):
        """Matching signature verifies."""
        body = payload()
        signature = compute_signature(body, "secret")

        assert verify_sale_signature(body, signature, "secret") is True

    def test_verify_tampered_body(self):
        """Any body change breaks the signature."""
        signature = compute_signature(payload(), "secret")

        assert verify_sale_signature(payload(amount="999"), signature, "secret") is False

    @pytest.mark.parametrize("signature,secret", [(None, "secret"), ("sha256=abc", None), ("", "")])
    def test_verify_missing_parts(self, signature, secret):
        """Missing signature or secret never verifies."""
        assert verify_sale_signature(b"body", signature, secret) is False

    def test_mask_sensitive(self):
        """Signatures are masked in logs."""
        assert mask_sensitive("sha256=0123456789abcdef") == "sha2...cdef"
        assert mask_sensitive(None) == "***"
