"""Tests for Tavus webhook authentication."""

import base64

import pytest

from domo.integrations.tavus_signature import (
    authenticate,
    extract_signature,
    generate_signature,
    verify_signature,
    verify_token,
)

SECRET = "whsec_test_secret"
BODY = b'{"event_type":"conversation.toolcall","conversation_id":"c1"}'


class TestExtractSignature:
    def test_raw_value(self) -> None:
        assert extract_signature("abc123") == "abc123"

    def test_sha256_prefix(self) -> None:
        assert extract_signature("sha256=abc123") == "abc123"

    @pytest.mark.parametrize(
        "header",
        ["t=1700000000,v1=abc123", "t=1, signature=abc123", "ts=5,sha256=abc123"],
    )
    def test_key_value_pairs(self, header: str) -> None:
        assert extract_signature(header) == "abc123"

    def test_empty(self) -> None:
        assert extract_signature(None) is None
        assert extract_signature("   ") is None


class TestVerifySignature:
    def test_hex_signature_accepted(self) -> None:
        sig = generate_signature(BODY, SECRET)
        assert verify_signature(BODY, sig, SECRET) is True

    def test_base64_signature_accepted(self) -> None:
        sig = generate_signature(BODY, SECRET, fmt="base64")
        assert verify_signature(BODY, sig, SECRET) is True

    def test_prefixed_and_paired_formats_accepted(self) -> None:
        sig = generate_signature(BODY, SECRET)
        assert verify_signature(BODY, f"sha256={sig}", SECRET) is True
        assert verify_signature(BODY, f"t=1700000000,v1={sig}", SECRET) is True

    def test_wrong_secret_rejected(self) -> None:
        sig = generate_signature(BODY, "other-secret")
        assert verify_signature(BODY, sig, SECRET) is False

    def test_mutated_body_rejected(self) -> None:
        sig = generate_signature(BODY, SECRET)
        assert verify_signature(BODY + b" ", sig, SECRET) is False

    def test_garbage_signature_rejected(self) -> None:
        assert verify_signature(BODY, "not-a-signature!", SECRET) is False
        assert verify_signature(BODY, base64.b64encode(b"short").decode(), SECRET) is False

    def test_missing_inputs_rejected(self) -> None:
        sig = generate_signature(BODY, SECRET)
        assert verify_signature(b"", sig, SECRET) is False
        assert verify_signature(BODY, None, SECRET) is False
        assert verify_signature(BODY, sig, "") is False


class TestVerifyToken:
    def test_matching_token(self) -> None:
        assert verify_token(" tok-1 ", "tok-1") is True

    def test_mismatch_and_missing(self) -> None:
        assert verify_token("tok-2", "tok-1") is False
        assert verify_token(None, "tok-1") is False
        assert verify_token("tok-1", "") is False


class TestAuthenticate:
    def test_signature_header_any_case(self) -> None:
        sig = generate_signature(BODY, SECRET)
        result = authenticate(BODY, {"X-Tavus-Signature": sig}, {}, SECRET, "")
        assert result.is_valid is True
        assert result.method == "signature"

    def test_falls_back_to_token(self) -> None:
        result = authenticate(BODY, {"x-signature": "bad"}, {"token": "tok"}, SECRET, "tok")
        assert result.is_valid is True
        assert result.method == "token"

    def test_short_token_param(self) -> None:
        assert authenticate(BODY, {}, {"t": "tok"}, "", "tok").is_valid is True

    def test_rejects_when_nothing_matches(self) -> None:
        result = authenticate(BODY, {}, {"t": "wrong"}, SECRET, "tok")
        assert result.is_valid is False
        assert result.method == "none"

    def test_rejects_when_nothing_configured(self) -> None:
        sig = generate_signature(BODY, SECRET)
        assert authenticate(BODY, {"tavus-signature": sig}, {"t": "x"}, "", "").is_valid is False
