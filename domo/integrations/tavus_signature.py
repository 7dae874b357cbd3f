"""Authentication of inbound Tavus webhooks.

Two methods are accepted and either one is sufficient:

- HMAC-SHA256 signature over the exact raw body, sent in one of the
  ``x-tavus-signature`` / ``tavus-signature`` / ``x-signature`` headers.
  The header value may be raw hex, raw base64, ``sha256=<sig>`` or a
  comma-separated list of ``key=value`` pairs (``v1``, ``signature``,
  ``sha256``).
- A shared token in the ``?t=`` or ``?token=`` query parameter, for
  callback URLs configured without signing.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-tavus-signature", "tavus-signature", "x-signature")
TOKEN_PARAMS = ("t", "token")
_PAIR_KEYS = ("v1", "signature", "sha256")


@dataclass(frozen=True)
class AuthResult:
    """Outcome of webhook authentication."""

    is_valid: bool
    method: Literal["signature", "token", "none"]


def extract_signature(header: str | None) -> str | None:
    """Extract the signature value from a signature header.

    Args:
        header: Raw header value.

    Returns:
        The signature string, or None if the header is empty.
    """
    if not header:
        return None
    trimmed = header.strip()
    if not trimmed:
        return None

    if "," in trimmed:
        for part in trimmed.split(","):
            key, sep, value = part.strip().partition("=")
            if not sep or not key or not value:
                continue
            if key.strip().lower() in _PAIR_KEYS:
                return value.strip()

    if trimmed.lower().startswith("sha256="):
        return trimmed[len("sha256="):]

    return trimmed


def _decode_candidates(signature: str) -> list[bytes]:
    """Decode a signature as hex first, then base64."""
    candidates: list[bytes] = []
    try:
        candidates.append(bytes.fromhex(signature))
    except ValueError:
        pass
    try:
        candidates.append(base64.b64decode(signature, validate=True))
    except (binascii.Error, ValueError):
        pass
    return candidates


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """Verify an HMAC-SHA256 signature with a constant-time comparison.

    Args:
        raw_body: Exact request bytes as received.
        signature_header: Header value in any supported format.
        secret: Shared webhook secret.

    Returns:
        True if the signature matches in hex or base64 encoding.
    """
    if not raw_body or not signature_header or not secret:
        return False

    signature = extract_signature(signature_header)
    if not signature:
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    for provided in _decode_candidates(signature):
        if len(provided) == len(expected) and hmac.compare_digest(provided, expected):
            return True
    return False


def verify_token(token_param: str | None, token_env: str | None) -> bool:
    """Compare the query token against the configured token.

    Args:
        token_param: Value of ``?t=`` / ``?token=``.
        token_env: Configured TAVUS_WEBHOOK_TOKEN.
    """
    if not token_param or not token_env:
        return False
    return hmac.compare_digest(token_param.strip().encode(), token_env.strip().encode())


def generate_signature(
    raw_body: bytes,
    secret: str,
    fmt: Literal["hex", "base64"] = "hex",
) -> str:
    """Sign a body the way Tavus does (used by tests and local replay tools)."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    if fmt == "base64":
        return base64.b64encode(digest).decode("ascii")
    return digest.hex()


def _first_present(source: Mapping[str, str], keys: tuple[str, ...]) -> str | None:
    lowered = {k.lower(): v for k, v in source.items()}
    for key in keys:
        value = lowered.get(key)
        if value:
            return value
    return None


def authenticate(
    raw_body: bytes,
    headers: Mapping[str, str],
    query: Mapping[str, str],
    secret: str,
    token: str,
) -> AuthResult:
    """Authenticate a webhook by signature, falling back to the query token.

    Args:
        raw_body: Exact request bytes.
        headers: Request headers (any case).
        query: Query parameters.
        secret: TAVUS_WEBHOOK_SECRET, may be empty.
        token: TAVUS_WEBHOOK_TOKEN, may be empty.
    """
    signature = _first_present(headers, SIGNATURE_HEADERS)
    if secret and signature and verify_signature(raw_body, signature, secret):
        return AuthResult(is_valid=True, method="signature")

    token_param = _first_present(query, TOKEN_PARAMS)
    if token and token_param and verify_token(token_param, token):
        return AuthResult(is_valid=True, method="token")

    logger.warning(
        "Webhook authentication failed",
        extra={
            "signature_present": bool(signature),
            "token_present": bool(token_param),
            "secret_configured": bool(secret),
            "token_configured": bool(token),
        },
    )
    return AuthResult(is_valid=False, method="none")
