"""
Security utilities.

Webhook signature helpers and masking of sensitive values in logs.
"""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def mask_sensitive(value: str | None, show_chars: int = 4) -> str:
    """
    Mask sensitive string (secrets, signatures, etc).

    Args:
        value: Sensitive value to mask
        show_chars: Number of characters to show at start and end

    Returns:
        Masked value or '***' if too short

    Examples:
        >>> mask_sensitive("my_secret_key_1234567890", show_chars=4)
        'my_s...7890'
        >>> mask_sensitive("short")
        '***'
        >>> mask_sensitive(None)
        '***'
    """
    if not value or len(value) <= show_chars * 2:
        return "***"
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """
    Compute webhook signature: 'sha256=' + hex HMAC-SHA256 of the raw body.

    Args:
        raw_body: Request body exactly as received
        secret: Shared secret

    Returns:
        Signature header value
    """
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """
    Verify webhook signature in constant time.

    Args:
        raw_body: Request body exactly as received
        signature: Value of the signature header
        secret: Shared secret

    Returns:
        True only if both signature and secret are present and match
    """
    if not signature or not secret:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(signature.strip(), expected)
