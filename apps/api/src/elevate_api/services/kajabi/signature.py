from __future__ import annotations

import hashlib
import hmac


def sign_kajabi_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_kajabi_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check the hex HMAC-SHA256 ``X-Kajabi-Signature`` header against ``body``."""

    if not secret or not signature:
        return False
    expected = sign_kajabi_payload(body, secret)
    return hmac.compare_digest(signature.strip().lower(), expected)
