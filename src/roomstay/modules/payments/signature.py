"""Payment gateway notification signatures (Midtrans scheme)."""

from __future__ import annotations

import hashlib
import hmac


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """Hex SHA-512 of order_id + status_code + gross_amount + server_key."""
    payload = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(payload.encode("utf-8")).hexdigest()


def verify_signature(
    order_id: str | None,
    status_code: str | None,
    gross_amount: str | None,
    server_key: str | None,
    signature: str | None,
) -> bool:
    """True only for an exact match. Missing fields or an empty server key never verify."""
    if not server_key or not signature or order_id is None:
        return False
    expected = compute_signature(order_id, status_code or "", gross_amount or "", server_key)
    return hmac.compare_digest(expected, signature)
