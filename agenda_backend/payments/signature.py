"""Mercado Pago webhook signature verification.

The ``x-signature`` header looks like ``ts=1704908010,v1=<hex>``; the digest is
an HMAC-SHA256 over ``id:{data.id};request-id:{x-request-id};ts:{ts};``.
"""

import hashlib
import hmac


def parse_signature_header(header: str | None) -> dict[str, str]:
    parts: dict[str, str] = {}
    for item in (header or "").split(","):
        key, _, value = item.strip().partition("=")
        if key and value:
            parts[key.strip()] = value.strip()
    return parts


def build_manifest(data_id: str | None, request_id: str | None, ts: str | None) -> str:
    manifest = ""
    if data_id:
        # Alphanumeric ids are signed in lower case.
        manifest += f"id:{data_id.lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    if ts:
        manifest += f"ts:{ts};"
    return manifest


def compute_signature(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    signature_header: str | None,
    request_id: str | None,
    data_id: str | None,
) -> bool:
    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    received = parts.get("v1")
    if not ts or not received:
        return False

    expected = compute_signature(secret, build_manifest(data_id, request_id, ts))
    return hmac.compare_digest(expected, received)
