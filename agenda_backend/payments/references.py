"""External references minted per payment intent.

The gateway echoes the reference back on the payment, which is the only way
to tie an otherwise anonymous notification to a professional. Format:
``{domain}_{professional_id}_{unix_millis}``.
"""

import threading
import time

SEPARATOR = "_"

_clock_lock = threading.Lock()
_last_ms = 0


def _next_millis() -> int:
    # Strictly increasing within the process so two checkouts in the same
    # millisecond still get distinct references.
    global _last_ms
    with _clock_lock:
        _last_ms = max(int(time.time() * 1000), _last_ms + 1)
        return _last_ms


def mint(domain: str, professional_id: int, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = _next_millis()
    return SEPARATOR.join((domain, str(professional_id), str(now_ms)))


def parse(reference: str | None, domain: str) -> int:
    """Return the professional id, or raise ``ValueError`` for anything malformed."""
    if not reference:
        raise ValueError("Missing external reference.")

    parts = reference.strip().split(SEPARATOR)
    if len(parts) != 3:
        raise ValueError(f"Unexpected external reference format: {reference!r}")

    prefix, professional_part, millis_part = parts
    if prefix != domain:
        raise ValueError(f"External reference belongs to another domain: {reference!r}")
    if not professional_part.isdigit() or not millis_part.isdigit():
        raise ValueError(f"External reference is not numeric: {reference!r}")

    professional_id = int(professional_part)
    if professional_id <= 0:
        raise ValueError(f"External reference has no professional: {reference!r}")
    return professional_id
