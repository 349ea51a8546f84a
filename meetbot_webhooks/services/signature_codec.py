from __future__ import annotations

import hashlib
import hmac
from datetime import UTC, datetime

FRESHNESS_WINDOW_MS = 5 * 60 * 1000
# Millisecond epochs fit in a signed 64-bit integer.
_MAX_TIMESTAMP_DIGITS = 19


def current_time_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def sign_payload(secret: str, timestamp: int | str, raw_body: str | bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``"{timestamp}.{raw_body}"``.

    ``raw_body`` is signed exactly as given. Bytes are used verbatim so a
    received request body never goes through a decode/encode round trip.
    """
    body_bytes = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
    message = f"{timestamp}.".encode("utf-8") + body_bytes
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=message,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(
    secret: str,
    timestamp: int | str | None,
    raw_body: str | bytes,
    candidate_signature: str | None,
    freshness_window_ms: int = FRESHNESS_WINDOW_MS,
    now_ms: int | None = None,
) -> bool:
    """Check both the timestamp freshness and the signature of a webhook envelope.

    A missing or non-integer timestamp fails, as does any candidate that is not
    byte-identical to the recomputed lowercase hex digest.
    """
    if not secret or not candidate_signature:
        return False

    timestamp_ms = parse_timestamp_ms(timestamp)
    if timestamp_ms is None:
        return False

    reference_ms = current_time_ms() if now_ms is None else now_ms
    if abs(reference_ms - timestamp_ms) > freshness_window_ms:
        return False

    expected_signature = sign_payload(secret, timestamp, raw_body)
    return hmac.compare_digest(
        expected_signature.encode("utf-8"),
        candidate_signature.encode("utf-8"),
    )


def parse_timestamp_ms(value: int | str | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    cleaned = value.strip()
    if not cleaned:
        return None
    digits = cleaned[1:] if cleaned[0] in "+-" else cleaned
    if not digits.isascii() or not digits.isdigit() or len(digits) > _MAX_TIMESTAMP_DIGITS:
        return None
    return int(cleaned)
