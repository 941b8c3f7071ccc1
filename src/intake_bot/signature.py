"""
Slack request signature verification (v0 HMAC-SHA256 scheme).
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Mapping

TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"
MAX_SKEW_SECONDS = 300


def _header(headers: Mapping[str, str] | None, name: str) -> str | None:
    for k, v in (headers or {}).items():
        if k.lower() == name.lower():
            return v
    return None


def sign(raw_body: str, timestamp: str, signing_secret: str) -> str:
    base = f"v0:{timestamp}:{raw_body}"
    digest = hmac.new(signing_secret.encode("utf-8"), base.encode("utf-8"), hashlib.sha256)
    return "v0=" + digest.hexdigest()


def verify(
    headers: Mapping[str, str] | None,
    raw_body: str,
    signing_secret: str | None,
    now: float | None = None,
) -> bool:
    """Return True only for a fresh request signed with `signing_secret`.

    Fails closed: a missing header, a missing secret or a malformed timestamp
    all verify False.
    """
    timestamp = _header(headers, TIMESTAMP_HEADER)
    signature = _header(headers, SIGNATURE_HEADER)
    if not timestamp or not signature or not signing_secret:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(int(current) - ts) > MAX_SKEW_SECONDS:
        return False
    expected = sign(raw_body, timestamp, signing_secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
