"""
Minimal JSON-over-HTTP helper using stdlib urllib.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from .errors import RemoteApiError

USER_AGENT = "IntakeBot/1.0"


def request_json(
    service: str,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    body: Any = None,
    params: dict[str, Any] | None = None,
    timeout: int = 8,
) -> Any:
    """Send one request and decode the JSON reply.

    Non-2xx replies and unreachable hosts raise RemoteApiError; an empty or
    non-JSON 2xx body decodes to `{}`.
    """
    if params:
        url = url + "?" + urllib.parse.urlencode(params)
    hdrs = {"User-Agent": USER_AGENT, **(headers or {})}
    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        hdrs.setdefault("Content-Type", "application/json")
    req = urllib.request.Request(url, data=data, headers=hdrs, method=method)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            raw = resp.read()
    except urllib.error.HTTPError as e:
        detail = e.read().decode("utf-8", "replace") if e.fp else ""
        raise RemoteApiError(service, e.code, detail) from e
    except urllib.error.URLError as e:
        raise RemoteApiError(service, 0, str(e.reason)) from e
    if not raw:
        return {}
    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError:
        return {}
