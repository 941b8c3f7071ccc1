"""
Bounded per-thread conversation history for the chat assistant.

Keys are "<channel>:<thread_ts>". Each key keeps at most `max_turns` turns in
chronological order; once more than `max_keys` keys exist, the least recently
touched ones are evicted. The backing store is injected: `MemoryStore` lives
as long as the process (one warm Lambda container), `S3Store` is shared by
every instance.
"""

from __future__ import annotations

import importlib
import json
import time
import urllib.parse
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .log import log_event

ROLES = ("user", "assistant")


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


@dataclass(frozen=True)
class Turn:
    role: str
    text: str


def as_messages(turns: list[Turn]) -> list[dict[str, str]]:
    """Render turns as Messages API input, which must open with a user turn."""
    start = 0
    while start < len(turns) and turns[start].role != "user":
        start += 1
    return [{"role": t.role, "content": t.text} for t in turns[start:]]


class Store(Protocol):
    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, record: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys_by_age(self) -> list[str]:
        """All keys, least recently saved first."""
        ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: OrderedDict[str, dict[str, Any]] = OrderedDict()

    def load(self, key: str) -> dict[str, Any] | None:
        return self._data.get(key)

    def save(self, key: str, record: dict[str, Any]) -> None:
        self._data[key] = record
        self._data.move_to_end(key)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys_by_age(self) -> list[str]:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)


class S3Store:
    """One JSON object per conversation under `prefix`; age from `touched`."""

    def __init__(self, bucket: str, prefix: str = "conversations/") -> None:
        self.bucket = bucket
        self.prefix = prefix
        self.s3 = _boto3().client("s3")

    def _object_key(self, key: str) -> str:
        return self.prefix + urllib.parse.quote(key, safe="") + ".json"

    def _conversation_key(self, object_key: str) -> str:
        name = object_key[len(self.prefix) :]
        if name.endswith(".json"):
            name = name[: -len(".json")]
        return urllib.parse.unquote(name)

    def load(self, key: str) -> dict[str, Any] | None:
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=self._object_key(key))
        except self.s3.exceptions.NoSuchKey:
            return None
        return json.loads(obj["Body"].read())

    def save(self, key: str, record: dict[str, Any]) -> None:
        self.s3.put_object(
            Bucket=self.bucket,
            Key=self._object_key(key),
            Body=json.dumps(record, ensure_ascii=False).encode("utf-8"),
            ContentType="application/json",
            Metadata={"touched": repr(float(record.get("touched") or 0))},
        )

    def delete(self, key: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=self._object_key(key))

    def _touched(self, object_key: str) -> float:
        # LastModified has one-second resolution; the stamp written by save() does not.
        head = self.s3.head_object(Bucket=self.bucket, Key=object_key)
        try:
            return float((head.get("Metadata") or {}).get("touched") or 0)
        except ValueError:
            return 0.0

    def keys_by_age(self) -> list[str]:
        object_keys: list[str] = []
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            object_keys.extend(o["Key"] for o in page.get("Contents") or [])
        object_keys.sort(key=self._touched)
        return [self._conversation_key(k) for k in object_keys]


class ConversationCache:
    def __init__(
        self,
        store: Store,
        clock: Callable[[], float] = time.time,
        max_turns: int = 20,
        max_keys: int = 100,
        ttl_seconds: float | None = 3600,
    ) -> None:
        self.store = store
        self.clock = clock
        self.max_turns = max_turns
        self.max_keys = max_keys
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> list[Turn]:
        record = self.store.load(key)
        if not record:
            return []
        if self.ttl_seconds is not None and self.clock() - record.get("touched", 0) > self.ttl_seconds:
            return []
        return [Turn(t["role"], t["text"]) for t in record.get("turns") or []]

    def append(self, key: str, role: str, text: str) -> list[Turn]:
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        turns = self.get(key)
        turns.append(Turn(role, text))
        turns = turns[-self.max_turns :]
        self.store.save(
            key,
            {"touched": self.clock(), "turns": [{"role": t.role, "text": t.text} for t in turns]},
        )
        self._evict(keep=key)
        return turns

    def _evict(self, keep: str) -> None:
        keys = self.store.keys_by_age()
        overflow = len(keys) - self.max_keys
        stale = [k for k in keys if k != keep]
        for old in stale[: max(0, overflow)]:
            self.store.delete(old)
        if overflow > 0:
            log_event("conversation_evicted", count=overflow)
