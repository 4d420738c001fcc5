"""
Process-local key-value memory.

Lifetime is the process: created at startup, empty after a restart.
It is a hint store (what a participant last claimed in a session), never
a source of truth; anything money-related is read from the session store.
"""
from __future__ import annotations

import json
import threading
from typing import Any, Optional, Protocol


class Memory(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def clear(self, prefix: Optional[str] = None) -> None: ...


class InMemoryCache:
    """Thread-safe dict of JSON-encoded values under a namespace prefix."""

    def __init__(self, namespace: str = "splitsmart:"):
        self._ns = namespace
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._data[self._ns + key] = payload

    def get(self, key: str) -> Any:
        with self._lock:
            payload = self._data.get(self._ns + key)
        if payload is None:
            return None
        return json.loads(payload)

    def clear(self, prefix: Optional[str] = None) -> None:
        start = self._ns + (prefix or "")
        with self._lock:
            for k in [k for k in self._data if k.startswith(start)]:
                del self._data[k]

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def claimed_names_key(session_code: str, participant_id: str) -> str:
    return f"session:{session_code}:{participant_id}:claimed_names"
