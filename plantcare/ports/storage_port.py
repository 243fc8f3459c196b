"""Storage port — abstract key-value interface used by the DataStore.

Core modules depend on this protocol, never on a specific storage backend.
"""

from __future__ import annotations

from typing import Protocol


class KeyValuePort(Protocol):
    """Synchronous byte storage keyed by name."""

    def read_bytes(self, key: str) -> bytes | None: ...

    def write_bytes(self, key: str, value: bytes) -> None: ...
