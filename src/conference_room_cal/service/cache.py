from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType


@dataclass(frozen=True)
class CacheSnapshot:
    documents: Mapping[str, bytes] = field(default_factory=lambda: MappingProxyType({}))
    all_key: str | None = None
    generation: int = 0
    published_at: datetime | None = None

    def rooms(self) -> list[str]:
        rooms = sorted(k for k in self.documents if k != self.all_key)
        if self.all_key is not None and self.all_key in self.documents:
            return [self.all_key, *rooms]
        return rooms


class DocumentCache:
    """Rendered calendars by room, replaced one whole snapshot at a time.

    Readers grab the current snapshot reference and never block; the
    snapshot itself is read-only, so a reader sees exactly one refresh
    cycle's output. Writers serialize on a lock only to swap the reference.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = CacheSnapshot()

    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    def lookup(self, room: str) -> bytes | None:
        return self._snapshot.documents.get(room)

    def rooms(self) -> list[str]:
        return self._snapshot.rooms()

    def publish(self, documents: Mapping[str, bytes], all_key: str | None = None) -> CacheSnapshot:
        frozen = MappingProxyType(dict(documents))
        with self._lock:
            snapshot = CacheSnapshot(
                documents=frozen,
                all_key=all_key,
                generation=self._snapshot.generation + 1,
                published_at=datetime.now(UTC),
            )
            self._snapshot = snapshot
        return snapshot
