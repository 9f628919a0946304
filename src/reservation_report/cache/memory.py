from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

from ..reconcile.model import CacheData


class InMemoryProviderCache:
    def __init__(self) -> None:
        self._namespaces: Dict[str, Dict[str, CacheData]] = {}
        self._lock = threading.Lock()

    def replace_namespace(self, namespace: str, entries: Sequence[CacheData]) -> None:
        fresh = {entry.id: entry for entry in entries}
        with self._lock:
            self._namespaces[namespace] = fresh

    def get(self, namespace: str, entry_id: str) -> Optional[CacheData]:
        with self._lock:
            return self._namespaces.get(namespace, {}).get(entry_id)

    def get_all(self, namespace: str) -> List[CacheData]:
        with self._lock:
            entries = self._namespaces.get(namespace, {})
            return [entries[k] for k in sorted(entries)]
