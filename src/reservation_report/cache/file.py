from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..logging import get_logger
from ..reconcile.model import CacheData, ReservationReport
from ..reconcile.publish import REPORT_ATTRIBUTE
from ..util.serialization import sanitize_for_json, stable_json_dumps

LOG = get_logger(__name__)


def _encode_entry(entry: CacheData) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "attributes": sanitize_for_json(entry.attributes),
        "relationships": {k: sorted(v) for k, v in entry.relationships.items()},
        "ttlSeconds": entry.ttl_seconds,
    }


def _decode_entry(data: Dict[str, Any]) -> CacheData:
    attributes = dict(data.get("attributes") or {})
    if isinstance(attributes.get(REPORT_ATTRIBUTE), dict):
        attributes[REPORT_ATTRIBUTE] = ReservationReport.from_dict(attributes[REPORT_ATTRIBUTE])
    return CacheData(
        id=str(data["id"]),
        attributes=attributes,
        relationships={k: list(v) for k, v in (data.get("relationships") or {}).items()},
        ttl_seconds=int(data.get("ttlSeconds", -1)),
    )


class FileProviderCache:
    """
    Provider cache backed by one JSON document per namespace under root.
    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, which is atomic on POSIX and Windows.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, namespace: str) -> Path:
        return self.root / f"{namespace}.json"

    def replace_namespace(self, namespace: str, entries: Sequence[CacheData]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(namespace)
        payload = {"namespace": namespace, "entries": [_encode_entry(e) for e in entries]}
        fd, tmp_name = tempfile.mkstemp(prefix=f".{namespace}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(stable_json_dumps(payload, indent=2))
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        LOG.debug("Cache namespace replaced", extra={"namespace": namespace, "path": str(path)})

    def _load(self, namespace: str) -> List[CacheData]:
        path = self._path(namespace)
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        return [_decode_entry(e) for e in data.get("entries") or []]

    def get(self, namespace: str, entry_id: str) -> Optional[CacheData]:
        for entry in self._load(namespace):
            if entry.id == entry_id:
                return entry
        return None

    def get_all(self, namespace: str) -> List[CacheData]:
        return sorted(self._load(namespace), key=lambda e: e.id)
