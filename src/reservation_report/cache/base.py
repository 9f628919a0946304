from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from ..reconcile.model import CacheData


class Authority(str, Enum):
    AUTHORITATIVE = "AUTHORITATIVE"
    INFORMATIVE = "INFORMATIVE"


@dataclass(frozen=True)
class AgentDataType:
    type_name: str
    authority: Authority


@runtime_checkable
class ProviderCache(Protocol):
    """
    Namespaced store of CacheData entries.
    replace_namespace must swap the whole namespace in one step: readers see
    either the previous entries or the new ones, never a mixture.
    """

    def replace_namespace(self, namespace: str, entries: Sequence[CacheData]) -> None:
        ...

    def get(self, namespace: str, entry_id: str) -> Optional[CacheData]:
        ...

    def get_all(self, namespace: str) -> List[CacheData]:
        ...
