from __future__ import annotations

import os
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from botocore.config import Config

from ..auth.providers import AuthContext, resolve_session
from .accounts import Account
from .regions import BOOTSTRAP_REGION

DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_READ_TIMEOUT = 60
DEFAULT_MAX_ATTEMPTS = 5


def build_client_config(
    *,
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: int = DEFAULT_READ_TIMEOUT,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    max_pool_connections: Optional[int] = None,
) -> Config:
    """
    botocore client config: standard retry mode (handles throttling with backoff)
    and explicit timeouts so a hung call only costs its own account/region.
    """
    kwargs: Dict[str, Any] = {
        "retries": {"mode": "standard", "max_attempts": max_attempts},
        "connect_timeout": connect_timeout,
        "read_timeout": read_timeout,
    }
    if max_pool_connections:
        kwargs["max_pool_connections"] = max_pool_connections
    return Config(**kwargs)


def _cache_disabled() -> bool:
    return (os.getenv("RI_REPORT_DISABLE_CLIENT_CACHE") or "").lower() in ("1", "true", "yes")


class Ec2ClientFactory:
    """
    Hands out EC2 clients per (account, region), reusing resolved sessions and
    clients across calls. boto3 clients are thread-safe; sessions are only
    touched while holding the factory lock. Credential resolution can block on
    STS, so it runs under a per-account lock and never under the factory lock.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        session_resolver: Optional[Callable[[Account], AuthContext]] = None,
    ) -> None:
        self._config = config or build_client_config()
        self._resolve = session_resolver or self._resolve_with_config
        self._contexts: Dict[str, AuthContext] = {}
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._account_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> Config:
        return self._config

    def _resolve_with_config(self, account: Account) -> AuthContext:
        return resolve_session(account, config=self._config)

    def _account_lock(self, name: str) -> threading.Lock:
        with self._lock:
            return self._account_locks.setdefault(name, threading.Lock())

    def context(self, account: Account) -> AuthContext:
        with self._lock:
            ctx = self._contexts.get(account.name)
        if ctx is not None:
            return ctx
        with self._account_lock(account.name):
            with self._lock:
                ctx = self._contexts.get(account.name)
            if ctx is not None:
                return ctx
            ctx = self._resolve(account)
            if not _cache_disabled():
                with self._lock:
                    self._contexts[account.name] = ctx
            return ctx

    def discovery_region(self, account: Account) -> str:
        """
        Region used to list an account's enabled regions: the session's configured
        region when it has one, otherwise BOOTSTRAP_REGION. GovCloud and China
        partition accounts must be queried inside their own partition.
        """
        region = getattr(self.context(account).session, "region_name", None)
        return str(region) if region else BOOTSTRAP_REGION

    def get(self, account: Account, region: str) -> Any:
        cache_key = (account.name, region)
        with self._lock:
            client = self._clients.get(cache_key)
        if client is not None:
            return client
        ctx = self.context(account)
        with self._lock:
            client = self._clients.get(cache_key)
            if client is None:
                client = ctx.session.client("ec2", region_name=region, config=self._config)
                if not _cache_disabled():
                    self._clients[cache_key] = client
            return client

    def clear_client_cache(self) -> None:
        with self._lock:
            self._contexts.clear()
            self._clients.clear()
