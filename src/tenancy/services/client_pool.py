"""Bounded cache of per-schema database clients.

Clients are created on first use, shared by every caller asking for the same
schema, evicted least-recently-used when the pool is full and swept in the
background once idle for too long.
"""

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, Self

from src.tenancy.core.config import Settings, get_settings
from src.tenancy.core.errors import ClientCreateError, ClientDisconnectError
from src.tenancy.core.logging import get_logger
from src.tenancy.core.security import sanitize_error

logger = get_logger(__name__)


class TenantClient(Protocol):
    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...


type ClientFactory[C: TenantClient] = Callable[[str], C]


@dataclass
class CachedClient[C: TenantClient]:
    client: C
    schema_name: str
    created_at: float
    last_accessed_at: float
    closing: bool = field(default=False, repr=False)

    def touch(self) -> None:
        self.last_accessed_at = time.monotonic()


@dataclass(frozen=True)
class PoolStats:
    active_clients: int
    max_clients: int
    total_created: int
    total_evicted: int


class TenantClientPool[C: TenantClient]:
    """Cache of connected clients keyed by schema name.

    Concurrent ``get_client`` calls for a schema that is not cached share one
    in-flight creation task, so at most one client per schema is ever built.
    Factory and ``connect()`` calls run outside the pool lock; only admission
    and eviction hold it. Evicted clients are disconnected before they are
    removed, and an entry being disconnected is never handed out.
    """

    def __init__(
        self,
        create_client: ClientFactory[C],
        *,
        max_clients: int = 50,
        idle_timeout: float = 300.0,
        cleanup_interval: float = 60.0,
    ):
        if max_clients < 1:
            raise ValueError("max_clients must be at least 1")
        if idle_timeout <= 0 or cleanup_interval <= 0:
            raise ValueError("idle_timeout and cleanup_interval must be greater than 0")

        self._create_client = create_client
        self.max_clients = max_clients
        self.idle_timeout = idle_timeout
        self.cleanup_interval = cleanup_interval

        self._clients: dict[str, CachedClient[C]] = {}
        self._pending: dict[str, asyncio.Task[C]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None
        self._cleanup_enabled = True
        self._total_created = 0
        self._total_evicted = 0

    @classmethod
    def from_settings(cls, create_client: ClientFactory[C], settings: Settings | None = None) -> Self:
        settings = settings or get_settings()
        return cls(
            create_client,
            max_clients=settings.tenant_pool_max_clients,
            idle_timeout=settings.tenant_pool_idle_timeout_seconds,
            cleanup_interval=settings.tenant_pool_cleanup_interval_seconds,
        )

    # --- Lookup ---

    async def get_client(self, schema_name: str) -> C:
        """Return the cached client for ``schema_name``, creating it if needed.

        Raises:
            ClientCreateError: If the factory or ``connect()`` fails. Nothing
                is cached and the next call retries.
        """
        self._ensure_cleanup_task()

        entry = self._clients.get(schema_name)
        if entry is not None and not entry.closing:
            entry.touch()
            return entry.client

        task = self._pending.get(schema_name)
        if task is None:
            task = asyncio.create_task(self._create(schema_name))
            self._pending[schema_name] = task
            task.add_done_callback(lambda t, key=schema_name: self._forget_pending(key, t))

        # Shield so one cancelled caller does not cancel creation for the others
        return await asyncio.shield(task)

    def release_client(self, schema_name: str) -> None:
        """Signal the caller is done with the client. Clients stay cached."""
        logger.debug("Tenant client released", schema_name=schema_name)

    def has_client(self, schema_name: str) -> bool:
        """True if ``get_client`` would return a cached client without creating one."""
        entry = self._clients.get(schema_name)
        return entry is not None and not entry.closing

    def get_stats(self) -> PoolStats:
        return PoolStats(
            active_clients=sum(1 for entry in self._clients.values() if not entry.closing),
            max_clients=self.max_clients,
            total_created=self._total_created,
            total_evicted=self._total_evicted,
        )

    # --- Creation ---

    def _forget_pending(self, schema_name: str, task: asyncio.Task[C]) -> None:
        if self._pending.get(schema_name) is task:
            del self._pending[schema_name]
        # Mark the exception as retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()

    async def _create(self, schema_name: str) -> C:
        try:
            client = self._create_client(schema_name)
            await client.connect()
        except Exception as e:
            detail = sanitize_error(e)
            logger.error("Failed to create tenant client", schema_name=schema_name, error=detail)
            raise ClientCreateError(schema_name, detail) from None

        async with self._lock:
            if len(self._clients) >= self.max_clients:
                await self._evict_lru()
            now = time.monotonic()
            self._clients[schema_name] = CachedClient(
                client=client, schema_name=schema_name, created_at=now, last_accessed_at=now
            )
            self._total_created += 1

        logger.debug("Tenant client created", schema_name=schema_name)
        return client

    # --- Eviction ---

    async def _evict_lru(self) -> None:
        """Evict the least recently accessed entry. Caller holds the lock."""
        candidates = [entry for entry in self._clients.values() if not entry.closing]
        if not candidates:
            return
        oldest = min(candidates, key=lambda entry: entry.last_accessed_at)
        await self._evict(oldest, reason="lru")

    async def _evict(self, entry: CachedClient[C], *, reason: str) -> None:
        entry.closing = True
        try:
            await entry.client.disconnect()
        except Exception as e:
            logger.warning(
                "Failed to disconnect evicted tenant client",
                schema_name=entry.schema_name,
                error=sanitize_error(e),
            )
        if self._clients.get(entry.schema_name) is entry:
            del self._clients[entry.schema_name]
            self._total_evicted += 1
        logger.debug("Tenant client evicted", schema_name=entry.schema_name, reason=reason)

    async def evict_idle(self) -> int:
        """Evict every client idle longer than ``idle_timeout``.

        Returns:
            Number of clients evicted.
        """
        async with self._lock:
            cutoff = time.monotonic() - self.idle_timeout
            idle = [
                entry
                for entry in self._clients.values()
                if not entry.closing and entry.last_accessed_at < cutoff
            ]
            for entry in idle:
                await self._evict(entry, reason="idle")
        if idle:
            logger.info("Evicted idle tenant clients", count=len(idle))
        return len(idle)

    # --- Background cleanup ---

    def _ensure_cleanup_task(self) -> None:
        if not self._cleanup_enabled:
            return
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(
                self._cleanup_loop(), name="tenant-client-pool-cleanup"
            )

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Tenant client idle sweep failed")

    def start(self) -> None:
        """(Re)enable and start the background idle sweep."""
        self._cleanup_enabled = True
        self._ensure_cleanup_task()

    async def close(self) -> None:
        """Stop the background idle sweep. Cached clients stay connected."""
        self._cleanup_enabled = False
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def disconnect_all(self) -> None:
        """Stop the sweep, then disconnect and remove every cached client.

        Raises:
            ExceptionGroup: Of ``ClientDisconnectError``, one per client that
                failed to disconnect. All clients are removed regardless.
        """
        await self.close()

        # In-flight creations land first so their clients are disconnected too
        while self._pending:
            await asyncio.wait(list(self._pending.values()))

        async with self._lock:
            entries = list(self._clients.values())
            for entry in entries:
                entry.closing = True
            self._clients.clear()

        errors: list[ClientDisconnectError] = []
        for entry in entries:
            try:
                await entry.client.disconnect()
            except Exception as e:
                errors.append(ClientDisconnectError(entry.schema_name, sanitize_error(e)))

        logger.info(
            "Tenant clients disconnected", count=len(entries) - len(errors), failed=len(errors)
        )
        if errors:
            raise ExceptionGroup("Failed to disconnect tenant clients", errors)
