# src/libs/holdings-engine/holdings_engine/locking.py
"""
Keyed locking for reconciliation.

Three layers are used, always acquired in the same order (global, account,
key) so that scopes can never deadlock each other:

* a global reader/writer lock: every scope takes it shared, except the
  full rebuild which takes it exclusively;
* a reader/writer lock per account: key scopes take it shared, an account
  rebuild takes it exclusively;
* a plain asyncio.Lock per (account, instrument) key.

Every scope acquisition is bounded by a timeout. On expiry whatever was
already acquired is released and ConcurrencyError is raised.
"""
import asyncio
import logging
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from .config import HOLDINGS_LOCK_TIMEOUT_SECONDS
from .exceptions import ConcurrencyError
from .monitoring import LOCK_TIMEOUTS_TOTAL
from .stores import PositionKey

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Writer-preferring reader/writer lock built on asyncio.Condition."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    async def acquire_read(self) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1

    async def release_read(self) -> None:
        async with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    async def acquire_write(self) -> None:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
                # Readers parked behind this writer must re-check if it gave up.
                self._cond.notify_all()
            self._writer = True

    async def release_write(self) -> None:
        async with self._cond:
            self._writer = False
            self._cond.notify_all()

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[None]:
        await self.acquire_read()
        try:
            yield
        finally:
            await self.release_read()

    @asynccontextmanager
    async def writing(self) -> AsyncIterator[None]:
        await self.acquire_write()
        try:
            yield
        finally:
            await self.release_write()


class KeyedLockManager:
    def __init__(self, timeout: Optional[float] = None):
        self._timeout = HOLDINGS_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._global = _ReadWriteLock()
        self._accounts: "weakref.WeakValueDictionary[str, _ReadWriteLock]" = weakref.WeakValueDictionary()
        self._keys: "weakref.WeakValueDictionary[PositionKey, asyncio.Lock]" = weakref.WeakValueDictionary()

    @property
    def timeout(self) -> float:
        return self._timeout

    def _account_lock(self, account_id: str) -> _ReadWriteLock:
        lock = self._accounts.get(account_id)
        if lock is None:
            lock = _ReadWriteLock()
            self._accounts[account_id] = lock
        return lock

    def _key_lock(self, key: PositionKey) -> asyncio.Lock:
        lock = self._keys.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._keys[key] = lock
        return lock

    def key_scope(self, keys: Iterable[PositionKey]):
        """Exclusive access to one or more (account, instrument) keys."""
        ordered = sorted(set(keys))
        accounts = sorted({account_id for account_id, _ in ordered})
        contexts = [self._global.reading()]
        contexts += [self._account_lock(a).reading() for a in accounts]
        contexts += [self._key_lock(k) for k in ordered]
        label = ",".join(f"{a}/{i}" for a, i in ordered)
        return self._bounded("key", label, contexts)

    def account_scope(self, account_id: str):
        """Exclusive access to every key of one account."""
        contexts = [self._global.reading(), self._account_lock(account_id).writing()]
        return self._bounded("account", account_id, contexts)

    def global_scope(self):
        """Exclusive access to the whole projection."""
        return self._bounded("global", "*", [self._global.writing()])

    @asynccontextmanager
    async def _bounded(self, kind: str, label: str, contexts: list) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            try:
                await asyncio.wait_for(self._enter_all(stack, contexts), timeout=self._timeout)
            except asyncio.TimeoutError:
                LOCK_TIMEOUTS_TOTAL.labels(scope=kind).inc()
                logger.warning(
                    "Timed out acquiring lock scope.",
                    extra={"scope": kind, "keys": label, "timeout_seconds": self._timeout}
                )
                raise ConcurrencyError(f"{kind}:{label}", self._timeout) from None
            yield

    @staticmethod
    async def _enter_all(stack: AsyncExitStack, contexts: list) -> None:
        for context in contexts:
            await stack.enter_async_context(context)
