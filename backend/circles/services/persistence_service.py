"""Persistence service - durable roster snapshots and debounced writes.

The in-memory workspace is authoritative. Mutations complete immediately and
only ask for a write; the DebouncedWriter coalesces a burst of them into one
durable write per user.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from circles.config import settings
from circles.core.errors import PersistenceError
from circles.core.workspace import WorkspaceState
from circles.db.database import async_session
from circles.models.roster import RosterSnapshot

log = logging.getLogger("circles.persistence")


class RosterRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def load(self, user_id: str) -> WorkspaceState | None:
        """Latest durable snapshot for a user, or None if never saved."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(RosterSnapshot).where(RosterSnapshot.user_id == user_id))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            log.warning("loading roster for %s failed: %s", user_id, e)
            raise PersistenceError(f"Failed to load roster: {e}") from e

        if row is None:
            return None
        try:
            return WorkspaceState.model_validate(row.payload)
        except ValidationError as e:
            raise PersistenceError(f"Stored roster for {user_id} is unreadable") from e

    async def save(self, state: WorkspaceState) -> int:
        """Upsert the snapshot and return its new revision."""
        payload = state.model_dump(mode="json")
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        select(RosterSnapshot).where(RosterSnapshot.user_id == state.user_id)
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        row = RosterSnapshot(user_id=state.user_id, payload=payload, revision=1)
                        db.add(row)
                    else:
                        row.payload = payload
                        row.revision += 1
                    revision = row.revision
        except SQLAlchemyError as e:
            log.warning("saving roster for %s failed: %s", state.user_id, e)
            raise PersistenceError(f"Failed to save roster: {e}") from e

        log.info("saved roster for %s (revision %d)", state.user_id, revision)
        return revision

    async def delete(self, user_id: str) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    result = await db.execute(select(RosterSnapshot).where(RosterSnapshot.user_id == user_id))
                    row = result.scalar_one_or_none()
                    if row is not None:
                        await db.delete(row)
        except SQLAlchemyError as e:
            log.warning("deleting roster for %s failed: %s", user_id, e)
            raise PersistenceError(f"Failed to delete roster: {e}") from e


Snapshot = Callable[[], WorkspaceState]


class DebouncedWriter:
    """Coalesces durable writes per user; the last scheduled snapshot wins."""

    def __init__(
        self,
        write: Callable[[WorkspaceState], Awaitable[object]],
        delay: float = settings.PERSIST_DEBOUNCE_SECONDS,
    ):
        self._write = write
        self.delay = delay
        self._pending: dict[str, tuple[asyncio.Task, Snapshot]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()

    def is_pending(self, user_id: str) -> bool:
        return user_id in self._pending

    def schedule(self, user_id: str, snapshot: Snapshot) -> None:
        """Request a write. Must be called from inside a running event loop."""
        self.cancel(user_id)
        task = asyncio.get_running_loop().create_task(self._delayed(user_id, snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._pending[user_id] = (task, snapshot)

    def cancel(self, user_id: str) -> None:
        entry = self._pending.pop(user_id, None)
        if entry is not None:
            entry[0].cancel()

    async def _write_now(self, user_id: str, snapshot: Snapshot) -> None:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            await self._write(snapshot())

    async def _delayed(self, user_id: str, snapshot: Snapshot) -> None:
        await asyncio.sleep(self.delay)
        self._pending.pop(user_id, None)
        try:
            await self._write_now(user_id, snapshot)
        except PersistenceError as e:
            # Nothing awaits this task; the next mutation schedules another attempt.
            log.error("debounced write for %s failed: %s", user_id, e.message)

    async def flush(self, user_id: str | None = None) -> None:
        """Write pending snapshots now. PersistenceError propagates."""
        user_ids = [user_id] if user_id is not None else list(self._pending)
        for uid in user_ids:
            entry = self._pending.pop(uid, None)
            if entry is None:
                continue
            task, snapshot = entry
            task.cancel()
            await self._write_now(uid, snapshot)

    async def close(self) -> None:
        """Flush everything and wait for writes already in flight."""
        await self.flush()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
