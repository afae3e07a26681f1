"""Circle service - one live workspace per user, backed by cache and database."""

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

from circles.config import settings
from circles.core.errors import PersistenceError
from circles.core.sync import SyncReport, reconcile_roster
from circles.core.tier_store import utc_now
from circles.core.workspace import CircleWorkspace, WorkspaceState
from circles.schemas.friend import Friend
from circles.schemas.portability import ImportMode, ImportResult
from circles.services.defaults_service import DefaultsService, defaults_service
from circles.services.persistence_service import DebouncedWriter, RosterRepository
from circles.services.roster_cache import RosterCache

log = logging.getLogger("circles.service")


class CircleService:
    def __init__(
        self,
        repository: RosterRepository,
        cache: RosterCache,
        defaults: DefaultsService = defaults_service,
        clock: Callable[[], datetime] = utc_now,
        debounce_seconds: float = settings.PERSIST_DEBOUNCE_SECONDS,
    ):
        self.repository = repository
        self.cache = cache
        self.defaults = defaults
        self._clock = clock
        self.writer = DebouncedWriter(self._persist, delay=debounce_seconds)
        self._workspaces: dict[str, CircleWorkspace] = {}

    async def _persist(self, state: WorkspaceState) -> None:
        # Durable copy first; a cache miss only costs a database read.
        await self.repository.save(state)
        try:
            await self.cache.save(state)
        except PersistenceError as e:
            log.warning("cache write for %s skipped: %s", state.user_id, e.message)

    async def _load_state(self, user_id: str) -> WorkspaceState | None:
        try:
            cached = await self.cache.get(user_id)
        except PersistenceError as e:
            log.warning("cache read for %s skipped: %s", user_id, e.message)
            cached = None
        if cached is not None:
            return cached
        return await self.repository.load(user_id)

    def _attach(self, workspace: CircleWorkspace) -> CircleWorkspace:
        user_id = workspace.user_id
        workspace.subscribe(lambda: self.writer.schedule(user_id, workspace.to_state))
        self._workspaces[user_id] = workspace
        return workspace

    async def get_workspace(self, user_id: str) -> CircleWorkspace:
        """The live workspace, loading or creating it on first access."""
        workspace = self._workspaces.get(user_id)
        if workspace is not None:
            return workspace

        state = await self._load_state(user_id)
        if state is None:
            log.info("creating workspace for %s", user_id)
            workspace = CircleWorkspace(user_id, self.defaults.bundle(), clock=self._clock)
        else:
            workspace = CircleWorkspace.from_state(state, clock=self._clock)
        return self._attach(workspace)

    async def commit(self, user_id: str) -> None:
        """Force any pending write for the user to durable storage."""
        await self.writer.flush(user_id)

    async def clear_all_data(self, user_id: str) -> None:
        """Reset the user to an empty roster with default settings, everywhere."""
        workspace = await self.get_workspace(user_id)
        workspace.clear_all_data(self.defaults.bundle())
        self.writer.cancel(user_id)
        await self.repository.delete(user_id)
        await self.cache.clear(user_id)
        log.info("cleared all data for %s", user_id)

    async def import_social_graph(
        self,
        user_id: str,
        raw: str | bytes | Mapping,
        mode: ImportMode | None = None,
    ) -> ImportResult:
        workspace = await self.get_workspace(user_id)
        result = workspace.import_social_graph(
            raw, self.defaults.bundle(), mode or ImportMode(settings.DEFAULT_IMPORT_MODE)
        )
        if result.success:
            await self.commit(user_id)
        return result

    async def sync_roster(self, user_id: str, remote_friends: Iterable[Friend]) -> SyncReport:
        workspace = await self.get_workspace(user_id)
        report = reconcile_roster(workspace.store, remote_friends)
        log.info(
            "synced %s: %d applied, %d kept local, %d skipped",
            user_id,
            len(report.applied),
            len(report.kept_local),
            len(report.skipped),
        )
        return report

    async def close(self) -> None:
        await self.writer.close()
        self._workspaces.clear()
