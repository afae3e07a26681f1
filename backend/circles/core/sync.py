"""Reconcile a remote copy of the roster into the local store."""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import BaseModel

from circles.core.tier_store import TierCapacityStore
from circles.schemas.friend import TIER_LIMITS, Friend, Tier

log = logging.getLogger("circles.sync")


class SyncReport(BaseModel):
    applied: list[str] = []
    kept_local: list[str] = []
    skipped: list[str] = []


def _stamp(friend: Friend) -> datetime:
    value = friend.updated_at or friend.added_at
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def reconcile_roster(store: TierCapacityStore, remote_friends: Iterable[Friend]) -> SyncReport:
    """Merge remote records, the most recently mutated record winning.

    Friends carry a single record-level ``updated_at``, so a conflict is
    settled for the whole record: every field of the newer side is kept,
    including fields it has cleared.

    Records present on only one side are kept. A winning remote record whose
    tier has no room keeps its local tier, or is skipped when there is no
    local record, so the merged roster never breaks capacity.
    """
    report = SyncReport()
    local = {f.id: f for f in store.all_friends()}
    merged = dict(local)

    counts = {tier: 0 for tier in Tier}
    for friend in local.values():
        counts[friend.tier] += 1
    reserved = {tier: store.get_tier_capacity(tier).reserved for tier in Tier}

    def has_room(tier: Tier) -> bool:
        return counts[tier] + reserved[tier] < TIER_LIMITS[tier]

    for remote in remote_friends:
        mine = local.get(remote.id)
        if mine is not None and _stamp(mine) >= _stamp(remote):
            continue

        if mine is not None and mine.tier == remote.tier:
            merged[remote.id] = remote.model_copy()
            report.applied.append(remote.id)
        elif has_room(remote.tier):
            if mine is not None:
                counts[mine.tier] -= 1
            counts[remote.tier] += 1
            merged[remote.id] = remote.model_copy()
            report.applied.append(remote.id)
        elif mine is not None:
            merged[remote.id] = remote.model_copy(update={"tier": mine.tier, "sort_order": mine.sort_order})
            report.kept_local.append(remote.id)
            log.warning("sync conflict: %s kept in %s, %s is full", remote.id, mine.tier.value, remote.tier.value)
        else:
            report.skipped.append(remote.id)
            log.warning("sync conflict: %s skipped, %s is full", remote.id, remote.tier.value)

    if report.applied or report.kept_local:
        store.replace_friends(merged.values())
    return report
