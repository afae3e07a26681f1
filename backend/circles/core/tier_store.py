"""Tier capacity store - owns the roster and enforces tier capacity.

Every mutation validates and applies in one synchronous step, so the
invariant ``friend_count(tier) + reserved(tier) <= limit(tier)`` can never be
observed broken. Listeners registered with ``subscribe`` are called after each
successful mutation (the persistence layer uses this to schedule writes).
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from circles.core.errors import (
    FriendNotFoundError,
    NoReservedCapacityError,
    ReservedGroupNotFoundError,
    TargetTierFullError,
    TierFullError,
)
from circles.schemas.friend import (
    TIER_LIMITS,
    NAYBOR_MINIMUM,
    Friend,
    FriendCreate,
    FriendResult,
    FriendUpdate,
    OperationResult,
    ReservedGroup,
    ReservedGroupResult,
    RosterState,
    Tier,
    TierCapacity,
)

log = logging.getLogger("circles.tiers")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def tier_sort_key(friend: Friend) -> tuple:
    """Explicit sort_order first, then name (case-insensitive), then id."""
    has_order = friend.sort_order is not None
    return (not has_order, friend.sort_order if has_order else 0, friend.name.casefold(), friend.id)


class TierCapacityStore:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._clock = clock
        self._new_id = id_factory
        self._friends: dict[str, Friend] = {}
        self._reserved: dict[Tier, list[ReservedGroup]] = {tier: [] for tier in Tier}
        self._listeners: list[Callable[[], None]] = []
        self.last_tended_at: datetime | None = None

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_friend(self, friend_id: str) -> Friend | None:
        friend = self._friends.get(friend_id)
        return friend.model_copy() if friend else None

    def all_friends(self) -> list[Friend]:
        return [f.model_copy() for f in self._friends.values()]

    def _count(self, tier: Tier) -> int:
        return sum(1 for f in self._friends.values() if f.tier == tier)

    def _reserved_total(self, tier: Tier, exclude_group: str | None = None) -> int:
        return sum(g.count for g in self._reserved[tier] if g.id != exclude_group)

    def _available(self, tier: Tier) -> int:
        return TIER_LIMITS[tier] - self._count(tier) - self._reserved_total(tier)

    def get_friends_in_tier(self, tier: Tier) -> list[Friend]:
        """Friends in a tier ordered by sort_order, then alphabetically."""
        members = [f.model_copy() for f in self._friends.values() if f.tier == tier]
        return sorted(members, key=tier_sort_key)

    def get_tier_capacity(self, tier: Tier) -> TierCapacity:
        friend_count = self._count(tier)
        reserved = self._reserved_total(tier)
        limit = TIER_LIMITS[tier]
        return TierCapacity(
            tier=tier,
            limit=limit,
            friend_count=friend_count,
            reserved=reserved,
            used=friend_count + reserved,
            available=limit - friend_count - reserved,
            reserved_groups=[g.model_copy() for g in self._reserved[tier]],
        )

    def get_reserved_groups(self, tier: Tier) -> list[ReservedGroup]:
        return [g.model_copy() for g in self._reserved[tier]]

    def is_under_recommended_minimum(self, tier: Tier) -> bool:
        """Naybors below the recommended minimum leave the SOS network thin."""
        return tier == Tier.NAYBOR and self._count(tier) < NAYBOR_MINIMUM

    # ------------------------------------------------------------------
    # Friend mutations
    # ------------------------------------------------------------------

    def add_friend(self, data: FriendCreate) -> FriendResult:
        if self._available(data.tier) <= 0:
            log.warning("add_friend rejected: tier %s is full", data.tier.value)
            return TierFullError().to_result(FriendResult)

        now = self._clock()
        friend = Friend(
            id=self._new_id(),
            added_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self._friends[friend.id] = friend
        self._changed()
        return FriendResult(success=True, friend=friend.model_copy())

    def update_friend(self, friend_id: str, patch: FriendUpdate) -> Friend:
        """Merge the fields set on ``patch``. Raises FriendNotFoundError."""
        friend = self._friends.get(friend_id)
        if friend is None:
            raise FriendNotFoundError()

        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            return friend.model_copy()

        updated = friend.model_copy(update={**changes, "updated_at": self._clock()})
        self._friends[friend_id] = updated
        self._changed()
        return updated.model_copy()

    def remove_friend(self, friend_id: str) -> None:
        if self._friends.pop(friend_id, None) is not None:
            self._changed()

    def move_friend(self, friend_id: str, target_tier: Tier) -> OperationResult:
        friend = self._friends.get(friend_id)
        if friend is None:
            return FriendNotFoundError().to_result()
        if friend.tier == target_tier:
            return OperationResult(success=True)
        if self._available(target_tier) <= 0:
            log.warning(
                "move_friend rejected: %s -> %s is full", friend.tier.value, target_tier.value
            )
            return TargetTierFullError().to_result()

        # Replace the record in one assignment; manual ordering does not travel.
        self._friends[friend_id] = friend.model_copy(
            update={"tier": target_tier, "sort_order": None, "updated_at": self._clock()}
        )
        self._changed()
        return OperationResult(success=True)

    def reorder_friends_in_tier(self, tier: Tier, ordered_ids: Iterable[str]) -> None:
        in_tier = [fid for fid in ordered_ids if fid in self._friends and self._friends[fid].tier == tier]
        positions = {fid: index for index, fid in enumerate(dict.fromkeys(in_tier))}
        now = self._clock()
        for fid, friend in list(self._friends.items()):
            if friend.tier != tier:
                continue
            self._friends[fid] = friend.model_copy(
                update={"sort_order": positions.get(fid), "updated_at": now}
            )
        self._changed()

    def touch_contacted(self, friend_id: str, when: datetime | None = None) -> Friend:
        """Record a deep contact with a friend (resets its sunset clock)."""
        return self.update_friend(friend_id, FriendUpdate(last_contacted=when or self._clock()))

    # ------------------------------------------------------------------
    # Reserved spots
    # ------------------------------------------------------------------

    def _find_group(self, tier: Tier, group_id: str) -> ReservedGroup:
        for group in self._reserved[tier]:
            if group.id == group_id:
                return group
        raise ReservedGroupNotFoundError()

    def _room_for_group(self, tier: Tier, exclude_group: str | None = None) -> int:
        return max(0, TIER_LIMITS[tier] - self._count(tier) - self._reserved_total(tier, exclude_group))

    def add_reserved_group(self, tier: Tier, count: int, note: str | None = None) -> ReservedGroupResult:
        clamped = min(max(0, count), self._room_for_group(tier))
        if clamped <= 0:
            return NoReservedCapacityError().to_result(ReservedGroupResult)

        group = ReservedGroup(id=self._new_id(), tier=tier, count=clamped, note=(note or "").strip() or None)
        self._reserved[tier].append(group)
        self._changed()
        return ReservedGroupResult(success=True, group=group.model_copy())

    def update_reserved_group(
        self, tier: Tier, group_id: str, count: int, note: str | None = None
    ) -> ReservedGroup:
        group = self._find_group(tier, group_id)
        clamped = min(max(0, count), self._room_for_group(tier, exclude_group=group_id))
        updated = group.model_copy(update={"count": clamped, "note": (note or "").strip() or None})
        self._reserved[tier] = [updated if g.id == group_id else g for g in self._reserved[tier]]
        self._changed()
        return updated.model_copy()

    def remove_reserved_group(self, tier: Tier, group_id: str) -> None:
        before = len(self._reserved[tier])
        self._reserved[tier] = [g for g in self._reserved[tier] if g.id != group_id]
        if len(self._reserved[tier]) != before:
            self._changed()

    # ------------------------------------------------------------------
    # Session metadata and reset
    # ------------------------------------------------------------------

    def mark_tended(self) -> datetime:
        self.last_tended_at = self._clock()
        self._changed()
        return self.last_tended_at

    def clear_all_data(self) -> None:
        self._friends.clear()
        self._reserved = {tier: [] for tier in Tier}
        self.last_tended_at = None
        self._changed()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def fits(self, friends: Iterable[Friend], reserved: Iterable[ReservedGroup] | None = None) -> list[Tier]:
        """Tiers that would overflow if the roster were replaced by ``friends``."""
        counts = {tier: 0 for tier in Tier}
        for friend in friends:
            counts[friend.tier] += 1
        groups = list(reserved) if reserved is not None else [g for gs in self._reserved.values() for g in gs]
        for group in groups:
            counts[group.tier] += group.count
        return [tier for tier in Tier if counts[tier] > TIER_LIMITS[tier]]

    def replace_friends(self, friends: Iterable[Friend]) -> None:
        """Swap the whole roster in one step, refusing any overflow."""
        replacement = {f.id: f.model_copy() for f in friends}
        overflow = self.fits(replacement.values())
        if overflow:
            raise TierFullError(f"Tier is full: {overflow[0].value}")
        self._friends = replacement
        self._changed()

    def to_state(self) -> RosterState:
        return RosterState(
            friends=self.all_friends(),
            reserved_groups=[g.model_copy() for groups in self._reserved.values() for g in groups],
            last_tended_at=self.last_tended_at,
        )

    @classmethod
    def from_state(
        cls,
        state: RosterState,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> "TierCapacityStore":
        store = cls(clock=clock, id_factory=id_factory)
        store._friends = {f.id: f.model_copy() for f in state.friends}
        for group in state.reserved_groups:
            store._reserved[group.tier].append(group.model_copy())
        store.last_tended_at = state.last_tended_at
        overflow = store.fits(store._friends.values())
        if overflow:
            log.warning("loaded roster exceeds capacity in %s", [t.value for t in overflow])
        return store
