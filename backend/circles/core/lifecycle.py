"""Relationship lifecycle - tier transitions layered on the capacity store.

All transitions go through TierCapacityStore.move_friend, so they inherit its
capacity checks and its all-or-nothing behaviour.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from circles.core.contacts import find_duplicates, normalize_contact
from circles.core.errors import FriendNotFoundError, InvalidTransitionError
from circles.core.nudge_scheduler import NudgeLedger
from circles.core.tier_store import TierCapacityStore, utc_now
from circles.schemas.contact import (
    PROMOTABLE_TIERS,
    DuplicateStrategy,
    ImportableContact,
    IntakeResult,
    PromotionInfo,
    RawContact,
)
from circles.schemas.feed import AcquaintedNudgeAction
from circles.schemas.friend import Friend, FriendCreate, FriendUpdate, OperationResult, Tier

log = logging.getLogger("circles.lifecycle")

# Closest first. Tiers outside the ladder only change through explicit moves.
LADDER = (Tier.CORE, Tier.INNER, Tier.OUTER, Tier.ACQUAINTED)

MAX_NAME_LENGTH = 200


class RelationshipLifecycle:
    def __init__(
        self,
        store: TierCapacityStore,
        ledger: NudgeLedger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self._clock = clock

    def _require(self, friend_id: str) -> Friend:
        friend = self.store.get_friend(friend_id)
        if friend is None:
            raise FriendNotFoundError()
        return friend

    # ------------------------------------------------------------------
    # Promote / demote
    # ------------------------------------------------------------------

    def _step(self, friend_id: str, target: Tier | None, direction: int) -> OperationResult:
        friend = self.store.get_friend(friend_id)
        if friend is None:
            return FriendNotFoundError().to_result()

        # Acquainted contacts may be promoted straight into any promotable tier
        if direction < 0 and friend.tier == Tier.ACQUAINTED and target in PROMOTABLE_TIERS:
            return self.store.move_friend(friend_id, target)

        if friend.tier not in LADDER:
            return InvalidTransitionError(f"{friend.tier.value} is not on the lifecycle ladder").to_result()

        position = LADDER.index(friend.tier)
        if target is None:
            next_position = position + direction
            if not 0 <= next_position < len(LADDER):
                return InvalidTransitionError(f"No tier beyond {friend.tier.value}").to_result()
            target = LADDER[next_position]
        elif target not in LADDER or (LADDER.index(target) - position) * direction <= 0:
            return InvalidTransitionError(
                f"Cannot move from {friend.tier.value} to {target.value} this way"
            ).to_result()

        result = self.store.move_friend(friend_id, target)
        if result.success:
            log.info("moved %s %s -> %s", friend_id, friend.tier.value, target.value)
        return result

    def promote(self, friend_id: str, target: Tier | None = None) -> OperationResult:
        """Move one step closer (core is closest), or straight to ``target``."""
        return self._step(friend_id, target, -1)

    def demote(self, friend_id: str, target: Tier | None = None) -> OperationResult:
        return self._step(friend_id, target, 1)

    def promotion_options(self) -> list[PromotionInfo]:
        options = []
        for tier in PROMOTABLE_TIERS:
            capacity = self.store.get_tier_capacity(tier)
            options.append(
                PromotionInfo(
                    target_tier=tier,
                    available=max(0, capacity.available),
                    limit=capacity.limit,
                    is_full=capacity.available <= 0,
                )
            )
        return options

    # ------------------------------------------------------------------
    # Acquainted annual review
    # ------------------------------------------------------------------

    def respond_to_acquainted_nudge(
        self, friend_id: str, action: AcquaintedNudgeAction
    ) -> OperationResult:
        """Apply the user's answer to an annual review.

        The answer is written to the nudge history, which is what keeps the
        contact out of the rest of this cycle. A failed promotion records
        nothing so the question stays open.
        """
        self._require(friend_id)
        now = self._clock()

        if action == AcquaintedNudgeAction.PROMOTE_TO_OUTER:
            result = self.store.move_friend(friend_id, Tier.OUTER)
            if not result.success:
                return result
        elif action == AcquaintedNudgeAction.REMOVE_FROM_CIRCLES:
            self.store.remove_friend(friend_id)
        elif action == AcquaintedNudgeAction.SNOOZE_6_MONTHS:
            until = self.ledger.snooze(friend_id, now)
            log.debug("snoozed %s until %s", friend_id, until.date())

        self.ledger.record(friend_id, now, action)
        return OperationResult(success=True)

    # ------------------------------------------------------------------
    # Contact intake
    # ------------------------------------------------------------------

    def _import_one(self, contact: ImportableContact, result: IntakeResult) -> None:
        added = self.store.add_friend(
            FriendCreate(
                name=contact.name[:MAX_NAME_LENGTH],
                tier=Tier.ACQUAINTED,
                phone=contact.phone,
                email=contact.email,
            )
        )
        if added.success:
            result.imported += 1
        else:
            result.skipped += 1
            result.errors.append(f"{contact.name}: {added.error}")

    def intake_contacts(
        self,
        contacts: Iterable[RawContact],
        strategy: DuplicateStrategy = DuplicateStrategy.SKIP,
    ) -> IntakeResult:
        """Bring bulk-imported contacts into the acquainted tier.

        Contacts without a usable name are skipped. Once the tier is full the
        remaining contacts are skipped with an error each.
        """
        result = IntakeResult(success=True)

        normalized = []
        for raw in contacts:
            contact = normalize_contact(raw)
            if contact is None:
                result.skipped += 1
            else:
                normalized.append(contact)

        dedup = find_duplicates(normalized, self.store.all_friends())
        to_import = list(dedup.unique)

        for match in dedup.duplicates:
            if strategy == DuplicateStrategy.SKIP:
                result.skipped += 1
            elif strategy == DuplicateStrategy.UPDATE:
                patch = FriendUpdate(**{
                    field: value
                    for field, value in (("phone", match.imported.phone), ("email", match.imported.email))
                    if value
                })
                self.store.update_friend(match.existing_friend_id, patch)
                result.updated += 1
            else:
                to_import.append(match.imported)

        for contact in to_import:
            self._import_one(contact, result)

        result.success = not result.errors
        log.info(
            "contact intake: %d imported, %d updated, %d skipped",
            result.imported,
            result.updated,
            result.skipped,
        )
        return result
