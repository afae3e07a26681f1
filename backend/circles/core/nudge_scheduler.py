"""Nudge scheduler - decides which relationships are due for a sunset reminder.

Two policies coexist:

- Threshold policy (core, inner, outer, naybor): a friend is due once the days
  since the last deep contact (or since being added) reach the tier threshold.
- Annual-batch policy (acquainted): contacts become eligible after twelve
  months in circles, and are reviewed on the 1st of the month their id hashes
  to. A bulk import therefore spreads across all twelve months instead of
  landing on one day.

Everything here is a pure function of ``now``, the roster and the NudgeLedger,
so re-querying on the same day yields the same nudges with the same ids.
"""

import calendar
import logging
import math
from datetime import datetime, timezone
from typing import Iterable

from pydantic import BaseModel

from circles.schemas.feed import (
    AcquaintedCandidate,
    AcquaintedNudgeAction,
    AcquaintedNudgeBatch,
    NudgeHistoryEntry,
    SuggestedAction,
    SunsetNudge,
)
from circles.schemas.friend import Friend, Tier

log = logging.getLogger("circles.nudges")

# Days without deep contact before a nudge (infinite = never nudged)
SUNSET_NUDGE_THRESHOLDS: dict[Tier, float] = {
    Tier.CORE: 14,
    Tier.INNER: 30,
    Tier.OUTER: 90,
    Tier.NAYBOR: 60,
    Tier.PARASOCIAL: math.inf,
    Tier.ROLEMODEL: math.inf,
    Tier.ACQUAINTED: math.inf,  # annual-batch policy instead
}

SUGGESTED_ACTIONS: dict[Tier, SuggestedAction] = {
    Tier.CORE: SuggestedAction.SCHEDULE_CALL,
    Tier.INNER: SuggestedAction.SEND_VOICE_NOTE,
    Tier.OUTER: SuggestedAction.PLAN_MEETUP,
    Tier.NAYBOR: SuggestedAction.PLAN_MEETUP,
}

ACQUAINTED_MINIMUM_AGE_MONTHS = 12
ACQUAINTED_NUDGE_DAY = 1
MONTHLY_BATCHES = 12
SNOOZE_MONTHS = 6

ACQUAINTED_NUDGE_PREFIX = "acq"
SUNSET_NUDGE_PREFIX = "nudge"


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from ``start`` to ``end`` (day-of-month aware)."""
    start, end = _utc(start), _utc(end)
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    index = value.month - 1 + months
    year, month = value.year + index // 12, index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def days_since(reference: datetime, now: datetime) -> int:
    return (_utc(now) - _utc(reference)).days


def cycle_year(now: datetime) -> int:
    """The annual cycle is the calendar year; it resets on January 1."""
    return _utc(now).year


def is_acquainted_nudge_day(now: datetime) -> bool:
    return _utc(now).day == ACQUAINTED_NUDGE_DAY


def next_acquainted_nudge_day(now: datetime) -> datetime:
    now = _utc(now)
    first = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return add_months(first, 1)


# ---------------------------------------------------------------------------
# Deterministic month assignment
# ---------------------------------------------------------------------------

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(value: str) -> int:
    """32-bit FNV-1a over UTF-8. Stable across processes, unlike hash()."""
    h = _FNV_OFFSET
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def assigned_month(friend_id: str) -> int:
    """The month (1-12) in which a contact is reviewed, derived from its id."""
    return fnv1a_32(friend_id) % MONTHLY_BATCHES + 1


def assign_to_monthly_batches(friends: Iterable[Friend]) -> dict[int, list[str]]:
    batches: dict[int, list[str]] = {month: [] for month in range(1, MONTHLY_BATCHES + 1)}
    for friend in friends:
        batches[assigned_month(friend.id)].append(friend.id)
    return batches


def monthly_batch_size(total_eligible: int) -> int:
    """Expected (not enforced) contacts per monthly batch."""
    if total_eligible == 0:
        return 0
    return max(1, math.ceil(total_eligible / MONTHLY_BATCHES))


# ---------------------------------------------------------------------------
# Ledger: dismissals, acquainted history, snoozes
# ---------------------------------------------------------------------------


class NudgeLedger(BaseModel):
    """The minimal persisted state behind otherwise derived nudges."""

    dismissed: dict[str, datetime] = {}
    history: list[NudgeHistoryEntry] = []
    snoozed_until: dict[str, datetime] = {}

    def is_dismissed(self, nudge_id: str) -> bool:
        return nudge_id in self.dismissed

    def dismiss(self, nudge_id: str, now: datetime) -> None:
        self.dismissed.setdefault(nudge_id, now)

    def has_been_nudged_in_cycle(self, friend_id: str, year: int) -> bool:
        return any(h.friend_id == friend_id and h.cycle_year == year for h in self.history)

    def record(
        self, friend_id: str, now: datetime, action: AcquaintedNudgeAction | None = None
    ) -> NudgeHistoryEntry:
        entry = NudgeHistoryEntry(
            friend_id=friend_id,
            cycle_year=cycle_year(now),
            nudged_at=now,
            action=action,
            action_taken_at=now if action else None,
        )
        self.history.append(entry)
        # The first review after a snooze ends it; the hash bucket takes over again.
        until = self.snoozed_until.get(friend_id)
        if until is not None and _utc(now) >= _utc(until):
            del self.snoozed_until[friend_id]
        return entry

    def snooze(self, friend_id: str, now: datetime, months: int = SNOOZE_MONTHS) -> datetime:
        until = add_months(_utc(now), months)
        self.snoozed_until[friend_id] = until
        return until

    def clear(self) -> None:
        self.dismissed.clear()
        self.history.clear()
        self.snoozed_until.clear()


# ---------------------------------------------------------------------------
# Threshold policy
# ---------------------------------------------------------------------------


def contact_anchor(friend: Friend) -> datetime:
    return friend.last_contacted or friend.added_at


def should_nudge_friend(friend: Friend, now: datetime) -> bool:
    threshold = SUNSET_NUDGE_THRESHOLDS[friend.tier]
    if math.isinf(threshold):
        return False
    return days_since(contact_anchor(friend), now) >= threshold


def sunset_nudge_id(friend: Friend) -> str:
    # Keyed on the contact anchor: a fresh contact produces a fresh nudge later.
    return f"{SUNSET_NUDGE_PREFIX}-{friend.id}-{int(_utc(contact_anchor(friend)).timestamp())}"


def nudge_message(friend: Friend) -> str:
    threshold = SUNSET_NUDGE_THRESHOLDS[friend.tier]
    return f"No deep contact with {friend.name} in {int(threshold)} days. Schedule something?"


def acquainted_nudge_message(friend_name: str) -> str:
    return f"Annual check-in: Is {friend_name} still someone you want in your circles?"


def generate_sunset_nudges(
    friends: Iterable[Friend],
    now: datetime,
    ledger: NudgeLedger | None = None,
    include_dismissed: bool = False,
) -> list[SunsetNudge]:
    if ledger is None:
        ledger = NudgeLedger()
    nudges = []
    for friend in friends:
        if not should_nudge_friend(friend, now):
            continue
        nudge_id = sunset_nudge_id(friend)
        dismissed_at = ledger.dismissed.get(nudge_id)
        if dismissed_at and not include_dismissed:
            continue
        nudges.append(
            SunsetNudge(
                id=nudge_id,
                friend_id=friend.id,
                friend_name=friend.name,
                friend_tier=friend.tier,
                last_deep_contact=friend.last_contacted,
                days_since_contact=days_since(contact_anchor(friend), now),
                suggested_action=SUGGESTED_ACTIONS[friend.tier],
                message=nudge_message(friend),
                dismissed=dismissed_at is not None,
                dismissed_at=dismissed_at,
            )
        )
    return nudges


# ---------------------------------------------------------------------------
# Annual-batch policy
# ---------------------------------------------------------------------------


def is_eligible_for_acquainted_nudge(friend: Friend, now: datetime) -> bool:
    if friend.tier != Tier.ACQUAINTED:
        return False
    return months_between(friend.added_at, now) >= ACQUAINTED_MINIMUM_AGE_MONTHS


def eligible_acquainted(friends: Iterable[Friend], now: datetime) -> list[Friend]:
    return [f for f in friends if is_eligible_for_acquainted_nudge(f, now)]


def is_due_for_acquainted_nudge(friend: Friend, now: datetime, ledger: NudgeLedger) -> bool:
    """Whether an eligible contact belongs in this month's batch.

    A snooze overrides the hash bucket: the contact is silent until the snooze
    ends, then comes back on the first nudge day after it. Recording that
    review lifts the snooze and later cycles follow the bucket again.
    """
    until = ledger.snoozed_until.get(friend.id)
    if until is not None:
        return _utc(now) >= _utc(until)

    if assigned_month(friend.id) != _utc(now).month:
        return False
    return not ledger.has_been_nudged_in_cycle(friend.id, cycle_year(now))


def acquainted_nudge_id(friend_id: str, now: datetime) -> str:
    now = _utc(now)
    return f"{ACQUAINTED_NUDGE_PREFIX}-{friend_id}-{now.year}{now.month:02d}"


def generate_acquainted_batch(
    friends: Iterable[Friend], now: datetime, ledger: NudgeLedger | None = None
) -> AcquaintedNudgeBatch:
    if ledger is None:
        ledger = NudgeLedger()
    utc_now = _utc(now)
    batch = AcquaintedNudgeBatch(
        current_month=utc_now.month,
        current_year=utc_now.year,
        is_nudge_day=is_acquainted_nudge_day(utc_now),
        next_nudge_day=next_acquainted_nudge_day(utc_now),
    )
    if not batch.is_nudge_day:
        return batch

    eligible = eligible_acquainted(friends, utc_now)
    due = [
        f
        for f in eligible
        if is_due_for_acquainted_nudge(f, utc_now, ledger)
        and not ledger.is_dismissed(acquainted_nudge_id(f.id, utc_now))
    ]
    log.debug("acquainted batch %s-%02d: %d of %d eligible", utc_now.year, utc_now.month, len(due), len(eligible))

    batch.total_eligible = len(eligible)
    batch.expected_batch_size = monthly_batch_size(len(eligible))
    batch.friends = [
        AcquaintedCandidate(id=f.id, name=f.name, added_at=f.added_at, last_contacted=f.last_contacted)
        for f in due
    ]
    batch.should_show = bool(due)
    return batch


def generate_acquainted_nudges(
    friends: Iterable[Friend], now: datetime, ledger: NudgeLedger | None = None
) -> list[SunsetNudge]:
    """This month's acquainted batch expressed as SunsetNudge records."""
    friends = list(friends)
    by_id = {f.id: f for f in friends}
    batch = generate_acquainted_batch(friends, now, ledger)
    nudges = []
    for candidate in batch.friends:
        friend = by_id[candidate.id]
        nudges.append(
            SunsetNudge(
                id=acquainted_nudge_id(friend.id, now),
                friend_id=friend.id,
                friend_name=friend.name,
                friend_tier=friend.tier,
                last_deep_contact=friend.last_contacted,
                days_since_contact=days_since(contact_anchor(friend), now),
                suggested_action=SuggestedAction.ANNUAL_REVIEW,
                message=acquainted_nudge_message(friend.name),
            )
        )
    return nudges


def generate_nudges(
    friends: Iterable[Friend],
    now: datetime,
    ledger: NudgeLedger | None = None,
    tier: Tier | None = None,
) -> list[SunsetNudge]:
    """All active nudges, optionally limited to one tier."""
    friends = [f for f in friends if tier is None or f.tier == tier]
    nudges = generate_sunset_nudges(friends, now, ledger)
    nudges.extend(generate_acquainted_nudges(friends, now, ledger))
    log.debug("generated %d nudges (tier=%s)", len(nudges), tier.value if tier else "all")
    return nudges


def parse_acquainted_nudge_id(nudge_id: str) -> str | None:
    """Friend id encoded in an acquainted nudge id, or None for other nudges."""
    prefix = f"{ACQUAINTED_NUDGE_PREFIX}-"
    if not nudge_id.startswith(prefix):
        return None
    friend_id, _, _stamp = nudge_id[len(prefix):].rpartition("-")
    return friend_id or None
