"""Tests for the nudge scheduler - thresholds, monthly batches, ledger and snoozes."""

from collections import Counter
from datetime import datetime, timedelta, timezone

from circles.core.nudge_scheduler import (
    NudgeLedger,
    add_months,
    assign_to_monthly_batches,
    assigned_month,
    generate_acquainted_batch,
    generate_nudges,
    generate_sunset_nudges,
    is_eligible_for_acquainted_nudge,
    monthly_batch_size,
    months_between,
    next_acquainted_nudge_day,
    parse_acquainted_nudge_id,
    should_nudge_friend,
)
from circles.schemas.feed import AcquaintedNudgeAction, SuggestedAction
from circles.schemas.friend import Tier

from conftest import make_friend

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _acquainted_due_on(month: int, prefix: str = "acq-contact") -> str:
    """First generated id that hashes into ``month``."""
    i = 0
    while assigned_month(f"{prefix}-{i}") != month:
        i += 1
    return f"{prefix}-{i}"


# ---------------------------------------------------------------------------
# Threshold policy
# ---------------------------------------------------------------------------


def test_core_threshold_boundaries():
    """15 days is due, 10 is not, exactly 14 is due."""
    due = make_friend("a", Tier.CORE, last_contacted=NOW - timedelta(days=15))
    fresh = make_friend("b", Tier.CORE, last_contacted=NOW - timedelta(days=10))
    boundary = make_friend("c", Tier.CORE, last_contacted=NOW - timedelta(days=14))

    assert should_nudge_friend(due, NOW)
    assert not should_nudge_friend(fresh, NOW)
    assert should_nudge_friend(boundary, NOW)


def test_added_at_is_used_without_contact():
    friend = make_friend("a", Tier.INNER, added_at=NOW - timedelta(days=30))
    assert should_nudge_friend(friend, NOW)
    assert not should_nudge_friend(friend, NOW - timedelta(days=1))


def test_untracked_tiers_never_nudge():
    long_ago = NOW - timedelta(days=3650)
    for tier in (Tier.PARASOCIAL, Tier.ROLEMODEL, Tier.ACQUAINTED):
        assert not should_nudge_friend(make_friend("x", tier, added_at=long_ago), NOW)


def test_sunset_nudge_fields():
    friend = make_friend(
        "ada", Tier.OUTER, name="Ada", last_contacted=NOW - timedelta(days=95)
    )

    [nudge] = generate_sunset_nudges([friend], NOW)

    assert nudge.friend_id == "ada"
    assert nudge.friend_tier == Tier.OUTER
    assert nudge.days_since_contact == 95
    assert nudge.suggested_action == SuggestedAction.PLAN_MEETUP
    assert "Ada" in nudge.message and "90 days" in nudge.message
    assert nudge.dismissed is False


def test_suggested_actions_per_tier():
    old = NOW - timedelta(days=200)
    friends = [
        make_friend("c", Tier.CORE, added_at=old),
        make_friend("i", Tier.INNER, added_at=old),
        make_friend("n", Tier.NAYBOR, added_at=old),
    ]
    actions = {n.friend_tier: n.suggested_action for n in generate_sunset_nudges(friends, NOW)}
    assert actions == {
        Tier.CORE: SuggestedAction.SCHEDULE_CALL,
        Tier.INNER: SuggestedAction.SEND_VOICE_NOTE,
        Tier.NAYBOR: SuggestedAction.PLAN_MEETUP,
    }


def test_nudges_are_idempotent_for_the_same_day():
    friends = [make_friend(f"f{i}", Tier.CORE, added_at=NOW - timedelta(days=20)) for i in range(3)]
    first = generate_nudges(friends, NOW)
    second = generate_nudges(friends, NOW + timedelta(hours=3))
    assert [n.id for n in first] == [n.id for n in second]


def test_dismissed_nudge_is_hidden_until_next_contact():
    ledger = NudgeLedger()
    friend = make_friend("a", Tier.CORE, last_contacted=NOW - timedelta(days=20))
    [nudge] = generate_sunset_nudges([friend], NOW, ledger)

    ledger.dismiss(nudge.id, NOW)
    assert generate_sunset_nudges([friend], NOW, ledger) == []
    [shown] = generate_sunset_nudges([friend], NOW, ledger, include_dismissed=True)
    assert shown.dismissed and shown.dismissed_at == NOW

    # A later contact that lapses again produces a new nudge
    recontacted = friend.model_copy(update={"last_contacted": NOW})
    later = NOW + timedelta(days=15)
    [fresh] = generate_sunset_nudges([recontacted], later, ledger)
    assert fresh.id != nudge.id


def test_generate_nudges_filters_by_tier():
    old = NOW - timedelta(days=200)
    friends = [make_friend("c", Tier.CORE, added_at=old), make_friend("o", Tier.OUTER, added_at=old)]
    assert [n.friend_id for n in generate_nudges(friends, NOW, tier=Tier.OUTER)] == ["o"]


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def test_months_between_is_day_aware():
    assert months_between(datetime(2025, 3, 10), datetime(2026, 3, 10)) == 12
    assert months_between(datetime(2025, 3, 11), datetime(2026, 3, 10)) == 11


def test_add_months_clamps_day():
    assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
    assert add_months(datetime(2026, 8, 15), 6) == datetime(2027, 2, 15)


def test_next_nudge_day():
    assert next_acquainted_nudge_day(NOW) == datetime(2026, 4, 1, tzinfo=timezone.utc)
    assert next_acquainted_nudge_day(datetime(2026, 12, 5, tzinfo=timezone.utc)) == datetime(
        2027, 1, 1, tzinfo=timezone.utc
    )


# ---------------------------------------------------------------------------
# Annual-batch policy
# ---------------------------------------------------------------------------


def test_bucket_is_deterministic():
    assert all(assigned_month("contact-42") == assigned_month("contact-42") for _ in range(10))
    assert 1 <= assigned_month("contact-42") <= 12


def test_bulk_import_spreads_across_months():
    friends = [make_friend(f"contact-{i}", Tier.ACQUAINTED) for i in range(120)]

    batches = assign_to_monthly_batches(friends)
    sizes = [len(ids) for ids in batches.values()]

    assert sum(sizes) == 120
    assert sum(1 for size in sizes if size) >= 10
    assert max(sizes) < 120


def test_acquainted_eligibility_at_twelve_months():
    nudge_day = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    exactly_year = make_friend("a", Tier.ACQUAINTED, added_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
    eleven_months = make_friend("b", Tier.ACQUAINTED, added_at=datetime(2025, 4, 1, tzinfo=timezone.utc))
    not_acquainted = make_friend("c", Tier.OUTER, added_at=datetime(2020, 1, 1, tzinfo=timezone.utc))

    assert is_eligible_for_acquainted_nudge(exactly_year, nudge_day)
    assert not is_eligible_for_acquainted_nudge(eleven_months, nudge_day)
    assert not is_eligible_for_acquainted_nudge(not_acquainted, nudge_day)


def test_batch_only_on_the_first():
    friend_id = _acquainted_due_on(5)
    friend = make_friend(friend_id, Tier.ACQUAINTED, added_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

    off_day = generate_acquainted_batch([friend], datetime(2026, 5, 2, tzinfo=timezone.utc))
    on_day = generate_acquainted_batch([friend], datetime(2026, 5, 1, 8, tzinfo=timezone.utc))

    assert off_day.is_nudge_day is False and off_day.friends == []
    assert on_day.is_nudge_day is True and on_day.should_show is True
    assert [c.id for c in on_day.friends] == [friend_id]
    assert on_day.total_eligible == 1
    assert on_day.expected_batch_size == 1
    assert on_day.current_month == 5 and on_day.current_year == 2026


def test_batch_skips_other_months():
    friend_id = _acquainted_due_on(5)
    friend = make_friend(friend_id, Tier.ACQUAINTED, added_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    batch = generate_acquainted_batch([friend], datetime(2026, 6, 1, tzinfo=timezone.utc))
    assert batch.friends == []
    assert batch.total_eligible == 1


def test_once_per_cycle():
    friend_id = _acquainted_due_on(7)
    friend = make_friend(friend_id, Tier.ACQUAINTED, added_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    ledger = NudgeLedger()
    nudge_day = datetime(2026, 7, 1, tzinfo=timezone.utc)

    ledger.record(friend_id, nudge_day, AcquaintedNudgeAction.KEEP_IN_CIRCLES)

    assert generate_acquainted_batch([friend], nudge_day, ledger).friends == []
    next_year = generate_acquainted_batch([friend], datetime(2027, 7, 1, tzinfo=timezone.utc), ledger)
    assert [c.id for c in next_year.friends] == [friend_id]


def test_snooze_overrides_bucket():
    friend_id = _acquainted_due_on(3)
    friend = make_friend(friend_id, Tier.ACQUAINTED, added_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    ledger = NudgeLedger()
    asked = datetime(2026, 3, 1, 10, tzinfo=timezone.utc)

    until = ledger.snooze(friend_id, asked)
    ledger.record(friend_id, asked, AcquaintedNudgeAction.SNOOZE_6_MONTHS)

    assert until == datetime(2026, 9, 1, 10, tzinfo=timezone.utc)
    # Silent while snoozed
    assert generate_acquainted_batch([friend], datetime(2026, 6, 1, tzinfo=timezone.utc), ledger).friends == []
    # Back on the first nudge day after the snooze ends
    back = generate_acquainted_batch([friend], datetime(2026, 10, 1, tzinfo=timezone.utc), ledger)
    assert [c.id for c in back.friends] == [friend_id]

    ledger.record(friend_id, datetime(2026, 10, 1, tzinfo=timezone.utc), AcquaintedNudgeAction.KEEP_IN_CIRCLES)
    assert friend_id not in ledger.snoozed_until
    again = generate_acquainted_batch([friend], datetime(2026, 11, 1, tzinfo=timezone.utc), ledger)
    assert again.friends == []

    # Later cycles follow the bucket again
    for year in (2027, 2028):
        nudge_day = datetime(year, 3, 1, tzinfo=timezone.utc)
        batch = generate_acquainted_batch([friend], nudge_day, ledger)
        assert [c.id for c in batch.friends] == [friend_id]
        ledger.record(friend_id, nudge_day, AcquaintedNudgeAction.KEEP_IN_CIRCLES)


def test_snooze_answer_does_not_lift_itself():
    ledger = NudgeLedger()
    asked = datetime(2026, 3, 1, 10, tzinfo=timezone.utc)

    ledger.snooze("cousin", asked)
    ledger.record("cousin", asked, AcquaintedNudgeAction.SNOOZE_6_MONTHS)

    assert ledger.snoozed_until["cousin"] == datetime(2026, 9, 1, 10, tzinfo=timezone.utc)


def test_acquainted_nudges_in_combined_list():
    friend_id = _acquainted_due_on(3)
    friend = make_friend(friend_id, Tier.ACQUAINTED, name="Cousin", added_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

    [nudge] = generate_nudges([friend], datetime(2026, 3, 1, tzinfo=timezone.utc))

    assert nudge.id == f"acq-{friend_id}-202603"
    assert nudge.suggested_action == SuggestedAction.ANNUAL_REVIEW
    assert "Cousin" in nudge.message
    assert parse_acquainted_nudge_id(nudge.id) == friend_id
    assert parse_acquainted_nudge_id("nudge-x-123") is None


def test_monthly_batch_size():
    assert monthly_batch_size(0) == 0
    assert monthly_batch_size(5) == 1
    assert monthly_batch_size(120) == 10
    assert monthly_batch_size(121) == 11


def test_bucket_distribution_is_reasonably_even():
    counts = Counter(assigned_month(f"user-{i}") for i in range(1200))
    assert len(counts) == 12
    assert max(counts.values()) < 200
