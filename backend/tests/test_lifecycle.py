"""Tests for tier transitions, acquainted reviews and contact intake."""

from datetime import datetime, timezone

import pytest

from circles.core.contacts import find_duplicates, normalize_contact, normalize_phone
from circles.core.errors import FriendNotFoundError
from circles.core.lifecycle import RelationshipLifecycle
from circles.core.nudge_scheduler import NudgeLedger, assigned_month
from circles.schemas.contact import DuplicateStrategy, ImportableContact, ImportSource, RawContact
from circles.schemas.feed import AcquaintedNudgeAction
from circles.schemas.friend import FriendCreate, Tier

from conftest import make_friend


@pytest.fixture
def ledger():
    return NudgeLedger()


@pytest.fixture
def lifecycle(store, ledger, clock):
    return RelationshipLifecycle(store, ledger, clock)


def _add(store, name: str, tier: Tier, **fields) -> str:
    return store.add_friend(FriendCreate(name=name, tier=tier, **fields)).friend.id


# ---------------------------------------------------------------------------
# Contact normalization
# ---------------------------------------------------------------------------


def test_normalize_contact_picks_first_values():
    raw = RawContact(
        source=ImportSource.VCARD,
        names=["  ", " Grace Hopper "],
        phones=["+1 (555) 010-9999", "555"],
        emails=["Grace@Navy.MIL"],
    )

    contact = normalize_contact(raw)

    assert contact.name == "Grace Hopper"
    assert contact.phone == "+15550109999"
    assert contact.email == "grace@navy.mil"
    assert contact.source == ImportSource.VCARD


def test_contact_without_name_is_dropped():
    assert normalize_contact(RawContact(source=ImportSource.CSV, phone="5550100")) is None


def test_normalize_phone():
    assert normalize_phone("(555) 010-1234") == "5550101234"
    assert normalize_phone(" +44 20 7946 0000 ") == "+442079460000"
    assert normalize_phone("n/a") is None


def test_find_duplicates_by_phone_then_email():
    existing = [
        make_friend("p", phone="+1 555 010 1234"),
        make_friend("e", email="Ada@Example.com"),
    ]
    contacts = [
        ImportableContact(name="Phone Match", source=ImportSource.CSV, phone="15550101234"),
        ImportableContact(name="Email Match", source=ImportSource.CSV, email="ada@example.com"),
        ImportableContact(name="Short Phone", source=ImportSource.CSV, phone="123"),
        ImportableContact(name="New", source=ImportSource.CSV, email="new@example.com"),
    ]

    result = find_duplicates(contacts, existing)

    assert [(d.imported.name, d.existing_friend_id, d.matched_by) for d in result.duplicates] == [
        ("Phone Match", "p", "phone"),
        ("Email Match", "e", "email"),
    ]
    assert [c.name for c in result.unique] == ["Short Phone", "New"]


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


def test_intake_lands_in_acquainted(store, lifecycle):
    raws = [RawContact(source=ImportSource.CONTACT_PICKER, name=f"Contact {i}") for i in range(3)]
    raws.append(RawContact(source=ImportSource.CONTACT_PICKER))

    result = lifecycle.intake_contacts(raws)

    assert result.success is True
    assert result.imported == 3
    assert result.skipped == 1
    assert all(f.tier == Tier.ACQUAINTED for f in store.all_friends())


def test_intake_duplicate_strategies(store, lifecycle):
    existing = _add(store, "Ada", Tier.INNER, email="ada@example.com")
    raws = [RawContact(source=ImportSource.CSV, name="Ada L.", email="ADA@example.com", phone="5550101234")]

    skipped = lifecycle.intake_contacts(raws, DuplicateStrategy.SKIP)
    assert (skipped.imported, skipped.skipped, skipped.updated) == (0, 1, 0)

    updated = lifecycle.intake_contacts(raws, DuplicateStrategy.UPDATE)
    assert updated.updated == 1
    assert store.get_friend(existing).phone == "5550101234"
    assert store.get_friend(existing).name == "Ada"

    anyway = lifecycle.intake_contacts(raws, DuplicateStrategy.IMPORT_ANYWAY)
    assert anyway.imported == 1
    assert len(store.all_friends()) == 2


def test_intake_stops_at_capacity(store, lifecycle):
    store.add_reserved_group(Tier.ACQUAINTED, 998)
    raws = [RawContact(source=ImportSource.CSV, name=f"C{i}") for i in range(4)]

    result = lifecycle.intake_contacts(raws)

    assert result.success is False
    assert result.imported == 2
    assert result.skipped == 2
    assert result.errors == ["C2: Tier is full", "C3: Tier is full"]
    assert store.get_tier_capacity(Tier.ACQUAINTED).available == 0


# ---------------------------------------------------------------------------
# Promote / demote
# ---------------------------------------------------------------------------


def test_promote_and_demote_one_step(store, lifecycle):
    friend_id = _add(store, "Ada", Tier.OUTER)

    assert lifecycle.promote(friend_id).success
    assert store.get_friend(friend_id).tier == Tier.INNER
    assert lifecycle.demote(friend_id).success
    assert lifecycle.demote(friend_id).success
    assert store.get_friend(friend_id).tier == Tier.ACQUAINTED


def test_ladder_ends(store, lifecycle):
    core = _add(store, "Core", Tier.CORE)
    acquainted = _add(store, "Cousin", Tier.ACQUAINTED)

    assert lifecycle.promote(core).reason == "invalid_transition"
    assert lifecycle.demote(acquainted).reason == "invalid_transition"


def test_promote_into_full_tier(store, lifecycle):
    for i in range(5):
        _add(store, f"Core {i}", Tier.CORE)
    friend_id = _add(store, "Ada", Tier.INNER)

    result = lifecycle.promote(friend_id)

    assert result.success is False
    assert result.error == "Target tier is full"
    assert store.get_friend(friend_id).tier == Tier.INNER


def test_explicit_targets(store, lifecycle):
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)
    outer = _add(store, "Outer", Tier.OUTER)

    assert lifecycle.promote(cousin, Tier.NAYBOR).success
    assert store.get_friend(cousin).tier == Tier.NAYBOR
    assert lifecycle.promote(outer, Tier.CORE).success
    assert lifecycle.demote(outer, Tier.CORE).reason == "invalid_transition"
    assert lifecycle.promote(_add(store, "Fan", Tier.PARASOCIAL)).reason == "invalid_transition"


def test_promotion_options(store, lifecycle):
    for i in range(5):
        _add(store, f"Core {i}", Tier.CORE)

    options = {o.target_tier: o for o in lifecycle.promotion_options()}

    assert options[Tier.CORE].is_full is True
    assert options[Tier.CORE].available == 0
    assert options[Tier.OUTER].available == 150
    assert Tier.PARASOCIAL not in options


# ---------------------------------------------------------------------------
# Acquainted review responses
# ---------------------------------------------------------------------------


def test_keep_records_history(store, ledger, lifecycle, clock):
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)

    result = lifecycle.respond_to_acquainted_nudge(cousin, AcquaintedNudgeAction.KEEP_IN_CIRCLES)

    assert result.success
    assert ledger.has_been_nudged_in_cycle(cousin, clock.now.year)
    assert ledger.history[0].action == AcquaintedNudgeAction.KEEP_IN_CIRCLES


def test_promote_to_outer(store, ledger, lifecycle):
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)
    assert lifecycle.respond_to_acquainted_nudge(cousin, AcquaintedNudgeAction.PROMOTE_TO_OUTER).success
    assert store.get_friend(cousin).tier == Tier.OUTER


def test_failed_promotion_records_nothing(store, ledger, lifecycle):
    store.add_reserved_group(Tier.OUTER, 150)
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)

    result = lifecycle.respond_to_acquainted_nudge(cousin, AcquaintedNudgeAction.PROMOTE_TO_OUTER)

    assert result.success is False
    assert ledger.history == []


def test_remove_from_circles(store, lifecycle):
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)
    lifecycle.respond_to_acquainted_nudge(cousin, AcquaintedNudgeAction.REMOVE_FROM_CIRCLES)
    assert store.get_friend(cousin) is None


def test_snooze_sets_until(store, ledger, lifecycle, clock):
    clock.set(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))
    cousin = _add(store, "Cousin", Tier.ACQUAINTED)

    lifecycle.respond_to_acquainted_nudge(cousin, AcquaintedNudgeAction.SNOOZE_6_MONTHS)

    assert ledger.snoozed_until[cousin] == datetime(2026, 9, 1, 9, 0, tzinfo=timezone.utc)


def test_respond_unknown_friend(lifecycle):
    with pytest.raises(FriendNotFoundError):
        lifecycle.respond_to_acquainted_nudge("missing", AcquaintedNudgeAction.KEEP_IN_CIRCLES)


def test_assigned_month_is_independent_of_name():
    """Bucket comes from the id only, so renaming never moves a contact."""
    friend = make_friend("stable-id", Tier.ACQUAINTED, name="Before")
    renamed = friend.model_copy(update={"name": "After"})
    assert assigned_month(friend.id) == assigned_month(renamed.id)
