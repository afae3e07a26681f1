"""Friend roster schemas: tiers, friends, reserved spots and capacity."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Tier(str, Enum):
    """The closed set of relationship tiers."""

    CORE = "core"
    INNER = "inner"
    OUTER = "outer"
    NAYBOR = "naybor"
    PARASOCIAL = "parasocial"
    ROLEMODEL = "rolemodel"
    ACQUAINTED = "acquainted"


TIER_LIMITS: dict[Tier, int] = {
    Tier.CORE: 5,
    Tier.INNER: 15,
    Tier.OUTER: 150,
    Tier.NAYBOR: 25,
    Tier.PARASOCIAL: 25,
    Tier.ROLEMODEL: 25,
    Tier.ACQUAINTED: 1000,
}

# Minimum recommended naybors for the emergency contact network
NAYBOR_MINIMUM = 10


class ContactMethod(str, Enum):
    TEL = "tel"
    FACETIME = "facetime"
    WHATSAPP = "whatsapp"
    SIGNAL = "signal"
    TELEGRAM = "telegram"
    WECHAT = "wechat"
    VK = "vk"
    MAX = "max"


class Friend(BaseModel):
    """A relationship record owned by a TierCapacityStore."""

    id: str
    name: str
    tier: Tier
    added_at: datetime
    email: str | None = None
    phone: str | None = None
    preferred_contact: ContactMethod | None = None
    notes: str | None = None
    last_contacted: datetime | None = None
    sort_order: int | None = None  # None = alphabetical placement
    role_model_reason: str | None = None
    updated_at: datetime | None = None  # last local mutation, used by sync


class FriendCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    tier: Tier
    email: str | None = None
    phone: str | None = None
    preferred_contact: ContactMethod | None = None
    notes: str | None = None
    last_contacted: datetime | None = None
    role_model_reason: str | None = None


class FriendUpdate(BaseModel):
    """Partial update. Tier is deliberately absent: use move_friend."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = None
    phone: str | None = None
    preferred_contact: ContactMethod | None = None
    notes: str | None = None
    last_contacted: datetime | None = None
    role_model_reason: str | None = None

    model_config = {"extra": "ignore"}


class ReservedGroup(BaseModel):
    """Capacity held for not-yet-named people, e.g. "2 spots for coworkers"."""

    id: str
    tier: Tier
    count: int = Field(ge=0)
    note: str | None = None


class ReservedGroupIn(BaseModel):
    count: int = Field(ge=0)
    note: str | None = None


class TierCapacity(BaseModel):
    tier: Tier
    limit: int
    friend_count: int
    reserved: int
    used: int
    available: int
    reserved_groups: list[ReservedGroup] = []


class OperationResult(BaseModel):
    """Outcome of an expected-to-fail operation. Never raised."""

    success: bool
    error: str | None = None
    reason: str | None = None


class FriendResult(OperationResult):
    friend: Friend | None = None


class ReservedGroupResult(OperationResult):
    group: ReservedGroup | None = None


class MoveRequest(BaseModel):
    target_tier: Tier


class ReorderRequest(BaseModel):
    ordered_ids: list[str]


class RosterState(BaseModel):
    """Serializable snapshot of a TierCapacityStore."""

    friends: list[Friend] = []
    reserved_groups: list[ReservedGroup] = []
    last_tended_at: datetime | None = None
