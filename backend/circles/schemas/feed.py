"""Feed, interaction, nudge and notification schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from circles.schemas.friend import Tier


class ContentType(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    VOICE_NOTE = "voice_note"
    VIDEO = "video"
    CALL_INVITE = "call_invite"
    MEETUP_INVITE = "meetup_invite"
    PROXIMITY_PING = "proximity_ping"
    LIFE_UPDATE = "life_update"


class InteractionType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    VOICE_REPLY = "voice_reply"
    CALL_ACCEPTED = "call_accepted"
    MEETUP_RSVP = "meetup_rsvp"
    SHARE = "share"


class Fidelity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PostLocation(BaseModel):
    name: str
    lat: float | None = None
    lng: float | None = None


class AuthorPresence(BaseModel):
    is_online: bool | None = None
    last_active_at: datetime | None = None


class FeedPost(BaseModel):
    id: str
    author_id: str
    author_name: str = ""
    author_tier: Tier | None = None  # None for the owning user's own posts
    content_type: ContentType
    content: str
    media_url: str | None = None
    created_at: datetime
    scheduled_at: datetime | None = None  # meetup / call invites
    location: PostLocation | None = None
    author_presence: AuthorPresence | None = None
    author_profile: dict | None = None
    visibility: list[Tier] = []
    is_suggested: bool = False
    is_sponsored: bool = False


class FeedPostIn(BaseModel):
    content_type: ContentType
    content: str
    media_url: str | None = None
    scheduled_at: datetime | None = None
    location: PostLocation | None = None
    visibility: list[Tier] = []
    author_id: str | None = None  # defaults to the owning user
    is_suggested: bool = False
    is_sponsored: bool = False


class PostInteraction(BaseModel):
    id: str
    post_id: str
    user_id: str
    user_name: str = ""
    type: InteractionType
    content: str | None = None  # comment text / voice reply transcript
    created_at: datetime


class InteractionIn(BaseModel):
    type: InteractionType
    user_id: str | None = None  # defaults to the owning user
    content: str | None = None


class VisiblePost(BaseModel):
    """A post as projected for one viewer tier."""

    id: str
    author_id: str
    author_name: str
    author_tier: Tier | None
    content_type: ContentType
    content: str
    media_url: str | None = None
    created_at: datetime
    visibility: list[Tier]
    location: PostLocation | None = None
    scheduled_at: datetime | None = None
    is_online: bool | None = None
    last_active_at: datetime | None = None
    author_profile: dict | None = None


class FeedFilters(BaseModel):
    tiers: list[Tier] | None = None
    content_types: list[ContentType] | None = None
    fidelity_level: Fidelity | None = None
    start: datetime | None = None
    end: datetime | None = None
    exclude_suggested: bool = True
    exclude_sponsored: bool = True


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------


class SuggestedAction(str, Enum):
    SCHEDULE_CALL = "schedule_call"
    SEND_VOICE_NOTE = "send_voice_note"
    PLAN_MEETUP = "plan_meetup"
    ANNUAL_REVIEW = "annual_review"  # acquainted cousins


class SunsetNudge(BaseModel):
    id: str
    friend_id: str
    friend_name: str
    friend_tier: Tier
    last_deep_contact: datetime | None
    days_since_contact: int
    suggested_action: SuggestedAction
    message: str = ""
    dismissed: bool = False
    dismissed_at: datetime | None = None


class AcquaintedNudgeAction(str, Enum):
    KEEP_IN_CIRCLES = "keep_in_circles"
    PROMOTE_TO_OUTER = "promote_to_outer"
    REMOVE_FROM_CIRCLES = "remove_from_circles"
    SNOOZE_6_MONTHS = "snooze_6_months"


ACQUAINTED_ACTION_LABELS: dict[AcquaintedNudgeAction, str] = {
    AcquaintedNudgeAction.KEEP_IN_CIRCLES: "Keep in circles",
    AcquaintedNudgeAction.PROMOTE_TO_OUTER: "Promote to Outer circle",
    AcquaintedNudgeAction.REMOVE_FROM_CIRCLES: "Remove from circles",
    AcquaintedNudgeAction.SNOOZE_6_MONTHS: "Ask me again in 6 months",
}


class AcquaintedCandidate(BaseModel):
    id: str
    name: str
    added_at: datetime
    last_contacted: datetime | None = None


class AcquaintedNudgeBatch(BaseModel):
    friends: list[AcquaintedCandidate] = []
    current_month: int  # 1-12
    current_year: int
    total_eligible: int = 0
    expected_batch_size: int = 0
    is_nudge_day: bool = False
    should_show: bool = False
    next_nudge_day: datetime | None = None


class NudgeHistoryEntry(BaseModel):
    friend_id: str
    cycle_year: int
    nudged_at: datetime
    action: AcquaintedNudgeAction | None = None
    action_taken_at: datetime | None = None


class NudgeResponse(BaseModel):
    action: AcquaintedNudgeAction


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationType(str, Enum):
    POST = "post"
    INTERACTION = "interaction"
    NUDGE = "nudge"
    PROXIMITY = "proximity"
    MEETUP_REMINDER = "meetup_reminder"
    CALL_INVITE = "call_invite"


class NotificationPriority(str, Enum):
    IMMEDIATE = "immediate"
    BATCHED = "batched"
    QUIET = "quiet"


class FeedNotification(BaseModel):
    id: str
    type: NotificationType
    from_tier: Tier
    priority: NotificationPriority
    title: str
    body: str = ""
    post_id: str | None = None
    friend_id: str | None = None
    created_at: datetime
    read: bool = False
    delivered_at: datetime | None = None  # set when a batched digest is sent


class NotificationSummary(BaseModel):
    unread_count: int
    notifications: list[FeedNotification]
