"""Fidelity classification, notification routing and feed construction.

Close tiers (core, inner) get the bridging protocol: high-fidelity events
always notify immediately and likes are pushed to the batch. It rewards depth
of interaction from the people who matter, not raw engagement volume.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from pydantic import BaseModel

from circles.schemas.feed import (
    ContentType,
    FeedFilters,
    FeedNotification,
    FeedPost,
    Fidelity,
    InteractionType,
    NotificationPriority,
    NotificationType,
    PostInteraction,
)
from circles.schemas.friend import Tier
from circles.schemas.settings import NotificationSettings

log = logging.getLogger("circles.notifications")

CONTENT_FIDELITY: dict[ContentType, Fidelity] = {
    ContentType.TEXT: Fidelity.LOW,
    ContentType.PHOTO: Fidelity.MEDIUM,
    ContentType.VOICE_NOTE: Fidelity.HIGH,
    ContentType.VIDEO: Fidelity.HIGH,
    ContentType.CALL_INVITE: Fidelity.HIGH,
    ContentType.MEETUP_INVITE: Fidelity.HIGH,
    ContentType.PROXIMITY_PING: Fidelity.HIGH,
    ContentType.LIFE_UPDATE: Fidelity.MEDIUM,
}

INTERACTION_FIDELITY: dict[InteractionType, Fidelity] = {
    InteractionType.LIKE: Fidelity.LOW,
    InteractionType.COMMENT: Fidelity.MEDIUM,
    InteractionType.VOICE_REPLY: Fidelity.HIGH,
    InteractionType.CALL_ACCEPTED: Fidelity.HIGH,
    InteractionType.MEETUP_RSVP: Fidelity.HIGH,
    InteractionType.SHARE: Fidelity.MEDIUM,
}

FIDELITY_RANK = {Fidelity.LOW: 0, Fidelity.MEDIUM: 1, Fidelity.HIGH: 2}

BRIDGING_TIERS = frozenset({Tier.CORE, Tier.INNER})

DEFAULT_BATCH_INTERVAL_MINUTES = 60

# Content types that get their own notification type
_CONTENT_NOTIFICATION_TYPES = {
    ContentType.CALL_INVITE: NotificationType.CALL_INVITE,
    ContentType.PROXIMITY_PING: NotificationType.PROXIMITY,
}


def get_content_fidelity(content_type: ContentType) -> Fidelity:
    return CONTENT_FIDELITY[content_type]


def get_interaction_fidelity(interaction_type: InteractionType) -> Fidelity:
    return INTERACTION_FIDELITY[interaction_type]


def get_notification_priority(
    tier: Tier,
    settings: NotificationSettings,
    content_type: ContentType | None = None,
    interaction_type: InteractionType | None = None,
) -> NotificationPriority | None:
    """Priority for an event from ``tier``; None when the tier is disabled.

    Only interactions are demoted for low fidelity: a plain text post from a
    core friend still follows the tier default.
    """
    tier_settings = settings.for_tier(tier)
    if not tier_settings.enabled:
        return None

    if tier in BRIDGING_TIERS:
        if interaction_type is not None:
            fidelity = INTERACTION_FIDELITY[interaction_type]
            if fidelity == Fidelity.LOW:
                return NotificationPriority.BATCHED
            if fidelity == Fidelity.HIGH:
                return NotificationPriority.IMMEDIATE
        elif content_type is not None and CONTENT_FIDELITY[content_type] == Fidelity.HIGH:
            return NotificationPriority.IMMEDIATE

    return tier_settings.mode


def should_show_like_count(tier: Tier) -> bool:
    """Like counts are kept out of sight in close tiers."""
    return tier not in BRIDGING_TIERS


def sort_interactions_by_fidelity(interactions: Iterable[PostInteraction]) -> list[PostInteraction]:
    """High fidelity first; original order kept within a level."""
    return sorted(interactions, key=lambda i: -FIDELITY_RANK[INTERACTION_FIDELITY[i.type]])


# ---------------------------------------------------------------------------
# Feed construction: filter + stable chronological sort, never a ranking
# ---------------------------------------------------------------------------


def _newest_first(posts: Iterable[FeedPost]) -> list[FeedPost]:
    # reverse=True keeps equal timestamps in insertion order
    return sorted(posts, key=lambda p: p.created_at, reverse=True)


def get_tier_feed(posts: Iterable[FeedPost], tier: Tier) -> list[FeedPost]:
    return _newest_first(
        p for p in posts if p.author_tier == tier and not p.is_suggested and not p.is_sponsored
    )


def get_core_feed(posts: Iterable[FeedPost]) -> list[FeedPost]:
    return get_tier_feed(posts, Tier.CORE)


def get_filtered_feed(posts: Iterable[FeedPost], filters: FeedFilters) -> list[FeedPost]:
    def keep(post: FeedPost) -> bool:
        if filters.tiers is not None and post.author_tier not in filters.tiers:
            return False
        if filters.content_types is not None and post.content_type not in filters.content_types:
            return False
        if filters.exclude_suggested and post.is_suggested:
            return False
        if filters.exclude_sponsored and post.is_sponsored:
            return False
        if filters.fidelity_level is not None:
            if FIDELITY_RANK[CONTENT_FIDELITY[post.content_type]] < FIDELITY_RANK[filters.fidelity_level]:
                return False
        if filters.start is not None and post.created_at < filters.start:
            return False
        if filters.end is not None and post.created_at > filters.end:
            return False
        return True

    return _newest_first(p for p in posts if keep(p))


def interaction_counts(interactions: Iterable[PostInteraction]) -> dict[str, dict[str, int]]:
    """Per-post counts by interaction type. Display only; never used for ordering."""
    counts: dict[str, dict[str, int]] = {}
    for interaction in interactions:
        per_post = counts.setdefault(interaction.post_id, {})
        per_post[interaction.type.value] = per_post.get(interaction.type.value, 0) + 1
    return counts


# ---------------------------------------------------------------------------
# Notification inbox
# ---------------------------------------------------------------------------


class InboxState(BaseModel):
    notifications: list[FeedNotification] = []
    last_digest_at: datetime | None = None


class NotificationRouter:
    """Routes feed events into an inbox according to the tier settings."""

    def __init__(
        self,
        settings: NotificationSettings,
        state: InboxState | None = None,
        id_factory: Callable[[], str] = lambda: f"notif-{uuid.uuid4().hex}",
    ):
        self.settings = settings
        self.state = state if state is not None else InboxState()
        self._new_id = id_factory

    @property
    def notifications(self) -> list[FeedNotification]:
        return list(self.state.notifications)

    def _push(self, notification: FeedNotification) -> FeedNotification:
        self.state.notifications.append(notification)
        log.debug(
            "routed %s from %s as %s",
            notification.type.value,
            notification.from_tier.value,
            notification.priority.value,
        )
        return notification

    def route_post(self, post: FeedPost, now: datetime) -> FeedNotification | None:
        if post.author_tier is None:
            return None
        priority = get_notification_priority(post.author_tier, self.settings, content_type=post.content_type)
        if priority is None:
            return None
        return self._push(
            FeedNotification(
                id=self._new_id(),
                type=_CONTENT_NOTIFICATION_TYPES.get(post.content_type, NotificationType.POST),
                from_tier=post.author_tier,
                priority=priority,
                title=f"{post.author_name or 'Someone'} shared a {post.content_type.value.replace('_', ' ')}",
                body=post.content[:140],
                post_id=post.id,
                friend_id=post.author_id,
                created_at=now,
            )
        )

    def route_interaction(
        self, interaction: PostInteraction, actor_tier: Tier, now: datetime
    ) -> FeedNotification | None:
        priority = get_notification_priority(actor_tier, self.settings, interaction_type=interaction.type)
        if priority is None:
            return None
        return self._push(
            FeedNotification(
                id=self._new_id(),
                type=NotificationType.INTERACTION,
                from_tier=actor_tier,
                priority=priority,
                title=f"{interaction.user_name or 'Someone'}: {interaction.type.value.replace('_', ' ')}",
                body=interaction.content or "",
                post_id=interaction.post_id,
                friend_id=interaction.user_id,
                created_at=now,
            )
        )

    def mark_read(self, notification_id: str) -> bool:
        for notification in self.state.notifications:
            if notification.id == notification_id:
                notification.read = True
                return True
        return False

    def mark_all_read(self) -> None:
        for notification in self.state.notifications:
            notification.read = True

    def unread_count(self) -> int:
        return sum(1 for n in self.state.notifications if not n.read)

    def notifications_by_priority(self, priority: NotificationPriority) -> list[FeedNotification]:
        return [n for n in self.state.notifications if n.priority == priority]

    def batch_interval(self, tier: Tier) -> timedelta:
        minutes = self.settings.for_tier(tier).batch_interval_minutes or DEFAULT_BATCH_INTERVAL_MINUTES
        return timedelta(minutes=minutes)

    def collect_batch(self, now: datetime) -> list[FeedNotification]:
        """Batched notifications whose tier interval has elapsed since the last digest.

        Returned notifications are stamped as delivered so the next digest
        does not repeat them.
        """
        due = []
        for notification in self.state.notifications:
            if notification.priority != NotificationPriority.BATCHED or notification.delivered_at:
                continue
            window_start = self.state.last_digest_at or notification.created_at
            if now - window_start >= self.batch_interval(notification.from_tier):
                due.append(notification)
        for notification in due:
            notification.delivered_at = now
        if due:
            self.state.last_digest_at = now
        return due

    def prune(self, now: datetime, retention_days: int) -> int:
        """Drop read notifications older than the retention window."""
        cutoff = now - timedelta(days=retention_days)
        before = len(self.state.notifications)
        self.state.notifications = [
            n for n in self.state.notifications if not (n.read and n.created_at < cutoff)
        ]
        return before - len(self.state.notifications)
