"""Circle workspace - one user's roster, content, nudges and settings together.

The workspace is an explicit object: callers hold an instance and pass it
around, so any number of independent rosters can live side by side.
"""

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime

from pydantic import BaseModel, Field

from circles.core import portability
from circles.core.errors import (
    FriendNotFoundError,
    ImportValidationError,
    ImportVersionMismatch,
    PostNotFoundError,
)
from circles.core.fidelity import (
    InboxState,
    NotificationRouter,
    get_core_feed,
    get_filtered_feed,
    get_tier_feed,
)
from circles.core.lifecycle import RelationshipLifecycle
from circles.core.nudge_scheduler import (
    NudgeLedger,
    generate_acquainted_batch,
    generate_nudges,
    parse_acquainted_nudge_id,
)
from circles.core.privacy import get_visible_content
from circles.core.tier_store import TierCapacityStore, utc_now
from circles.schemas.feed import (
    AcquaintedNudgeAction,
    AcquaintedNudgeBatch,
    FeedFilters,
    FeedNotification,
    FeedPost,
    FeedPostIn,
    InteractionIn,
    PostInteraction,
    SunsetNudge,
    VisiblePost,
)
from circles.schemas.friend import OperationResult, RosterState, Tier
from circles.schemas.portability import ExportableSocialGraph, ImportMode, ImportResult
from circles.schemas.settings import SettingsBundle, TierNotification, TierPrivacy

log = logging.getLogger("circles.workspace")


class WorkspaceState(BaseModel):
    """Everything persisted for one user."""

    user_id: str
    roster: RosterState = Field(default_factory=RosterState)
    ledger: NudgeLedger = Field(default_factory=NudgeLedger)
    posts: list[FeedPost] = []
    interactions: list[PostInteraction] = []
    inbox: InboxState = Field(default_factory=InboxState)
    settings: SettingsBundle


class CircleWorkspace:
    def __init__(
        self,
        user_id: str,
        settings: SettingsBundle,
        store: TierCapacityStore | None = None,
        ledger: NudgeLedger | None = None,
        posts: list[FeedPost] | None = None,
        interactions: list[PostInteraction] | None = None,
        inbox: InboxState | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.user_id = user_id
        self.settings = settings
        self._clock = clock
        self.store = store if store is not None else TierCapacityStore(clock=clock)
        self.ledger = ledger if ledger is not None else NudgeLedger()
        self.posts: list[FeedPost] = list(posts or [])
        self.interactions: list[PostInteraction] = list(interactions or [])
        self.router = NotificationRouter(settings.notifications, inbox)
        self.lifecycle = RelationshipLifecycle(self.store, self.ledger, clock)
        self._listeners: list[Callable[[], None]] = []
        self.store.subscribe(self._changed)

    def now(self) -> datetime:
        return self._clock()

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()

    # ------------------------------------------------------------------
    # Nudges
    # ------------------------------------------------------------------

    def generate_nudges(self) -> list[SunsetNudge]:
        return generate_nudges(self.store.all_friends(), self.now(), self.ledger)

    def get_nudges_for_tier(self, tier: Tier) -> list[SunsetNudge]:
        return generate_nudges(self.store.all_friends(), self.now(), self.ledger, tier=tier)

    def acquainted_batch(self) -> AcquaintedNudgeBatch:
        return generate_acquainted_batch(self.store.all_friends(), self.now(), self.ledger)

    def dismiss_nudge(self, nudge_id: str) -> None:
        """Hide a nudge. Dismissing an annual review also counts as reviewed for the cycle."""
        now = self.now()
        self.ledger.dismiss(nudge_id, now)
        friend_id = parse_acquainted_nudge_id(nudge_id)
        if friend_id and self.store.get_friend(friend_id) is not None:
            self.ledger.record(friend_id, now)
        self._changed()

    def respond_to_nudge(self, friend_id: str, action: AcquaintedNudgeAction) -> OperationResult:
        result = self.lifecycle.respond_to_acquainted_nudge(friend_id, action)
        if result.success:
            self._changed()
        return result

    # ------------------------------------------------------------------
    # Posts and interactions
    # ------------------------------------------------------------------

    def get_post(self, post_id: str) -> FeedPost:
        for post in self.posts:
            if post.id == post_id:
                return post
        raise PostNotFoundError()

    def add_post(self, data: FeedPostIn) -> FeedPost:
        """Store a post and route a notification when a friend authored it."""
        now = self.now()
        author_id = data.author_id or self.user_id
        author = self.store.get_friend(author_id) if author_id != self.user_id else None
        if author_id != self.user_id and author is None:
            raise FriendNotFoundError()

        post = FeedPost(
            id=str(uuid.uuid4()),
            author_id=author_id,
            author_name=author.name if author else "",
            author_tier=author.tier if author else None,
            created_at=now,
            **data.model_dump(exclude={"author_id"}),
        )
        self.posts.append(post)
        if author is not None:
            self.router.route_post(post, now)
        self._changed()
        return post

    def add_interaction(self, post_id: str, data: InteractionIn) -> PostInteraction:
        post = self.get_post(post_id)
        now = self.now()
        user_id = data.user_id or self.user_id
        actor = self.store.get_friend(user_id) if user_id != self.user_id else None
        if user_id != self.user_id and actor is None:
            raise FriendNotFoundError()

        interaction = PostInteraction(
            id=str(uuid.uuid4()),
            post_id=post.id,
            user_id=user_id,
            user_name=actor.name if actor else "",
            type=data.type,
            content=data.content,
            created_at=now,
        )
        self.interactions.append(interaction)
        if actor is not None:
            self.router.route_interaction(interaction, actor.tier, now)
        self._changed()
        return interaction

    def interactions_for(self, post_id: str) -> list[PostInteraction]:
        return [i for i in self.interactions if i.post_id == post_id]

    def core_feed(self) -> list[FeedPost]:
        return get_core_feed(self.posts)

    def tier_feed(self, tier: Tier) -> list[FeedPost]:
        return get_tier_feed(self.posts, tier)

    def filtered_feed(self, filters: FeedFilters) -> list[FeedPost]:
        return get_filtered_feed(self.posts, filters)

    def get_visible_content(self, viewer_tier: Tier, post_id: str) -> VisiblePost | None:
        return get_visible_content(viewer_tier, self.get_post(post_id), self.settings.privacy)

    def mark_notification_read(self, notification_id: str) -> bool:
        found = self.router.mark_read(notification_id)
        if found:
            self._changed()
        return found

    def mark_all_notifications_read(self) -> None:
        self.router.mark_all_read()
        self._changed()

    def collect_digest(self) -> list[FeedNotification]:
        due = self.router.collect_batch(self.now())
        if due:
            self._changed()
        return due

    def prune_notifications(self, retention_days: int) -> int:
        removed = self.router.prune(self.now(), retention_days)
        if removed:
            self._changed()
        return removed

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_privacy_settings(self, tier: Tier, privacy: TierPrivacy) -> SettingsBundle:
        self.settings = self.settings.model_copy(
            update={"privacy": self.settings.privacy.model_copy(update={tier.value: privacy})}
        )
        self._changed()
        return self.settings

    def update_notification_settings(self, tier: Tier, notification: TierNotification) -> SettingsBundle:
        notifications = self.settings.notifications.model_copy(update={tier.value: notification})
        self.settings = self.settings.model_copy(update={"notifications": notifications})
        self.router.settings = notifications
        self._changed()
        return self.settings

    def _apply_settings(self, settings: SettingsBundle) -> None:
        self.settings = settings
        self.router.settings = settings.notifications

    # ------------------------------------------------------------------
    # Portability
    # ------------------------------------------------------------------

    def export_social_graph(self) -> ExportableSocialGraph:
        return portability.export_social_graph(
            self.user_id,
            self.store.all_friends(),
            self.posts,
            self.interactions,
            self.settings,
            self.now(),
        )

    def import_social_graph(
        self,
        raw: str | bytes | Mapping,
        defaults: SettingsBundle,
        mode: ImportMode = ImportMode.REPLACE,
    ) -> ImportResult:
        """Validate everything, then apply in one step or not at all.

        ``replace`` swaps the roster, the user's own posts and interactions,
        and the settings. ``merge`` adds imported records by id (imported
        friends win on conflict) and keeps the local settings.
        """
        now = self.now()
        try:
            graph, warnings = portability.load_social_graph(raw, defaults, now)
        except (ImportVersionMismatch, ImportValidationError) as e:
            log.warning("import failed for %s: %s", self.user_id, e.message)
            result = e.to_result(ImportResult)
            result.errors = list(getattr(e, "errors", [e.message]))
            return result

        friends = portability.graph_friends(graph, now)
        posts = portability.graph_posts(graph, self.user_id)
        interactions = portability.graph_interactions(graph, self.user_id)

        if mode == ImportMode.MERGE:
            merged = {f.id: f for f in self.store.all_friends()}
            merged.update((f.id, f) for f in friends)
            friends = list(merged.values())
            known_posts = {p.id for p in self.posts}
            posts = self.posts + [p for p in posts if p.id not in known_posts]
            seen = {(i.post_id, i.type, i.created_at) for i in self.interactions}
            interactions = self.interactions + [
                i for i in interactions if (i.post_id, i.type, i.created_at) not in seen
            ]
        else:
            posts = [p for p in self.posts if p.author_id != self.user_id] + posts
            interactions = [i for i in self.interactions if i.user_id != self.user_id] + interactions

        overflow = self.store.fits(friends)
        if overflow:
            names = ", ".join(t.value for t in overflow)
            error = ImportValidationError(errors=[f"Imported roster exceeds capacity: {names}"])
            log.warning("import failed for %s: %s", self.user_id, error.message)
            return ImportResult(
                success=False, error=error.message, reason=error.reason, errors=error.errors, warnings=warnings
            )

        self.store.replace_friends(friends)
        self.posts = posts
        self.interactions = interactions
        if mode == ImportMode.REPLACE:
            self._apply_settings(graph.settings.model_copy(deep=True))
        self._changed()

        log.info("imported %d friends for %s (%s)", len(graph.friends), self.user_id, mode.value)
        return ImportResult(success=True, warnings=warnings, imported_friends=len(graph.friends))

    # ------------------------------------------------------------------
    # Reset and snapshots
    # ------------------------------------------------------------------

    def clear_all_data(self, defaults: SettingsBundle) -> None:
        self.store.clear_all_data()
        self.ledger.clear()
        self.posts.clear()
        self.interactions.clear()
        self.router.state = InboxState()
        self._apply_settings(defaults.model_copy(deep=True))
        self._changed()

    def to_state(self) -> WorkspaceState:
        return WorkspaceState(
            user_id=self.user_id,
            roster=self.store.to_state(),
            ledger=self.ledger.model_copy(deep=True),
            posts=[p.model_copy() for p in self.posts],
            interactions=[i.model_copy() for i in self.interactions],
            inbox=self.router.state.model_copy(deep=True),
            settings=self.settings.model_copy(deep=True),
        )

    @classmethod
    def from_state(
        cls, state: WorkspaceState, clock: Callable[[], datetime] = utc_now
    ) -> "CircleWorkspace":
        return cls(
            user_id=state.user_id,
            settings=state.settings,
            store=TierCapacityStore.from_state(state.roster, clock=clock),
            ledger=state.ledger,
            posts=state.posts,
            interactions=state.interactions,
            inbox=state.inbox,
            clock=clock,
        )
