"""Feed endpoints - posts, interactions, chronological feeds and notifications."""

from fastapi import APIRouter, Depends, HTTPException, Response

from circles.api.deps import get_workspace
from circles.config import settings
from circles.core.fidelity import interaction_counts, should_show_like_count, sort_interactions_by_fidelity
from circles.core.workspace import CircleWorkspace
from circles.schemas.feed import (
    FeedFilters,
    FeedNotification,
    FeedPost,
    FeedPostIn,
    InteractionIn,
    NotificationPriority,
    NotificationSummary,
    PostInteraction,
    VisiblePost,
)
from circles.schemas.friend import Tier

router = APIRouter()


@router.post("/posts", response_model=FeedPost, status_code=201)
async def add_post(data: FeedPostIn, workspace: CircleWorkspace = Depends(get_workspace)):
    """Store a post. Posts by friends are routed to the notification inbox."""
    return workspace.add_post(data)


@router.get("/posts/{post_id}", response_model=FeedPost)
async def get_post(post_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.get_post(post_id)


@router.get("/posts/{post_id}/visible", response_model=VisiblePost)
async def get_visible_content(
    post_id: str, viewer_tier: Tier, workspace: CircleWorkspace = Depends(get_workspace)
):
    """The post as a viewer in ``viewer_tier`` is allowed to see it."""
    visible = workspace.get_visible_content(viewer_tier, post_id)
    if visible is None:
        raise HTTPException(status_code=404, detail="Post not visible to this tier")
    return visible


@router.get("/posts/{post_id}/interactions", response_model=list[PostInteraction])
async def list_interactions(post_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    """Interactions on a post, high fidelity first."""
    workspace.get_post(post_id)
    return sort_interactions_by_fidelity(workspace.interactions_for(post_id))


@router.post("/posts/{post_id}/interactions", response_model=PostInteraction, status_code=201)
async def add_interaction(
    post_id: str, data: InteractionIn, workspace: CircleWorkspace = Depends(get_workspace)
):
    return workspace.add_interaction(post_id, data)


@router.get("/posts/{post_id}/counts")
async def get_interaction_counts(post_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    """Per-type counts; likes are hidden when the author is in a close tier."""
    post = workspace.get_post(post_id)
    counts = interaction_counts(workspace.interactions_for(post_id)).get(post_id, {})
    if post.author_tier is not None and not should_show_like_count(post.author_tier):
        counts.pop("like", None)
    return counts


# --- Feeds: chronological only ---


@router.get("/feed/core", response_model=list[FeedPost])
async def core_feed(workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.core_feed()


@router.get("/feed/tiers/{tier}", response_model=list[FeedPost])
async def tier_feed(tier: Tier, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.tier_feed(tier)


@router.post("/feed/filter", response_model=list[FeedPost])
async def filtered_feed(filters: FeedFilters, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.filtered_feed(filters)


# --- Notifications ---


@router.get("/notifications", response_model=NotificationSummary)
async def list_notifications(
    priority: NotificationPriority | None = None, workspace: CircleWorkspace = Depends(get_workspace)
):
    inbox = workspace.router
    notifications = inbox.notifications_by_priority(priority) if priority is not None else inbox.notifications
    return NotificationSummary(unread_count=inbox.unread_count(), notifications=notifications)


@router.post("/notifications/read-all", status_code=204)
async def mark_all_read(workspace: CircleWorkspace = Depends(get_workspace)):
    workspace.mark_all_notifications_read()
    workspace.prune_notifications(settings.NOTIFICATION_RETENTION_DAYS)
    return Response(status_code=204)


@router.post("/notifications/{notification_id}/read", status_code=204)
async def mark_read(notification_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    if not workspace.mark_notification_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return Response(status_code=204)


@router.post("/notifications/digest", response_model=list[FeedNotification])
async def collect_digest(workspace: CircleWorkspace = Depends(get_workspace)):
    """Batched notifications whose tier interval has elapsed."""
    return workspace.collect_digest()
