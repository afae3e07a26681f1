"""Privacy projector - what each viewer tier may see of a post."""

from circles.schemas.feed import FeedPost, VisiblePost
from circles.schemas.friend import Tier
from circles.schemas.settings import PrivacySettings, TierPrivacy

PRIVACY_FIELDS = tuple(TierPrivacy.model_fields)


def can_view_post(viewer_tier: Tier, post: FeedPost) -> bool:
    return viewer_tier in post.visibility


def can_viewer_see(viewer_tier: Tier, field: str, privacy: PrivacySettings) -> bool:
    if field not in PRIVACY_FIELDS:
        raise ValueError(f"Unknown privacy field: {field}")
    return getattr(privacy.for_tier(viewer_tier), field)


def get_visible_content(
    viewer_tier: Tier, post: FeedPost, privacy: PrivacySettings
) -> VisiblePost | None:
    """Redacted projection of ``post`` for ``viewer_tier``.

    Returns None when the tier is not in the post's visibility set at all.
    Always-visible fields are copied through; the rest are gated by the
    viewer tier's capability matrix.
    """
    if not can_view_post(viewer_tier, post):
        return None

    caps = privacy.for_tier(viewer_tier)
    presence = post.author_presence

    return VisiblePost(
        id=post.id,
        author_id=post.author_id,
        author_name=post.author_name,
        author_tier=post.author_tier,
        content_type=post.content_type,
        content=post.content,
        media_url=post.media_url,
        created_at=post.created_at,
        visibility=list(post.visibility),
        location=post.location if caps.can_see_location else None,
        scheduled_at=post.scheduled_at if caps.can_see_life_updates else None,
        is_online=presence.is_online if presence and caps.can_see_online_status else None,
        last_active_at=presence.last_active_at if presence and caps.can_see_last_active else None,
        author_profile=post.author_profile if caps.can_see_full_profile else None,
    )
