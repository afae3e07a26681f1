"""Social graph portability - lossless, versioned export and validated import.

Your data belongs to you: an export carries the whole roster, the user's own
posts and interactions, and every setting, in plain JSON. An import validates
untrusted data completely before anything touches the local store.
"""

import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime

from pydantic import ValidationError

from circles.core.errors import ImportValidationError, ImportVersionMismatch
from circles.schemas.feed import ContentType, FeedPost, InteractionType, PostInteraction
from circles.schemas.friend import Friend, Tier
from circles.schemas.portability import (
    ExportableSocialGraph,
    ExportedFriend,
    ExportedInteraction,
    ExportedPost,
)
from circles.schemas.settings import SettingsBundle

log = logging.getLogger("circles.portability")

EXPORT_VERSION = "1.0.0"
SUPPORTED_MAJOR_VERSION = 1

VALID_TIERS = {t.value for t in Tier}
VALID_CONTENT_TYPES = {c.value for c in ContentType}
VALID_INTERACTION_TYPES = {i.value for i in InteractionType}

_EXPORTED_FRIEND_FIELDS = tuple(ExportedFriend.model_fields)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_social_graph(
    user_id: str,
    friends: Iterable[Friend],
    posts: Iterable[FeedPost],
    interactions: Iterable[PostInteraction],
    settings: SettingsBundle,
    now: datetime,
) -> ExportableSocialGraph:
    """Snapshot the user's data. Only the user's own posts and interactions go out."""
    return ExportableSocialGraph(
        version=EXPORT_VERSION,
        exported_at=now,
        user_id=user_id,
        friends=[ExportedFriend(**f.model_dump(include=set(_EXPORTED_FRIEND_FIELDS))) for f in friends],
        posts=[
            ExportedPost(
                id=p.id,
                content_type=p.content_type,
                content=p.content,
                created_at=p.created_at,
                visibility=list(p.visibility),
            )
            for p in posts
            if p.author_id == user_id
        ],
        interactions=[
            ExportedInteraction(post_id=i.post_id, type=i.type, created_at=i.created_at)
            for i in interactions
            if i.user_id == user_id
        ],
        settings=settings.model_copy(deep=True),
    )


def serialize_export(graph: ExportableSocialGraph) -> str:
    return graph.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def export_filename(now: datetime) -> str:
    return f"inner-circles-export-{now.date().isoformat()}.json"


# ---------------------------------------------------------------------------
# Import validation
# ---------------------------------------------------------------------------


def parse_import_data(raw: str | bytes | Mapping) -> dict:
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ImportValidationError(f"Failed to parse JSON: {e}") from e
    if not isinstance(data, dict):
        raise ImportValidationError("Import data must be an object")
    return data


def validate_version(version: object) -> None:
    if not version:
        raise ImportVersionMismatch("Missing version")
    major = str(version).split(".", 1)[0]
    if not major.isdigit() or int(major) != SUPPORTED_MAJOR_VERSION:
        raise ImportVersionMismatch(
            f"Unsupported version: {version}. Expected {SUPPORTED_MAJOR_VERSION}.x.x"
        )


def _pick(record: Mapping, camel: str, snake: str):
    return record.get(camel, record.get(snake))


def validate_import_data(data: Mapping) -> tuple[list[str], list[str]]:
    """Structural checks beyond the version. Returns (errors, warnings)."""
    errors: list[str] = []
    warnings: list[str] = []

    friends = data.get("friends")
    if not isinstance(friends, list):
        errors.append("Friends must be an array")
    else:
        for index, friend in enumerate(friends):
            if not isinstance(friend, Mapping):
                errors.append(f"Friend at index {index} must be an object")
                continue
            tier = friend.get("tier")
            if not tier:
                errors.append(f"Friend at index {index} missing tier")
            elif not isinstance(tier, str) or tier not in VALID_TIERS:
                errors.append(f"Friend at index {index} has invalid tier: {tier}")
            if not friend.get("id"):
                warnings.append(f"Friend at index {index} missing id")
            if not friend.get("name"):
                warnings.append(f"Friend at index {index} missing name")
            if not _pick(friend, "addedAt", "added_at"):
                warnings.append(f"Friend at index {index} missing addedAt")

    posts = data.get("posts")
    if posts is not None and not isinstance(posts, list):
        errors.append("Posts must be an array")
    elif posts:
        for index, post in enumerate(posts):
            content_type = _pick(post, "contentType", "content_type") if isinstance(post, Mapping) else None
            if not isinstance(content_type, str) or content_type not in VALID_CONTENT_TYPES:
                errors.append(f"Post at index {index} has invalid contentType: {content_type}")

    interactions = data.get("interactions")
    if interactions is not None and not isinstance(interactions, list):
        errors.append("Interactions must be an array")
    elif interactions:
        for index, interaction in enumerate(interactions):
            kind = interaction.get("type") if isinstance(interaction, Mapping) else None
            if not isinstance(kind, str) or kind not in VALID_INTERACTION_TYPES:
                errors.append(f"Interaction at index {index} has invalid type: {kind}")

    return errors, warnings


def load_social_graph(
    raw: str | bytes | Mapping, defaults: SettingsBundle, now: datetime
) -> tuple[ExportableSocialGraph, list[str]]:
    """Parse and fully validate import data.

    Raises ImportVersionMismatch or ImportValidationError; on success returns
    the graph and any warnings. Missing friend ids and addedAt are filled in,
    missing settings fall back to ``defaults``.
    """
    data = parse_import_data(raw)
    validate_version(data.get("version"))

    errors, warnings = validate_import_data(data)
    if errors:
        log.warning("import rejected: %s", errors[0])
        raise ImportValidationError(errors=errors)

    friends = []
    for friend in data["friends"]:
        friend = dict(friend)
        friend.setdefault("id", None)
        friend["id"] = friend["id"] or str(uuid.uuid4())
        friend["name"] = friend.get("name") or "Unknown"
        if not _pick(friend, "addedAt", "added_at"):
            friend["addedAt"] = now
        friends.append(friend)

    if not data.get("settings"):
        warnings.append("Settings missing, defaults applied")

    payload = {
        "version": data["version"],
        "exportedAt": _pick(data, "exportedAt", "exported_at") or now,
        "userId": _pick(data, "userId", "user_id") or "",
        "friends": friends,
        "posts": data.get("posts") or [],
        "interactions": data.get("interactions") or [],
        "settings": data.get("settings") or defaults.model_dump(),
    }
    try:
        graph = ExportableSocialGraph.model_validate(payload)
    except ValidationError as e:
        messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ImportValidationError(errors=messages) from e

    return graph, warnings


# ---------------------------------------------------------------------------
# Conversion back into domain records
# ---------------------------------------------------------------------------


def graph_friends(graph: ExportableSocialGraph, now: datetime) -> list[Friend]:
    return [Friend(**f.model_dump(), updated_at=now) for f in graph.friends]


def graph_posts(graph: ExportableSocialGraph, author_id: str) -> list[FeedPost]:
    return [
        FeedPost(
            id=p.id,
            author_id=author_id,
            content_type=p.content_type,
            content=p.content,
            created_at=p.created_at,
            visibility=list(p.visibility),
        )
        for p in graph.posts
    ]


def graph_interactions(graph: ExportableSocialGraph, user_id: str) -> list[PostInteraction]:
    return [
        PostInteraction(
            id=f"imported-{i.post_id}-{index}",
            post_id=i.post_id,
            user_id=user_id,
            type=i.type,
            created_at=i.created_at,
        )
        for index, i in enumerate(graph.interactions)
    ]
