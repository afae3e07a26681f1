"""Social graph export/import schemas (camelCase on the wire)."""

from datetime import datetime
from enum import Enum

from pydantic import ConfigDict

from circles.schemas.feed import ContentType, InteractionType
from circles.schemas.friend import ContactMethod, OperationResult, Tier
from circles.schemas.settings import CamelModel, SettingsBundle


class ExportedFriend(CamelModel):
    id: str
    name: str
    tier: Tier
    added_at: datetime
    email: str | None = None
    phone: str | None = None
    last_contacted: datetime | None = None
    notes: str | None = None
    preferred_contact: ContactMethod | None = None
    sort_order: int | None = None
    role_model_reason: str | None = None


class ExportedPost(CamelModel):
    id: str
    content_type: ContentType
    content: str
    created_at: datetime
    visibility: list[Tier] = []


class ExportedInteraction(CamelModel):
    post_id: str
    type: InteractionType
    created_at: datetime


class ExportableSocialGraph(CamelModel):
    """Versioned, immutable snapshot of a user's relationship data."""

    model_config = ConfigDict(frozen=True)

    version: str
    exported_at: datetime
    user_id: str
    friends: list[ExportedFriend] = []
    posts: list[ExportedPost] = []
    interactions: list[ExportedInteraction] = []
    settings: SettingsBundle


class ImportMode(str, Enum):
    REPLACE = "replace"
    MERGE = "merge"


class ImportResult(OperationResult):
    errors: list[str] = []
    warnings: list[str] = []
    imported_friends: int = 0
