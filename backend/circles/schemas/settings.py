"""Per-tier privacy and notification capability matrices."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from circles.schemas.feed import NotificationPriority
from circles.schemas.friend import Tier


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TierPrivacy(CamelModel):
    can_see_location: bool = False
    can_see_online_status: bool = False
    can_see_last_active: bool = False
    can_see_full_profile: bool = False
    can_see_life_updates: bool = False


class TierNotification(CamelModel):
    enabled: bool = True
    mode: NotificationPriority = NotificationPriority.QUIET
    sound_enabled: bool | None = None
    batch_interval_minutes: int | None = Field(default=None, ge=1)


class _PerTier(CamelModel):
    def for_tier(self, tier: Tier):
        return getattr(self, tier.value)


class PrivacySettings(_PerTier):
    core: TierPrivacy
    inner: TierPrivacy
    outer: TierPrivacy
    naybor: TierPrivacy
    parasocial: TierPrivacy
    rolemodel: TierPrivacy
    acquainted: TierPrivacy


class NotificationSettings(_PerTier):
    core: TierNotification
    inner: TierNotification
    outer: TierNotification
    naybor: TierNotification
    parasocial: TierNotification
    rolemodel: TierNotification
    acquainted: TierNotification


class SettingsBundle(CamelModel):
    privacy: PrivacySettings
    notifications: NotificationSettings
