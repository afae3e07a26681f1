"""Contact intake schemas - bulk-imported contacts bound for the acquainted tier."""

from enum import Enum

from pydantic import BaseModel

from circles.schemas.friend import Tier


class ImportSource(str, Enum):
    CONTACT_PICKER = "contact_picker"
    VCARD = "vcard"
    CSV = "csv"


class RawContact(BaseModel):
    """A contact as handed over by an import source, before normalization."""

    source: ImportSource
    name: str | None = None
    names: list[str] = []
    phone: str | None = None
    phones: list[str] = []
    email: str | None = None
    emails: list[str] = []


class ImportableContact(BaseModel):
    name: str
    source: ImportSource
    phone: str | None = None
    email: str | None = None


class DuplicateStrategy(str, Enum):
    SKIP = "skip"
    UPDATE = "update"
    IMPORT_ANYWAY = "import_anyway"


class DuplicateMatch(BaseModel):
    imported: ImportableContact
    existing_friend_id: str
    existing_friend_name: str
    matched_by: str  # "phone" or "email"


class DeduplicationResult(BaseModel):
    unique: list[ImportableContact] = []
    duplicates: list[DuplicateMatch] = []


class IntakeRequest(BaseModel):
    contacts: list[RawContact]
    strategy: DuplicateStrategy = DuplicateStrategy.SKIP


class IntakeResult(BaseModel):
    success: bool
    imported: int = 0
    skipped: int = 0
    updated: int = 0
    errors: list[str] = []


# Tiers an acquainted contact can be promoted into
PROMOTABLE_TIERS = (Tier.CORE, Tier.INNER, Tier.OUTER, Tier.NAYBOR, Tier.ROLEMODEL)


class PromotionInfo(BaseModel):
    target_tier: Tier
    available: int
    limit: int
    is_full: bool
