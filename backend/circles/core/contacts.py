"""Contact intake - normalization and duplicate detection for bulk imports."""

import re
from collections.abc import Iterable

from circles.schemas.contact import (
    DeduplicationResult,
    DuplicateMatch,
    ImportableContact,
    RawContact,
)
from circles.schemas.friend import Friend

# Shorter digit strings are too ambiguous to match on
MIN_PHONE_DIGITS = 7

_NON_DIGITS = re.compile(r"\D")


def phone_digits(phone: str) -> str:
    return _NON_DIGITS.sub("", phone)


def normalize_phone(phone: str) -> str | None:
    phone = phone.strip()
    digits = phone_digits(phone)
    if not digits:
        return None
    return f"+{digits}" if phone.startswith("+") else digits


def _first(single: str | None, many: list[str]) -> str | None:
    if single and single.strip():
        return single
    for value in many:
        if value and value.strip():
            return value
    return None


def normalize_contact(raw: RawContact) -> ImportableContact | None:
    """Flatten a raw contact. Returns None when no usable name is present."""
    name = _first(raw.name, raw.names)
    if not name:
        return None

    phone = _first(raw.phone, raw.phones)
    email = _first(raw.email, raw.emails)

    return ImportableContact(
        name=name.strip(),
        source=raw.source,
        phone=normalize_phone(phone) if phone else None,
        email=email.strip().lower() if email else None,
    )


def find_duplicates(
    contacts: Iterable[ImportableContact], existing: Iterable[Friend]
) -> DeduplicationResult:
    """Split contacts into new ones and ones matching an existing friend.

    Phone digits are compared first, then lower-cased email.
    """
    by_phone: dict[str, Friend] = {}
    by_email: dict[str, Friend] = {}
    for friend in existing:
        if friend.phone:
            digits = phone_digits(friend.phone)
            if len(digits) >= MIN_PHONE_DIGITS:
                by_phone[digits] = friend
        if friend.email:
            by_email[friend.email.lower()] = friend

    result = DeduplicationResult()
    for contact in contacts:
        match, matched_by = None, "phone"
        if contact.phone:
            digits = phone_digits(contact.phone)
            if len(digits) >= MIN_PHONE_DIGITS:
                match = by_phone.get(digits)
        if match is None and contact.email:
            match = by_email.get(contact.email.lower())
            matched_by = "email"

        if match is None:
            result.unique.append(contact)
        else:
            result.duplicates.append(
                DuplicateMatch(
                    imported=contact,
                    existing_friend_id=match.id,
                    existing_friend_name=match.name,
                    matched_by=matched_by,
                )
            )
    return result
