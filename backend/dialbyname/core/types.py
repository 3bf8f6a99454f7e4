"""
Dial-by-Name Directory - Core Domain Types

Internal type definitions shared by the directory client, result cache,
catalog and call flow.

Design Notes:
- RawUser is the strict ingestion schema for directory API records. Every
  field is optional with an explicit default, so business logic never does
  late-bound dictionary access on API payloads.
- DirectoryEntry is the only shape the rest of the system sees. Its keypad
  digits are computed from the names on every access and are never read
  back from storage.
- Ok / Failure form an explicit result union for operations whose failure
  is an expected outcome on a live call (API down, cache unwritable).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Iterable, List, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .keypad import encode


# =============================================================================
# Enums
# =============================================================================

class SearchMode(str, Enum):
    """Which name the caller spells on the keypad."""
    FIRSTNAME = "firstname"
    LASTNAME = "lastname"
    BOTH = "both"


# =============================================================================
# Result Union
# =============================================================================

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""
    value: T


@dataclass(frozen=True)
class Failure:
    """
    Failed outcome.

    Attributes:
        reason: Short machine-friendly reason (e.g. "http_error", "timeout")
        detail: Human-readable detail for logs
    """
    reason: str
    detail: Optional[str] = None


# =============================================================================
# Directory Records
# =============================================================================

SYSTEM_SERVICE_PREFIX = "system-"
DIRECTORY_FLAG_FIELD = "directory-annouce-in-dial-by-name-enabled"


class RawUser(BaseModel):
    """
    One user record as returned by the directory API.

    Field names follow the API (hyphenated); unknown fields are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user: str = ""
    first_name: str = Field("", alias="name-first-name")
    last_name: str = Field("", alias="name-last-name")
    service_code: str = Field("", alias="service-code")
    directory_enabled: str = Field("", alias=DIRECTORY_FLAG_FIELD)
    department: str = ""
    site: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_scalar(cls, value):
        if value is None:
            return ""
        if isinstance(value, (int, float, bool)):
            return str(value)
        return value

    @property
    def is_system_user(self) -> bool:
        return self.service_code.lower().startswith(SYSTEM_SERVICE_PREFIX)

    @property
    def in_directory(self) -> bool:
        return self.directory_enabled == "yes"


class DirectoryEntry(BaseModel):
    """One person a caller can reach by spelling their name."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    extension: str
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    department: str = ""
    site: str = ""

    @computed_field
    @property
    def first_digits(self) -> str:
        return encode(self.first_name)

    @computed_field
    @property
    def last_digits(self) -> str:
        return encode(self.last_name)

    @classmethod
    def from_raw(cls, raw: RawUser) -> Optional["DirectoryEntry"]:
        """
        Build an entry from an API record, or None if the record is not
        directory-eligible.

        Eligible records are non-system users explicitly flagged for the
        dial-by-name directory, with an extension and at least one name.
        """
        if raw.is_system_user or not raw.in_directory:
            return None

        extension = raw.user.strip()
        first_name = raw.first_name.strip()
        last_name = raw.last_name.strip()

        if not extension or not (first_name or last_name):
            return None

        return cls(
            extension=extension,
            first_name=first_name,
            last_name=last_name,
            full_name=f"{first_name} {last_name}".strip(),
            department=raw.department,
            site=raw.site,
        )

    def sort_key(self) -> Tuple[str, str]:
        """Case-insensitive (last name, first name)."""
        return (self.last_name.casefold(), self.first_name.casefold())

    def matches(self, prefix: str, mode: SearchMode) -> bool:
        if mode == SearchMode.FIRSTNAME:
            return self.first_digits.startswith(prefix)
        if mode == SearchMode.LASTNAME:
            return self.last_digits.startswith(prefix)
        return self.first_digits.startswith(prefix) or self.last_digits.startswith(prefix)


# =============================================================================
# Query Fingerprint
# =============================================================================

def _normalize_filter(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not values:
        return ()
    return tuple(sorted({v.strip() for v in values if v and v.strip()}))


def hash_cache_key(key: str) -> str:
    """Stable file-safe hash of a cache key."""
    return hashlib.md5(key.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class QueryFingerprint:
    """
    Identifies a cacheable directory result set.

    Built from the combined filter set so that equal filters in any order,
    with or without duplicates, produce the same key. No filter, an empty
    list and a list of blanks are all the same "unfiltered" query.
    """
    domain: str
    sites: Tuple[str, ...] = ()
    departments: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        domain: str,
        sites: Optional[Iterable[str]] = None,
        departments: Optional[Iterable[str]] = None,
    ) -> "QueryFingerprint":
        return cls(
            domain=domain.strip(),
            sites=_normalize_filter(sites),
            departments=_normalize_filter(departments),
        )

    @property
    def key(self) -> str:
        return f"{self.domain}|{','.join(self.sites)}|{','.join(self.departments)}"

    @property
    def hash(self) -> str:
        return hash_cache_key(self.key)


FetchResult = Union[Ok[List[RawUser]], Failure]
