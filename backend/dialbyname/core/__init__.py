"""
Dial-by-Name Directory - Core Package

Contains the directory domain logic and shared infrastructure:
- keypad: letter to keypad digit encoding
- types: domain types and result union
- catalog: merged, deduplicated, searchable directory
- cache: file-based TTL result cache
- exceptions / logging: error hierarchy and structured logging
"""

from .cache import CacheStats, ResultCache
from .catalog import DirectoryCatalog, SubQuery, UserSource, build_queries
from .keypad import encode
from .types import (
    DirectoryEntry,
    Failure,
    FetchResult,
    Ok,
    QueryFingerprint,
    RawUser,
    SearchMode,
)

__all__ = [
    # Catalog
    "DirectoryCatalog",
    "SubQuery",
    "UserSource",
    "build_queries",
    # Cache
    "CacheStats",
    "ResultCache",
    # Types
    "DirectoryEntry",
    "Failure",
    "FetchResult",
    "Ok",
    "QueryFingerprint",
    "RawUser",
    "SearchMode",
    "encode",
]
