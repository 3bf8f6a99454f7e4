"""
Dial-by-Name Directory - Directory Catalog

Aggregates one or more directory queries into a single searchable list.

Query plan:
    sites and departments → one query per (site, department) pair
    sites only            → one query per site
    departments only      → one query per department
    neither               → one unfiltered query

Merge rules:
    - Sub-queries run concurrently; results are consumed in issue order
    - Duplicate extensions: first eligible occurrence wins
    - Sorted by last name, then first name (case-insensitive, stable)
    - A failed sub-query is skipped; if all fail the load fails
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .cache import ResultCache
from .types import DirectoryEntry, Failure, FetchResult, QueryFingerprint, SearchMode

logger = logging.getLogger(__name__)


class UserSource(Protocol):
    """What the catalog and call flow need from the directory API."""

    async def fetch_users(
        self,
        domain: str,
        site: Optional[str] = None,
        department: Optional[str] = None,
    ) -> FetchResult:
        ...

    async def is_auto_attendant(self, domain: str, user: str) -> bool:
        ...


@dataclass(frozen=True)
class SubQuery:
    """One (site, department) combination sent to the directory API."""
    site: Optional[str] = None
    department: Optional[str] = None


def build_queries(
    sites: Optional[Sequence[str]] = None,
    departments: Optional[Sequence[str]] = None,
) -> List[SubQuery]:
    """Expand filter lists into the sub-queries to issue, in issue order."""
    sites = [s for s in (sites or []) if s]
    departments = [d for d in (departments or []) if d]

    if sites and departments:
        return [SubQuery(site=s, department=d) for s in sites for d in departments]
    if sites:
        return [SubQuery(site=s) for s in sites]
    if departments:
        return [SubQuery(department=d) for d in departments]
    return [SubQuery()]


class DirectoryCatalog:
    """
    Searchable, deduplicated, sorted list of directory entries for one
    domain and filter set.

    Usage:
        catalog = DirectoryCatalog(source, cache)
        if await catalog.load("example.com", sites=["NYC"], mode=SearchMode.LASTNAME):
            matches = catalog.search("7648")
    """

    def __init__(self, source: UserSource, cache: Optional[ResultCache] = None):
        self._source = source
        self._cache = cache
        self._entries: List[DirectoryEntry] = []
        self._domain = ""
        self._mode = SearchMode.LASTNAME

    @property
    def entries(self) -> List[DirectoryEntry]:
        return list(self._entries)

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def mode(self) -> SearchMode:
        return self._mode

    @property
    def user_count(self) -> int:
        return len(self._entries)

    async def load(
        self,
        domain: str,
        sites: Optional[Sequence[str]] = None,
        departments: Optional[Sequence[str]] = None,
        mode: SearchMode = SearchMode.LASTNAME,
    ) -> bool:
        """
        Load entries from the cache or the directory API.

        Returns:
            True if the catalog holds usable results (possibly empty),
            False if every sub-query failed and nothing was cached.
        """
        self._domain = domain
        self._mode = SearchMode(mode)
        fingerprint = QueryFingerprint.build(domain, sites, departments)

        loop = asyncio.get_running_loop()

        if self._cache is not None:
            # File I/O runs off the event loop
            cached = await loop.run_in_executor(None, self._cache.get, fingerprint.key)
            if cached:
                self._entries = cached
                logger.debug("Loaded %d users from cache", len(cached))
                return True

        queries = build_queries(sites, departments)
        logger.debug("Fetching users for %d site/department combination(s)", len(queries))

        results = await asyncio.gather(*(
            self._source.fetch_users(domain, q.site, q.department) for q in queries
        ))

        entries: List[DirectoryEntry] = []
        seen_extensions = set()
        failed = 0

        for query, result in zip(queries, results):
            if isinstance(result, Failure):
                failed += 1
                logger.warning(
                    "Directory query failed: site=%s, department=%s, reason=%s",
                    query.site or "ALL", query.department or "ALL", result.reason,
                )
                continue

            for raw in result.value:
                if raw.user.strip() in seen_extensions:
                    continue
                entry = DirectoryEntry.from_raw(raw)
                if entry is None:
                    continue
                seen_extensions.add(entry.extension)
                entries.append(entry)

        if failed == len(queries):
            logger.error("All %d directory queries failed", failed)
            self._entries = []
            return False

        entries.sort(key=DirectoryEntry.sort_key)
        self._entries = entries

        if self._cache is not None and entries:
            # Write failures are logged by the cache and never fail the load
            await loop.run_in_executor(None, self._cache.set, fingerprint.key, entries)

        logger.info("Loaded %d unique users (%d/%d queries failed)", len(entries), failed, len(queries))
        return True

    def search(self, prefix: str) -> List[DirectoryEntry]:
        """Entries whose name digits start with prefix, in catalog order."""
        return [entry for entry in self._entries if entry.matches(prefix, self._mode)]
