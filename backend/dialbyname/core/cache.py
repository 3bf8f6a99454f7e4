"""
Dial-by-Name Directory - Result Cache

File-backed, TTL-expiring store for merged directory results.

Each record is one JSON file named after the md5 of its cache key:

    {"key": "example.com|NYC|Sales", "expires": 1700000000, "value": [...]}

Expiry is lazy: get() deletes a record it finds expired, and purge_expired()
sweeps the whole directory. The sweep runs on a 1-in-N chance when a cache
is constructed rather than on every request; expired records are never
served either way.

Concurrent writers to the same key are not coordinated. Records are
snapshots of the same upstream data, so the last write wins.
"""

from __future__ import annotations

import json
import logging
import os
import random
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from .exceptions import CacheWriteError
from .types import DirectoryEntry, Failure, Ok, hash_cache_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Inspection view of one cache record."""
    key: Optional[str]
    hash: str
    path: str
    file_size_bytes: int
    user_count: int
    expires_at: datetime
    ttl_remaining: int
    is_valid: bool


class ResultCache:
    """
    TTL cache of directory results keyed by query fingerprint.

    Usage:
        cache = ResultCache("/tmp/dial_by_name_cache", ttl_seconds=300)

        entries = cache.get(fingerprint.key)
        if entries is None:
            entries = fetch()
            cache.set(fingerprint.key, entries)
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        ttl_seconds: int = 300,
        purge_chance: int = 100,
        clock: Callable[[], float] = time.time,
        rng: Callable[[int, int], int] = random.randint,
    ):
        """
        Initialize the cache.

        Args:
            cache_dir: Directory holding the record files (created if missing)
            ttl_seconds: Lifetime of a record from the moment it is written
            purge_chance: Run purge_expired() with probability 1/purge_chance
                on construction and on each maybe_purge(); 0 disables the sweep
            clock: Returns the current epoch time in seconds
            rng: randint-compatible source used for the purge roll
        """
        self._dir = Path(cache_dir)
        self._ttl = ttl_seconds
        self._purge_chance = purge_chance
        self._clock = clock
        self._rng = rng

        self._ensure_directory()
        self.maybe_purge()

    @property
    def cache_dir(self) -> Path:
        return self._dir

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _ensure_directory(self) -> None:
        if not self._dir.is_dir():
            try:
                self._dir.mkdir(mode=0o775, parents=True, exist_ok=True)
                logger.debug("Created cache directory: %s", self._dir)
            except OSError as e:
                logger.error("Failed to create cache directory %s: %s", self._dir, e)
                return

        if not os.access(self._dir, os.W_OK):
            logger.warning(
                "Cache directory exists but is not writable: %s", self._dir
            )

    def _path_for(self, key: str) -> Path:
        return self._dir / f"{hash_cache_key(key)}.json"

    def _now(self) -> int:
        return int(self._clock())

    @staticmethod
    def _read_record(path: Path) -> dict:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("cache record is not an object")
        return data

    # -------------------------------------------------------------------------
    # Read / write
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[List[DirectoryEntry]]:
        """
        Return the cached entries for a key, or None on a miss.

        Expired and unreadable records are deleted and reported as misses.
        Storage errors are logged and reported as misses, never raised.
        """
        path = self._path_for(key)

        try:
            data = self._read_record(path)
        except FileNotFoundError:
            logger.debug("Cache miss: key=%r", key)
            return None
        except OSError as e:
            logger.warning("Cache read failed for %s: %s", path.name, e)
            return None
        except ValueError as e:
            logger.warning("Discarding unreadable cache record %s: %s", path.name, e)
            self._unlink(path)
            return None

        try:
            expires = int(data.get("expires", 0))
            now = self._now()

            if expires <= now:
                logger.debug(
                    "Cache expired: key=%r, expired %ds ago", key, now - expires
                )
                self._unlink(path)
                return None

            entries = [DirectoryEntry.model_validate(item) for item in data.get("value", [])]

        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable cache record %s: %s", path.name, e)
            self._unlink(path)
            return None

        logger.debug(
            "Cache hit: key=%r, users=%d, expires in %ds",
            key, len(entries), expires - now,
        )
        return entries

    def set(self, key: str, entries: List[DirectoryEntry]) -> Union[Ok[int], Failure]:
        """
        Write entries for a key, replacing any existing record.

        Returns:
            Ok(bytes_written) or Failure if the record could not be written.
            Never raises for storage problems.
        """
        try:
            written = self._write(key, entries)
        except CacheWriteError as e:
            logger.error("Cache write failed: key=%r, %s", key, e.message)
            return Failure(reason="cache_write_failed", detail=e.message)

        logger.debug(
            "Cache set: key=%r, users=%d, ttl=%ds, bytes=%d",
            key, len(entries), self._ttl, written,
        )
        return Ok(written)

    def _write(self, key: str, entries: List[DirectoryEntry]) -> int:
        payload = json.dumps({
            "key": key,
            "expires": self._now() + self._ttl,
            "value": [entry.model_dump() for entry in entries],
        })
        path = self._path_for(key)

        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, suffix=".tmp")
        except OSError as e:
            raise CacheWriteError(f"Cache directory not writable: {self._dir} ({e})") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            self._unlink(Path(tmp_name))
            raise CacheWriteError(f"Failed to write {path}: {e}") from e

        return len(payload.encode("utf-8"))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clear(self, key: str) -> bool:
        """Remove the record for a key. Returns True if a file was removed."""
        removed = self._unlink(self._path_for(key))
        logger.debug("Cache clear: key=%r, success=%s", key, removed)
        return removed

    def clear_all(self) -> int:
        """Remove every record. Returns the number of files removed."""
        count = sum(1 for path in self._record_files() if self._unlink(path))
        logger.info("Cache cleared: removed %d file(s)", count)
        return count

    def maybe_purge(self) -> int:
        """Roll the 1-in-purge_chance dice and purge expired records on a hit."""
        if self._purge_chance > 0 and self._rng(1, self._purge_chance) == 1:
            return self.purge_expired()
        return 0

    def purge_expired(self) -> int:
        """
        Remove every expired or unreadable record.

        Returns:
            Number of files removed
        """
        now = self._now()
        purged = 0

        for path in self._record_files():
            try:
                expires = int(self._read_record(path).get("expires", 0))
            except (OSError, ValueError, TypeError):
                expires = 0

            if expires <= now and self._unlink(path):
                purged += 1

        if purged:
            logger.info("Cache purge: removed %d expired file(s)", purged)
        return purged

    def stats(self, key: str) -> Optional[CacheStats]:
        """Inspect the record for a key without expiring it. None if absent or unreadable."""
        return self._stats_for(self._path_for(key))

    def list_entries(self) -> List[CacheStats]:
        """Inspect every record, newest expiry first."""
        stats = [s for s in (self._stats_for(p) for p in self._record_files()) if s]
        stats.sort(key=lambda s: s.expires_at, reverse=True)
        return stats

    def _stats_for(self, path: Path) -> Optional[CacheStats]:
        try:
            data = self._read_record(path)
            size = path.stat().st_size
            expires = int(data.get("expires", 0))
            expires_at = datetime.fromtimestamp(expires)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError, OverflowError) as e:
            logger.warning("Skipping unreadable cache record %s: %s", path.name, e)
            return None

        now = self._now()
        value = data.get("value")

        return CacheStats(
            key=data.get("key"),
            hash=path.stem,
            path=str(path),
            file_size_bytes=size,
            user_count=len(value) if isinstance(value, list) else 0,
            expires_at=expires_at,
            ttl_remaining=max(0, expires - now),
            is_valid=expires > now,
        )

    def _record_files(self) -> List[Path]:
        try:
            return sorted(self._dir.glob("*.json"))
        except OSError as e:
            logger.warning("Cannot list cache directory %s: %s", self._dir, e)
            return []

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not remove cache file %s: %s", path, e)
            return False
