"""
Dial-by-Name Directory - Cache Administration CLI

Inspect and maintain the on-disk result cache.

Usage:
    dialbyname-cache list
    dialbyname-cache stats example.com --site NYC,LA --department Sales
    dialbyname-cache clear example.com --site NYC
    dialbyname-cache clear-all
    dialbyname-cache purge --dry-run
    dialbyname-cache purge --force

Reads the same settings (CACHE_DIR, CACHE_TTL_SECONDS) as the web service.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from dialbyname.config import get_settings
from dialbyname.core.cache import CacheStats, ResultCache
from dialbyname.core.types import QueryFingerprint


def _split(value: Optional[str]) -> List[str]:
    return (value or "").split(",")


def _fingerprint(args: argparse.Namespace) -> QueryFingerprint:
    return QueryFingerprint.build(args.domain, _split(args.site), _split(args.department))


def _format_entry(stats: CacheStats) -> str:
    status = "VALID" if stats.is_valid else "EXPIRED"
    return (
        f"{stats.hash}  {status:<7}  users={stats.user_count:<5}  "
        f"size={stats.file_size_bytes}B  ttl={stats.ttl_remaining}s  key={stats.key or '?'}"
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="dialbyname-cache",
        description="Inspect and maintain the dial-by-name result cache",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--cache-dir", type=str, help="Override cache directory")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List all cache records")

    for name, help_text in (
        ("stats", "Show the record for one domain and filter set"),
        ("clear", "Remove the record for one domain and filter set"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("domain", type=str, help="Domain, e.g. example.com")
        command.add_argument("--site", type=str, help="Comma-separated sites")
        command.add_argument("--department", type=str, help="Comma-separated departments")

    commands.add_parser("clear-all", help="Remove every cache record")

    purge = commands.add_parser("purge", help="Remove expired cache records")
    purge.add_argument(
        "-n", "--dry-run", action="store_true", help="Show what would be removed without removing"
    )
    purge.add_argument(
        "-f", "--force", action="store_true", help="Remove all records, not just expired ones"
    )

    return parser.parse_args(argv)


def run(args: argparse.Namespace, cache: ResultCache) -> int:
    """Execute a parsed command against a cache. Returns the exit code."""
    print(f"Cache directory: {cache.cache_dir}")
    print(f"Cache TTL: {cache.ttl_seconds}s")
    print()

    if args.command == "list":
        entries = cache.list_entries()
        if not entries:
            print("No cache files found.")
            return 0
        for stats in entries:
            print(_format_entry(stats))
        print()
        print(f"Total: {len(entries)} file(s), {sum(e.user_count for e in entries)} user(s)")
        return 0

    if args.command == "stats":
        fingerprint = _fingerprint(args)
        print(f"Key: {fingerprint.key}")
        print(f"Hash: {fingerprint.hash}")
        stats = cache.stats(fingerprint.key)
        if stats is None:
            print("Status: NOT CACHED")
            return 1
        print(f"Status: {'VALID' if stats.is_valid else 'EXPIRED'}")
        print(f"Users: {stats.user_count}")
        print(f"Size: {stats.file_size_bytes} bytes")
        print(f"Expires: {stats.expires_at.isoformat()} ({stats.ttl_remaining}s remaining)")
        return 0

    if args.command == "clear":
        fingerprint = _fingerprint(args)
        if cache.clear(fingerprint.key):
            print(f"Cleared cache for {fingerprint.key}")
            return 0
        print(f"No cache file for {fingerprint.key}")
        return 1

    if args.command == "clear-all":
        print(f"Removed {cache.clear_all()} cache file(s)")
        return 0

    if args.command == "purge":
        if args.dry_run:
            entries = cache.list_entries()
            doomed = entries if args.force else [e for e in entries if not e.is_valid]
            for stats in doomed:
                print(f"Would remove: {_format_entry(stats)}")
            print(f"Would remove {len(doomed)} of {len(entries)} file(s)")
            return 0

        removed = cache.clear_all() if args.force else cache.purge_expired()
        print(f"Removed {removed} cache file(s)")
        return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = get_settings()

    cache = ResultCache(
        args.cache_dir or settings.cache_dir,
        ttl_seconds=settings.cache_ttl_seconds,
        purge_chance=0,
    )
    return run(args, cache)


if __name__ == "__main__":
    sys.exit(main())
