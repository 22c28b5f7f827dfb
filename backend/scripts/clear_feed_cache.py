#!/usr/bin/env python3
"""Clear the on-disk feed cache (item data, rendered feeds, image metadata).
Run from backend: python scripts/clear_feed_cache.py --schema post
                  python scripts/clear_feed_cache.py --all [--images]
Restart the server afterwards; a running process keeps its in-memory index until then
(or use POST /cache/clear on the running server instead).
"""
import argparse
import sys
from pathlib import Path

# Ensure backend is on path when run as script
backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from feedservice.config import settings
from feedservice.core.errors import CachePersistenceError
from feedservice.services.cache.store import CacheStore
from feedservice.services.feed.orchestrator import schema_name_for


def main():
    parser = argparse.ArgumentParser(description="Clear the feed cache store")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--schema", help="Collection or schema name to clear (e.g. posts or post)")
    target.add_argument("--all", action="store_true", help="Clear every feed")
    parser.add_argument("--images", action="store_true", help="Also clear cached image metadata")
    parser.add_argument("--cache-dir", default=settings.cache_dir, help="Cache directory (default: CACHE_DIR)")
    args = parser.parse_args()

    store = CacheStore(args.cache_dir)
    try:
        if args.all:
            deleted = store.delete_all_feeds()
        else:
            deleted = store.delete_feed(schema_name_for(args.schema))
        if args.images:
            deleted["image_metadata"] = store.delete_image_metadata()
    except CachePersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Cache cleared in {store.cache_dir}. Rows deleted:")
    for table, count in deleted.items():
        print(f"  {table}: {count}")
    print()
    print("Restart the server (or POST /cache/clear) so its in-memory index is dropped too.")


if __name__ == "__main__":
    main()
