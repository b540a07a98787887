#!/usr/bin/env python3
"""
Permanently delete recycle-bin items whose retention period has passed.

Runs the same purge path as the API (blobs are removed together with media rows),
so it is safe to schedule as a cron job.

Usage:
  python scripts/purge_recycle_bin.py
  python scripts/purge_recycle_bin.py --dry-run

Env:
  MONGODB_URL (required)
  DATABASE_NAME (default: snippet_vault)
"""
from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config  # noqa: E402
from observability import emit_event, setup_structlog_logging  # noqa: E402
from services.container import get_services  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge expired recycle bin items")
    parser.add_argument("--dry-run", action="store_true", help="Only count expired items")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_structlog_logging(config.LOG_LEVEL)
    services = get_services()
    now = datetime.now(timezone.utc)

    if args.dry_run:
        expired = {}
        expired.update(services.recycle_bin.repo.expired_items(now))
        expired.update(services.recycle_bin.media.repo.expired_items(now))
        counts = {kind: len(rows) for kind, rows in expired.items()}
        emit_event("recycle_bin_purge_dry_run", cutoff=now.isoformat(), **counts)
        print(counts)
        return 0

    purged = services.recycle_bin.purge_expired(now)
    print(purged)
    return 0


if __name__ == "__main__":
    sys.exit(main())
