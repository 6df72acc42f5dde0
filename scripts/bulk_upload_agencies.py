#!/usr/bin/env python3
"""
Bulk-import agencies from a CSV file.

The file is checked (extension, 5MB limit) and fully parsed before anything is
written; a single bad row aborts the import. Valid rows are then inserted one
by one as "pending" agencies.

Usage:
    python scripts/bulk_upload_agencies.py data/agencies.csv --owner-id <admin-user-id>
    python scripts/bulk_upload_agencies.py data/agencies.csv --dry-run
    python scripts/bulk_upload_agencies.py data/agencies.csv --backend rest

Prerequisites:
    - DATABASE_URL set in .env (sql backend), or
    - SUPABASE_URL and SUPABASE_ANON_KEY set in .env (rest backend)
"""

import argparse
import asyncio
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.config import settings
from app.core.errors import CsvValidationError
from app.services.backend import Backend, SQLModelBackend
from app.services.bulk_upload import UploadState, UploadStatus, ingest_records
from app.services.csv_import import decode_csv_upload, parse_csv, validate_upload


def make_backend(kind: str) -> Backend:
    if kind == "rest":
        if not settings.SUPABASE_URL:
            print("ERROR: SUPABASE_URL not set in environment")
            sys.exit(1)
        from app.services.rest_backend import RestBackend

        return RestBackend(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)

    from app.db import create_db_and_tables, engine

    create_db_and_tables()
    return SQLModelBackend(engine)


def print_progress(status: UploadStatus) -> None:
    print(
        f"\r  Processing: {status.processed}/{status.total}  "
        f"success: {status.success}  failed: {status.failed}",
        end="",
        flush=True,
    )


async def run(path: Path, owner_id: Optional[str], backend_kind: str, dry_run: bool) -> int:
    if not path.exists():
        print(f"ERROR: File not found: {path}")
        return 1

    try:
        validate_upload(path.name, path.stat().st_size)
        records = parse_csv(decode_csv_upload(path.read_bytes()))
    except CsvValidationError as e:
        print(f"ERROR: {e.message}")
        return 1

    print(f"Parsed {len(records)} agencies from {path.name}")
    if dry_run:
        for record in records:
            print(f"  - {record.name} ({record.location})")
        return 0

    backend = make_backend(backend_kind)

    # Ctrl+C stops after the current row instead of killing the import mid-insert
    cancel_event = threading.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass

    try:
        status = await ingest_records(
            records,
            backend,
            owner_id=owner_id,
            cancel_event=cancel_event,
            on_progress=print_progress,
        )
    finally:
        aclose = getattr(backend, "aclose", None)
        if aclose is not None:
            await aclose()
    print()

    if status.state == UploadState.CANCELLED:
        print(f"Cancelled after {status.processed}/{status.total} rows")
    print(status.summary())
    for message in status.errors:
        print(f"  {message}")

    return 0 if status.failed == 0 and status.state == UploadState.COMPLETED else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Bulk-import agencies from a CSV file")
    parser.add_argument("file", type=Path, help="CSV file to import")
    parser.add_argument("--owner-id", default=None, help="User id stamped as owner of every agency")
    parser.add_argument("--backend", choices=["sql", "rest"], default="sql", help="Where to write (default: sql)")
    parser.add_argument("--dry-run", action="store_true", help="Parse and validate only")
    args = parser.parse_args(argv)

    return asyncio.run(run(args.file, args.owner_id, args.backend, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
