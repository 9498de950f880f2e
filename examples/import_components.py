#!/usr/bin/env python3
"""Example: Import a component file into a project.

This script runs the whole import pipeline against an in-memory database:
parse, map columns, validate, preview, then commit with instance numbering
and milestone creation. Pass --postgres to use the database configured in
PIPEKIT_DB_* environment variables (or .env) instead.
"""

import argparse
import logging
import sys
from pathlib import Path

from pipekit import ImportService, ImportSettings
from pipekit.errors import PipekitError
from pipekit.ingest import InMemoryClient, PostgresAdvisoryLocks, PostgresClient
from pipekit.milestones import STANDARD_TEMPLATES
from pipekit.models import RowStatus


def build_service(args, settings: ImportSettings) -> ImportService:
    if args.postgres:
        db = PostgresClient()
        db.ensure_schema()
        return ImportService(db, settings=settings, locks=PostgresAdvisoryLocks(db))

    db = InMemoryClient()
    for record in STANDARD_TEMPLATES:
        db.add_template(args.project, record)
    for number in args.drawing:
        db.add_drawing(args.project, number)
    return ImportService(db, settings=settings)


def import_file(args) -> int:
    path = Path(args.input_file)
    settings = ImportSettings.from_env()

    with build_service(args, settings) as service:
        result = service.upload(
            args.project,
            args.actor,
            path.read_bytes(),
            path.name,
            auto_create_drawings=args.create_drawings,
        )

        print(f"✓ Staged batch {result.batch_id} ({result.status.value})")
        print("\nColumn Mapping:")
        for field_id, match in result.matches.items():
            print(f"  {field_id:22} <- {match['header']} ({match['kind']}, {match['confidence']})")
        if result.unmapped_headers:
            print(f"  Unmapped: {', '.join(result.unmapped_headers)}")
        if result.missing_required:
            print(f"\n✗ Missing required fields: {', '.join(result.missing_required)}")
            return 1

        print(f"\nValidation: {result.counts}")
        print(f"Component types: {result.type_counts}")

        if args.rejected and result.counts.get("rejected"):
            exported = service.export_rejected(result.batch_id, args.rejected)
            print(f"✓ Rejected rows written to {exported}")

        if args.dry_run:
            return 0

        outcome = service.commit(result.batch_id, args.actor, skip_needs_review=args.skip_review)
        counts = outcome.counts()
        print(f"\nCommit {outcome.status.value}: {counts['committed']} rows, "
              f"{counts['components']} components")
        for status in (RowStatus.REJECTED, RowStatus.FAILED, RowStatus.SKIPPED):
            for row in outcome.rows_with_status(status):
                print(f"  row {row.row_number}: {status.value} - {row.reason}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import a component CSV or spreadsheet")
    parser.add_argument("input_file", help="CSV, TSV or XLSX file")
    parser.add_argument("--project", default="demo-project")
    parser.add_argument("--actor", default="cli")
    parser.add_argument("--drawing", action="append", default=[],
                        help="Existing drawing number (in-memory mode, repeatable)")
    parser.add_argument("--create-drawings", action="store_true",
                        help="Create drawings that do not exist yet")
    parser.add_argument("--skip-review", action="store_true",
                        help="Skip rows flagged as possible duplicates")
    parser.add_argument("--rejected", help="Write rejected rows to this file")
    parser.add_argument("--dry-run", action="store_true", help="Validate only")
    parser.add_argument("--postgres", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return import_file(args)
    except PipekitError as e:
        print(f"✗ {e.code}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
