# bulletin/cli/lifecycle.py
"""
CLI commands for content lifecycle maintenance.

Usage:
    python -m bulletin.cli.lifecycle status
    python -m bulletin.cli.lifecycle bulk-archive-inactive --kind welcome_cards --dry-run
    python -m bulletin.cli.lifecycle archive-expired --dry-run
    python -m bulletin.cli.lifecycle restore --kind announcements --id 42
    python -m bulletin.cli.lifecycle repair-holidays
    python -m bulletin.cli.lifecycle audit --table school_calendar --id 1564
"""

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

KIND_CHOICES = [
    "categories",
    "announcements",
    "school_calendar",
    "welcome_cards",
    "login_carousel_images",
]


def get_db_session():
    """Get a database session."""
    from bulletin.database import SessionLocal

    return SessionLocal()


def get_cli_actor():
    from bulletin.constants import AuditDefaults
    from bulletin.services.audit import Actor

    return Actor(user_type=AuditDefaults.SYSTEM_USER_TYPE, identifier=AuditDefaults.CLI_IDENTIFIER)


def _print_sweep(result):
    print(f"[{result.target_table}]")
    print(f"  Processed: {result.entities_processed}")
    print(f"  Archived: {result.entities_archived}")
    print(f"  Skipped: {result.entities_skipped}")
    if result.archived_ids:
        print(f"  IDs: {', '.join(str(i) for i in result.archived_ids)}")


def cmd_status(args):
    """Show lifecycle counts per content kind."""
    from bulletin.clock import get_clock
    from bulletin.services.archival import get_archive_stats

    db = get_db_session()
    try:
        stats = get_archive_stats(db, get_clock())

        print("\n=== Content Lifecycle Status ===\n")
        for table, counts in stats.items():
            print(f"{table}:")
            for key, value in counts.items():
                print(f"  {key}: {value}")
        print()
    finally:
        db.close()


def cmd_bulk_archive_inactive(args):
    """Archive every inactive entry of one kind (holidays excluded)."""
    from bulletin.clock import get_clock
    from bulletin.errors import LifecycleError
    from bulletin.services.archival import bulk_archive_inactive

    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Archiving inactive {args.kind}...\n")

        try:
            result = bulk_archive_inactive(
                db, args.kind, get_cli_actor(), get_clock(), dry_run=args.dry_run
            )
        except LifecycleError as e:
            print(f"Error [{e.code}]: {e.message}")
            sys.exit(1)

        _print_sweep(result)
    finally:
        db.close()


def cmd_archive_expired(args):
    """Archive announcements and calendar events whose display period is over."""
    from bulletin.clock import get_clock
    from bulletin.errors import LifecycleError
    from bulletin.services.archival import archive_expired

    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Archiving expired content...\n")

        try:
            results = archive_expired(db, get_cli_actor(), get_clock(), dry_run=args.dry_run)
        except LifecycleError as e:
            print(f"Error [{e.code}]: {e.message}")
            sys.exit(1)

        for result in results:
            _print_sweep(result)
    finally:
        db.close()


def cmd_restore(args):
    """Restore one archived entry."""
    from bulletin.clock import get_clock
    from bulletin.errors import LifecycleError
    from bulletin.services.archival import restore

    db = get_db_session()
    try:
        try:
            entity = restore(db, args.kind, args.id, get_cli_actor(), get_clock())
        except LifecycleError as e:
            print(f"Error [{e.code}]: {e.message}")
            sys.exit(1)

        print(f"Restored {args.kind} record {entity.id}")
        if getattr(entity, "order_index", None) is not None:
            print(f"  order_index: {entity.order_index}")
    finally:
        db.close()


def cmd_repair_holidays(args):
    """Re-activate live holidays left inactive by older sweeps."""
    from bulletin.clock import get_clock
    from bulletin.services.archival import repair_holidays

    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Repairing holidays...\n")

        result = repair_holidays(db, get_cli_actor(), get_clock(), dry_run=args.dry_run)

        print(f"Inactive holidays found: {result.holidays_found}")
        print(f"Re-activated: {result.holidays_reactivated}")
        if result.reactivated_ids:
            print(f"  IDs: {', '.join(str(i) for i in result.reactivated_ids)}")
    finally:
        db.close()


def cmd_audit(args):
    """Print audit records, newest first (or one entity's history, oldest first)."""
    from bulletin.services.audit import history, list_records

    db = get_db_session()
    try:
        if args.table and args.id is not None:
            records = history(db, args.table, args.id, limit=args.limit)
            print(f"\n=== History of {args.table} record {args.id} ===\n")
        else:
            records, total = list_records(db, target_table=args.table, limit=args.limit)
            print(f"\n=== Audit Log ({len(records)} of {total}) ===\n")

        for r in records:
            print(f"{r.performed_at}  {r.action_type:<13} {r.description}")
        print()
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="School Bulletin Content Lifecycle CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check current status
  python -m bulletin.cli.lifecycle status

  # Preview which inactive welcome cards would be archived
  python -m bulletin.cli.lifecycle bulk-archive-inactive --kind welcome_cards --dry-run

  # Archive announcements and events that have ended
  python -m bulletin.cli.lifecycle archive-expired

  # Show the lifecycle history of one calendar entry
  python -m bulletin.cli.lifecycle audit --table school_calendar --id 1564
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # status command
    status_parser = subparsers.add_parser("status", help="Show lifecycle counts")
    status_parser.set_defaults(func=cmd_status)

    # bulk-archive-inactive command
    bulk_parser = subparsers.add_parser("bulk-archive-inactive", help="Archive inactive entries of one kind")
    bulk_parser.add_argument("--kind", required=True, choices=KIND_CHOICES, help="Content kind")
    bulk_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't archive")
    bulk_parser.set_defaults(func=cmd_bulk_archive_inactive)

    # archive-expired command
    expired_parser = subparsers.add_parser("archive-expired", help="Archive ended announcements and events")
    expired_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't archive")
    expired_parser.set_defaults(func=cmd_archive_expired)

    # restore command
    restore_parser = subparsers.add_parser("restore", help="Restore one archived entry")
    restore_parser.add_argument("--kind", required=True, choices=KIND_CHOICES, help="Content kind")
    restore_parser.add_argument("--id", required=True, type=int, help="Entry id")
    restore_parser.set_defaults(func=cmd_restore)

    # repair-holidays command
    repair_parser = subparsers.add_parser("repair-holidays", help="Re-activate inactive holidays")
    repair_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't change anything")
    repair_parser.set_defaults(func=cmd_repair_holidays)

    # audit command
    audit_parser = subparsers.add_parser("audit", help="Show audit records")
    audit_parser.add_argument("--table", help="Target table")
    audit_parser.add_argument("--id", type=int, help="Target id (with --table: full history)")
    audit_parser.add_argument("--limit", type=int, default=50, help="Max records (default: 50)")
    audit_parser.set_defaults(func=cmd_audit)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
