"""Command-line interface for the sevadar scheduler."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime

from seva.config import SchedulerConfig, load_config
from seva.domain.db import get_session, get_session_factory, init_database
from seva.engine.auto_assign import auto_assign
from seva.engine.overrides import override, swap
from seva.errors import SchedulingError
from seva.io.export_csv import export_fairness_csv
from seva.io.import_csv import import_program_types_csv, import_staff_csv
from seva.locks import DatabaseLockStore
from seva.services.bookings import approve_booking, cancel_booking, expire_stale_pending
from seva.services.fairness import build_report


def _load(args: argparse.Namespace) -> SchedulerConfig:
    cfg = load_config(args.config)
    if args.db:
        cfg.db_url = args.db
    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return cfg


def _fmt(when: datetime) -> str:
    return when.strftime("%Y-%m-%d")


def _cmd_init_db(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Initialize the database."""
    init_database(cfg.db_url)
    print(f"[OK] Database initialized: {cfg.db_url}")


def _cmd_import_csv(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Import staff and program catalog CSVs."""
    session = get_session(cfg.db_url)
    try:
        if args.staff:
            count = import_staff_csv(session, args.staff)
            print(f"[OK] Imported {count} staff")
        if args.programs:
            count = import_program_types_csv(session, args.programs)
            print(f"[OK] Imported {count} program types")
        print("[OK] CSV import complete")
    except Exception as e:
        session.rollback()
        print(f"[ERROR] Import failed: {e}")
        raise
    finally:
        session.close()


def _cmd_auto_assign(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Auto-assign staff to one booking."""
    session = get_session(cfg.db_url)
    try:
        result = auto_assign(session, args.booking, cfg=cfg)
        print(f"[OK] Booking {args.booking}: {len(result.created)} assignment(s) created")
        for s in result.shortages:
            print(f"[WARN] Item {s.item_id} short {s.needed} {s.role}")
    finally:
        session.close()


def _cmd_approve(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    session = get_session(cfg.db_url)
    try:
        result = approve_booking(session, args.booking)
        print(f"[OK] Booking {args.booking} approved; {result.confirmed} assignment(s) confirmed")
    finally:
        session.close()


def _cmd_cancel(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    session = get_session(cfg.db_url)
    try:
        cancel_booking(session, args.booking)
        print(f"[OK] Booking {args.booking} cancelled")
    finally:
        session.close()


def _cmd_swap(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Swap the staff of two assignments."""
    session = get_session(cfg.db_url)
    try:
        result = swap(session, args.a, args.b, booking_id=args.booking)
        print(
            f"[OK] Assignment {result.a_id} -> staff {result.a_staff_id}, "
            f"assignment {result.b_id} -> staff {result.b_staff_id}"
        )
    finally:
        session.close()


def _cmd_override(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Replace one staff member on an item."""
    session = get_session(cfg.db_url)
    try:
        result = override(session, args.item, args.from_staff, args.to_staff, booking_id=args.booking)
        print(f"[OK] Item {result.booking_item_id}: staff {result.from_staff_id} -> {result.to_staff_id}")
        if result.warning:
            print(f"[WARN] {result.warning}")
    finally:
        session.close()


def _cmd_report(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Print the fairness report, optionally exporting it to CSV."""
    session = get_session(cfg.db_url)
    try:
        weeks = args.weeks or cfg.fairness_window_weeks
        report = build_report(session, window_weeks=weeks, skill=args.skill, jatha=args.jatha, name=args.name)
        print(f"[INFO] Window {_fmt(report.window_start)} .. {_fmt(report.window_end)} ({weeks} weeks)")
        for row in report.rows:
            last = _fmt(row.last_assigned_at) if row.last_assigned_at else "-"
            print(f"  {row.name:<30} window={row.credits_window:<4} lifetime={row.credits_lifetime:<5} last={last}")
        if args.out:
            count = export_fairness_csv(report, args.out)
            print(f"[OK] Exported {count} rows to {args.out}")
    finally:
        session.close()


def _cmd_expire_pending(args: argparse.Namespace, cfg: SchedulerConfig) -> None:
    """Expire stale PENDING bookings (safe to run from several schedulers)."""
    session = get_session(cfg.db_url)
    try:
        locks = DatabaseLockStore(get_session_factory(cfg.db_url))
        result = expire_stale_pending(session, locks, cfg=cfg)
        if result.skipped:
            print(f"[OK] Skipped: {result.reason}")
        else:
            print(f"[OK] Expired {result.expired} pending booking(s)")
    finally:
        session.close()


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="seva",
        description="Sevadar staff assignment and fairness engine",
    )

    # Global options
    parser.add_argument("--db", help="Database URL (default: from config, sqlite:///seva.db)")
    parser.add_argument("--config", help="Path to config YAML")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Initialize database")
    init.set_defaults(func=_cmd_init_db)

    imp = sub.add_parser("import-csv", help="Import CSV data into database")
    imp.add_argument("--staff", help="Path to staff CSV")
    imp.add_argument("--programs", help="Path to program types CSV")
    imp.set_defaults(func=_cmd_import_csv)

    auto = sub.add_parser("auto-assign", help="Auto-assign staff to a booking")
    auto.add_argument("--booking", type=int, required=True, help="Booking id")
    auto.set_defaults(func=_cmd_auto_assign)

    appr = sub.add_parser("approve", help="Approve a booking and confirm its assignments")
    appr.add_argument("--booking", type=int, required=True, help="Booking id")
    appr.set_defaults(func=_cmd_approve)

    canc = sub.add_parser("cancel", help="Cancel a booking")
    canc.add_argument("--booking", type=int, required=True, help="Booking id")
    canc.set_defaults(func=_cmd_cancel)

    sw = sub.add_parser("swap", help="Swap the staff of two assignments")
    sw.add_argument("--a", type=int, required=True, help="First assignment id")
    sw.add_argument("--b", type=int, required=True, help="Second assignment id")
    sw.add_argument("--booking", type=int, help="Restrict to one booking (both must be proposed)")
    sw.set_defaults(func=_cmd_swap)

    ov = sub.add_parser("override", help="Replace a staff member on an item")
    ov.add_argument("--item", type=int, required=True, help="Booking item id")
    ov.add_argument("--from", dest="from_staff", type=int, required=True, help="Staff id to replace")
    ov.add_argument("--to", dest="to_staff", type=int, required=True, help="Replacement staff id")
    ov.add_argument("--booking", type=int, help="Booking id the item must belong to")
    ov.set_defaults(func=_cmd_override)

    rep = sub.add_parser("report", help="Fairness report")
    rep.add_argument("--weeks", type=int, help="Rolling window in weeks (default: from config)")
    rep.add_argument("--skill", choices=["PATH", "KIRTAN"], help="Only staff with this skill")
    rep.add_argument("--jatha", choices=["A", "B"], help="Only staff in this jatha")
    rep.add_argument("--name", help="Name contains (case-insensitive)")
    rep.add_argument("--out", help="Optional: export report to CSV")
    rep.set_defaults(func=_cmd_report)

    exp = sub.add_parser("expire-pending", help="Expire stale pending bookings")
    exp.set_defaults(func=_cmd_expire_pending)

    args = parser.parse_args(argv)
    cfg = _load(args)
    try:
        args.func(args, cfg)
    except SchedulingError as e:
        print(f"[ERROR] {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
