from __future__ import annotations

import argparse
import logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reading-ledger")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine activity")
    sub = parser.add_subparsers(dest="command", required=True)

    status_p = sub.add_parser("status", help="Show current and longest streak")
    status_p.set_defaults(_handler="status")

    mark_p = sub.add_parser("mark", help="Record a reading day (default: today)")
    mark_p.add_argument("date", nargs="?", default=None, help="YYYY-MM-DD or 'today'")
    mark_p.add_argument("--note", default=None, help="Notes for the day")
    mark_p.add_argument("--book", type=int, default=None, help="Book id read that day")
    mark_p.set_defaults(_handler="mark")

    unmark_p = sub.add_parser("unmark", help="Remove a reading day")
    unmark_p.add_argument("date", help="YYYY-MM-DD")
    unmark_p.set_defaults(_handler="unmark")

    note_p = sub.add_parser("note", help="Replace the notes of an existing reading day")
    note_p.add_argument("date", help="YYYY-MM-DD")
    note_p.add_argument("text", help="New notes")
    note_p.set_defaults(_handler="note")

    history_p = sub.add_parser("history", help="List reading days in a date range")
    history_p.add_argument("--start", default=None, help="First day (YYYY-MM-DD)")
    history_p.add_argument("--end", default=None, help="Last day (YYYY-MM-DD)")
    history_p.set_defaults(_handler="history")

    migrate_p = sub.add_parser("migrate", help="Upgrade a legacy ledger to the current format")
    migrate_p.add_argument("--legacy", default=None, help="Legacy JSON file to import")
    migrate_p.add_argument(
        "--replace", action="store_true", help="Overwrite a store that already has entries"
    )
    migrate_p.set_defaults(_handler="migrate")

    validate_p = sub.add_parser("validate", help="Check ledger invariants")
    validate_p.set_defaults(_handler="validate")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args._handler == "status":
        from reading_ledger.cli.status import main as status_main

        return int(status_main())

    if args._handler == "history":
        from reading_ledger.cli.status import history

        return int(history(start=args.start, end=args.end))

    if args._handler == "mark":
        from reading_ledger.cli.edit import mark

        return int(mark(day=args.date, note=args.note, book_id=args.book))

    if args._handler == "unmark":
        from reading_ledger.cli.edit import unmark

        return int(unmark(day=args.date))

    if args._handler == "note":
        from reading_ledger.cli.edit import note

        return int(note(day=args.date, text=args.text))

    if args._handler == "migrate":
        from reading_ledger.cli.migrate import main as migrate_main

        return int(migrate_main(legacy=args.legacy, replace=bool(args.replace)))

    if args._handler == "validate":
        from reading_ledger.cli.validate import main as validate_main

        return int(validate_main())

    raise RuntimeError(f"Unknown command: {args._handler}")


if __name__ == "__main__":
    raise SystemExit(main())
