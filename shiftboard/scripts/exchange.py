"""Move staff lists and week schedules in and out of JSON files.

Run with ``python -m shiftboard.scripts.exchange <command> --company-id N``.
Files land in the data directory's ``exports`` folder unless ``--output-dir``
is given.
"""

from __future__ import annotations

import argparse
import datetime
import logging
from pathlib import Path
from typing import List, Optional

from ..data_exchange import (
    copy_week_schedule,
    export_employees,
    export_week_schedule,
    import_employees,
    import_week_schedule,
)
from ..database import SessionLocal, init_database
from ..errors import NotFoundError, WeekLockedError
from ..timegrid import parse_api_date, previous_day, week_start_for

logger = logging.getLogger(__name__)

COMMANDS = ("export-employees", "import-employees", "export-week", "import-week", "copy-week")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export, import or copy employees and week schedules.")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--company-id", type=int, required=True)
    parser.add_argument("--file", type=Path, help="JSON file to import.")
    parser.add_argument(
        "--week-start",
        help="ISO date (YYYY-MM-DD) inside the target week. Defaults to the current week.",
    )
    parser.add_argument(
        "--source-week",
        help="ISO date inside the week copied by copy-week. Defaults to the week before the target.",
    )
    parser.add_argument("--output-dir", type=Path)
    parser.add_argument("--append", action="store_true", help="Keep the week's existing shifts when importing.")
    return parser.parse_args(argv)


def _week(value: Optional[str], fallback: datetime.date) -> datetime.date:
    if not value:
        return week_start_for(fallback)
    try:
        return week_start_for(parse_api_date(value))
    except ValueError as exc:
        raise SystemExit(f"Invalid week value: {exc}") from exc


def run(args: argparse.Namespace, session_factory=SessionLocal) -> str:
    """Execute one command and return the line printed for it."""
    target_week = _week(args.week_start, datetime.date.today())
    if args.command.startswith("import") and not args.file:
        raise SystemExit(f"{args.command} needs --file")
    with session_factory() as session:
        if args.command == "export-employees":
            path = export_employees(session, args.company_id, output_dir=args.output_dir)
            return f"Wrote {path}"
        if args.command == "import-employees":
            created, updated = import_employees(session, args.company_id, args.file)
            return f"Employees created: {created}, updated: {updated}"
        if args.command == "export-week":
            path = export_week_schedule(session, args.company_id, target_week, output_dir=args.output_dir)
            return f"Wrote {path}"
        if args.command == "import-week":
            added, skipped = import_week_schedule(
                session, args.company_id, target_week, args.file, replace=not args.append
            )
            return f"Shifts added: {added}, skipped: {skipped}"
        source_week = _week(args.source_week, previous_day(target_week))
        result = copy_week_schedule(session, args.company_id, source_week, target_week)
        return (
            f"Copied week of {source_week.isoformat()} to {target_week.isoformat()}: "
            f"{result['shifts']} shifts, {result['skipped']} skipped"
        )


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    init_database()
    try:
        print(run(args))
    except (NotFoundError, WeekLockedError) as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
