"""Command line interface for the tracker.

Examples:
    python -m algotrack plans
    python -m algotrack load top-interview-150
    python -m algotrack learn 1 --plan top-interview-150
    python -m algotrack review 1
    python -m algotrack undo 1 review 2024-01-04T09:30:00+00:00
    python -m algotrack due
    python -m algotrack stats --plan leetcode-75
    python -m algotrack export records -o records.json
    python -m algotrack import backup.json all
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from algotrack.app import AlgoTrack
from algotrack.config import ensure_directories, settings
from algotrack.logging_config import setup_logging
from algotrack.models.progress_models import EventType, ProgressStatus, TrackedProblem, TransitionResult
from algotrack.monitoring import start_monitoring
from algotrack.services.backup_service import BackupScope, ImportValidationError, backup_filename
from algotrack.services.catalog_service import CatalogUnavailableError
from algotrack.services.history_service import dashboard_summary, summarize, today_local
from algotrack.services.normalizer import parse_timestamp
from algotrack.services.store import StoreError

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A command could not be completed."""


def _timestamp(value: str):
    moment = parse_timestamp(value)
    if moment is None:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {value}")
    return moment


def _report(result: TransitionResult) -> None:
    record = result.record
    if not result.ok:
        raise CommandError(f"Problem {record.id}: {result.outcome.value}")
    print(f"Problem {record.id}: {record.status.value}, cycle {record.review_cycle_index}, "
          f"next review {record.next_review_date or '-'}")


async def run_plans(app: AlgoTrack, args: argparse.Namespace) -> None:
    """List selectable study plans."""
    for plan in app.provider.list_catalogs():
        default = " (default)" if plan.slug == settings.catalog.default_plan else ""
        print(f"{plan.slug:<28} {plan.accent_color}{default}")


async def run_load(app: AlgoTrack, args: argparse.Namespace) -> None:
    """Load a study plan and show its groups."""
    active = await app.load_plan(args.slug)
    if active is None:
        return
    for group in active.groups:
        done = sum(1 for problem in group.problems if problem.record.status != ProgressStatus.UNSTARTED)
        print(f"{group.group.label.en or group.group.label.zh}: {done}/{len(group.problems)}")


async def run_learn(app: AlgoTrack, args: argparse.Namespace) -> None:
    if args.plan:
        await app.load_plan(args.plan)
    _report(app.progress.learn(args.id, catalog_id=args.plan or app.reconciler.selected_catalog))


async def run_review(app: AlgoTrack, args: argparse.Namespace) -> None:
    _report(app.progress.review(args.id, catalog_id=args.plan))


async def run_undo(app: AlgoTrack, args: argparse.Namespace) -> None:
    _report(app.progress.undo(args.id, EventType(args.type), args.date))


async def run_retime(app: AlgoTrack, args: argparse.Namespace) -> None:
    _report(app.progress.retime(args.id, EventType(args.type), args.old, args.new))


async def run_due(app: AlgoTrack, args: argparse.Namespace) -> None:
    """List problems due for review today."""
    today = today_local()
    due = app.progress.due_problems(today)
    if not due:
        print("Nothing due today")
    for record in due:
        overdue = (today - record.next_review_date).days
        suffix = f" (overdue {overdue}d)" if overdue else ""
        print(f"{record.id:>6}  {TrackedProblem(record).display_title}{suffix}")


async def run_history(app: AlgoTrack, args: argparse.Namespace) -> None:
    """Show the most recent learn and review events."""
    summary = summarize(app.known_problems())
    for entry in summary.history[:args.limit]:
        plan = f" [{entry.catalog_id}]" if entry.catalog_id else ""
        print(f"{entry.date:%Y-%m-%d %H:%M}  {entry.type.value:<6} "
              f"{entry.problem.id:>6}  {entry.problem.display_title}{plan}")


async def run_stats(app: AlgoTrack, args: argparse.Namespace) -> None:
    """Show totals, streak, achievements and the dashboard of a plan."""
    summary = summarize(app.known_problems())
    frozen = " (frozen)" if summary.streak.is_frozen else ""
    print(f"Learned: {summary.totals.total_learns}  Reviews: {summary.totals.total_reviews}  "
          f"Active days: {summary.totals.active_days}  Streak: {summary.streak.count}{frozen}")
    unlocked = [status.achievement.title for status in summary.achievements if status.unlocked]
    print(f"Achievements: {', '.join(unlocked) if unlocked else '-'}")

    if args.plan:
        await app.load_plan(args.plan)
        dashboard = dashboard_summary(app.reconciler.active_problems())
        counts = ", ".join(f"{status.value} {count}" for status, count in dashboard.status_counts.items())
        print(f"{args.plan}: {counts}")
        print(f"Due today: {len(dashboard.due_today)} (overdue {dashboard.overdue_count}), "
              f"tomorrow: {len(dashboard.due_tomorrow)}, done today: {dashboard.today_activity}")
        for progress in dashboard.difficulty:
            print(f"  {progress.difficulty.value:<7} {progress.done}/{progress.total} ({progress.percent}%)")
        if dashboard.suggestions:
            print("Next up: " + ", ".join(problem.display_title for problem in dashboard.suggestions))


async def run_export(app: AlgoTrack, args: argparse.Namespace) -> None:
    scope = BackupScope(args.scope)
    output = Path(args.output) if args.output else settings.paths.backups_dir / backup_filename(scope, today_local())
    output.write_text(app.backup.export_json(scope), encoding="utf-8")
    print(f"Exported to {output}")


async def run_import(app: AlgoTrack, args: argparse.Namespace) -> None:
    payload = Path(args.file).read_text(encoding="utf-8")
    count = app.backup.import_document(payload, BackupScope(args.scope), replace=args.replace)
    print(f"Imported {count} problems")


async def run_clear(app: AlgoTrack, args: argparse.Namespace) -> None:
    if not args.yes:
        raise CommandError("Refusing to clear progress without --yes")
    print(f"Cleared progress of {app.progress.clear_progress()} problems")


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with a subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="algotrack",
        description="Spaced-repetition tracker for programming problems",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    event_types = [event_type.value for event_type in EventType]
    scopes = [scope.value for scope in BackupScope]

    subparsers.add_parser("plans", help="List study plans")

    load_parser = subparsers.add_parser("load", help="Load a study plan")
    load_parser.add_argument("slug", nargs="?", help="Study plan slug (default from DEFAULT_PLAN)")

    learn_parser = subparsers.add_parser("learn", help="Mark a problem as learned")
    learn_parser.add_argument("id", help="Problem id")
    learn_parser.add_argument("--plan", help="Study plan the problem was learned in")

    review_parser = subparsers.add_parser("review", help="Record a review")
    review_parser.add_argument("id", help="Problem id")
    review_parser.add_argument("--plan", help="Study plan the review was done in")

    undo_parser = subparsers.add_parser("undo", help="Remove a history event")
    undo_parser.add_argument("id", help="Problem id")
    undo_parser.add_argument("type", choices=event_types, help="Event type")
    undo_parser.add_argument("date", type=_timestamp, help="Exact ISO-8601 timestamp of the event")

    retime_parser = subparsers.add_parser("retime", help="Move a history event")
    retime_parser.add_argument("id", help="Problem id")
    retime_parser.add_argument("type", choices=event_types, help="Event type")
    retime_parser.add_argument("old", type=_timestamp, help="Current ISO-8601 timestamp of the event")
    retime_parser.add_argument("new", type=_timestamp, help="New ISO-8601 timestamp")

    subparsers.add_parser("due", help="List problems due for review")

    history_parser = subparsers.add_parser("history", help="Show recent activity")
    history_parser.add_argument("--limit", type=int, default=20, help="Number of events (default: 20)")

    stats_parser = subparsers.add_parser("stats", help="Show statistics")
    stats_parser.add_argument("--plan", help="Also show the dashboard of a study plan")

    export_parser = subparsers.add_parser("export", help="Export progress to JSON")
    export_parser.add_argument("scope", choices=scopes, nargs="?", default="all", help="What to export")
    export_parser.add_argument("--output", "-o", help="Output file (default: backups directory)")

    import_parser = subparsers.add_parser("import", help="Import progress from JSON")
    import_parser.add_argument("file", help="Backup file")
    import_parser.add_argument("scope", choices=scopes, nargs="?", default="all", help="What to import")
    import_parser.add_argument("--replace", action="store_true", help="Drop problems missing from a full import")

    clear_parser = subparsers.add_parser("clear", help="Reset all learning progress, keeping solutions")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm")

    return parser


RUNNERS = {
    "plans": run_plans,
    "load": run_load,
    "learn": run_learn,
    "review": run_review,
    "undo": run_undo,
    "retime": run_retime,
    "due": run_due,
    "history": run_history,
    "stats": run_stats,
    "export": run_export,
    "import": run_import,
    "clear": run_clear,
}


async def main(argv=None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging("DEBUG" if args.debug else None)
    ensure_directories()
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info(f"Metrics server listening on port {settings.monitoring.port}")

    try:
        async with AlgoTrack() as app:
            await RUNNERS[args.command](app, args)
    except (CommandError, CatalogUnavailableError, ImportValidationError, StoreError) as e:
        logger.error(str(e))
        return 1
    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
