"""CLI entry point for the LeetBoard friends leaderboard."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from src.core.config import Settings
from src.core.db import init_db
from src.core.errors import LeaderboardError
from src.core.periods import format_countdown
from src.core.schemas import Period, UserStats
from src.pipeline.orchestrator import LeaderboardService, LeaderboardState, export_state_json
from src.platforms.leetcode.client import LeetCodeStatsClient

TABS = ("all", "jobs", "weekly", "monthly", "yearly")

_DEFAULT_CONFIG = "config/settings.yaml"


def _common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=_DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {_DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="LeetBoard - friends leaderboard with weekly/monthly/yearly progress",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- refresh subcommand (default) ---
    refresh_parser = subparsers.add_parser("refresh", help="Fetch stats and print leaderboards")
    _common(refresh_parser)
    refresh_parser.add_argument(
        "--tab",
        choices=TABS,
        help="Only print one tab (default: all tabs)",
    )
    refresh_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )

    # --- previous subcommand ---
    previous_parser = subparsers.add_parser(
        "previous",
        help="Show the leaderboard of the previous week/month/year",
    )
    _common(previous_parser)
    previous_parser.add_argument(
        "--period",
        choices=[p.value for p in Period],
        default=Period.WEEKLY.value,
        help="Period granularity (default: weekly)",
    )

    history_parser = subparsers.add_parser("history", help="List stored baseline snapshots")
    _common(history_parser)
    history_parser.add_argument(
        "--period",
        choices=[p.value for p in Period],
        help="Only one granularity (default: all)",
    )

    # --- roster subcommands ---
    add_user_parser = subparsers.add_parser("add-user", help="Add a LeetCode username")
    _common(add_user_parser)
    add_user_parser.add_argument("username")
    add_user_parser.add_argument("--name", help="Display name")

    remove_user_parser = subparsers.add_parser("remove-user", help="Remove a user and their jobs")
    _common(remove_user_parser)
    remove_user_parser.add_argument("username")
    remove_user_parser.add_argument(
        "--purge-snapshots",
        action="store_true",
        help="Also drop the user's baselines from every stored snapshot",
    )

    rename_parser = subparsers.add_parser("rename-user", help="Change a user's display name")
    _common(rename_parser)
    rename_parser.add_argument("username")
    rename_parser.add_argument("name", nargs="?", default=None)

    # --- job log subcommands ---
    add_job_parser = subparsers.add_parser("add-job", help="Log a job application")
    _common(add_job_parser)
    add_job_parser.add_argument("username")
    add_job_parser.add_argument("--title", required=True)
    add_job_parser.add_argument("--company", required=True)
    add_job_parser.add_argument("--url", default="")

    advance_parser = subparsers.add_parser("advance-job", help="Move a job to its next status")
    _common(advance_parser)
    advance_parser.add_argument("job_id", type=int)

    delete_job_parser = subparsers.add_parser("delete-job", help="Delete a job application")
    _common(delete_job_parser)
    delete_job_parser.add_argument("job_id", type=int)

    list_jobs_parser = subparsers.add_parser("list-jobs", help="List logged job applications")
    _common(list_jobs_parser)
    list_jobs_parser.add_argument("--username")

    reconcile_parser = subparsers.add_parser(
        "reconcile-jobs",
        help="Recount every user's jobs applied from the job log",
    )
    _common(reconcile_parser)

    # --- top-level flags so a bare invocation refreshes ---
    parser.add_argument("--config", default=_DEFAULT_CONFIG, help=argparse.SUPPRESS)
    parser.add_argument("--verbose", "-v", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--tab", choices=TABS, help=argparse.SUPPRESS)
    parser.add_argument("--export", choices=["json"], help=argparse.SUPPRESS)

    args = parser.parse_args(argv)

    if args.command is None:
        args.command = "refresh"

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load settings, falling back to defaults when the default file is absent."""
    if path == _DEFAULT_CONFIG and not Path(path).exists():
        return Settings()
    return Settings.from_yaml(path)


def _fmt_xp(xp: float) -> str:
    return f"{xp:g}"


def format_table(rows: list[UserStats]) -> str:
    """Render ranked rows as a fixed-width text table. Errors show N/A."""
    if not rows:
        return "  No users yet - add one with: python main.py add-user <username>"
    header = f"  {'Rank':>4}  {'User':<24} {'Jobs':>5} {'Easy':>5} {'Med':>5} {'Hard':>5} {'Total':>6} {'XP':>8}"
    lines = [header]
    for s in rows:
        if s.has_error:
            lines.append(
                f"  #{s.rank:<3}  {s.display_name:<24} {'N/A':>5} {'N/A':>5} {'N/A':>5} "
                f"{'N/A':>5} {'N/A':>6} {'N/A':>8}  ! {s.error}",
            )
        else:
            lines.append(
                f"  #{s.rank:<3}  {s.display_name:<24} {s.jobs_applied:>5} {s.easy:>5} "
                f"{s.medium:>5} {s.hard:>5} {s.total:>6} {_fmt_xp(s.xp):>8}",
            )
    return "\n".join(lines)


def print_state(state: LeaderboardState, tab: str | None = None) -> None:
    titles = {
        "all": "All Time",
        "jobs": "Jobs Applied",
        "weekly": "Weekly Progress",
        "monthly": "Monthly Progress",
        "yearly": "Yearly Progress",
    }
    for name in TABS:
        if tab is not None and name != tab:
            continue
        print(f"\n== {titles[name]} ==")
        if name in ("all", "jobs"):
            print(format_table(state.tab(name)))
            continue
        period = Period(name)
        snapshot = state.snapshots.get(period)
        if snapshot is None:
            print("  No baseline yet for this period - progress starts from the next refresh.")
        else:
            print(f"  Period {snapshot.period_key} (baseline {snapshot.created_at:%Y-%m-%d %H:%M})")
        print(f"  Resets in {format_countdown(state.reset_in_ms.get(period, 0))}")
        print(format_table(state.tab(name)))


async def run(args: argparse.Namespace, settings: Settings) -> None:
    """Execute one subcommand against the configured database and stats API."""
    conn = init_db(settings.database.path)
    client = LeetCodeStatsClient(settings.stats_api)
    service = LeaderboardService(settings, conn, client)

    try:
        if args.command == "refresh":
            state = await service.refresh()
            if args.export == "json":
                print(export_state_json(state))
            else:
                print_state(state, args.tab)

        elif args.command == "previous":
            period = Period(args.period)
            rows = service.previous_leaderboard(period)
            if rows is None:
                print(f"No {period.value} baseline captured yet - nothing to compare.")
            else:
                print(f"\n== Previous {period.value} leaderboard ==")
                print(format_table(rows))

        elif args.command == "history":
            snapshots = service.snapshots.history(Period(args.period) if args.period else None)
            if not snapshots:
                print("No baselines captured yet.")
            for snap in snapshots:
                print(f"  {snap.period.value:<8} {snap.period_key:<9} "
                      f"{snap.created_at:%Y-%m-%d %H:%M}  {len(snap.users)} users")

        elif args.command == "add-user":
            state = await service.add_user(args.username, args.name)
            print(f"Added '{args.username}'.")
            print_state(state, "all")

        elif args.command == "remove-user":
            await service.remove_user(args.username, purge_snapshots=args.purge_snapshots)
            print(f"Removed '{args.username}'.")

        elif args.command == "rename-user":
            service.roster.rename_user(args.username, args.name)
            print(f"Renamed '{args.username}'.")

        elif args.command == "add-job":
            job = await service.add_job(args.username, args.title, args.company, args.url)
            print(f"Logged job #{job.id}: {job.title} @ {job.company} ({job.status.value})")

        elif args.command == "advance-job":
            job = await service.advance_job(args.job_id)
            print(f"Job #{job.id} is now {job.status.value}")

        elif args.command == "delete-job":
            job = await service.delete_job(args.job_id)
            print(f"Deleted job #{job.id} ({job.title} @ {job.company})")

        elif args.command == "list-jobs":
            jobs = service.roster.list_jobs(args.username)
            if not jobs:
                print("No jobs logged.")
            for job in jobs:
                print(f"  #{job.id:<4} {job.username:<20} {job.status.value:<11} "
                      f"{job.title} @ {job.company} {job.url}".rstrip())

        elif args.command == "reconcile-jobs":
            changed = service.roster.reconcile_job_counts()
            print(f"Reconciled {len(changed)} users.")
            for username, count in sorted(changed.items()):
                print(f"  {username}: {count}")
    finally:
        client.close()
        conn.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run(args, settings))
    except LeaderboardError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
