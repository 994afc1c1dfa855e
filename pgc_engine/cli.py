"""
Command-line interface for the PGC tour engine.
Built with Click and Rich for terminal output.
"""

import sys
import logging
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import JOB_SCHEDULES, get_config, get_tier_names
from .coordinator import SyncCoordinator
from .database import Database, DatabaseError
from .models import JobResult
from .queries import get_groups, get_leaderboard, get_standings
from .tiers import get_tier
from .exceptions import UnknownTierError

console = Console()
logging.basicConfig(level=logging.INFO, format="%(message)s")


def _format_score(score: Optional[float]) -> str:
    if score is None:
        return "-"
    if score == 0:
        return "E"
    return f"{score:+g}"


def _print_result(result: JobResult):
    if result.failed:
        colour = "red"
    elif result.skipped:
        colour = "yellow"
    else:
        colour = "green"
    console.print(f"[{colour}]{result.summary()}[/]")
    for key, value in result.details.items():
        console.print(f"  [dim]{key}:[/] {value}")


def _open_db() -> Database:
    try:
        return Database()
    except DatabaseError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)


@click.group()
@click.version_option(version="1.0.0", prog_name="PGC Tour Engine")
def cli():
    """PGC Tour Engine - scoring, standings and groups for the fantasy golf league."""
    pass


# =============================================================================
# Jobs
# =============================================================================

@cli.group()
def run():
    """Run a scheduled job now."""
    pass


@run.command("live")
@click.option("--tournament", "-t", "tournament_id", type=int, default=None, help="Tournament id (default: active)")
def run_live(tournament_id: Optional[int]):
    """One live scoring cycle."""
    result = SyncCoordinator(db=_open_db()).run_live_sync(tournament_id)
    _print_result(result)
    sys.exit(1 if result.failed else 0)


@run.command("standings")
@click.option("--season", "-s", "season_id", type=int, default=None, help="Season id (default: latest)")
def run_standings(season_id: Optional[int]):
    """Recompute season standings."""
    result = SyncCoordinator(db=_open_db()).run_standings(season_id)
    _print_result(result)
    sys.exit(1 if result.failed else 0)


@run.command("groups")
@click.option("--tournament", "-t", "tournament_id", type=int, default=None, help="Tournament id (default: next)")
@click.option("--force", is_flag=True, help="Reassign existing groups (refused once teams exist)")
def run_groups(tournament_id: Optional[int], force: bool):
    """Assign groups for an upcoming tournament."""
    result = SyncCoordinator(db=_open_db()).run_groups(tournament_id, force=force)
    _print_result(result)
    sys.exit(1 if result.failed else 0)


@cli.command()
@click.argument("tournament_id", type=int)
def repair(tournament_id: int):
    """Re-run scoring and standings for one tournament."""
    console.print(Panel.fit(f"[bold cyan]Repairing tournament {tournament_id}[/]"))
    result = SyncCoordinator(db=_open_db()).repair(tournament_id)
    _print_result(result)
    sys.exit(1 if result.failed else 0)


# =============================================================================
# Views
# =============================================================================

@cli.command()
@click.argument("tournament_id", type=int, required=False)
@click.option("--top", "-n", default=50, help="Number of teams to show")
def leaderboard(tournament_id: Optional[int], top: int):
    """View a tournament leaderboard (default: active tournament)."""
    db = _open_db()
    if tournament_id is None:
        active = db.get_active_tournament()
        if active is None:
            console.print("[yellow]No active tournament. Pass a tournament id.[/]")
            return
        tournament_id = active.id

    board = get_leaderboard(db, tournament_id)
    if board is None:
        console.print(f"[red]No tournament with id {tournament_id}[/]")
        return

    t = board.tournament
    table = Table(
        title=f"{t.name} ({t.tier_name}) - Round {t.current_round}{' LIVE' if t.live_play else ''}",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Pos", justify="center", width=5)
    table.add_column("Team", width=25)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Today", justify="right", width=6)
    table.add_column("Thru", justify="center", width=5)
    table.add_column("Points", justify="right", width=7)
    table.add_column("Earnings", justify="right", style="green", width=10)

    for team in board.teams[:top]:
        table.add_row(
            team.position or "-",
            team.display_name,
            _format_score(team.score),
            _format_score(team.today),
            f"{team.thru:g}" if team.thru is not None else "-",
            str(team.points),
            f"${team.earnings:,}",
        )

    console.print(table)


@cli.command()
@click.option("--season", "-s", "season_id", type=int, default=None, help="Season id (default: latest)")
@click.option("--tour", default=None, help="Only show one tour")
def standings(season_id: Optional[int], tour: Optional[str]):
    """View season standings."""
    db = _open_db()
    if season_id is None:
        season = db.get_latest_season()
        if season is None:
            console.print("[yellow]No seasons recorded yet.[/]")
            return
        season_id = season.id

    entries = get_standings(db, season_id)
    if tour:
        entries = [e for e in entries if e.tour_id == tour]
    if not entries:
        console.print("[yellow]No standings data. Run 'pgc-engine run standings'.[/]")
        return

    table = Table(
        title="Season Standings",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Rank", justify="center", width=5)
    table.add_column("Member", width=25)
    table.add_column("Tour", width=6)
    table.add_column("Points", justify="right", width=7)
    table.add_column("Earnings", justify="right", style="green", width=10)
    table.add_column("W", justify="center", width=3)
    table.add_column("T10", justify="center", width=4)
    table.add_column("Cuts", justify="center", width=5)
    table.add_column("Playoff", justify="center", width=7)

    for e in entries:
        style = "bold yellow" if e.playoff == 1 else None
        table.add_row(
            e.position,
            e.display_name,
            e.tour_id,
            str(e.points),
            f"${e.earnings:,}",
            str(e.wins),
            str(e.top_tens),
            f"{e.cuts_made}/{e.appearances}",
            {1: "Gold", 2: "Silver"}.get(e.playoff, ""),
            style=style
        )

    console.print(table)


@cli.command()
@click.argument("tournament_id", type=int)
def groups(tournament_id: int):
    """View a tournament's pick groups."""
    db = _open_db()
    by_group = get_groups(db, tournament_id)
    if not by_group:
        console.print("[yellow]No groups assigned. Run 'pgc-engine run groups'.[/]")
        return

    for number, golfers in by_group.items():
        table = Table(title=f"Group {number}", box=box.SIMPLE, header_style="bold cyan")
        table.add_column("OWGR", justify="right", width=6)
        table.add_column("Golfer", width=25)
        table.add_column("Rating", justify="right", width=7)
        table.add_column("R1 Tee Time", width=18)
        for g in golfers:
            table.add_row(
                str(g.world_rank) if g.world_rank is not None else "-",
                g.name,
                f"{g.rating:.1f}" if g.rating is not None else "-",
                g.tee_times.get(1) or "",
            )
        console.print(table)


@cli.command()
@click.argument("tier_name")
def tier(tier_name: str):
    """Show a tier's points and payouts by finish rank."""
    try:
        table_def = get_tier(tier_name)
    except UnknownTierError as e:
        console.print(f"[red]{e}[/] Known tiers: {', '.join(get_tier_names())}")
        sys.exit(1)

    table = Table(title=f"{table_def.name} (v{table_def.version})", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Rank", justify="center", width=5)
    table.add_column("Points", justify="right", width=7)
    table.add_column("Payout", justify="right", style="green", width=10)
    for rank, (points, payout) in enumerate(zip(table_def.points, table_def.payouts), start=1):
        table.add_row(str(rank), str(points), f"${payout:,}")
    console.print(table)


@cli.command()
@click.option("--runs", "-n", default=10, help="Number of recent runs to show")
@click.option("--check-api", is_flag=True, help="Also check the Data Golf API key")
def status(runs: int, check_api: bool):
    """Engine health: configuration, active tournament, locks and recent runs."""
    config = get_config()
    problems = config.validate_config(require_api_key=True)
    if problems:
        for problem in problems:
            console.print(f"[red]![/] {problem}")
    else:
        console.print("[green]Configuration OK[/]")

    db = _open_db()
    active = db.get_active_tournament()
    if active:
        console.print(f"[cyan]Active:[/] {active.name} (id={active.id}), round {active.current_round}")
    else:
        console.print("[dim]No active tournament[/]")

    for lock in db.get_locks():
        console.print(f"[yellow]Lock[/] {lock['key']} held by {lock['owner']} until {lock['expires_at']}")

    if check_api:
        from .api import DataGolfAPI
        ok = DataGolfAPI(db=db).health_check()
        console.print("[green]Data Golf API reachable[/]" if ok else "[red]Data Golf API check failed[/]")

    table = Table(title="Recent Runs", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Finished", width=20)
    table.add_column("Job", width=10)
    table.add_column("Outcome", width=10)
    table.add_column("Reason", width=22)
    table.add_column("Error")
    for r in db.get_runs(limit=runs):
        outcome = "skipped" if r["skipped"] else ("ok" if r["ok"] else "[red]failed[/]")
        table.add_row(r["finished_at"][:19], r["job"], outcome, r["reason"] or "", r["error"] or "")
    console.print(table)

    console.print("\n[dim]Schedules: " + ", ".join(f"{job} '{cron}'" for job, cron in JOB_SCHEDULES.items()) + "[/]")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
