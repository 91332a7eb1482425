#!/usr/bin/env python3
"""
Gmail Bulk Delete - Command line client
Shows the mailbox category breakdown and deletes whole categories with live progress
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Dict, List, Optional, Set

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from bulk_delete.context import SessionContext
from bulk_delete.models import TRASH_LABEL, ClientConfig, Phase
from bulk_delete.session import SessionGate


logger = logging.getLogger(__name__)

console = Console()

# Seconds to wait for the event channel before giving up on deletes
CONNECT_TIMEOUT = 15
# Seconds without a channel event before an active delete is reported as stalled
STALL_AFTER = 30
STALL_CHECK_INTERVAL = 5


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def confirm_delete(category: str) -> bool:
    """Ask before a destructive delete"""
    return Confirm.ask(
        f"Are you sure you want to delete all emails in category: [bold]{category}[/bold]?\n"
        "This will move them to trash.",
        console=console,
        default=False,
    )


async def collect_confirmations(categories: List[str], assume_yes: bool = False) -> Set[str]:
    """Ask about every category before any delete starts; prompts run off the event loop"""
    approved = set()
    for category in dict.fromkeys(categories):
        if category == TRASH_LABEL:
            # refused by the orchestrator without asking
            continue
        if assume_yes or await asyncio.to_thread(confirm_delete, category):
            approved.add(category)
    return approved


class ConsoleReporter:
    """Renders progress events from the session components"""

    def __init__(self, context: SessionContext):
        self.context = context
        self.progress: Optional[Progress] = None
        self.tasks: Dict[str, TaskID] = {}
        self.stalled: Set[str] = set()
        self.was_connected = False

    async def __call__(self, event: str, data: Dict) -> None:
        if event == "notice":
            style = "red" if data.get("level") == "error" else "yellow"
            console.print(f"[{style}]{data['message']}[/{style}]")

        elif event == "auth_required":
            console.print(f"[yellow]{data['message']}[/yellow]")

        elif event == "connectivity":
            state = data["state"]
            if state == "connected":
                if self.was_connected:
                    console.print("[green]Real-time connection restored[/green]")
                self.was_connected = True
            elif state == "connecting" and self.was_connected:
                console.print("[yellow]Real-time connection lost. Reconnecting...[/yellow]")

        elif event == "delete_started":
            self._start_task(data["category"])

        elif event == "delete_progress":
            self.stalled.discard(data["category"])
            self._update_task(data["category"], "Deleting...")

        elif event == "delete_complete":
            self._update_task(data["category"], "Complete", finished=True)
            console.print(f"[green]Deleted {data['total_deleted']:,} emails from {data['category']}[/green]")

        elif event == "delete_error":
            self._update_task(data["category"], "Failed", finished=True)

    def show_stalled(self, labels: List[str], stall_after: float) -> None:
        """Print a notice the first time each category stops reporting"""
        for label in labels:
            if label not in self.stalled:
                console.print(f"[yellow]No progress from {label} for {stall_after:g}s. Still waiting on the server...[/yellow]")
        self.stalled = set(labels)

    def _category_count(self, category: str) -> int:
        snapshot = self.context.snapshots.snapshot
        found = snapshot.get(category) if snapshot else None
        return found.count if found else 0

    def _start_task(self, category: str) -> None:
        if self.progress is None:
            return
        # Bars are percentages of the displayed count; unknown counts spin
        total = 100 if self._category_count(category) else None
        self.tasks[category] = self.progress.add_task(f"{category}: Starting...", total=total)

    def _update_task(self, category: str, status: str, finished: bool = False) -> None:
        task = self.tasks.get(category)
        if self.progress is None or task is None:
            return

        state = self.context.orchestrator.state(category)
        deleted = state.deleted_count if state else 0
        count = self._category_count(category)
        if state is not None and state.phase == Phase.COMPLETE:
            completed = 100.0
        elif state is not None and count:
            completed = state.progress_ratio(count) * 100
        else:
            completed = 0.0

        self.progress.update(task, completed=completed, description=f"{category}: {status} ({deleted:,} deleted)")
        if finished:
            self.progress.stop_task(task)


# === Rendering ===

def print_snapshot(context: SessionContext) -> None:
    """Print the category breakdown table"""
    snapshot = context.snapshots.snapshot
    if snapshot is None or not snapshot.categories:
        console.print("[dim]No data available. Run the stats command to load statistics.[/dim]")
        return

    table = Table(title=f"Email Distribution by Category ({context.user_email})", show_header=True, header_style="bold cyan")
    table.add_column("Category", style="cyan", width=20)
    table.add_column("Emails", justify="right", style="green", width=12)
    table.add_column("Share", justify="right", width=8)
    table.add_column("Status", width=20)

    for category in snapshot.categories:
        state = context.orchestrator.state(category.label)
        if category.label == TRASH_LABEL:
            status = "[dim]protected[/dim]"
        elif state is None:
            status = ""
        elif state.phase == Phase.COMPLETE:
            status = f"[green]complete ({state.deleted_count:,})[/green]"
        else:
            status = f"[yellow]{state.phase.value} ({state.deleted_count:,})[/yellow]"
        table.add_row(category.label, f"~{category.count:,}", f"{category.percentage:.1f}%", status)

    console.print(table)
    console.print(f"  - Total emails: {snapshot.total_messages:,}")
    console.print(f"  - Categories: {len(snapshot.categories)}")
    deletable = f"{snapshot.deletable_percentage:.1f}%" if snapshot.deletable_percentage else "N/A"
    console.print(f"  - Deletable: {deletable}")
    if snapshot.is_estimate:
        console.print("[dim]Category counts are estimates. Deletion processes all emails in a category.[/dim]")
    if context.user_count:
        noun = "user has" if context.user_count == 1 else "users have"
        console.print(f"[dim]{context.user_count:,} {noun} used this app[/dim]")


# === Commands ===

async def run_stats(context: SessionContext, gate: SessionGate, watch: Optional[float] = None) -> int:
    await context.load_user_count()
    if not await gate.probe():
        console.print("Run [cyan]gmail-bulk-delete login[/cyan] to sign in with Gmail.")
        return 1
    try:
        print_snapshot(context)
        while watch:
            await asyncio.sleep(watch)
            if await context.refresh():
                print_snapshot(context)
    finally:
        await context.teardown()
    return 0


async def wait_for_deletes(
    context: SessionContext,
    reporter: ConsoleReporter,
    stall_after: float = STALL_AFTER,
    check_interval: float = STALL_CHECK_INTERVAL
) -> None:
    """Wait until every accepted delete completes or errors, then for the follow-up refresh"""
    orchestrator = context.orchestrator
    while True:
        try:
            await asyncio.wait_for(orchestrator.wait_idle(), timeout=check_interval)
            break
        except asyncio.TimeoutError:
            reporter.show_stalled(orchestrator.stalled(stall_after), stall_after)
    await orchestrator.wait_refreshes()


async def run_delete(
    context: SessionContext,
    gate: SessionGate,
    reporter: ConsoleReporter,
    categories: List[str],
    assume_yes: bool = False
) -> int:
    if not await gate.probe():
        console.print("Run [cyan]gmail-bulk-delete login[/cyan] to sign in with Gmail.")
        return 1

    try:
        if not await context.channel.wait_connected(timeout=CONNECT_TIMEOUT):
            console.print("[red]Real-time connection not available. Please try again.[/red]")
            return 1

        print_snapshot(context)

        approved = await collect_confirmations(categories, assume_yes)
        context.orchestrator.confirm = approved.__contains__

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console
        ) as progress:
            reporter.progress = progress
            accepted = [category for category in dict.fromkeys(categories) if await context.delete(category)]
            if accepted:
                await wait_for_deletes(context, reporter)
            reporter.progress = None

        if accepted:
            print_snapshot(context)
        return 0
    finally:
        await context.teardown()


async def run_logout(gate: SessionGate) -> int:
    await gate.logout()
    console.print("[green]Logged out[/green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Gmail bulk delete - view category statistics and delete whole categories')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('login', help='Open the browser to sign in with Gmail')
    subparsers.add_parser('logout', help='Sign out and forget the session')
    stats_parser = subparsers.add_parser('stats', help='Show the email distribution by category')
    stats_parser.add_argument('--watch', type=float, metavar='SECONDS',
                              help='Refresh the table every SECONDS until interrupted')
    delete_parser = subparsers.add_parser('delete', help='Delete all emails in one or more categories')
    delete_parser.add_argument('categories', nargs='+', help='Category labels to delete')
    delete_parser.add_argument('--yes', action='store_true', help='Skip the confirmation prompt')
    return parser


def main():
    """Main entry point"""
    load_dotenv()
    configure_logging()

    parser = build_parser()
    args = parser.parse_args()
    if getattr(args, 'watch', None) is not None and args.watch <= 0:
        parser.error('--watch must be a positive number of seconds')

    config = ClientConfig.from_env()
    context = SessionContext(config)
    reporter = ConsoleReporter(context)
    context.set_progress_callback(reporter)
    gate = SessionGate(context)

    if args.command == 'login':
        url = gate.login()
        console.print(f"Opened [cyan]{url}[/cyan] in your browser.")
        console.print("After signing in, set [cyan]SESSION_COOKIE[/cyan] in .env to the session cookie (name=value).")
        return 0

    try:
        if args.command == 'logout':
            return asyncio.run(run_logout(gate))
        if args.command == 'stats':
            return asyncio.run(run_stats(context, gate, watch=args.watch))
        return asyncio.run(run_delete(context, gate, reporter, args.categories, assume_yes=args.yes))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Deletes already started keep running on the server.[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
