#!/usr/bin/env python3
"""
Contact Results CLI - process finished parsing tasks and browse saved contacts
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from config import Config
from attachment_router import (
    AttachmentFile, AttachmentRoute, format_file_size, plan_attachments, validate_attachment_plan,
)
from data_exporter import DataExporter
from results_store import ResultsStore, ResultsStoreError
from task_notifier import ConsoleNotifier
from task_context import CompletedTask, UserContext
from task_pipeline import TaskResultProcessor

logger = logging.getLogger(__name__)
console = Console()


def setup_logging(config: Config):
    """Log to the configured file and to stderr"""
    logging.basicConfig(
        level=getattr(logging, str(config.get_setting('log_level')).upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.get_setting('log_file')),
            logging.StreamHandler()
        ]
    )


def display_results(results: List[dict], title: str):
    """Display saved contacts in a table"""
    if not results:
        console.print("[yellow]No saved contacts.[/yellow]")
        return

    table = Table(title=title, show_lines=True)
    table.add_column("#", style="dim", width=4)
    table.add_column("Organization", style="bold cyan")
    table.add_column("Email", style="green")
    table.add_column("Phone", style="yellow")
    table.add_column("Country", style="blue")
    table.add_column("Task", style="magenta")

    for result in results:
        table.add_row(
            str(result['id']),
            escape(result['organization_name']),
            escape(result['email']) if result.get('email') else "[dim]No email[/dim]",
            escape(result['phone']) if result.get('phone') else "[dim]No phone[/dim]",
            escape(result.get('country') or "-"),
            escape(result.get('task_name') or "-"),
        )

    console.print(table)


def cmd_process(args, config: Config, user: UserContext) -> int:
    path = Path(args.file)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw_results = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read {path}: {e}[/red]")
        return 1

    if args.no_notify:
        config.set_setting('notify_console', False)
        config.set_setting('notify_telegram', False)

    try:
        task = CompletedTask(
            task_id=args.task_id,
            task_name=args.task_name or path.stem,
            original_query=args.query or ''
        )
    except ValueError as e:
        console.print(f"[red]Invalid task: {e}[/red]")
        return 2

    processor = TaskResultProcessor.from_config(config)

    try:
        completion = processor.complete_task(task, raw_results, user)
    except ValueError as e:
        console.print(f"[red]Invalid results file: {e}[/red]")
        return 1

    summary = completion.summary
    style = ConsoleNotifier.STYLES[summary.kind]

    if completion.save_result.duplicate:
        console.print(f"[yellow]Task {escape(task.task_id)} was already processed; nothing saved.[/yellow]")
        console.print(f"[dim]Saved earlier: {escape(summary.message)}[/dim]")
        return 0

    console.print(f"[bold {style}]{escape(summary.message)}[/bold {style}]")
    if completion.save_result.saved_count:
        console.print(
            f"[dim]Saved {completion.save_result.saved_count} contacts, "
            f"{summary.rejected_count} organizations without contacts dropped[/dim]"
        )
    for error in completion.notification_errors:
        console.print(f"[red]Notification failed: {escape(error)}[/red]")
    return 0


def cmd_history(args, config: Config, user: UserContext) -> int:
    store = ResultsStore(config.database_path)
    tasks = store.get_task_history(user, limit=args.limit or config.get_setting('recent_results_limit'))
    if not tasks:
        console.print("[yellow]No completed tasks.[/yellow]")
        return 0

    table = Table(title="Task History")
    table.add_column("Task ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Analyzed", justify="right")
    table.add_column("Saved", justify="right", style="green")
    table.add_column("Dropped", justify="right", style="dim")
    table.add_column("Completed", style="dim")

    for task in tasks:
        table.add_row(
            escape(task['task_id']),
            escape(task['task_name'] or '-'),
            str(task['total_count']),
            str(task['accepted_count']),
            str(task['rejected_count']),
            str(task['completed_at']),
        )

    console.print(table)
    return 0


def cmd_results(args, config: Config, user: UserContext) -> int:
    store = ResultsStore(config.database_path)

    if args.task_id:
        results = store.get_results_for_task(user, args.task_id)
        title = f"Contacts for task {escape(args.task_id)}"
    elif args.search or args.country:
        limit = args.limit or config.get_setting('search_limit')
        results = store.search_results(user, args.search or '', country=args.country, limit=limit)
        title = "Search Results"
    else:
        limit = args.limit or config.get_setting('recent_results_limit')
        results = store.get_recent_results(user, limit=limit)
        title = "Recent Contacts"

    display_results(results, title)
    return 0


def cmd_stats(args, config: Config, user: UserContext) -> int:
    store = ResultsStore(config.database_path)
    stats = store.get_user_stats(user)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Completed tasks:", str(stats['task_count']))
    table.add_row("Organizations analyzed:", str(stats['organizations_analyzed']))
    table.add_row("Saved contacts:", f"[green]{stats['total_results']}[/green]")
    table.add_row("With email address:", str(stats['contacts_with_email']))
    table.add_row("With phone number:", str(stats['contacts_with_phone']))
    table.add_row("Countries:", str(stats['country_count']))
    table.add_row("Last saved:", str(stats['latest_parsing'] or '-'))

    console.print("\n[bold]Summary Statistics:[/bold]")
    console.print(table)
    return 0


def cmd_export(args, config: Config, user: UserContext) -> int:
    store = ResultsStore(config.database_path)
    results = store.get_results_for_task(user, args.task_id)
    if not results:
        console.print(f"[red]No saved contacts for task {escape(args.task_id)}[/red]")
        return 1

    exporter = DataExporter(args.output_dir or config.output_dir)
    filepath = exporter.export(results, args.format)
    console.print(f"[bold green]✓ Exported {len(results)} contacts to: {escape(filepath)}[/bold green]")
    return 0


def cmd_plan_attachments(args, config: Config, user: Optional[UserContext] = None) -> int:
    try:
        with open(args.file, 'r', encoding='utf-8') as f:
            files = [AttachmentFile(**item) for item in json.load(f)]
    except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
        console.print(f"[red]Could not read attachments from {args.file}: {e}[/red]")
        return 1

    plan = plan_attachments(files, limit=args.limit or config.attachment_limit)

    table = Table(title="Attachment Plan")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Delivery")
    table.add_column("Reason", style="dim")

    for routed in plan.routed:
        delivery = ("[green]Inline[/green]" if routed.route == AttachmentRoute.INLINE
                    else "[blue]Google Drive link[/blue]")
        table.add_row(escape(routed.file.name), format_file_size(routed.file.size), delivery, routed.reason.value)

    console.print(table)
    console.print(f"Inline total: {format_file_size(plan.inline_size)} of {format_file_size(plan.limit)}")

    problems = validate_attachment_plan(plan)
    for problem in problems:
        console.print(f"[yellow]⚠ {escape(problem)}[/yellow]")
    return 1 if problems else 0


def cmd_setup(args, config: Config, user: Optional[UserContext] = None) -> int:
    path = config.create_sample_config()
    console.print(f"\nSample configuration created. Copy {path} to config.json and add your credentials.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Save and browse contacts found by parsing tasks')
    parser.add_argument('-c', '--config', default='config.json', help='Configuration file')

    subparsers = parser.add_subparsers(dest='command', required=True)

    process = subparsers.add_parser('process', help='Accept and save the results of a finished task')
    process.add_argument('file', help='JSON file with the task results')
    process.add_argument('--task-id', required=True, help='Task identifier')
    process.add_argument('--user', required=True, help='Owner of the results')
    process.add_argument('--task-name', help='Task name (default: file name)')
    process.add_argument('--query', help='Original search query')
    process.add_argument('--no-notify', action='store_true', help='Skip console and Telegram notifications')
    process.set_defaults(handler=cmd_process)

    history = subparsers.add_parser('history', help='List completed tasks')
    history.add_argument('--user', required=True)
    history.add_argument('--limit', type=int, help='Number of tasks (default: from settings)')
    history.set_defaults(handler=cmd_history)

    results = subparsers.add_parser('results', help='Show saved contacts')
    results.add_argument('--user', required=True)
    results.add_argument('--task-id', help='Only contacts from this task')
    results.add_argument('--search', help='Free-text search')
    results.add_argument('--country', help='Filter by country')
    results.add_argument('--limit', type=int, help='Number of contacts (default: from settings)')
    results.set_defaults(handler=cmd_results)

    stats = subparsers.add_parser('stats', help='Show per-user statistics')
    stats.add_argument('--user', required=True)
    stats.set_defaults(handler=cmd_stats)

    export = subparsers.add_parser('export', help='Export the contacts of a task')
    export.add_argument('--user', required=True)
    export.add_argument('--task-id', required=True)
    export.add_argument('-f', '--format', choices=['csv', 'json', 'excel'], default='csv')
    export.add_argument('-o', '--output-dir', help='Directory for the exported file')
    export.set_defaults(handler=cmd_export)

    attachments = subparsers.add_parser('plan-attachments',
                                        help='Decide inline vs Google Drive delivery for attachments')
    attachments.add_argument('file', help='JSON list of {name, size, ...} objects')
    attachments.add_argument('--limit', type=int, help='Inline size limit in bytes')
    attachments.set_defaults(handler=cmd_plan_attachments)

    setup = subparsers.add_parser('setup', help='Create sample configuration file')
    setup.set_defaults(handler=cmd_setup)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    config = Config(args.config)
    setup_logging(config)

    try:
        user = UserContext(args.user) if hasattr(args, 'user') else None
    except ValueError as e:
        console.print(f"[red]Invalid --user: {e}[/red]")
        return 2

    try:
        return args.handler(args, config, user)
    except ResultsStoreError as e:
        console.print(f"[red]Database error: {escape(str(e))}[/red]")
        logger.error(f"Database error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
