"""
Task completion notifications - console and Telegram
"""
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import requests
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from result_filter import AcceptanceOutcome
from task_context import CompletedTask

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


class NotificationError(Exception):
    """Raised when a notification could not be delivered"""


class SummaryKind(str, Enum):
    CONTACTS_FOUND = 'contacts_found'
    NO_CONTACTS = 'no_contacts'
    EMPTY = 'empty'


@dataclass(frozen=True)
class TaskSummary:
    """User-facing outcome of a completed task"""
    task_id: str
    task_name: str
    original_query: str
    kind: SummaryKind
    accepted_count: int
    rejected_count: int
    total_count: int
    completed_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def message(self) -> str:
        if self.kind == SummaryKind.CONTACTS_FOUND:
            return (f"Found {self.accepted_count} organizations with contact details "
                    f"(out of {self.total_count} analyzed)")
        if self.kind == SummaryKind.NO_CONTACTS:
            return f"No contacts found among {self.total_count} organizations"
        return "No organizations were found for this task"


def _summary_kind(accepted_count: int, total_count: int) -> SummaryKind:
    if accepted_count:
        return SummaryKind.CONTACTS_FOUND
    if total_count:
        return SummaryKind.NO_CONTACTS
    return SummaryKind.EMPTY


def build_task_summary(task: CompletedTask, outcome: AcceptanceOutcome) -> TaskSummary:
    """Summarize an outcome without looking at the raw batch"""
    return TaskSummary(
        task_id=task.task_id,
        task_name=task.task_name,
        original_query=task.original_query,
        kind=_summary_kind(outcome.accepted_count, outcome.total_count),
        accepted_count=outcome.accepted_count,
        rejected_count=outcome.rejected_count,
        total_count=outcome.total_count,
    )


def build_stored_summary(task_row: Dict[str, Any]) -> TaskSummary:
    """Summary of an already saved task, taken from the counts it was saved with"""
    return TaskSummary(
        task_id=task_row['task_id'],
        task_name=task_row['task_name'] or 'Unnamed Task',
        original_query=task_row['original_query'] or '',
        kind=_summary_kind(task_row['accepted_count'], task_row['total_count']),
        accepted_count=task_row['accepted_count'],
        rejected_count=task_row['rejected_count'],
        total_count=task_row['total_count'],
        completed_at=str(task_row['completed_at']),
    )


def format_telegram_message(summary: TaskSummary) -> str:
    """HTML message for the Telegram Bot API"""
    if summary.kind == SummaryKind.CONTACTS_FOUND:
        header = "🎉 <b>Parsing completed!</b>"
    else:
        header = "ℹ️ <b>Parsing completed without contacts</b>"

    try:
        finished = datetime.fromisoformat(summary.completed_at).strftime('%d.%m.%Y %H:%M')
    except ValueError:
        finished = summary.completed_at

    lines = [
        header,
        "",
        f"📋 <b>Task:</b> {html.escape(summary.task_name or 'Unnamed Task')}",
        f"🔍 <b>Query:</b> {html.escape(summary.original_query or '-')}",
        "",
        f"📊 <b>{html.escape(summary.message)}</b>",
        f"   • Organizations analyzed: <b>{summary.total_count}</b>",
        f"   • Saved with contacts: <b>{summary.accepted_count}</b>",
        f"   • Dropped without contacts: <b>{summary.rejected_count}</b>",
        "",
        f"🕐 <b>Finished:</b> {finished}",
    ]
    return "\n".join(lines)


class Notifier(ABC):
    """Abstract base class for task notifiers"""

    @abstractmethod
    def send(self, summary: TaskSummary):
        """Deliver a task summary"""
        pass


class ConsoleNotifier(Notifier):
    """Prints the summary to the terminal"""

    STYLES = {
        SummaryKind.CONTACTS_FOUND: 'green',
        SummaryKind.NO_CONTACTS: 'yellow',
        SummaryKind.EMPTY: 'blue',
    }

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def send(self, summary: TaskSummary):
        style = self.STYLES[summary.kind]
        body = f"[bold]{summary.message}[/bold]"
        if summary.original_query:
            body += f"\n[dim]Query: {escape(summary.original_query)}[/dim]"
        self.console.print(Panel(body, title=escape(summary.task_name), border_style=style))


class TelegramNotifier(Notifier):
    """Sends the summary through a Telegram bot"""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10):
        if not bot_token or not chat_id:
            raise ValueError("Telegram bot token and chat id are both required")
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    def send(self, summary: TaskSummary):
        payload = {
            'chat_id': self.chat_id,
            'text': format_telegram_message(summary),
            'parse_mode': 'HTML',
        }

        try:
            response = requests.post(
                TELEGRAM_API_URL.format(token=self.bot_token),
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise NotificationError(f"Telegram request failed: {e}") from e

        if response.status_code != 200:
            raise NotificationError(f"Telegram API error: {response.status_code}")

        data = response.json()
        if not data.get('ok'):
            raise NotificationError(f"Telegram rejected message: {data.get('description', 'unknown error')}")

        logger.info(f"Telegram notification sent for task {summary.task_id}")
