"""
Completes a parsing task: normalize, accept, persist and notify

The acceptance outcome is computed once per task and the very same
instance is handed to the store and to every notifier.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from config import Config
from result_filter import AcceptanceOutcome, ResultAcceptanceFilter
from result_normalizer import normalize_task_results
from results_store import ResultsStore, SaveResult
from task_context import CompletedTask, UserContext
from task_notifier import (
    ConsoleNotifier, NotificationError, Notifier, TaskSummary,
    TelegramNotifier, build_stored_summary, build_task_summary,
)

logger = logging.getLogger(__name__)


@dataclass
class TaskCompletion:
    """Everything that happened while finishing one task"""
    task: CompletedTask
    outcome: AcceptanceOutcome
    save_result: SaveResult
    summary: TaskSummary
    notified: bool = False
    notification_errors: List[str] = field(default_factory=list)


class TaskResultProcessor:
    """Runs a completed task's results through acceptance, storage and notification"""

    def __init__(self, store: ResultsStore, notifiers: Optional[Sequence[Notifier]] = None,
                 result_filter: Optional[ResultAcceptanceFilter] = None):
        self.store = store
        self.notifiers = list(notifiers or [])
        self.result_filter = result_filter or ResultAcceptanceFilter()

    @classmethod
    def from_config(cls, config: Config, store: Optional[ResultsStore] = None) -> 'TaskResultProcessor':
        """Build a processor with the notifiers enabled in the configuration"""
        notifiers: List[Notifier] = []

        if config.get_setting('notify_console'):
            notifiers.append(ConsoleNotifier())

        if config.get_setting('notify_telegram'):
            if config.telegram_configured():
                notifiers.append(TelegramNotifier(
                    config.get_api_key('telegram_bot_token'),
                    config.get_api_key('telegram_chat_id'),
                    timeout=config.get_setting('telegram_timeout'),
                ))
            else:
                logger.warning("Telegram notifications enabled but bot token or chat id is missing")

        return cls(store or ResultsStore(config.database_path), notifiers)

    def complete_task(self, task: CompletedTask, raw_results: Any,
                      user: UserContext) -> TaskCompletion:
        batch = normalize_task_results(raw_results, task.task_id)
        outcome = self.result_filter.apply(batch)

        logger.info(
            f"Task {task.task_id}: {outcome.total_count} organizations -> "
            f"{outcome.accepted_count} with contacts, {outcome.rejected_count} dropped"
        )

        save_result = self.store.save_accepted(task, user, outcome)

        if save_result.duplicate:
            # Report what was stored the first time, not the discarded batch
            logger.warning(f"Task {task.task_id} was already completed; skipping notifications")
            summary = build_stored_summary(self.store.get_task(user, task.task_id))
            return TaskCompletion(
                task=task, outcome=outcome, save_result=save_result, summary=summary
            )

        summary = build_task_summary(task, outcome)
        completion = TaskCompletion(
            task=task, outcome=outcome, save_result=save_result, summary=summary
        )

        for notifier in self.notifiers:
            try:
                notifier.send(summary)
            except NotificationError as e:
                logger.error(f"{type(notifier).__name__} failed for task {task.task_id}: {e}")
                completion.notification_errors.append(str(e))
            else:
                completion.notified = True

        return completion
