import logging
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.config import Settings
from tracker.models import Task, TaskPriority, TaskStatus, as_utc, get_utc_now
from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.notifications.worker import NotificationWorker
from tracker.repositories.task_repository import TaskRepository
from tracker.schemas import DailyReport, NotificationMessage, Severity, TaskReminder

logger = logging.getLogger(__name__)


def whole_hours(delta: timedelta) -> int:
    return int(delta.total_seconds() // 3600)


class ScheduledJobsService:
    """
    Periodic sweeps over the task table.

    Each sweep opens its own session, reads, and emits notifications; none of
    them writes to the store. Re-running a sweep re-sends its notifications.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        reminders: NotificationWorker,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.reminders = reminders
        self.reminder_window = timedelta(hours=settings.reminder_window_hours)
        self.retention = timedelta(days=settings.cleanup_retention_days)

    async def check_upcoming_deadlines(self, now: datetime | None = None) -> list[TaskReminder]:
        """Remind assignees of open tasks due within the reminder window."""
        logger.info("Running scheduled job: Check upcoming deadlines")
        now = now or get_utc_now()
        until = now + self.reminder_window

        async with self.session_factory() as session:
            candidates = await TaskRepository(session).find_open_assigned_with_due_date()

        upcoming = [
            TaskReminder(
                task_id=t.id,
                task_title=t.title,
                assignee_email=t.assignee.email,
                assignee_name=t.assignee.full_name,
                due_date=as_utc(t.due_date),
                priority=t.priority,
                hours_until_due=whole_hours(as_utc(t.due_date) - now),
            )
            for t in candidates
            if now < as_utc(t.due_date) < until
        ]
        logger.info("Found %d tasks due within %s", len(upcoming), self.reminder_window)

        for reminder in upcoming:
            self._send_task_reminder(reminder)
        return upcoming

    def _send_task_reminder(self, reminder: TaskReminder) -> None:
        notification = NotificationMessage(
            title="⏰ Task Reminder",
            message=(
                f"Task '{reminder.task_title}' is due in {reminder.hours_until_due} hours! "
                f"Priority: {reminder.priority.value}"
            ),
            type=Severity.WARNING,
            user_id=reminder.assignee_email,
        )
        if self.reminders.submit(reminder.assignee_email, notification):
            logger.info("Queued reminder for task %s to %s", reminder.task_id, reminder.assignee_email)

    async def check_overdue_tasks(self, now: datetime | None = None) -> list[int]:
        """Tell assignees about open tasks past their due date. Returns the task ids."""
        logger.info("Running scheduled job: Check overdue tasks")
        now = now or get_utc_now()

        async with self.session_factory() as session:
            candidates = await TaskRepository(session).find_open_assigned_with_due_date()
        overdue = [t for t in candidates if as_utc(t.due_date) < now]
        logger.info("Found %d overdue tasks", len(overdue))

        for task in overdue:
            hours_overdue = whole_hours(now - as_utc(task.due_date))
            notification = NotificationMessage(
                title="Task Overdue!",
                message=(
                    f"Task '{task.title}' is overdue by {hours_overdue} hours. "
                    f"Priority: {task.priority.value}"
                ),
                type=Severity.ERROR,
                user_id=task.assignee.email,
            )
            self.dispatcher.notify_user(task.assignee.email, notification)
            logger.info("Sent overdue notification for task %s to %s", task.id, task.assignee.email)

        return [t.id for t in overdue]

    async def generate_daily_report(self, now: datetime | None = None) -> DailyReport:
        logger.info("Running scheduled job: Generate daily report")
        now = now or get_utc_now()

        async with self.session_factory() as session:
            tasks = await TaskRepository(session).find_all()

        report = self._build_report(tasks, now)
        summary = report.summary()
        logger.info("Daily report generated:\n%s", summary)

        self.dispatcher.broadcast("DAILY_REPORT", summary)
        return report

    @staticmethod
    def _build_report(tasks: list[Task], now: datetime) -> DailyReport:
        by_status = Counter(t.status for t in tasks)
        by_priority = Counter(t.priority for t in tasks)
        overdue = sum(
            1
            for t in tasks
            if t.due_date is not None and as_utc(t.due_date) < now and t.status != TaskStatus.COMPLETED
        )
        return DailyReport(
            report_date=now.date(),
            total_tasks=len(tasks),
            completed_tasks=by_status[TaskStatus.COMPLETED],
            pending_tasks=by_status[TaskStatus.TODO] + by_status[TaskStatus.IN_PROGRESS],
            overdue_tasks=overdue,
            tasks_by_status={s.value: by_status[s] for s in TaskStatus},
            tasks_by_priority={p.value: by_priority[p] for p in TaskPriority},
        )

    async def cleanup_old_completed_tasks(self, now: datetime | None = None) -> list[int]:
        """
        Find completed tasks untouched for longer than the retention period.

        Only reports them as archival-eligible; nothing is deleted or archived.
        """
        logger.info("Running scheduled job: Cleanup old completed tasks")
        cutoff = (now or get_utc_now()) - self.retention

        async with self.session_factory() as session:
            tasks = await TaskRepository(session).find_all()

        eligible = [
            t
            for t in tasks
            if t.status == TaskStatus.COMPLETED and as_utc(t.updated_at or t.created_at) < cutoff
        ]
        logger.info("Found %d completed tasks older than %s", len(eligible), self.retention)
        for task in eligible:
            logger.debug(
                "Task %s '%s' completed on %s - eligible for archival", task.id, task.title, task.updated_at
            )
        logger.info("Cleanup job completed. %d tasks eligible for archival", len(eligible))
        return [t.id for t in eligible]

    async def health_check_ping(self) -> None:
        logger.debug("Scheduler health check - Application is running")
