"""Email reminders for tasks that are about to be due, and a weekly summary.

Both jobs go through a `send(to, subject, html)` callable. A failed send is
logged and the batch moves on to the next recipient.
"""

import logging
import smtplib
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from html import escape
from typing import Callable, Dict, Mapping, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from taskboard import config
from taskboard.leaderboard import task_stats
from taskboard.models import Task, TaskStatus, User

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str, str], None]


class SmtpMailer:
    def __init__(self, host: str, port: int, username: str, password: str, sender: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender

    @classmethod
    def from_config(cls) -> Optional["SmtpMailer"]:
        if not config.smtp_configured():
            logger.info("Email transport NOT configured (set SMTP_* env to enable).")
            return None
        logger.info("Email transport configured for %s:%s", config.SMTP_HOST, config.SMTP_PORT)
        return cls(config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USER, config.SMTP_PASS, config.FROM_EMAIL)

    def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html, subtype="html")
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(message)


def parse_deadline(deadline: Optional[str]) -> Optional[datetime]:
    """
    Reads the ISO-8601 deadline strings the frontend sends. Values without an
    offset are taken as UTC. Anything unparsable yields None.
    """
    if not deadline:
        return None
    try:
        parsed = datetime.fromisoformat(deadline.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _deliver(send: SendFn, to: str, subject: str, html: str) -> bool:
    try:
        send(to, subject, html)
        return True
    except Exception:
        logger.exception("Email to %s failed", to)
        return False


def due_soon_reminders(
    session: Session,
    send: SendFn,
    now: Optional[datetime] = None,
    window: timedelta = timedelta(minutes=60),
    already_sent: Optional[Mapping[int, str]] = None,
) -> Dict[int, str]:
    """
    Emails the owner of every open task due within `window`.

    `already_sent` maps task ids to the deadline they were reminded for; a task
    is only skipped while its deadline is unchanged. Returns the same kind of
    mapping for the reminders sent by this call.
    """
    now = now or datetime.now(timezone.utc)
    soon = now + window
    already_sent = already_sent or {}

    rows = session.exec(
        select(Task, User).join(User, User.id == Task.user_id).where(Task.status != TaskStatus.completed.value)
    ).all()

    sent: Dict[int, str] = {}
    for task, user in rows:
        if already_sent.get(task.id) == task.deadline:
            continue
        due = parse_deadline(task.deadline)
        if due is None or not (now <= due <= soon):
            continue
        html = (
            f"<p>Hi {escape(user.name)},</p>"
            f"<p>Your task <strong>{escape(task.title)}</strong> is due at <strong>{escape(task.deadline)}</strong>.</p>"
        )
        if _deliver(send, user.email, "Task Reminder", html):
            sent[task.id] = task.deadline
    if sent:
        logger.info("Sent %d task reminder(s)", len(sent))
    return sent


def weekly_summaries(session: Session, send: SendFn) -> int:
    delivered = 0
    for user in session.exec(select(User)).all():
        completed, pending = task_stats(session, user.id)
        html = (
            f"<p>Hi {escape(user.name)},</p>"
            f"<p>Completed: <b>{completed}</b><br/>Pending: <b>{pending}</b></p>"
        )
        if _deliver(send, user.email, "Weekly Productivity Summary", html):
            delivered += 1
    logger.info("Sent %d weekly summary email(s)", delivered)
    return delivered


class ReminderJobs:
    """
    The two scheduled email jobs, bound to an engine and a sender.

    Remembers which deadline each task was last reminded for. Entries are
    forgotten once the task is completed, deleted, rescheduled or past due.
    """

    def __init__(
        self,
        engine: Engine,
        send: SendFn,
        window: timedelta = timedelta(minutes=config.REMINDER_WINDOW_MINUTES),
    ):
        self.engine = engine
        self.send = send
        self.window = window
        self.reminded: Dict[int, str] = {}

    def _prune(self, session: Session, now: datetime) -> None:
        open_deadlines = dict(
            session.exec(select(Task.id, Task.deadline).where(Task.status != TaskStatus.completed.value)).all()
        )
        self.reminded = {
            task_id: deadline
            for task_id, deadline in self.reminded.items()
            if open_deadlines.get(task_id) == deadline and (parse_deadline(deadline) or now) >= now
        }

    def remind_due_soon(self, now: Optional[datetime] = None) -> Dict[int, str]:
        now = now or datetime.now(timezone.utc)
        with Session(self.engine) as session:
            self._prune(session, now)
            sent = due_soon_reminders(session, self.send, now=now, window=self.window, already_sent=self.reminded)
        self.reminded.update(sent)
        return sent

    def send_weekly_summaries(self) -> int:
        with Session(self.engine) as session:
            return weekly_summaries(session, self.send)


def build_scheduler(
    jobs: ReminderJobs,
    reminder_cron: str = config.REMINDER_CRON,
    summary_cron: str = config.WEEKLY_SUMMARY_CRON,
) -> AsyncIOScheduler:
    """Registers both jobs; the caller starts and shuts the scheduler down."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        jobs.remind_due_soon,
        trigger=CronTrigger.from_crontab(reminder_cron),
        id="due_soon_reminders",
        name="due_soon_reminders",
        replace_existing=True,
    )
    scheduler.add_job(
        jobs.send_weekly_summaries,
        trigger=CronTrigger.from_crontab(summary_cron),
        id="weekly_summaries",
        name="weekly_summaries",
        replace_existing=True,
    )
    logger.info("Scheduled reminders (%s) and weekly summaries (%s)", reminder_cron, summary_cron)
    return scheduler
