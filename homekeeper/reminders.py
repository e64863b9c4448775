import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, select

from .config import LOG_FORMAT, LOG_LEVEL, REMINDER_INTERVAL_SECONDS, REMINDER_WINDOW_MINUTES
from .db import atomic, engine, init_db
from .exceptions import TransactionError
from .models import Task
from .notifications import PushMessage, prepare, publish_after_commit, push_destinations
from .sync import TASK_ROUTE

logger = logging.getLogger(__name__)


def remind_upcoming_tasks(
    session: Session,
    now: Optional[datetime] = None,
    window_minutes: int = REMINDER_WINDOW_MINUTES,
) -> list[PushMessage]:
    """Notify everyone on tasks starting within the window, once per task."""
    now = now or datetime.utcnow()
    horizon = now + timedelta(minutes=window_minutes)
    tasks = session.exec(
        select(Task)
        .where(
            Task.start_date.is_not(None),
            Task.start_date >= now,
            Task.start_date <= horizon,
            Task.reminded_at.is_(None),
        )
        .order_by(Task.start_date)
    ).all()
    messages: list[PushMessage] = []
    with atomic(session):
        for task in tasks:
            person_ids = {a.person_id for a in task.associations}
            if task.person_id:
                person_ids.add(task.person_id)
            destinations = push_destinations(session, person_ids)
            for person_id in sorted(person_ids):
                destination = destinations.get(person_id)
                if destination is None:
                    continue
                messages.append(
                    prepare(
                        session,
                        destination,
                        "notification.task.reminder",
                        {"title": task.title, "time": task.start_date.strftime("%H:%M")},
                        {"route": TASK_ROUTE, "event": "reminder", "task_id": task.id, "home_id": task.home_id},
                        home_id=task.home_id,
                    )
                )
            task.reminded_at = now
            session.add(task)
        publish_after_commit(session, messages)
    if tasks:
        logger.info("reminded %d tasks, %d messages queued", len(tasks), len(messages))
    return messages


def run_forever(interval: int = REMINDER_INTERVAL_SECONDS):
    init_db()
    while True:
        with Session(engine) as session:
            try:
                remind_upcoming_tasks(session)
            except TransactionError:
                logger.exception("reminder poll failed")
        time.sleep(interval)


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    run_forever()
