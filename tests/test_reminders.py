from datetime import datetime, timedelta

from sqlmodel import select

from homekeeper.models import HomePersonTask, Notification, Task
from homekeeper.reminders import remind_upcoming_tasks

NOW = datetime(2030, 3, 1, 8, 0)


def test_upcoming_tasks_are_reminded_once(session, household, make_task, dispatcher):
    soon = make_task("Sacar basura", start_date=NOW + timedelta(minutes=10))
    make_task("Regar", start_date=NOW + timedelta(hours=2))
    make_task("Ayer", start_date=NOW - timedelta(days=1))
    session.add(
        HomePersonTask(
            task_id=soon.id,
            person_id=household.bob,
            home_id=household.home_id,
            role_id=household.colaborador,
        )
    )
    session.commit()

    sent = remind_upcoming_tasks(session, now=NOW)

    assert sorted(m.destination for m in sent) == ["tok-alice", "tok-bob"]
    assert {m.title for m in dispatcher.messages} == {
        "La tarea Sacar basura comienza pronto",
        "The task Sacar basura starts soon",
    }
    assert dispatcher.messages[0].body in ("Comienza a las 08:10", "It starts at 08:10")
    assert session.get(Task, soon.id).reminded_at == NOW
    assert len(session.exec(select(Notification)).all()) == 2

    assert remind_upcoming_tasks(session, now=NOW) == []
    assert len(dispatcher.messages) == 2


def test_people_without_tokens_are_skipped(session, household, make_task, dispatcher):
    task = make_task("Cocinar", start_date=NOW + timedelta(minutes=5))
    task.person_id = household.carol
    session.add(task)
    session.commit()

    assert remind_upcoming_tasks(session, now=NOW) == []
    assert session.get(Task, task.id).reminded_at == NOW


def test_reminder_endpoint(client):
    client.post("/api/register", json={"name": "Alice", "email": "alice@example.com", "password": "pw"})

    resp = client.post("/api/task/reminders")

    assert resp.status_code == 200
    assert resp.json() == {"queued": 0}
