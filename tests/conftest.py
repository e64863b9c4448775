import os
import sys
from types import SimpleNamespace

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from homekeeper import db
from homekeeper import models  # ensure models are registered with metadata
from homekeeper.main import app, seed_defaults
from homekeeper.models import (
    Category,
    Configuration,
    Home,
    HomePerson,
    Person,
    Priority,
    Role,
    Status,
    Task,
    User,
)
from homekeeper.notifications import DispatchResult, set_dispatcher


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

def override_get_session():
    with Session(test_engine) as session:
        yield session


def reset_database():
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    seed_defaults()


db.engine = test_engine
import homekeeper.main as main
main.engine = test_engine
app.dependency_overrides[db.get_session] = override_get_session


class RecordingDispatcher:
    def __init__(self):
        self.batches = []

    def send_batch(self, messages):
        self.batches.append(list(messages))
        return [DispatchResult(message, True) for message in messages]

    def close(self):
        pass

    @property
    def messages(self):
        return [message for batch in self.batches for message in batch]


@pytest.fixture(autouse=True)
def setup_db():
    reset_database()
    yield


@pytest.fixture(autouse=True)
def dispatcher():
    recorder = RecordingDispatcher()
    set_dispatcher(recorder)
    yield recorder
    set_dispatcher(None)


@pytest.fixture
def client():
    reset_database()
    return TestClient(app)


@pytest.fixture
def session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def household(session):
    """Alice (es) and Bob (en) have push tokens, Carol has none; all live in one home."""
    people = {}
    for name, language, token in (
        ("Alice", "es", "tok-alice"),
        ("Bob", "en", "tok-bob"),
        ("Carol", "es", None),
    ):
        user = User(name=name, email=f"{name.lower()}@example.com", hashed_password="x")
        session.add(user)
        session.flush()
        session.add(Configuration(user_id=user.id, language=language, notification_token=token))
        person = Person(user_id=user.id, name=name)
        session.add(person)
        session.flush()
        people[name.lower()] = person.id
    home = Home(name="Casa", created_by_person_id=people["alice"])
    session.add(home)
    session.flush()
    for person_id in people.values():
        session.add(HomePerson(home_id=home.id, person_id=person_id))
    session.commit()

    roles = {role.name: role.id for role in session.exec(select(Role)).all()}
    category = session.exec(select(Category).where(Category.name == "Limpieza")).first()
    return SimpleNamespace(
        home_id=home.id,
        responsable=roles["Responsable"],
        colaborador=roles["Colaborador"],
        priority_id=session.exec(select(Priority.id)).first(),
        status_id=session.exec(select(Status.id)).first(),
        category_id=category.id,
        **people,
    )


@pytest.fixture
def make_task(session, household):
    def factory(title="Limpiar", **fields):
        task = Task(
            title=title,
            priority_id=household.priority_id,
            status_id=household.status_id,
            category_id=household.category_id,
            home_id=household.home_id,
            person_id=household.alice,
            **fields,
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        return task

    return factory
