from datetime import datetime, date
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel, Relationship

SYSTEM_STATE = 1  # Category.state of shared, translated categories
USER_STATE = 0


class ScopeType(str, Enum):
    task = "Task"
    home = "Home"
    wish = "Wish"


class TaskType(str, Enum):
    task = "Tarea"
    event = "Evento"


class WishType(str, Enum):
    personal = "Personal"
    home = "Hogar"
    professional = "Profesional"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Configuration(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    language: str = Field(default="es")
    notification_token: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Person(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id")
    name: str
    image: Optional[str] = None
    birth_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Role(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    type: ScopeType = Field(default=ScopeType.task)


class Status(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    type: ScopeType = Field(default=ScopeType.task)


class Priority(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    level: int = Field(default=1)


class Home(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    address: Optional[str] = None
    created_by_person_id: Optional[int] = Field(default=None, foreign_key="person.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    members: list["HomePerson"] = Relationship(
        back_populates="home", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class HomePerson(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("home_id", "person_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    home_id: int = Field(foreign_key="home.id")
    person_id: int = Field(foreign_key="person.id")
    role_id: Optional[int] = Field(default=None, foreign_key="role.id")

    home: Home = Relationship(back_populates="members")
    person: Person = Relationship()
    role: Optional[Role] = Relationship()


class CategoryPerson(SQLModel, table=True):
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", primary_key=True)
    person_id: Optional[int] = Field(default=None, foreign_key="person.id", primary_key=True)


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    type: ScopeType = Field(default=ScopeType.task)
    state: int = Field(default=USER_STATE)
    parent_id: Optional[int] = Field(default=None, foreign_key="category.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    parent: Optional["Category"] = Relationship(
        back_populates="children", sa_relationship_kwargs={"remote_side": "Category.id"}
    )
    children: list["Category"] = Relationship(
        back_populates="parent",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Category.id"},
    )
    people: list[Person] = Relationship(link_model=CategoryPerson)


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: TaskType = Field(default=TaskType.task)
    priority_id: int = Field(foreign_key="priority.id")
    status_id: int = Field(foreign_key="status.id")
    category_id: int = Field(foreign_key="category.id")
    recurrence: Optional[str] = None
    estimated_time: Optional[int] = None
    comments: Optional[str] = None
    geo_location: Optional[str] = None
    parent_id: Optional[int] = Field(default=None, foreign_key="task.id")
    person_id: Optional[int] = Field(default=None, foreign_key="person.id")
    home_id: Optional[int] = Field(default=None, foreign_key="home.id")
    reminded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    priority: Optional[Priority] = Relationship()
    status: Optional[Status] = Relationship()
    category: Optional[Category] = Relationship()
    parent: Optional["Task"] = Relationship(
        back_populates="children", sa_relationship_kwargs={"remote_side": "Task.id"}
    )
    children: list["Task"] = Relationship(
        back_populates="parent",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Task.id"},
    )
    associations: list["HomePersonTask"] = Relationship(
        back_populates="task",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "HomePersonTask.id"},
    )


class HomePersonTask(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("task_id", "person_id", "home_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="task.id")
    person_id: int = Field(foreign_key="person.id")
    home_id: int = Field(foreign_key="home.id")
    role_id: int = Field(foreign_key="role.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    task: Task = Relationship(back_populates="associations")
    person: Person = Relationship()
    role: Role = Relationship()


class Wish(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    type: WishType = Field(default=WishType.personal)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location: Optional[str] = None
    priority_id: int = Field(foreign_key="priority.id")
    status_id: int = Field(foreign_key="status.id")
    person_id: int = Field(foreign_key="person.id")
    home_id: int = Field(foreign_key="home.id")
    parent_id: Optional[int] = Field(default=None, foreign_key="wish.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    priority: Optional[Priority] = Relationship()
    status: Optional[Status] = Relationship()
    home: Optional[Home] = Relationship()
    parent: Optional["Wish"] = Relationship(
        back_populates="children", sa_relationship_kwargs={"remote_side": "Wish.id"}
    )
    children: list["Wish"] = Relationship(
        back_populates="parent",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Wish.id"},
    )


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    home_id: Optional[int] = Field(default=None, foreign_key="home.id")
    title: str
    description: Optional[str] = None
    route: Optional[str] = None
    data: Optional[str] = None  # JSON routing payload
    destination: Optional[str] = None
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    model_name: str
    model_id: Optional[int] = None
    action: str
    user_id: Optional[int] = Field(default=None, foreign_key="user.id")
    new_data: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "SYSTEM_STATE",
    "USER_STATE",
    "ScopeType",
    "TaskType",
    "WishType",
    "User",
    "Configuration",
    "Person",
    "Role",
    "Status",
    "Priority",
    "Home",
    "HomePerson",
    "CategoryPerson",
    "Category",
    "Task",
    "HomePersonTask",
    "Wish",
    "Notification",
    "ActivityLog",
]
