import json
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session, SQLModel, select
from starlette.middleware.sessions import SessionMiddleware

from . import i18n
from .auth import (
    get_language,
    hash_password,
    login_user,
    logout_user,
    require_person,
    require_user,
    verify_password,
)
from .config import LOG_FORMAT, LOG_LEVEL, SESSION_COOKIE, SESSION_SECRET
from .db import atomic, engine, get_session, init_db
from .exceptions import (
    MissingReferenceError,
    NotFoundError,
    TransactionError,
    ValidationError,
)
from .models import (
    SYSTEM_STATE,
    USER_STATE,
    ActivityLog,
    Category,
    CategoryPerson,
    Configuration,
    Home,
    HomePerson,
    HomePersonTask,
    Notification,
    Person,
    Priority,
    Role,
    ScopeType,
    Status,
    Task,
    TaskType,
    User,
    Wish,
    WishType,
)
from .notifications import close_dispatcher, prepare, publish_after_commit, push_destinations
from .reminders import remind_upcoming_tasks
from .sync import TASK_ROUTE, DesiredAssociation, sync_task_people
from .tree import (
    CATEGORY_RULES,
    TASK_RULES,
    WISH_RULES,
    ensure_parent,
    materialize,
    subtree_ids,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    init_db()
    seed_defaults()
    yield
    close_dispatcher()


app = FastAPI(title="Household manager", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    session_cookie=SESSION_COOKIE,
)

DEFAULT_ROLES = [
    ("Responsable", "Encargado de completar la tarea", ScopeType.task),
    ("Colaborador", "Ayuda con la tarea", ScopeType.task),
    ("Administrador", "Administra el hogar", ScopeType.home),
    ("Miembro", "Vive en el hogar", ScopeType.home),
]
DEFAULT_STATUSES = [
    ("Pendiente", "Aún no comienza", "#9e9e9e"),
    ("En progreso", "Se está realizando", "#2196f3"),
    ("Completada", "Terminada", "#4caf50"),
]
DEFAULT_PRIORITIES = [
    ("Baja", "Puede esperar", "#4caf50", 1),
    ("Media", "Atender pronto", "#ff9800", 2),
    ("Alta", "Atender de inmediato", "#f44336", 3),
]
SYSTEM_CATEGORIES = {
    "Hogar": ["Limpieza", "Cocina", "Compras"],
}
RECURRENCES = ["Diaria", "Semanal", "Mensual", "Anual", "No se repite"]
REQUIRED_TASK_FIELDS = ("title", "type", "priority_id", "status_id", "category_id")
HOME_ADMIN_ROLE = "Administrador"
DEFAULT_CATEGORY_ICON = "categories/default.jpg"


# Request bodies


class RegisterIn(SQLModel):
    name: str
    email: str
    password: str
    language: Optional[str] = None


class LoginIn(SQLModel):
    email: str
    password: str


class ConfigurationIn(SQLModel):
    language: Optional[str] = None
    notification_token: Optional[str] = None


class PersonIn(SQLModel):
    name: str
    image: Optional[str] = None
    birth_date: Optional[date] = None
    home_id: Optional[int] = None
    role_id: Optional[int] = None


class PersonUpdate(SQLModel):
    name: Optional[str] = None
    image: Optional[str] = None
    birth_date: Optional[date] = None


class HomeIn(SQLModel):
    name: str
    address: Optional[str] = None


class HomeUpdate(SQLModel):
    name: Optional[str] = None
    address: Optional[str] = None


class HomeMemberIn(SQLModel):
    person_id: int
    role_id: Optional[int] = None


class CategoryIn(SQLModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    type: ScopeType = ScopeType.task
    parent_id: Optional[int] = None


class CategoryUpdate(SQLModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryMemberIn(SQLModel):
    person_id: int


class TaskPersonIn(SQLModel):
    person_id: Optional[int] = None
    role_id: Optional[int] = None
    home_id: Optional[int] = None


class TaskIn(SQLModel):
    title: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: TaskType = TaskType.task
    priority_id: int
    status_id: int
    category_id: int
    recurrence: Optional[str] = None
    estimated_time: Optional[int] = None
    comments: Optional[str] = None
    geo_location: Optional[str] = None
    parent_id: Optional[int] = None
    home_id: Optional[int] = None
    people: list[TaskPersonIn] = []


class TaskUpdate(SQLModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: Optional[TaskType] = None
    priority_id: Optional[int] = None
    status_id: Optional[int] = None
    category_id: Optional[int] = None
    recurrence: Optional[str] = None
    estimated_time: Optional[int] = None
    comments: Optional[str] = None
    geo_location: Optional[str] = None
    parent_id: Optional[int] = None
    home_id: Optional[int] = None
    people: Optional[list[TaskPersonIn]] = None


class TaskPeopleIn(SQLModel):
    people: list[TaskPersonIn]


class TaskDateIn(SQLModel):
    start_date: date
    home_id: Optional[int] = None


class WishIn(SQLModel):
    name: str
    description: Optional[str] = None
    type: WishType = WishType.personal
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location: Optional[str] = None
    priority_id: int
    status_id: int
    home_id: int
    parent_id: Optional[int] = None


class WishUpdate(SQLModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[WishType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location: Optional[str] = None
    priority_id: Optional[int] = None
    status_id: Optional[int] = None
    parent_id: Optional[int] = None


# Error responses


@app.exception_handler(ValidationError)
async def validation_error_handler(_: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"msg": exc.message, "details": exc.details})


@app.exception_handler(MissingReferenceError)
async def missing_reference_handler(_: Request, exc: MissingReferenceError):
    return JSONResponse(status_code=400, content={"msg": "MissingReferences", "details": exc.missing})


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"msg": exc.message})


@app.exception_handler(TransactionError)
async def transaction_error_handler(_: Request, exc: TransactionError):
    return JSONResponse(status_code=500, content={"error": "ServerError", "details": exc.message})


# Seed data and helpers


def seed_defaults():
    with Session(engine) as session:
        ensure_defaults(session)


def ensure_defaults(session: Session):
    for name, description, scope in DEFAULT_ROLES:
        exists = session.exec(select(Role).where(Role.name == name, Role.type == scope)).first()
        if not exists:
            session.add(Role(name=name, description=description, type=scope))
    for name, description, color in DEFAULT_STATUSES:
        exists = session.exec(
            select(Status).where(Status.name == name, Status.type == ScopeType.task)
        ).first()
        if not exists:
            session.add(Status(name=name, description=description, color=color, type=ScopeType.task))
    for name, description, color, level in DEFAULT_PRIORITIES:
        if not session.exec(select(Priority).where(Priority.name == name)).first():
            session.add(Priority(name=name, description=description, color=color, level=level))
    for root_name, child_names in SYSTEM_CATEGORIES.items():
        root = session.exec(
            select(Category).where(Category.name == root_name, Category.state == SYSTEM_STATE)
        ).first()
        if not root:
            root = Category(name=root_name, state=SYSTEM_STATE, icon=DEFAULT_CATEGORY_ICON)
            session.add(root)
            session.flush()
        for child_name in child_names:
            exists = session.exec(
                select(Category).where(Category.name == child_name, Category.parent_id == root.id)
            ).first()
            if not exists:
                session.add(
                    Category(
                        name=child_name,
                        state=SYSTEM_STATE,
                        parent_id=root.id,
                        icon=DEFAULT_CATEGORY_ICON,
                    )
                )
    session.commit()


def record_activity(
    session: Session, model_name: str, model_id: Optional[int], action: str, user_id: int, data
):
    session.add(
        ActivityLog(
            model_name=model_name,
            model_id=model_id,
            action=action,
            user_id=user_id,
            new_data=json.dumps(data, default=str),
        )
    )


def ensure_lookups(session: Session, **ids: Optional[int]):
    models = {"priority_id": Priority, "status_id": Status, "category_id": Category, "home_id": Home}
    missing = {}
    for name, value in ids.items():
        if value is not None and session.get(models[name], value) is None:
            missing[name] = [value]
    if missing:
        raise MissingReferenceError(missing)


def home_ids_of(session: Session, person_id: int) -> list[int]:
    return session.exec(select(HomePerson.home_id).where(HomePerson.person_id == person_id)).all()


def require_member(session: Session, home_id: int, person: Person) -> Home:
    home = session.get(Home, home_id)
    if not home or home_id not in home_ids_of(session, person.id):
        raise NotFoundError("HomeNotFound")
    return home


def require_home_admin(session: Session, home_id: int, person: Person) -> Home:
    home = require_member(session, home_id, person)
    membership = session.exec(
        select(HomePerson).where(HomePerson.home_id == home_id, HomePerson.person_id == person.id)
    ).one()
    if not membership.role or membership.role.name != HOME_ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="HomeAdminRequired")
    return home


def get_related_person(session: Session, person_id: int, person: Person) -> Person:
    """The caller, or someone who shares a home with the caller."""
    if person_id == person.id:
        return person
    target = session.get(Person, person_id)
    shared = set(home_ids_of(session, person_id)) & set(home_ids_of(session, person.id))
    if not target or not shared:
        raise NotFoundError("PersonNotFound")
    return target


def role_payload(role: Role, language: str) -> dict:
    return {
        "id": role.id,
        "nameRol": i18n.translated_name("roles", role.name, language),
        "descriptionRol": i18n.translated_description("roles", role.name, role.description, language),
    }


def status_payload(status: Status, language: str) -> dict:
    return {
        "id": status.id,
        "nameStatus": i18n.translated_name("status", status.name, language),
        "descriptionStatus": i18n.translated_description(
            "status", status.name, status.description, language
        ),
        "colorStatus": status.color,
        "iconStatus": status.icon,
    }


def priority_payload(priority: Priority, language: str) -> dict:
    return {
        "id": priority.id,
        "namePriority": i18n.translated_name("priority", priority.name, language),
        "descriptionPriority": i18n.translated_description(
            "priority", priority.name, priority.description, language
        ),
        "colorPriority": priority.color,
        "level": priority.level,
    }


def get_statuses(session: Session, scope: ScopeType, language: str) -> list[dict]:
    statuses = session.exec(select(Status).where(Status.type == scope).order_by(Status.id)).all()
    return [status_payload(s, language) for s in statuses]


def get_priorities(session: Session, language: str) -> list[dict]:
    priorities = session.exec(select(Priority).order_by(Priority.level)).all()
    return [priority_payload(p, language) for p in priorities]


def get_roles(session: Session, scope: ScopeType, language: str) -> list[dict]:
    roles = session.exec(select(Role).where(Role.type == scope).order_by(Role.id)).all()
    return [role_payload(r, language) for r in roles]


def get_home_people(session: Session, home_id: int, language: str) -> list[dict]:
    members = session.exec(
        select(HomePerson).where(HomePerson.home_id == home_id).order_by(HomePerson.id)
    ).all()
    return [
        {
            "id": member.person_id,
            "namePerson": member.person.name,
            "imagePerson": member.person.image,
            "roleId": member.role_id or 0,
            "roleName": i18n.translated_name("roles", member.role.name, language)
            if member.role
            else i18n.message("role.none", language),
        }
        for member in members
    ]


def category_roots(session: Session, scope: ScopeType) -> list[Category]:
    return session.exec(
        select(Category)
        .where(Category.parent_id.is_(None), Category.type == scope)
        .order_by(Category.id)
    ).all()


def category_parent_chain(category: Category, viewer_id: int, language: str) -> Optional[dict]:
    parent = category.parent
    if parent is None or not CATEGORY_RULES.visible_to(parent, viewer_id):
        return None
    record = CATEGORY_RULES.attributes(parent, language)
    record["parent"] = category_parent_chain(parent, viewer_id, language)
    return record


def get_category(session: Session, category_id: int, person: Person) -> Category:
    category = session.get(Category, category_id)
    if not category or not CATEGORY_RULES.visible_to(category, person.id):
        raise NotFoundError("CategoryNotFound")
    return category


def get_owned_category(session: Session, category_id: int, person: Person) -> Category:
    category = get_category(session, category_id, person)
    if category.state == SYSTEM_STATE:
        raise ValidationError("SystemCategory", details={"id": category_id})
    return category


def get_task(session: Session, task_id: int, person: Person) -> Task:
    task = session.get(Task, task_id)
    if not task or not TASK_RULES.visible_to(task, person.id):
        raise NotFoundError("TaskNotFound")
    return task


def task_record(task: Task, person: Person, language: str) -> Optional[dict]:
    # None once an update has taken the caller off the task
    records = materialize([task], person.id, TASK_RULES, language)
    return records[0] if records else None


def desired_people(people: list[TaskPersonIn]) -> list[DesiredAssociation]:
    # role 0 means "not assigned" in the client
    return [
        DesiredAssociation.from_mapping(entry.model_dump())
        for entry in people
        if entry.role_id != 0
    ]


def get_wish(session: Session, wish_id: int, person: Person) -> Wish:
    wish = session.get(Wish, wish_id)
    if not wish or not WISH_RULES.visible_to(wish, person.id):
        raise NotFoundError("WishNotFound")
    return wish


def get_owned_wish(session: Session, wish_id: int, person: Person) -> Wish:
    wish = get_wish(session, wish_id, person)
    if wish.person_id != person.id:
        raise NotFoundError("WishNotFound")
    return wish


def ensure_wish_parent(
    session: Session, wish_id: Optional[int], parent_id: Optional[int], person: Person
) -> Optional[Wish]:
    # only the owner may hang wishes under a wish
    parent = ensure_parent(session, Wish, wish_id, parent_id, person.id, WISH_RULES)
    if parent is not None and parent.person_id != person.id:
        raise MissingReferenceError({"parent_id": [parent_id]})
    return parent


# Auth and configuration


@app.post("/api/register", status_code=201)
def register(request: Request, payload: RegisterIn, session: Session = Depends(get_session)):
    email = payload.email.strip().lower()
    if session.exec(select(User).where(User.email == email)).first():
        raise ValidationError("EmailTaken", details={"email": email})
    with atomic(session):
        user = User(name=payload.name.strip(), email=email, hashed_password=hash_password(payload.password))
        session.add(user)
        session.flush()
        person = Person(user_id=user.id, name=user.name)
        session.add(person)
        session.add(
            Configuration(user_id=user.id, language=i18n.normalize_language(payload.language))
        )
    session.refresh(user)
    session.refresh(person)
    login_user(request, user)
    logger.info("%s registered", user.email)
    return {"user": {"id": user.id, "name": user.name, "email": user.email}, "person": {"id": person.id}}


@app.post("/api/login")
def login(request: Request, payload: LoginIn, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == payload.email.strip().lower())).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="InvalidCredentials")
    login_user(request, user)
    logger.info("%s logged in", user.email)
    return {"user": {"id": user.id, "name": user.name, "email": user.email}}


@app.post("/api/logout")
def logout(request: Request):
    logout_user(request)
    return {"msg": "LoggedOut"}


@app.get("/api/configuration")
def show_configuration(user: User = Depends(require_user), session: Session = Depends(get_session)):
    config = session.exec(select(Configuration).where(Configuration.user_id == user.id)).first()
    return {
        "language": config.language if config else i18n.normalize_language(None),
        "notification_token": config.notification_token if config else None,
    }


@app.put("/api/configuration")
def update_configuration(
    payload: ConfigurationIn,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
):
    config = session.exec(select(Configuration).where(Configuration.user_id == user.id)).first()
    if not config:
        config = Configuration(user_id=user.id)
    if payload.language is not None:
        if payload.language not in i18n.TRANSLATIONS:
            raise ValidationError("UnsupportedLanguage", details={"language": payload.language})
        config.language = payload.language
    if payload.notification_token is not None:
        config.notification_token = payload.notification_token.strip() or None
    config.updated_at = datetime.utcnow()
    session.add(config)
    session.commit()
    return {"language": config.language, "notification_token": config.notification_token}


# Persons and homes


@app.get("/api/person")
def list_people(person: Person = Depends(require_person), session: Session = Depends(get_session)):
    home_ids = home_ids_of(session, person.id)
    people = {person.id: person}
    if home_ids:
        for member in session.exec(select(HomePerson).where(HomePerson.home_id.in_(home_ids))).all():
            people[member.person_id] = member.person
    return {
        "people": [
            {"id": p.id, "name": p.name, "image": p.image, "birth_date": p.birth_date}
            for p in sorted(people.values(), key=lambda p: p.id)
        ]
    }


@app.post("/api/person", status_code=201)
def create_person(
    payload: PersonIn,
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    if payload.home_id is not None:
        require_member(session, payload.home_id, person)
    if payload.role_id is not None and session.get(Role, payload.role_id) is None:
        raise MissingReferenceError({"role_id": [payload.role_id]})
    with atomic(session):
        created = Person(name=payload.name.strip(), image=payload.image, birth_date=payload.birth_date)
        session.add(created)
        session.flush()
        if payload.home_id is not None:
            session.add(HomePerson(home_id=payload.home_id, person_id=created.id, role_id=payload.role_id))
    session.refresh(created)
    return {"person": {"id": created.id, "name": created.name, "image": created.image}}


@app.put("/api/person/{person_id}")
def update_person(
    person_id: int,
    payload: PersonUpdate,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    target = get_related_person(session, person_id, person)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("NameRequired")
    with atomic(session):
        for field, value in changes.items():
            setattr(target, field, value.strip() if field == "name" else value)
        session.add(target)
        record_activity(session, "Person", target.id, "update", user.id, changes)
    session.refresh(target)
    return {
        "person": {
            "id": target.id,
            "name": target.name,
            "image": target.image,
            "birth_date": target.birth_date,
        }
    }


@app.delete("/api/person/{person_id}")
def delete_person(
    person_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    target = get_related_person(session, person_id, person)
    if target.user_id is not None:
        raise ValidationError("PersonHasAccount", details={"id": target.id})
    with atomic(session):
        for model in (HomePerson, HomePersonTask, CategoryPerson):
            for row in session.exec(select(model).where(model.person_id == target.id)).all():
                session.delete(row)
        for wish in session.exec(select(Wish).where(Wish.person_id == target.id)).all():
            session.delete(wish)
        for task in session.exec(select(Task).where(Task.person_id == target.id)).all():
            task.person_id = None
            session.add(task)
        record_activity(session, "Person", target.id, "delete", user.id, {"name": target.name})
        session.delete(target)
    return {"msg": "PersonDeleted"}


@app.get("/api/home")
def list_homes(
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    memberships = session.exec(
        select(HomePerson).where(HomePerson.person_id == person.id).order_by(HomePerson.home_id)
    ).all()
    return {
        "homes": [
            {
                "id": m.home.id,
                "name": m.home.name,
                "address": m.home.address,
                "roleId": m.role_id,
                "roleName": i18n.translated_name("roles", m.role.name, language) if m.role else None,
            }
            for m in memberships
        ]
    }


@app.post("/api/home", status_code=201)
def create_home(
    payload: HomeIn,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    admin_role = session.exec(
        select(Role).where(Role.name == HOME_ADMIN_ROLE, Role.type == ScopeType.home)
    ).first()
    with atomic(session):
        home = Home(name=payload.name.strip(), address=payload.address, created_by_person_id=person.id)
        session.add(home)
        session.flush()
        session.add(
            HomePerson(home_id=home.id, person_id=person.id, role_id=admin_role.id if admin_role else None)
        )
        record_activity(session, "Home", home.id, "create", user.id, {"name": home.name})
    session.refresh(home)
    return {"home": {"id": home.id, "name": home.name, "address": home.address}}


@app.put("/api/home/{home_id}")
def update_home(
    home_id: int,
    payload: HomeUpdate,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    home = require_home_admin(session, home_id, person)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("NameRequired")
    with atomic(session):
        for field, value in changes.items():
            setattr(home, field, value.strip() if field == "name" else value)
        session.add(home)
        record_activity(session, "Home", home.id, "update", user.id, changes)
    session.refresh(home)
    return {"home": {"id": home.id, "name": home.name, "address": home.address}}


@app.delete("/api/home/{home_id}")
def delete_home(
    home_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    home = require_home_admin(session, home_id, person)
    with atomic(session):
        for association in session.exec(
            select(HomePersonTask).where(HomePersonTask.home_id == home.id)
        ).all():
            session.delete(association)
        for wish in session.exec(select(Wish).where(Wish.home_id == home.id)).all():
            session.delete(wish)
        for task in session.exec(select(Task).where(Task.home_id == home.id)).all():
            task.home_id = None
            session.add(task)
        for notification in session.exec(
            select(Notification).where(Notification.home_id == home.id)
        ).all():
            notification.home_id = None
            session.add(notification)
        record_activity(session, "Home", home.id, "delete", user.id, {"name": home.name})
        session.delete(home)
    return {"msg": "HomeDeleted"}


@app.get("/api/home/{home_id}/people")
def home_people(
    home_id: int,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    require_member(session, home_id, person)
    return {"people": get_home_people(session, home_id, language)}


@app.post("/api/home/{home_id}/people", status_code=201)
def add_home_person(
    home_id: int,
    payload: HomeMemberIn,
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    require_member(session, home_id, person)
    missing = {
        "person_id": [] if session.get(Person, payload.person_id) else [payload.person_id],
        "role_id": [payload.role_id]
        if payload.role_id is not None and not session.get(Role, payload.role_id)
        else [],
    }
    if any(missing.values()):
        raise MissingReferenceError(missing)
    membership = session.exec(
        select(HomePerson).where(HomePerson.home_id == home_id, HomePerson.person_id == payload.person_id)
    ).first()
    if membership:
        membership.role_id = payload.role_id
    else:
        membership = HomePerson(home_id=home_id, person_id=payload.person_id, role_id=payload.role_id)
    session.add(membership)
    session.commit()
    return {"msg": "HomePersonStoreOk", "person_id": payload.person_id, "role_id": payload.role_id}


@app.delete("/api/home/{home_id}/people/{person_id}")
def remove_home_person(
    home_id: int,
    person_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    # anyone may leave; removing someone else takes an administrator
    if person_id == person.id:
        require_member(session, home_id, person)
    else:
        require_home_admin(session, home_id, person)
    membership = session.exec(
        select(HomePerson).where(HomePerson.home_id == home_id, HomePerson.person_id == person_id)
    ).first()
    if membership is None:
        raise NotFoundError("HomePersonNotFound")
    with atomic(session):
        # their task roles in this home go with the membership
        for association in session.exec(
            select(HomePersonTask).where(
                HomePersonTask.home_id == home_id, HomePersonTask.person_id == person_id
            )
        ).all():
            session.delete(association)
        session.delete(membership)
        record_activity(
            session, "HomePerson", membership.id, "delete", user.id,
            {"home_id": home_id, "person_id": person_id},
        )
    return {"msg": "HomePersonDeleted", "home_id": home_id, "person_id": person_id}


# Lookups


@app.get("/api/role")
def list_roles(
    type: ScopeType = ScopeType.task,
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    return {"roles": get_roles(session, type, language)}


@app.get("/api/status")
def list_statuses(
    type: ScopeType = ScopeType.task,
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    return {"statuses": get_statuses(session, type, language)}


@app.get("/api/priority")
def list_priorities(language: str = Depends(get_language), session: Session = Depends(get_session)):
    return {"priorities": get_priorities(session, language)}


# Categories


@app.get("/api/category")
def list_categories(
    type: ScopeType = ScopeType.task,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    roots = category_roots(session, type)
    return {"categories": materialize(roots, person.id, CATEGORY_RULES, language)}


@app.get("/api/category/{category_id}")
def show_category(
    category_id: int,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    category = get_category(session, category_id, person)
    record = materialize([category], person.id, CATEGORY_RULES, language)[0]
    record["parent"] = category_parent_chain(category, person.id, language)
    return {"category": record}


@app.post("/api/category", status_code=201)
def create_category(
    payload: CategoryIn,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    ensure_parent(session, Category, None, payload.parent_id, person.id, CATEGORY_RULES)
    name = payload.name.strip()
    duplicates = session.exec(
        select(Category).where(Category.name == name, Category.type == payload.type)
    ).all()
    if any(CATEGORY_RULES.visible_to(c, person.id) for c in duplicates):
        raise ValidationError("CategoryExists", details={"name": name})
    with atomic(session):
        category = Category(
            name=name,
            description=payload.description,
            color=payload.color,
            icon=payload.icon or DEFAULT_CATEGORY_ICON,
            type=payload.type,
            state=USER_STATE,
            parent_id=payload.parent_id,
        )
        category.people.append(person)
        session.add(category)
        session.flush()
        record_activity(session, "Category", category.id, "create", user.id, payload.model_dump())
    session.refresh(category)
    return {
        "msg": "CategoryStoreOk",
        "category": materialize([category], person.id, CATEGORY_RULES, language)[0],
    }


@app.put("/api/category/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    category = get_owned_category(session, category_id, person)
    changes = payload.model_dump(exclude_unset=True)
    if "parent_id" in changes:
        ensure_parent(
            session, Category, category.id, changes["parent_id"], person.id, CATEGORY_RULES
        )
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("NameRequired")
    with atomic(session):
        for field, value in changes.items():
            setattr(category, field, value.strip() if field == "name" else value)
        session.add(category)
        record_activity(session, "Category", category.id, "update", user.id, changes)
    session.refresh(category)
    return {
        "msg": "CategoryUpdateOk",
        "category": materialize([category], person.id, CATEGORY_RULES, language)[0],
    }


@app.delete("/api/category/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    category = get_owned_category(session, category_id, person)
    in_use = session.exec(
        select(Task.category_id).where(Task.category_id.in_(subtree_ids(category)))
    ).first()
    if in_use is not None:
        raise ValidationError("CategoryInUse", details={"id": category.id, "used_id": in_use})
    with atomic(session):
        record_activity(session, "Category", category.id, "delete", user.id, {"name": category.name})
        session.delete(category)
    return {"msg": "CategoryDeleted"}


@app.post("/api/category/{category_id}/people", status_code=201)
def add_category_person(
    category_id: int,
    payload: CategoryMemberIn,
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    category = get_owned_category(session, category_id, person)
    member = session.get(Person, payload.person_id)
    if not member:
        raise MissingReferenceError({"person_id": [payload.person_id]})
    if member not in category.people:
        category.people.append(member)
        session.add(category)
        session.commit()
    return {"msg": "CategoryPersonStoreOk", "category_id": category_id, "person_id": member.id}


@app.delete("/api/category/{category_id}/people/{person_id}")
def remove_category_person(
    category_id: int,
    person_id: int,
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    category = get_owned_category(session, category_id, person)
    member = next((p for p in category.people if p.id == person_id), None)
    if member is None:
        raise NotFoundError("CategoryPersonNotFound")
    if len(category.people) == 1:
        raise ValidationError("LastCategoryPerson", details={"category_id": category_id})
    category.people.remove(member)
    session.add(category)
    session.commit()
    return {"msg": "CategoryPersonDeleted", "category_id": category_id, "person_id": person_id}


# Tasks


@app.get("/api/task")
def list_tasks(
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    logger.info("%s lists tasks", person.name)
    roots = session.exec(select(Task).where(Task.parent_id.is_(None)).order_by(Task.id)).all()
    return {"tasks": materialize(roots, person.id, TASK_RULES, language)}


@app.get("/api/task/options")
def task_options(
    home_id: int,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    require_member(session, home_id, person)
    return {
        "taskcategories": materialize(
            category_roots(session, ScopeType.task), person.id, CATEGORY_RULES, language
        ),
        "taskstatus": get_statuses(session, ScopeType.task, language),
        "taskpriorities": get_priorities(session, language),
        "taskpeople": get_home_people(session, home_id, language),
        "taskrecurrences": [
            {"id": item, "name": i18n.translated_name("recurrence", item, language)}
            for item in RECURRENCES
        ],
        "taskroles": get_roles(session, ScopeType.task, language),
        "tasktype": [
            {"id": item.value, "name": i18n.translated_name("typetask", item.value, language)}
            for item in TaskType
        ],
    }


@app.post("/api/task/date")
def tasks_for_date(
    payload: TaskDateIn,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    day_start = datetime.combine(payload.start_date, time.min)
    statement = select(Task).where(
        Task.start_date >= day_start, Task.start_date < day_start + timedelta(days=1)
    )
    if payload.home_id:
        statement = statement.where(Task.home_id == payload.home_id)
    tasks = session.exec(statement.order_by(Task.start_date, Task.id)).all()
    return {"tasks": materialize(tasks, person.id, TASK_RULES, language)}


@app.post("/api/task/reminders")
def run_task_reminders(
    _: User = Depends(require_user), session: Session = Depends(get_session)
):
    messages = remind_upcoming_tasks(session)
    return {"queued": len(messages)}


@app.get("/api/task/{task_id}")
def show_task(
    task_id: int,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    task = get_task(session, task_id, person)
    return {"tasks": [task_record(task, person, language)]}


@app.post("/api/task/{task_id}/people")
def assign_task_people(
    task_id: int,
    payload: TaskPeopleIn,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    task = get_task(session, task_id, person)
    desired = desired_people(payload.people)
    if payload.people and not desired:
        raise ValidationError("NoValidPeople")
    with atomic(session):
        result = sync_task_people(session, task, desired)
        record_activity(
            session, "HomePersonTask", task.id, "sync", user.id, {"associations": result.plan.summary()}
        )
    session.refresh(task)
    return {
        "msg": "TaskPeopleSynced",
        "changes": result.plan.summary(),
        "task": task_record(task, person, language),
    }


@app.post("/api/task", status_code=201)
def create_task(
    payload: TaskIn,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    logger.info("%s creates task %r", user.name, payload.title)
    desired = desired_people(payload.people)
    if payload.people and not desired:
        raise ValidationError("NoValidPeople")
    ensure_parent(session, Task, None, payload.parent_id, person.id, TASK_RULES)
    ensure_lookups(
        session,
        priority_id=payload.priority_id,
        status_id=payload.status_id,
        category_id=payload.category_id,
        home_id=payload.home_id,
    )
    fields = payload.model_dump(exclude={"people"})
    with atomic(session):
        task = Task(**fields, person_id=person.id)
        session.add(task)
        session.flush()
        result = sync_task_people(session, task, desired)
        record_activity(
            session,
            "TaskWithAssociations",
            task.id,
            "create",
            user.id,
            {"task": fields, "associations": result.plan.summary()},
        )
    session.refresh(task)
    return {"task": task_record(task, person, language)}


@app.put("/api/task/{task_id}")
def update_task(
    task_id: int,
    payload: TaskUpdate,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    logger.info("%s updates task %s", user.name, task_id)
    task = get_task(session, task_id, person)
    changes = payload.model_dump(exclude_unset=True, exclude={"people"})
    cleared = [name for name in REQUIRED_TASK_FIELDS if name in changes and changes[name] is None]
    if cleared:
        raise ValidationError("FieldRequired", details={"fields": cleared})
    if "parent_id" in changes:
        ensure_parent(session, Task, task.id, changes["parent_id"], person.id, TASK_RULES)
    ensure_lookups(
        session,
        **{k: changes[k] for k in ("priority_id", "status_id", "category_id", "home_id") if k in changes},
    )
    desired = None
    if payload.people is not None:
        desired = desired_people(payload.people)
        if payload.people and not desired:
            raise ValidationError("NoValidPeople")
    with atomic(session):
        for field, value in changes.items():
            setattr(task, field, value)
        task.updated_at = datetime.utcnow()
        session.add(task)
        session.flush()
        associations = None
        if desired is not None:
            associations = sync_task_people(session, task, desired).plan.summary()
        record_activity(
            session,
            "Task",
            task.id,
            "update",
            user.id,
            {"updatedData": changes, "associations": associations},
        )
    session.refresh(task)
    return {"task": task_record(task, person, language)}


@app.delete("/api/task/{task_id}")
def delete_task(
    task_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    logger.info("%s deletes task %s", user.name, task_id)
    task = get_task(session, task_id, person)
    associations = session.exec(
        select(HomePersonTask).where(HomePersonTask.task_id == task.id)
    ).all()
    destinations = push_destinations(session, [a.person_id for a in associations])
    with atomic(session):
        messages = []
        for association in associations:
            destination = destinations.get(association.person_id)
            if destination is None:
                continue
            role_name = i18n.translated_name("roles", association.role.name, destination.language)
            messages.append(
                prepare(
                    session,
                    destination,
                    "notification.task.deleted",
                    {"title": task.title, "role": role_name},
                    {
                        "route": TASK_ROUTE,
                        "event": "deleted",
                        "task_id": task.id,
                        "home_id": association.home_id,
                        "role_id": association.role_id,
                        "roleName": role_name,
                    },
                    home_id=association.home_id,
                )
            )
        record_activity(session, "Task", task.id, "delete", user.id, {"title": task.title})
        session.delete(task)
        publish_after_commit(session, messages)
    return {"msg": "TaskDeleted"}


# Wishes


@app.get("/api/wish")
def list_wishes(
    home_id: Optional[int] = None,
    type: Optional[WishType] = None,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    statement = select(Wish).where(Wish.parent_id.is_(None))
    if home_id:
        statement = statement.where(Wish.home_id == home_id)
    if type is not None:
        statement = statement.where(Wish.type == type)
    roots = session.exec(statement.order_by(Wish.id)).all()
    return {"wishes": materialize(roots, person.id, WISH_RULES, language)}


@app.get("/api/wish/options")
def wish_options(language: str = Depends(get_language), session: Session = Depends(get_session)):
    return {
        "wishstatus": get_statuses(session, ScopeType.task, language),
        "wishpriorities": get_priorities(session, language),
        "wishtype": [
            {"id": item.value, "name": i18n.translated_name("wishes", item.value, language)}
            for item in WishType
        ],
    }


@app.get("/api/wish/{wish_id}")
def show_wish(
    wish_id: int,
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    wish = get_wish(session, wish_id, person)
    return {"wish": materialize([wish], person.id, WISH_RULES, language)[0]}


@app.post("/api/wish", status_code=201)
def create_wish(
    payload: WishIn,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    require_member(session, payload.home_id, person)
    ensure_wish_parent(session, None, payload.parent_id, person)
    ensure_lookups(session, priority_id=payload.priority_id, status_id=payload.status_id)
    with atomic(session):
        wish = Wish(**payload.model_dump(), person_id=person.id)
        session.add(wish)
        session.flush()
        record_activity(session, "Wish", wish.id, "create", user.id, payload.model_dump())
    session.refresh(wish)
    return {"wish": materialize([wish], person.id, WISH_RULES, language)[0]}


@app.put("/api/wish/{wish_id}")
def update_wish(
    wish_id: int,
    payload: WishUpdate,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    language: str = Depends(get_language),
    session: Session = Depends(get_session),
):
    wish = get_owned_wish(session, wish_id, person)
    changes = payload.model_dump(exclude_unset=True)
    if "parent_id" in changes:
        ensure_wish_parent(session, wish.id, changes["parent_id"], person)
    ensure_lookups(
        session, **{k: changes[k] for k in ("priority_id", "status_id") if k in changes}
    )
    with atomic(session):
        for field, value in changes.items():
            setattr(wish, field, value)
        session.add(wish)
        record_activity(session, "Wish", wish.id, "update", user.id, changes)
    session.refresh(wish)
    return {"wish": materialize([wish], person.id, WISH_RULES, language)[0]}


@app.delete("/api/wish/{wish_id}")
def delete_wish(
    wish_id: int,
    user: User = Depends(require_user),
    person: Person = Depends(require_person),
    session: Session = Depends(get_session),
):
    wish = get_owned_wish(session, wish_id, person)
    with atomic(session):
        record_activity(session, "Wish", wish.id, "delete", user.id, {"name": wish.name})
        session.delete(wish)
    return {"msg": "WishDeleted"}


# Notifications


@app.get("/api/notification")
def list_notifications(user: User = Depends(require_user), session: Session = Depends(get_session)):
    notifications = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    ).all()
    return {
        "notifications": [
            {
                "id": n.id,
                "title": n.title,
                "description": n.description,
                "route": n.route,
                "data": json.loads(n.data) if n.data else {},
                "homeId": n.home_id,
                "read": n.read,
                "createdAt": n.created_at.isoformat(),
            }
            for n in notifications
        ]
    }


@app.post("/api/notification/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
):
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != user.id:
        raise NotFoundError("NotificationNotFound")
    notification.read = True
    session.add(notification)
    session.commit()
    return {"msg": "NotificationRead", "id": notification.id}


@app.get("/health")
def health():
    return {"status": "ok"}
