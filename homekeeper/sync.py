"""Keep a task's (person, home, role) associations in line with a desired set.

``plan_sync`` is the pure diff: associations are identified by
``AssociationKey(person_id, home_id)``; a key only in the desired set is
added, a key only in the current set is deleted, and a key in both with a
different role is updated in place. ``sync_task_people`` validates the
references, applies the plan inside the caller's transaction (deletes, then
role updates, then inserts, flushing between groups so a role change never
trips the unique constraint) and queues one push message per affected person
that has a destination. The messages leave only after the transaction
commits.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, NamedTuple, Optional

from sqlmodel import Session, select

from . import i18n
from .exceptions import MissingReferenceError, ValidationError
from .models import Home, HomePersonTask, Person, Role, Task
from .notifications import PushMessage, prepare, publish_after_commit, push_destinations

logger = logging.getLogger(__name__)

TASK_ROUTE = "/getTask"


class AssociationKey(NamedTuple):
    person_id: int
    home_id: int


@dataclass(frozen=True)
class DesiredAssociation:
    person_id: int
    role_id: int
    home_id: int

    @property
    def key(self) -> AssociationKey:
        return AssociationKey(self.person_id, self.home_id)

    @classmethod
    def from_mapping(cls, raw: Mapping) -> "DesiredAssociation":
        missing = [name for name in ("person_id", "role_id", "home_id") if raw.get(name) in (None, "")]
        if missing:
            raise ValidationError("InvalidAssociation", details={"missing": missing, "entry": dict(raw)})
        try:
            return cls(int(raw["person_id"]), int(raw["role_id"]), int(raw["home_id"]))
        except (TypeError, ValueError) as exc:
            raise ValidationError("InvalidAssociation", details={"entry": dict(raw)}) from exc


@dataclass(frozen=True)
class RoleChange:
    association_id: int
    person_id: int
    home_id: int
    old_role_id: int
    new_role_id: int


@dataclass(frozen=True)
class Removal:
    association_id: int
    person_id: int
    home_id: int
    role_id: int


@dataclass
class SyncPlan:
    subject_id: int
    to_add: list[DesiredAssociation] = field(default_factory=list)
    to_update: list[RoleChange] = field(default_factory=list)
    to_delete: list[Removal] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_update or self.to_delete)

    def summary(self) -> Optional[dict]:
        if self.is_empty:
            return None
        return {
            "added": [
                {"person_id": a.person_id, "role_id": a.role_id, "home_id": a.home_id}
                for a in self.to_add
            ],
            "updated": [{"id": u.association_id, "role_id": u.new_role_id} for u in self.to_update],
            "deleted": [d.association_id for d in self.to_delete],
        }


@dataclass
class SyncResult:
    plan: SyncPlan
    added: list[HomePersonTask] = field(default_factory=list)
    notifications: list[PushMessage] = field(default_factory=list)


def key_of(association) -> AssociationKey:
    return AssociationKey(association.person_id, association.home_id)


def plan_sync(
    subject_id: int,
    desired: Iterable[DesiredAssociation],
    current: Iterable[HomePersonTask],
) -> SyncPlan:
    desired_map: dict[AssociationKey, DesiredAssociation] = {}
    for entry in desired:
        desired_map[entry.key] = entry
    current_map: dict[AssociationKey, HomePersonTask] = {}
    for association in current:
        current_map[key_of(association)] = association

    plan = SyncPlan(subject_id)
    for key, entry in desired_map.items():
        existing = current_map.get(key)
        if existing is None:
            plan.to_add.append(entry)
        elif existing.role_id != entry.role_id:
            plan.to_update.append(
                RoleChange(existing.id, key.person_id, key.home_id, existing.role_id, entry.role_id)
            )
    for key, existing in current_map.items():
        if key not in desired_map:
            plan.to_delete.append(
                Removal(existing.id, key.person_id, key.home_id, existing.role_id)
            )
    return plan


def missing_references(session: Session, desired: Iterable[DesiredAssociation]) -> dict[str, list[int]]:
    desired = list(desired)
    missing = {}
    for name, model, ids in (
        ("person_id", Person, {d.person_id for d in desired}),
        ("role_id", Role, {d.role_id for d in desired}),
        ("home_id", Home, {d.home_id for d in desired}),
    ):
        if not ids:
            missing[name] = []
            continue
        found = set(session.exec(select(model.id).where(model.id.in_(ids))).all())
        missing[name] = sorted(ids - found)
    return missing


def ensure_references(session: Session, desired: Iterable[DesiredAssociation]):
    missing = missing_references(session, desired)
    if any(missing.values()):
        logger.error("missing association references: %s", missing)
        raise MissingReferenceError(missing)


def current_associations(session: Session, task_id: int) -> list[HomePersonTask]:
    return session.exec(
        select(HomePersonTask).where(HomePersonTask.task_id == task_id).order_by(HomePersonTask.id)
    ).all()


def apply_plan(session: Session, plan: SyncPlan) -> list[HomePersonTask]:
    if plan.to_delete:
        for removal in plan.to_delete:
            association = session.get(HomePersonTask, removal.association_id)
            if association is not None:
                session.delete(association)
        session.flush()
    if plan.to_update:
        now = datetime.utcnow()
        for change in plan.to_update:
            association = session.get(HomePersonTask, change.association_id)
            association.role_id = change.new_role_id
            association.updated_at = now
            session.add(association)
        session.flush()
    added = []
    if plan.to_add:
        for entry in plan.to_add:
            association = HomePersonTask(
                task_id=plan.subject_id,
                person_id=entry.person_id,
                home_id=entry.home_id,
                role_id=entry.role_id,
            )
            session.add(association)
            added.append(association)
        session.flush()
    return added


def _roles_by_id(session: Session, role_ids: Iterable[int]) -> dict[int, Role]:
    ids = set(role_ids)
    if not ids:
        return {}
    return {role.id: role for role in session.exec(select(Role).where(Role.id.in_(ids))).all()}


def build_notifications(session: Session, task: Task, plan: SyncPlan) -> list[PushMessage]:
    events = (
        [("assigned", a.person_id, a.home_id, a.role_id) for a in plan.to_add]
        + [("role_changed", u.person_id, u.home_id, u.new_role_id) for u in plan.to_update]
        + [("removed", d.person_id, d.home_id, d.role_id) for d in plan.to_delete]
    )
    destinations = push_destinations(session, [person_id for _, person_id, _, _ in events])
    roles = _roles_by_id(
        session, [role_id for _, person_id, _, role_id in events if person_id in destinations]
    )
    messages = []
    for kind, person_id, home_id, role_id in events:
        destination = destinations.get(person_id)
        if destination is None:
            continue
        role = roles.get(role_id)
        if role is not None:
            role_name = i18n.translated_name("roles", role.name, destination.language)
        else:
            role_name = i18n.message("role.none", destination.language)
        messages.append(
            prepare(
                session,
                destination,
                f"notification.task.{kind}",
                {"title": task.title, "role": role_name},
                {
                    "route": TASK_ROUTE,
                    "event": kind,
                    "task_id": task.id,
                    "home_id": home_id,
                    "role_id": role_id,
                    "roleName": role_name,
                },
                home_id=home_id,
            )
        )
    return messages


def sync_task_people(
    session: Session, task: Task, desired: Iterable[DesiredAssociation]
) -> SyncResult:
    """Make the task's associations equal to desired.

    Must run inside an open unit of work (see ``homekeeper.db.atomic``); this
    function flushes but never commits. Raises MissingReferenceError before
    writing anything when a person, role or home does not exist.
    """
    desired = list(desired)
    ensure_references(session, desired)
    plan = plan_sync(task.id, desired, current_associations(session, task.id))
    if plan.is_empty:
        return SyncResult(plan)
    added = apply_plan(session, plan)
    messages = build_notifications(session, task, plan)
    publish_after_commit(session, messages)
    logger.info(
        "task %s associations: %d added, %d updated, %d deleted",
        task.id,
        len(plan.to_add),
        len(plan.to_update),
        len(plan.to_delete),
    )
    return SyncResult(plan, added, messages)
