"""Flatten self-referential categories, tasks and wishes into nested dicts.

``materialize`` walks already-loaded nodes and their ``children`` and keeps
only the nodes the viewer may see. Each entity type supplies a rules object
saying which nodes are shared, who a node belongs to and which attributes to
emit. Nothing here writes to the database.
"""
import logging
from typing import Any, Iterable, Optional

from sqlmodel import Session

from . import i18n
from .exceptions import MissingReferenceError, ValidationError
from .models import SYSTEM_STATE, WishType

logger = logging.getLogger(__name__)


class TreeRules:
    translation_prefix: Optional[str] = None

    def is_global(self, node) -> bool:
        return False

    def person_ids(self, node) -> Iterable[int]:
        return ()

    def is_system(self, node) -> bool:
        return False

    def attributes(self, node, language: str) -> dict:
        raise NotImplementedError

    def visible_to(self, node, viewer_id: Optional[int]) -> bool:
        if self.is_global(node):
            return True
        return viewer_id is not None and viewer_id in set(self.person_ids(node))

    def name_of(self, node, raw: str, language: str) -> str:
        if self.translation_prefix and self.is_system(node):
            return i18n.translated_name(self.translation_prefix, raw, language)
        return raw

    def description_of(self, node, raw_name: str, raw: Optional[str], language: str) -> Optional[str]:
        if self.translation_prefix and self.is_system(node):
            return i18n.translated_description(self.translation_prefix, raw_name, raw, language)
        return raw


class CategoryRules(TreeRules):
    translation_prefix = "category"

    def is_global(self, node) -> bool:
        return node.state == SYSTEM_STATE

    is_system = is_global

    def person_ids(self, node) -> Iterable[int]:
        return [person.id for person in node.people]

    def attributes(self, node, language: str) -> dict:
        return {
            "id": node.id,
            "name": self.name_of(node, node.name, language),
            "description": self.description_of(node, node.name, node.description, language),
            "color": node.color,
            "icon": node.icon,
            "type": node.type,
            "state": node.state,
            "parent_id": node.parent_id,
        }


def category_label(category, language: str) -> Optional[str]:
    if category is None:
        return None
    return CATEGORY_RULES.name_of(category, category.name, language)


def task_people(task, language: str) -> list[dict]:
    people = []
    for association in task.associations:
        role = association.role
        people.append(
            {
                "id": association.person_id,
                "name": association.person.name if association.person else None,
                "image": association.person.image if association.person else None,
                "homeId": association.home_id,
                "roleId": association.role_id,
                "roleName": i18n.translated_name("roles", role.name, language) if role else None,
            }
        )
    return people


class TaskRules(TreeRules):
    def person_ids(self, node) -> Iterable[int]:
        ids = [association.person_id for association in node.associations]
        if node.person_id is not None:
            ids.append(node.person_id)
        return ids

    def attributes(self, node, language: str) -> dict:
        return {
            "id": node.id,
            "title": node.title,
            "description": node.description,
            "startDate": node.start_date.isoformat() if node.start_date else None,
            "endDate": node.end_date.isoformat() if node.end_date else None,
            "type": node.type,
            "priorityId": node.priority_id,
            "colorPriority": node.priority.color if node.priority else None,
            "statusId": node.status_id,
            "categoryId": node.category_id,
            "nameCategory": category_label(node.category, language),
            "iconCategory": node.category.icon if node.category else None,
            "recurrence": node.recurrence,
            "estimatedTime": node.estimated_time,
            "comments": node.comments,
            "geoLocation": node.geo_location,
            "parentId": node.parent_id,
            "personId": node.person_id,
            "homeId": node.home_id,
            "people": task_people(node, language),
        }


class WishRules(TreeRules):
    """Household wishes are shared with the members of their home."""

    def person_ids(self, node) -> Iterable[int]:
        ids = [node.person_id]
        if node.type == WishType.home and node.home is not None:
            ids.extend(member.person_id for member in node.home.members)
        return ids

    def attributes(self, node, language: str) -> dict:
        return {
            "id": node.id,
            "name": node.name,
            "description": node.description,
            "type": node.type,
            "typeName": i18n.translated_name("wishes", node.type.value, language),
            "startDate": node.start_date.isoformat() if node.start_date else None,
            "endDate": node.end_date.isoformat() if node.end_date else None,
            "location": node.location,
            "priorityId": node.priority_id,
            "colorPriority": node.priority.color if node.priority else None,
            "statusId": node.status_id,
            "personId": node.person_id,
            "homeId": node.home_id,
            "parentId": node.parent_id,
        }


CATEGORY_RULES = CategoryRules()
TASK_RULES = TaskRules()
WISH_RULES = WishRules()


def materialize(
    nodes: Iterable[Any],
    viewer_id: Optional[int],
    rules: TreeRules,
    language: Optional[str] = None,
    _path: frozenset = frozenset(),
) -> list[dict]:
    language = i18n.normalize_language(language)
    result = []
    for node in nodes:
        if node.id in _path:
            logger.warning("%s %s is its own ancestor; skipped", type(node).__name__, node.id)
            continue
        if not rules.visible_to(node, viewer_id):
            continue
        record = rules.attributes(node, language)
        record["children"] = materialize(
            node.children or [], viewer_id, rules, language, _path | {node.id}
        )
        result.append(record)
    return result


def flatten_ids(tree: list[dict]) -> list[int]:
    ids = []
    for record in tree:
        ids.append(record["id"])
        ids.extend(flatten_ids(record["children"]))
    return ids


def subtree_ids(node) -> list[int]:
    ids = []
    pending = [node]
    while pending:
        current = pending.pop()
        if current.id in ids:
            continue
        ids.append(current.id)
        pending.extend(current.children or [])
    return ids


def ensure_parent(
    session: Session,
    model,
    node_id: Optional[int],
    parent_id: Optional[int],
    viewer_id: Optional[int] = None,
    rules: Optional[TreeRules] = None,
):
    """Reject a parent that is missing or would make node_id its own ancestor.

    With ``rules``, a parent the viewer may not see is reported as missing.
    """
    if parent_id is None:
        return None
    parent = session.get(model, parent_id)
    if parent is None or (rules is not None and not rules.visible_to(parent, viewer_id)):
        raise MissingReferenceError({"parent_id": [parent_id]})
    seen = set()
    current = parent
    while current is not None:
        if node_id is not None and current.id == node_id:
            raise ValidationError(
                "ParentCycle", details={"id": node_id, "parent_id": parent_id}
            )
        if current.id in seen:
            break
        seen.add(current.id)
        current = session.get(model, current.parent_id) if current.parent_id else None
    return parent
