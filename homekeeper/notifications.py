"""Push notifications.

Messages are built and persisted as ``Notification`` rows inside the caller's
transaction, then queued on the session with ``publish_after_commit``. The
queue is handed to the dispatcher by an ``after_commit`` session event and is
discarded on rollback, so nothing is ever pushed for writes that did not
happen. Delivery failures are logged and reported, never raised.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Optional, Protocol

import httpx
from sqlalchemy import event
from sqlmodel import Session, select

from . import i18n
from .config import PUSH_GATEWAY_KEY, PUSH_GATEWAY_URL, PUSH_TIMEOUT_SECONDS
from .exceptions import NotificationDispatchError
from .models import Configuration, Notification, Person, User

logger = logging.getLogger(__name__)

PENDING_KEY = "homekeeper.pending_push"
REPORT_KEY = "homekeeper.last_dispatch"


@dataclass
class PushMessage:
    destination: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    def as_payload(self) -> dict:
        return {
            "token": self.destination,
            "notification": {"title": self.title, "body": self.body},
            "data": self.data,
        }


@dataclass
class DispatchResult:
    message: PushMessage
    success: bool
    error: Optional[str] = None


@dataclass
class DispatchReport:
    results: list[DispatchResult] = field(default_factory=list)
    errors: list[NotificationDispatchError] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent


class NotificationDispatcher(Protocol):
    def send_batch(self, messages: list[PushMessage]) -> list[DispatchResult]:
        ...

    def close(self):
        ...


class LogDispatcher:
    """Used when no push gateway is configured."""

    def send_batch(self, messages: list[PushMessage]) -> list[DispatchResult]:
        for message in messages:
            logger.info("push to %s: %s", message.destination, message.title)
        return [DispatchResult(message, True) for message in messages]

    def close(self):
        pass


class HttpPushDispatcher:
    """Posts a batch of messages to a push gateway in one request.

    The gateway answers ``{"results": [{"success": bool, "error": str}, ...]}``
    in the order the messages were sent. A transport error fails the whole
    batch.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = PUSH_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.api_key = api_key
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def close(self):
        # a client passed in belongs to the caller
        if self._owns_client:
            self.client.close()

    def send_batch(self, messages: list[PushMessage]) -> list[DispatchResult]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = self.client.post(
                self.url,
                json={"messages": [m.as_payload() for m in messages]},
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            return [DispatchResult(m, False, str(exc)) for m in messages]
        try:
            results = response.json().get("results")
        except ValueError:
            results = None
        if not isinstance(results, list):
            return [DispatchResult(m, True) for m in messages]
        outcome = []
        for index, message in enumerate(messages):
            item = results[index] if index < len(results) else {}
            success = bool(item.get("success", True))
            outcome.append(DispatchResult(message, success, None if success else item.get("error")))
        return outcome


def _default_dispatcher() -> NotificationDispatcher:
    if PUSH_GATEWAY_URL:
        return HttpPushDispatcher(PUSH_GATEWAY_URL, PUSH_GATEWAY_KEY)
    return LogDispatcher()


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = _default_dispatcher()
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]):
    global _dispatcher
    _dispatcher = dispatcher


def close_dispatcher():
    global _dispatcher
    if _dispatcher is not None:
        _dispatcher.close()
        _dispatcher = None


def dispatch(
    messages: list[PushMessage], dispatcher: Optional[NotificationDispatcher] = None
) -> DispatchReport:
    report = DispatchReport()
    if not messages:
        return report
    dispatcher = dispatcher or get_dispatcher()
    try:
        report.results = dispatcher.send_batch(messages)
    except Exception as exc:
        logger.exception("push batch of %d failed", len(messages))
        report.results = [DispatchResult(m, False, str(exc)) for m in messages]
    for result in report.results:
        if not result.success:
            error = NotificationDispatchError(
                result.error or "delivery failed", result.message.destination
            )
            report.errors.append(error)
            logger.warning("push to %s failed: %s", error.destination, error.message)
    logger.info("push batch: %d sent, %d failed", report.sent, report.failed)
    return report


def publish_after_commit(session: Session, messages: Iterable[PushMessage]):
    session.info.setdefault(PENDING_KEY, []).extend(messages)


@event.listens_for(Session, "after_commit")
def _dispatch_pending(session):
    messages = session.info.pop(PENDING_KEY, None)
    if messages:
        session.info[REPORT_KEY] = dispatch(messages)


@event.listens_for(Session, "after_rollback")
def _discard_pending(session):
    discarded = session.info.pop(PENDING_KEY, None)
    if discarded:
        logger.info("discarded %d queued push messages after rollback", len(discarded))


class Destination(NamedTuple):
    person_id: int
    user_id: int
    token: str
    language: str


def push_destinations(session: Session, person_ids: Iterable[int]) -> dict[int, Destination]:
    ids = sorted(set(person_ids))
    if not ids:
        return {}
    rows = session.exec(
        select(Person.id, User.id, Configuration.notification_token, Configuration.language)
        .join(User, User.id == Person.user_id)
        .join(Configuration, Configuration.user_id == User.id)
        .where(Person.id.in_(ids), Configuration.notification_token.is_not(None))
    ).all()
    return {
        person_id: Destination(person_id, user_id, token, language)
        for person_id, user_id, token, language in rows
        if token
    }


def prepare(
    session: Session,
    destination: Destination,
    key: str,
    values: dict,
    data: dict,
    home_id: Optional[int] = None,
) -> PushMessage:
    """Build a localized message for destination and persist its Notification row."""
    title = i18n.message(f"{key}.title", destination.language, **values)
    body = i18n.message(f"{key}.body", destination.language, **values)
    data = {k: "" if v is None else str(v) for k, v in data.items()}
    session.add(
        Notification(
            user_id=destination.user_id,
            home_id=home_id,
            title=title,
            description=body,
            route=data.get("route"),
            data=json.dumps(data),
            destination=destination.token,
        )
    )
    return PushMessage(destination.token, title, body, data)
