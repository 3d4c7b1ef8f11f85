import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from tracker.models import get_utc_now
from tracker.notifications.broker import (
    BROADCAST_DESTINATION,
    MessageBroker,
    project_destination,
    user_destination,
)
from tracker.schemas import ChannelMessage, NotificationMessage

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class TargetKind(str, Enum):
    USER = "USER"
    PROJECT_TOPIC = "PROJECT_TOPIC"
    BROADCAST = "BROADCAST"


@dataclass(frozen=True)
class NotificationEvent:
    target_kind: TargetKind
    target: str | int | None
    type: str
    action: str | None
    payload: Any
    produced_at: datetime = field(default_factory=get_utc_now)

    @property
    def destination(self) -> str:
        if self.target_kind is TargetKind.USER:
            return user_destination(self.target)
        if self.target_kind is TargetKind.PROJECT_TOPIC:
            return project_destination(self.target)
        return BROADCAST_DESTINATION


def _jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    return payload


class NotificationDispatcher:
    """
    Turns domain events into messages on the broker.

    Every method is fire-and-forget: delivery problems are logged and never
    reach the mutation that triggered them.
    """

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    def notify_user(self, email: str, notification: NotificationMessage) -> None:
        logger.info("Sending notification to user %s: %s", email, notification.title)
        self._deliver(
            NotificationEvent(
                target_kind=TargetKind.USER,
                target=email,
                type="NOTIFICATION",
                action=notification.type.value,
                payload=_jsonable(notification),
                produced_at=notification.timestamp,
            )
        )

    def notify_project_topic(
        self, project_id: int, type: str, action: str, payload: Any, actor_id: str | None
    ) -> None:
        message = ChannelMessage(
            type=type, action=action, payload=_jsonable(payload), user_id=actor_id, project_id=project_id
        )
        logger.info(
            "Sending project message to %s: type=%s action=%s",
            project_destination(project_id),
            type,
            action,
        )
        self._deliver(
            NotificationEvent(
                target_kind=TargetKind.PROJECT_TOPIC,
                target=project_id,
                type=type,
                action=action,
                payload=_jsonable(message),
                produced_at=message.timestamp,
            )
        )

    def send_task_update(self, project_id: int, action: str, task: Any, actor_id: str | None) -> None:
        self.notify_project_topic(project_id, "TASK", action, task, actor_id)

    def send_project_update(self, project_id: int, action: str, project: Any, actor_id: str | None) -> None:
        self.notify_project_topic(project_id, "PROJECT", action, project, actor_id)

    def broadcast(self, type: str, payload: Any) -> None:
        message = ChannelMessage(type=type, action="BROADCAST", payload=_jsonable(payload), user_id="SYSTEM")
        logger.info("Broadcasting message: type=%s", type)
        self._deliver(
            NotificationEvent(
                target_kind=TargetKind.BROADCAST,
                target=None,
                type=type,
                action="BROADCAST",
                payload=_jsonable(message),
                produced_at=message.timestamp,
            )
        )

    def _deliver(self, event: NotificationEvent) -> None:
        try:
            self.broker.send(event.destination, event.payload)
        except Exception:
            logger.exception("Notification delivery failed: destination=%s type=%s", event.destination, event.type)
