"""Post-commit delivery of realtime events and notifications.

Engine operations record what should be published while inside their
transaction and call :meth:`Outbox.flush` only after the commit succeeded.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from tasktrack.core.logging import get_logger
from tasktrack.integrations.broadcaster import EventBroadcaster, stamp_payload
from tasktrack.integrations.notify import NotificationIntent, Notifier
from tasktrack.models.notifications import NotificationKind

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class OutboxEvent:
    channel: str
    event: str
    payload: dict[str, Any]


@dataclass
class Outbox:
    actor_id: int | None
    events: list[OutboxEvent] = field(default_factory=list)
    notifications: list[NotificationIntent] = field(default_factory=list)

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append(OutboxEvent(channel, event, payload))

    def notify(
        self,
        recipient_ids: Iterable[int],
        kind: NotificationKind,
        card_id: int | None,
        title: str,
        acting_user_name: str,
        detail: str | None = None,
        *,
        link: str | None = None,
    ) -> None:
        recipients = tuple(sorted({i for i in recipient_ids if i is not None}))
        if not recipients:
            return
        self.notifications.append(
            NotificationIntent(
                recipient_ids=recipients,
                kind=kind,
                card_id=card_id,
                title=title,
                acting_user_name=acting_user_name,
                detail=detail,
                link=link,
            )
        )

    def flush(self, broadcaster: EventBroadcaster | None, notifier: Notifier | None) -> None:
        if broadcaster is not None:
            for record in self.events:
                try:
                    broadcaster.publish(
                        record.channel,
                        record.event,
                        stamp_payload(record.payload, user_id=self.actor_id),
                    )
                except Exception:
                    logger.exception(
                        "outbox.publish_failed channel=%s event=%s", record.channel, record.event
                    )
        if notifier is not None:
            for intent in self.notifications:
                try:
                    notifier.deliver(intent)
                except Exception:
                    logger.exception("outbox.notify_failed kind=%s", intent.kind)
        self.events.clear()
        self.notifications.clear()
