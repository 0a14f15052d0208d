from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlmodel import Session

from tasktrack.core.logging import get_logger
from tasktrack.core.time import isoformat
from tasktrack.db.session import atomic
from tasktrack.integrations.broadcaster import EventBroadcaster, stamp_payload, user_channel
from tasktrack.integrations.push import PushGatewayClient
from tasktrack.models.notifications import Notification, NotificationKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationIntent:
    recipient_ids: tuple[int, ...]
    kind: NotificationKind
    card_id: int | None
    title: str  # card title, or project name for invites
    acting_user_name: str
    detail: str | None = None
    link: str | None = None


def build_message(intent: NotificationIntent) -> tuple[str, str]:
    """Return (heading, message) for a notification intent."""
    actor = intent.acting_user_name or "Someone"
    title = intent.title
    kind = intent.kind

    if kind == NotificationKind.CARD_ASSIGNED:
        return "New Card Assigned", f'{actor} assigned you to "{title}"'

    if kind == NotificationKind.CARD_UPDATED:
        changes = f": {intent.detail}" if intent.detail else ""
        return "Card Updated", f'{actor} updated "{title}"{changes}'

    if kind == NotificationKind.CARD_COMPLETED:
        return "Card Completed", f'{actor} completed "{title}"'

    if kind == NotificationKind.OVERTIME_REQUEST:
        overdue = f" ({intent.detail})" if intent.detail else ""
        return "Overtime Approval Request", f'{actor} asked to keep working on overdue card "{title}"{overdue}'

    if kind in (NotificationKind.OVERTIME_APPROVED, NotificationKind.OVERTIME_REJECTED):
        verb = "approved" if kind == NotificationKind.OVERTIME_APPROVED else "rejected"
        notes = f" Notes: {intent.detail}" if intent.detail else ""
        return (
            f"Overtime Request {verb.capitalize()}",
            f'Your overtime request for "{title}" has been {verb} by {actor}.{notes}',
        )

    if kind == NotificationKind.PROJECT_INVITE:
        return "Project Invitation", f'{actor} added you to project "{title}"'

    return "Update", f'Update on "{title}"'


def build_link(intent: NotificationIntent) -> str:
    if intent.link:
        return intent.link
    if intent.card_id is not None:
        return f"/cards/{intent.card_id}"
    return "/notifications"


def _serialize(row: Notification) -> dict[str, Any]:
    return {
        "id": row.id,
        "type": row.type,
        "title": row.title,
        "message": row.message,
        "link": row.link,
        "isRead": row.is_read,
        "createdAt": isoformat(row.created_at),
    }


class Notifier:
    """Persists notifications, then delivers them to user channels and the push gateway.

    Delivery is best effort: a failed publish or push is logged and skipped.
    """

    def __init__(
        self,
        session: Session,
        broadcaster: EventBroadcaster,
        push: PushGatewayClient | None = None,
    ) -> None:
        self.session = session
        self.broadcaster = broadcaster
        self.push = push

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
    ) -> list[Notification]:
        intent = NotificationIntent(
            recipient_ids=tuple(sorted({i for i in recipient_ids if i is not None})),
            kind=kind,
            card_id=card_id,
            title=title,
            acting_user_name=acting_user_name,
            detail=detail,
            link=link,
        )
        return self.deliver(intent)

    def deliver(self, intent: NotificationIntent) -> list[Notification]:
        if not intent.recipient_ids:
            return []

        heading, message = build_message(intent)
        link = build_link(intent)
        rows = [
            Notification(user_id=uid, type=intent.kind, title=heading, message=message, link=link)
            for uid in intent.recipient_ids
        ]
        with atomic(self.session):
            self.session.add_all(rows)
            self.session.flush()

        for row in rows:
            try:
                self.broadcaster.append(
                    user_channel(row.user_id),
                    "notification:new",
                    stamp_payload({"notification": _serialize(row)}, user_id=None),
                )
            except Exception:
                logger.exception("notify.publish_failed user_id=%s kind=%s", row.user_id, row.type)

            if self.push is None:
                continue
            try:
                self.push.send(
                    row.user_id,
                    title=heading,
                    body=message,
                    link=link,
                    data={"notificationId": str(row.id), "type": str(row.type)},
                )
            except Exception:
                # best-effort; never break engine writes
                logger.exception("notify.push_failed user_id=%s kind=%s", row.user_id, row.type)

        logger.info("notify.sent kind=%s recipients=%s", intent.kind, len(rows))
        return rows
