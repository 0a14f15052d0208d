from __future__ import annotations

from sqlmodel import Session

from tasktrack.integrations.broadcaster import EventBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.services.outbox import Outbox


class EngineService:
    def __init__(
        self,
        session: Session,
        *,
        broadcaster: EventBroadcaster | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.session = session
        self.broadcaster = broadcaster
        self.notifier = notifier

    def _deliver(self, outbox: Outbox) -> None:
        outbox.flush(self.broadcaster, self.notifier)
