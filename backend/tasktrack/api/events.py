"""SSE streams over the in-process live-state channels."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session
from sse_starlette.sse import EventSourceResponse

from tasktrack.api.deps import ACTOR_DEP, SESSION_DEP
from tasktrack.integrations.broadcaster import card_channel, local_broadcaster, project_channel
from tasktrack.models.users import User
from tasktrack.services.queries import require_card, require_project

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

router = APIRouter(tags=["events"])

POLL_INTERVAL_S = 1.0
SINCE_QUERY = Query(default=0, ge=0)


def _stream(request: Request, channel: str, since: int) -> EventSourceResponse:
    broadcaster = local_broadcaster()

    async def event_generator() -> AsyncIterator[dict[str, str]]:
        last_version = since
        while True:
            if await request.is_disconnected():
                break
            for entry in broadcaster.changes_since(channel, last_version):
                last_version = max(last_version, entry.version)
                yield {"event": entry.event, "id": str(entry.version), "data": json.dumps(entry.payload)}
            await asyncio.sleep(POLL_INTERVAL_S)

    return EventSourceResponse(event_generator(), ping=15)


def project_stream_channel(
    project_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> str:
    require_project(session, project_id)
    # The stream outlives the request session; release its connection now.
    session.close()
    return project_channel(project_id)


def card_stream_channel(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> str:
    require_card(session, card_id, lock=False)
    session.close()
    return card_channel(card_id)


PROJECT_CHANNEL_DEP = Depends(project_stream_channel)
CARD_CHANNEL_DEP = Depends(card_stream_channel)


@router.get("/projects/{project_id}/events/stream")
def stream_project_events(
    request: Request,
    since: int = SINCE_QUERY,
    channel: str = PROJECT_CHANNEL_DEP,
) -> EventSourceResponse:
    """Stream the latest snapshot per event name for one project."""
    return _stream(request, channel, since)


@router.get("/cards/{card_id}/events/stream")
def stream_card_events(
    request: Request,
    since: int = SINCE_QUERY,
    channel: str = CARD_CHANNEL_DEP,
) -> EventSourceResponse:
    return _stream(request, channel, since)
