from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from tasktrack.db.session import get_session
from tasktrack.integrations.broadcaster import EventBroadcaster, build_broadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.integrations.push import PushGatewayClient
from tasktrack.models.users import User


def get_actor(
    x_user_id: int | None = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    """Resolve the caller from the ``X-User-Id`` header set by the auth proxy."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    user = session.get(User, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def get_broadcaster() -> EventBroadcaster:
    return build_broadcaster()


def get_notifier(
    session: Session = Depends(get_session),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> Notifier:
    return Notifier(session, broadcaster, PushGatewayClient.from_settings())


SESSION_DEP = Depends(get_session)
ACTOR_DEP = Depends(get_actor)
BROADCASTER_DEP = Depends(get_broadcaster)
NOTIFIER_DEP = Depends(get_notifier)
