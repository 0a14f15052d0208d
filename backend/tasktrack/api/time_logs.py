from __future__ import annotations

from fastapi import APIRouter, status
from sqlmodel import Session

from tasktrack.api.deps import ACTOR_DEP, BROADCASTER_DEP, NOTIFIER_DEP, SESSION_DEP
from tasktrack.integrations.broadcaster import EventBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.models.users import User
from tasktrack.schemas.time_logs import TimeLogRead, WorkHoursStatus
from tasktrack.services.time_tracker import TimeTracker

router = APIRouter(tags=["time"])


@router.post("/cards/{card_id}/time", response_model=TimeLogRead, status_code=status.HTTP_201_CREATED)
def start_timer(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> TimeLogRead:
    log = TimeTracker(session, broadcaster=broadcaster, notifier=notifier).start(card_id, actor)
    return TimeLogRead.model_validate(log)


@router.patch("/time-logs/{time_log_id}/stop", response_model=TimeLogRead)
def stop_timer(
    time_log_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
) -> TimeLogRead:
    log = TimeTracker(session, broadcaster=broadcaster).stop(time_log_id, actor)
    return TimeLogRead.model_validate(log)


@router.get("/cards/{card_id}/time", response_model=list[TimeLogRead])
def list_card_time(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> list[TimeLogRead]:
    return [TimeLogRead.model_validate(log) for log in TimeTracker(session).list_time_logs(card_id)]


@router.get("/time-logs/work-hours-status", response_model=WorkHoursStatus)
def work_hours_status(
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> WorkHoursStatus:
    return TimeTracker(session).work_hours_status(actor.id)
