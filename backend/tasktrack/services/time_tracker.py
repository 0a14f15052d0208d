"""Time tracking: one running timer per user, coupled to claiming the card."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlmodel import col, select

from tasktrack.core.config import settings
from tasktrack.core.errors import (
    ACTIVE_CARD_IN_PROJECT,
    ACTIVE_TIMER_EXISTS,
    ALREADY_STOPPED,
    ASSIGNED_CARD_IN_PROJECT,
    CARD_ALREADY_DONE,
    NOT_A_PROJECT_MEMBER,
    NOT_OWNER,
    TIME_LOG_NOT_FOUND,
    WORK_HOURS_EXCEEDED,
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    StateError,
    card_not_found,
)
from tasktrack.core.logging import get_logger
from tasktrack.core.time import utcnow
from tasktrack.db import crud
from tasktrack.db.session import atomic
from tasktrack.integrations.broadcaster import card_channel, project_channel
from tasktrack.models.cards import Card, CardStatus
from tasktrack.models.time_logs import TimeLog
from tasktrack.models.users import User
from tasktrack.schemas.time_logs import WorkHoursStatus
from tasktrack.services.assignment_registry import apply_assignee, lock_active_assignments
from tasktrack.services.base import EngineService
from tasktrack.services.outbox import Outbox
from tasktrack.services.queries import (
    card_payload,
    count_cards,
    get_member,
    lock_user,
    open_time_logs,
    project_cards,
    project_of,
    require_card,
    time_log_payload,
)

logger = get_logger(__name__)

CLAIM_REASON = "Claimed by starting a timer"


def elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start).total_seconds()))


def stored_duration(seconds: int) -> int:
    """Value written to ``TimeLog.duration_minutes`` in the configured unit."""
    if settings.time_log_duration_unit == "minutes":
        return seconds // 60
    return seconds


def stored_duration_to_minutes(value: int | None) -> float:
    if value is None:
        return 0.0
    if settings.time_log_duration_unit == "minutes":
        return float(value)
    return value / 60


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class TimeTracker(EngineService):
    def start(self, card_id: int, user: User, *, now: datetime | None = None) -> TimeLog:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=user.id)

        try:
            with atomic(session):
                card = crud.get_for_update(session, Card, card_id)
                lock_user(session, user.id)

                running = open_time_logs(session, user.id)
                if running:
                    raise ConflictError(
                        "You already have an active timer. Stop it first.",
                        code=ACTIVE_TIMER_EXISTS,
                        detail={"time_log_id": running[0].id, "card_id": running[0].card_id},
                    )
                if card is None:
                    raise card_not_found(card_id)
                if card.status == CardStatus.DONE:
                    raise StateError(
                        "Cannot start a timer on a completed card",
                        code=CARD_ALREADY_DONE,
                        detail={"card_id": card.id},
                    )
                project = project_of(session, card)
                member = get_member(session, project.id, user.id)
                if member is None:
                    raise AuthorizationError(
                        "You must be a member of this project to start a timer",
                        code=NOT_A_PROJECT_MEMBER,
                        detail={"project_id": project.id},
                    )
                if settings.enable_work_hours_limit:
                    worked = self._minutes_worked(user.id, now) / 60
                    if worked >= settings.max_work_hours_per_day:
                        raise ConflictError(
                            f"Maximum work hours reached ({settings.max_work_hours_per_day}h)",
                            code=WORK_HOURS_EXCEEDED,
                            detail={"hours_worked": round(worked, 2)},
                        )

                in_progress = (
                    project_cards(project.id)
                    .where(Card.assignee_id == user.id)
                    .where(Card.status == CardStatus.IN_PROGRESS)
                    .where(Card.id != card.id)
                )
                if count_cards(session, in_progress) > 0:
                    raise ConflictError(
                        "You already have an active card in this project. Stop it before starting a new one.",
                        code=ACTIVE_CARD_IN_PROJECT,
                        detail={"project_id": project.id},
                    )
                claiming = card.assignee_id != user.id
                if claiming:
                    assigned = project_cards(project.id).where(Card.assignee_id == user.id).where(Card.id != card.id)
                    if count_cards(session, assigned) > 0:
                        raise ConflictError(
                            "You already have an assigned card in this project. Complete it before starting a new one.",
                            code=ASSIGNED_CARD_IN_PROJECT,
                            detail={"project_id": project.id},
                        )

                log = TimeLog(card_id=card.id, user_id=user.id, start_time=now)
                session.add(log)
                if claiming:
                    lock_active_assignments(session, card.id)
                    apply_assignee(
                        session,
                        card,
                        assignee_id=user.id,
                        assigned_by=user.id,
                        project_member_id=member.id,
                        reason=CLAIM_REASON,
                        now=now,
                    )
                card.status = CardStatus.IN_PROGRESS
                card.updated_at = now
                session.add(card)
                session.flush()

                outbox.publish(card_channel(card.id), "timelog:started", {"timeLog": time_log_payload(log)})
                outbox.publish(
                    project_channel(project.id),
                    "card:updated",
                    {"card": card_payload(card), "boardId": card.board_id},
                )
        except DomainError as exc:
            logger.info("timelog.start.rejected card_id=%s user_id=%s code=%s", card_id, user.id, exc.code)
            raise

        logger.info("timelog.start.committed time_log_id=%s card_id=%s user_id=%s", log.id, card.id, user.id)
        self._deliver(outbox)
        return log

    def stop(self, time_log_id: int, user: User, *, now: datetime | None = None) -> TimeLog:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=user.id)

        with atomic(session):
            log = crud.get_for_update(session, TimeLog, time_log_id)
            if log is None:
                raise NotFoundError(
                    f"Time log {time_log_id} not found",
                    code=TIME_LOG_NOT_FOUND,
                    detail={"time_log_id": time_log_id},
                )
            if log.user_id != user.id:
                raise AuthorizationError("You can only stop your own timer", code=NOT_OWNER)
            if log.end_time is not None:
                raise StateError(
                    "This timer has already been stopped",
                    code=ALREADY_STOPPED,
                    detail={"time_log_id": log.id},
                )
            log.end_time = now
            log.duration_minutes = stored_duration(elapsed_seconds(log.start_time, now))
            session.add(log)
            session.flush()
            outbox.publish(card_channel(log.card_id), "timelog:stopped", {"timeLog": time_log_payload(log)})

        logger.info("timelog.stop.committed time_log_id=%s duration=%s", log.id, log.duration_minutes)
        self._deliver(outbox)
        return log

    def list_time_logs(self, card_id: int) -> list[TimeLog]:
        require_card(self.session, card_id, lock=False)
        return list(
            self.session.exec(
                select(TimeLog).where(TimeLog.card_id == card_id).order_by(col(TimeLog.start_time).desc())
            ).all()
        )

    def _minutes_worked(self, user_id: int, now: datetime) -> float:
        """Minutes worked today, counting only the part of each log after midnight."""
        day_start, day_end = _day_bounds(now)
        logs = self.session.exec(
            select(TimeLog)
            .where(TimeLog.user_id == user_id)
            .where(TimeLog.start_time < day_end)
            .where(or_(col(TimeLog.end_time).is_(None), col(TimeLog.end_time) > day_start))
        ).all()
        total = 0.0
        for log in logs:
            if log.end_time is not None and log.start_time >= day_start:
                total += stored_duration_to_minutes(log.duration_minutes)
                continue
            end = min(log.end_time or now, day_end)
            total += max(0.0, (end - max(log.start_time, day_start)).total_seconds() / 60)
        return total

    def work_hours_status(self, user_id: int, *, now: datetime | None = None) -> WorkHoursStatus:
        now = now or utcnow()
        min_hours = settings.min_work_hours_per_day
        max_hours = settings.max_work_hours_per_day
        enable_limit = settings.enable_work_hours_limit

        running = self.session.exec(
            select(TimeLog).where(TimeLog.user_id == user_id).where(col(TimeLog.end_time).is_(None))
        ).first()
        hours = self._minutes_worked(user_id, now) / 60

        if hours >= max_hours:
            status = "exceeded"
            message = f"Maximum work hours reached ({max_hours}h). Please rest."
        elif hours < min_hours and running is None:
            status = "warning"
            message = f"You need {min_hours - hours:.1f} more hours to reach minimum ({min_hours}h)."
        elif hours >= min_hours:
            status = "ok"
            message = f"Good progress! {max_hours - hours:.1f}h remaining before limit."
        else:
            status = "ok"
            message = "Keep up the good work!"

        return WorkHoursStatus(
            hours_worked=round(hours, 2),
            min_hours=min_hours,
            max_hours=max_hours,
            enable_limit=enable_limit,
            status=status,
            message=message,
            has_active_timer=running is not None,
            active_timer_start_time=running.start_time if running is not None else None,
            can_start_timer=hours < max_hours if enable_limit else True,
            remaining_hours=round(max_hours - hours, 2),
            needed_hours=round(max(0.0, min_hours - hours), 2),
        )
