# ruff: noqa

from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from tasktrack.api.deps import get_broadcaster
from tasktrack.db.session import get_session, init_db
from tasktrack.integrations.broadcaster import InMemoryBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.main import app
from tasktrack.models import (
    Board,
    Card,
    CardStatus,
    GlobalRole,
    Project,
    ProjectMember,
    ProjectRole,
    TimeLog,
    User,
)

NOW = datetime(2026, 3, 2, 10, 0, 0)


@dataclass
class World:
    admin: User
    creator: User
    leader: User
    dev_a: User
    dev_b: User
    observer: User
    outsider: User
    project: Project
    board: Board
    card_x: Card
    card_y: Card
    card_z: Card


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture
def notifier(session, broadcaster):
    return Notifier(session, broadcaster)


def _user(session, name, role=GlobalRole.MEMBER):
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.com", global_role=role)
    session.add(user)
    session.flush()
    return user


def _member(session, project, user, role):
    member = ProjectMember(project_id=project.id, user_id=user.id, project_role=role)
    session.add(member)
    session.flush()
    return member


def make_card(session, board, creator, title, **fields):
    card = Card(board_id=board.id, title=title, created_by=creator.id, **fields)
    session.add(card)
    session.commit()
    return card


def log_time(session, card, user, *, start=None, minutes=30, running=False):
    start = start or NOW - timedelta(hours=2)
    log = TimeLog(
        card_id=card.id,
        user_id=user.id,
        start_time=start,
        end_time=None if running else start + timedelta(minutes=minutes),
        duration_minutes=None if running else minutes * 60,
    )
    session.add(log)
    session.commit()
    return log


def build_world(session):
    admin = _user(session, "Ada Admin", GlobalRole.ADMIN)
    creator = _user(session, "Cora Creator")
    leader = _user(session, "Lee Leader", GlobalRole.LEADER)
    dev_a = _user(session, "Alice Dev")
    dev_b = _user(session, "Bob Dev")
    observer = _user(session, "Olga Observer")
    outsider = _user(session, "Oscar Outsider")

    project = Project(name="Apollo", created_by=creator.id)
    session.add(project)
    session.flush()
    board = Board(project_id=project.id, name="Sprint 1")
    session.add(board)
    session.flush()

    _member(session, project, leader, ProjectRole.LEADER)
    _member(session, project, dev_a, ProjectRole.DEVELOPER)
    _member(session, project, dev_b, ProjectRole.DESIGNER)
    _member(session, project, observer, ProjectRole.OBSERVER)
    session.commit()

    card_x = make_card(session, board, creator, "Card X")
    card_y = make_card(session, board, creator, "Card Y")
    card_z = make_card(session, board, creator, "Card Z")
    return World(
        admin=admin,
        creator=creator,
        leader=leader,
        dev_a=dev_a,
        dev_b=dev_b,
        observer=observer,
        outsider=outsider,
        project=project,
        board=board,
        card_x=card_x,
        card_y=card_y,
        card_z=card_z,
    )


@pytest.fixture
def world(session):
    return build_world(session)


@pytest.fixture
def client(session, broadcaster):
    def _get_session():
        yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user):
    return {"X-User-Id": str(user.id)}
