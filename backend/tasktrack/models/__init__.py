from tasktrack.models.assignments import CardAssignment
from tasktrack.models.cards import Card, CardPriority, CardStatus, Comment, Subtask
from tasktrack.models.notifications import Notification, NotificationKind
from tasktrack.models.overtime import ApprovalStatus, OvertimeApproval
from tasktrack.models.projects import Board, Project, ProjectMember, ProjectRole
from tasktrack.models.time_logs import TimeLog
from tasktrack.models.users import GlobalRole, User

__all__ = [
    "ApprovalStatus",
    "Board",
    "Card",
    "CardAssignment",
    "CardPriority",
    "CardStatus",
    "Comment",
    "GlobalRole",
    "Notification",
    "NotificationKind",
    "OvertimeApproval",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "Subtask",
    "TimeLog",
    "User",
]
