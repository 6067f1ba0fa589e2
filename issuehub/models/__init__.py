"""SQLAlchemy ORM models package."""

from .activity_log import ActivityLog
from .attachment import Attachment
from .comment import Comment
from .issue import Issue, IssueLabel, IssueWatcher
from .label import Label
from .notification import Notification
from .project import Project
from .user import User
from .workspace import Workspace, WorkspaceMember

__all__ = [
    "ActivityLog",
    "Attachment",
    "Comment",
    "Issue",
    "IssueLabel",
    "IssueWatcher",
    "Label",
    "Notification",
    "Project",
    "User",
    "Workspace",
    "WorkspaceMember",
]
