"""API routers."""

from .attachments import router as attachments_router
from .auth import router as auth_router
from .comments import router as comments_router
from .issues import router as issues_router
from .labels import router as labels_router
from .notifications import router as notifications_router
from .projects import router as projects_router
from .workspaces import router as workspaces_router

__all__ = [
    "attachments_router",
    "auth_router",
    "comments_router",
    "issues_router",
    "labels_router",
    "notifications_router",
    "projects_router",
    "workspaces_router",
]
