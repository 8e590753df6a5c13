"""API routes."""

from challengehub.api.routes.challenges import router as challenges_router
from challengehub.api.routes.health import router as health_router
from challengehub.api.routes.submissions import participant_router as my_submissions_router
from challengehub.api.routes.submissions import router as submissions_router
from challengehub.api.routes.users import router as users_router
from challengehub.api.routes.webhooks import router as webhooks_router

__all__ = [
    "challenges_router",
    "health_router",
    "my_submissions_router",
    "submissions_router",
    "users_router",
    "webhooks_router",
]
