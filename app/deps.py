"""
FastAPI dependencies for caller identity and the team service.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from app.db import async_session_maker
from app.services.team_service import TeamService
from app.services.team_store import TeamStore
from app.settings import settings


def get_current_user_id(request: Request) -> str:
    """Return the caller's user id from the trusted identity header.

    The header is set by the upstream auth layer; requests without it are
    unauthenticated.
    """
    user_id = (request.headers.get(settings.identity_header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    request.state.user_id = user_id
    return user_id


def get_current_user_email(request: Request) -> str | None:
    """Return the caller's verified email if the auth layer forwarded one."""
    email = (request.headers.get(settings.identity_email_header) or "").strip()
    return email or None


# Type aliases for identity dependencies
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
CurrentUserEmail = Annotated[str | None, Depends(get_current_user_email)]


def get_team_service() -> TeamService:
    """Build the team service over the application's session factory."""
    return TeamService(
        TeamStore(async_session_maker),
        max_teams_per_user=settings.max_teams_per_user,
        personal_team_name=settings.personal_team_name,
        personal_team_description=settings.personal_team_description,
    )


TeamServiceDep = Annotated[TeamService, Depends(get_team_service)]


def get_request_id(request: Request) -> str:
    """Get request ID for logging."""
    return request.headers.get("X-Request-ID") or getattr(request.state, "request_id", "")
