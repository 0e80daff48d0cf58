from __future__ import annotations

from fastapi import Depends, Path, Request

from .sync import SessionRegistry, StreakSession


# PUBLIC_INTERFACE
async def get_registry(request: Request) -> SessionRegistry:
    """Return the session registry built at application startup."""
    return request.app.state.registry


# PUBLIC_INTERFACE
async def get_session(
    user_id: str = Path(..., min_length=1, max_length=128, description="User reference"),
    registry: SessionRegistry = Depends(get_registry),
) -> StreakSession:
    """Return the user's session, creating it on first use."""
    return registry.get(user_id)
