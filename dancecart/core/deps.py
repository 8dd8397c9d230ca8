from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from dancecart.core.config import settings
from dancecart.services.sessions import SessionContext, SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionContext:
    session_id = (request.headers.get(settings.SESSION_HEADER) or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail=f"Missing {settings.SESSION_HEADER} header")
    return registry.get(session_id)
