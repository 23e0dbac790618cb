from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request, status

from supportdesk.api.dependencies import get_session_tracker
from supportdesk.api.security import get_admin_principal, get_staff_principal
from supportdesk.core.roles import Principal
from supportdesk.schemas.session_schema import AgentSessionResponse, SessionStartRequest, StaleCleanupResponse
from supportdesk.services.agent_session_tracker import AgentSessionTracker

router = APIRouter()


@router.post("/start", response_model=AgentSessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    http_request: Request,
    request: Optional[SessionStartRequest] = Body(default=None),
    principal: Principal = Depends(get_staff_principal),
    tracker: AgentSessionTracker = Depends(get_session_tracker),
):
    request = request or SessionStartRequest()
    ip_address = request.ip_address or (http_request.client.host if http_request.client else None)
    user_agent = request.user_agent or http_request.headers.get("user-agent")
    return tracker.start_session(principal.user_id, ip_address=ip_address, user_agent=user_agent)


@router.post("/end/{session_id}", response_model=AgentSessionResponse)
def end_session(
    session_id: UUID,
    principal: Principal = Depends(get_staff_principal),
    tracker: AgentSessionTracker = Depends(get_session_tracker),
):
    return tracker.end_session(str(session_id), principal.user_id)


@router.get("/current", response_model=Optional[AgentSessionResponse])
def current_session(
    principal: Principal = Depends(get_staff_principal),
    tracker: AgentSessionTracker = Depends(get_session_tracker),
):
    return tracker.current_session(principal.user_id)


@router.post("/cleanup-stale", response_model=StaleCleanupResponse)
def cleanup_stale_sessions(
    admin: Principal = Depends(get_admin_principal),
    tracker: AgentSessionTracker = Depends(get_session_tracker),
):
    closed = tracker.cleanup_stale()
    return StaleCleanupResponse(
        closed=len(closed),
        sessions=[AgentSessionResponse.model_validate(s) for s in closed],
    )
