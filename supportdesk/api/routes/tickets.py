from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from supportdesk.api.dependencies import get_ticket_service, get_ticket_state_machine
from supportdesk.api.security import get_current_principal, get_staff_principal
from supportdesk.core.roles import Principal
from supportdesk.models.ticket import TicketStatus
from supportdesk.schemas.ticket_schema import TicketCreateRequest, TicketResponse, TicketUpdateRequest
from supportdesk.services.ticket_service import TicketService
from supportdesk.services.ticket_state_machine import UNSET, TicketStateMachine

router = APIRouter()


def _str_or_none(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    request: TicketCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.create_ticket(
        principal,
        subject=request.subject,
        description=request.description,
        priority=request.priority,
        channel=request.channel,
        form_id=_str_or_none(request.form_id),
        chat_session_id=_str_or_none(request.chat_session_id),
    )


@router.get("", response_model=List[TicketResponse])
def list_tickets(
    status_filter: Optional[TicketStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.list_tickets(principal, status=status_filter, limit=limit)


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(
    ticket_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.get_ticket(str(ticket_id), principal)


@router.patch("/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: UUID,
    request: TicketUpdateRequest,
    principal: Principal = Depends(get_staff_principal),
    machine: TicketStateMachine = Depends(get_ticket_state_machine),
):
    assignee = UNSET
    if "assignee_id" in request.model_fields_set:
        assignee = _str_or_none(request.assignee_id)

    return machine.update_ticket(
        str(ticket_id),
        principal,
        status=request.status,
        priority=request.priority,
        subject=request.subject,
        assignee_id=assignee,
    )
