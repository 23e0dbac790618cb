from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from supportdesk.api.dependencies import get_ticket_state_machine
from supportdesk.api.security import get_current_principal
from supportdesk.core.roles import Principal
from supportdesk.schemas.comment_schema import CommentCreateRequest, CommentResponse
from supportdesk.services.ticket_state_machine import TicketStateMachine

router = APIRouter()


@router.post("", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    request: CommentCreateRequest,
    principal: Principal = Depends(get_current_principal),
    machine: TicketStateMachine = Depends(get_ticket_state_machine),
):
    return machine.add_comment(
        str(request.ticket_id),
        principal,
        body=request.body,
        body_plain=request.body_plain,
        is_internal=bool(request.is_internal),
    )


@router.get("/ticket/{ticket_id}", response_model=List[CommentResponse])
def read_comments(
    ticket_id: UUID,
    principal: Principal = Depends(get_current_principal),
    machine: TicketStateMachine = Depends(get_ticket_state_machine),
):
    return machine.read_comments(str(ticket_id), principal)
