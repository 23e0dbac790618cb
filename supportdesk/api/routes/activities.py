from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from supportdesk.api.dependencies import get_activity_log
from supportdesk.api.security import get_staff_principal
from supportdesk.core.roles import Principal
from supportdesk.schemas.activity_schema import ActivityResponse
from supportdesk.services.activity_log import ActivityLog

router = APIRouter()


@router.get("", response_model=List[ActivityResponse])
def list_activities(
    ticket_id: Optional[UUID] = Query(default=None, alias="ticketId"),
    user_id: Optional[UUID] = Query(default=None, alias="userId"),
    action: Optional[str] = Query(default=None, max_length=64),
    limit: int = Query(default=100, ge=1, le=500),
    staff: Principal = Depends(get_staff_principal),
    activity_log: ActivityLog = Depends(get_activity_log),
):
    return activity_log.recent(
        ticket_id=str(ticket_id) if ticket_id else None,
        user_id=str(user_id) if user_id else None,
        action=action,
        limit=limit,
    )
