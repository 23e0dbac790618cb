from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from supportdesk.models.ticket import TicketChannel, TicketPriority, TicketStatus
from supportdesk.schemas.common import ApiModel, NonEmptyStr


class TicketCreateRequest(ApiModel):
    subject: NonEmptyStr = Field(..., max_length=500)
    description: NonEmptyStr
    priority: TicketPriority = TicketPriority.NORMAL
    channel: TicketChannel = TicketChannel.WEB
    form_id: Optional[UUID] = None
    chat_session_id: Optional[UUID] = None


class TicketUpdateRequest(ApiModel):
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    # Explicit null unassigns; omit to leave unchanged
    assignee_id: Optional[UUID] = None
    subject: Optional[NonEmptyStr] = Field(default=None, max_length=500)


class TicketResponse(ApiModel):
    id: str
    ticket_number: int
    subject: str
    status: TicketStatus
    priority: TicketPriority
    channel: TicketChannel
    requester_id: str
    assignee_id: Optional[str] = None
    form_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    first_response_at: Optional[datetime] = None
    solved_at: Optional[datetime] = None
