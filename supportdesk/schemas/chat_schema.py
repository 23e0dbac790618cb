from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from supportdesk.models.chat_message import ChatRole
from supportdesk.models.chat_session import ChatSessionStatus
from supportdesk.schemas.common import ApiModel, NonEmptyStr
from supportdesk.schemas.ticket_schema import TicketResponse


class ChatRequest(ApiModel):
    message: NonEmptyStr = Field(..., max_length=10000, description="Requester message")
    session_id: Optional[UUID] = Field(default=None, description="Session to continue; omit to start one")


class ChatResponse(ApiModel):
    session_id: str
    message_id: Optional[str] = Field(default=None, description="None when the reply is the fallback text")
    response: str
    escalation_due: bool = False


class FeedbackRequest(ApiModel):
    message_id: UUID
    was_helpful: bool


class RegenerateRequest(ApiModel):
    message_id: UUID


class RegenerateResponse(ApiModel):
    message_id: str
    response: str


class EndChatRequest(ApiModel):
    resolved: bool = False


class ChatSettingsResponse(ApiModel):
    enabled: bool
    welcome_message: str
    escalation_threshold: int


class ChatMessageResponse(ApiModel):
    id: str
    role: ChatRole
    content: str
    was_helpful: Optional[bool] = None
    created_at: datetime


class ChatSessionResponse(ApiModel):
    id: str
    user_id: Optional[str] = None
    status: ChatSessionStatus
    resolved: bool
    ticket_id: Optional[str] = None
    created_at: datetime
    ended_at: Optional[datetime] = None


class ChatSessionDetail(ChatSessionResponse):
    messages: List[ChatMessageResponse]
    escalation_due: bool


class ChatSessionListItem(ChatSessionResponse):
    message_count: int


class ChatSessionPage(ApiModel):
    sessions: List[ChatSessionListItem]
    total: int
    page: int
    limit: int


class HandoffPayloadResponse(ApiModel):
    subject: str
    description: str
    session_id: Optional[str] = None


class HandoffResponse(ApiModel):
    ticket: TicketResponse
    payload: HandoffPayloadResponse
