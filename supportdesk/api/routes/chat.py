from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from supportdesk.api.dependencies import get_conversation_engine, get_ticket_service
from supportdesk.api.security import get_admin_principal, get_current_principal, get_optional_principal
from supportdesk.core.config import settings
from supportdesk.core.roles import Principal
from supportdesk.models.chat_session import ChatSessionStatus
from supportdesk.schemas.chat_schema import (
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionDetail,
    ChatSessionListItem,
    ChatSessionPage,
    ChatSessionResponse,
    ChatSettingsResponse,
    EndChatRequest,
    FeedbackRequest,
    HandoffPayloadResponse,
    HandoffResponse,
    RegenerateRequest,
    RegenerateResponse,
)
from supportdesk.schemas.common import SuccessResponse
from supportdesk.schemas.ticket_schema import TicketResponse
from supportdesk.services.conversation_engine import ConversationEngine
from supportdesk.services.escalation import escalation_due
from supportdesk.services.ticket_service import TicketService

router = APIRouter()


def _session_fields(chat) -> dict:
    return ChatSessionResponse.model_validate(chat).model_dump()


@router.get("/settings", response_model=ChatSettingsResponse)
def chat_settings():
    return ChatSettingsResponse(
        enabled=settings.CHAT_ENABLED,
        welcome_message=settings.CHAT_WELCOME_MESSAGE,
        escalation_threshold=settings.CHAT_ESCALATION_THRESHOLD,
    )


@router.post("", response_model=ChatResponse)
def send_message(
    request: ChatRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    reply = engine.send_message(
        request.message,
        requester=principal,
        session_id=str(request.session_id) if request.session_id else None,
    )
    chat = engine.get_session(reply.session_id, principal)
    return ChatResponse(
        session_id=reply.session_id,
        message_id=reply.message_id,
        response=reply.response,
        escalation_due=escalation_due(chat.messages),
    )


@router.get("/sessions", response_model=ChatSessionPage)
def list_sessions(
    status_filter: Optional[ChatSessionStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: Principal = Depends(get_admin_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    rows, total = engine.list_sessions(status=status_filter, page=page, limit=limit)
    items = [ChatSessionListItem(**_session_fields(chat), message_count=count) for chat, count in rows]
    return ChatSessionPage(sessions=items, total=total, page=page, limit=limit)


@router.get("/sessions/{session_id}/messages", response_model=ChatSessionDetail)
def get_messages(
    session_id: UUID,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    chat = engine.get_session(str(session_id), principal)
    return ChatSessionDetail(
        **_session_fields(chat),
        messages=[ChatMessageResponse.model_validate(m) for m in chat.messages],
        escalation_due=escalation_due(chat.messages),
    )


@router.post("/sessions/{session_id}/feedback", response_model=SuccessResponse)
def give_feedback(
    session_id: UUID,
    request: FeedbackRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    engine.give_feedback(str(session_id), str(request.message_id), request.was_helpful, requester=principal)
    return SuccessResponse()


@router.post("/sessions/{session_id}/regenerate", response_model=RegenerateResponse)
def regenerate(
    session_id: UUID,
    request: RegenerateRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    message = engine.regenerate(str(session_id), str(request.message_id), requester=principal)
    return RegenerateResponse(message_id=message.id, response=message.content)


@router.post("/sessions/{session_id}/end", response_model=SuccessResponse)
def end_session(
    session_id: UUID,
    request: EndChatRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    engine.end_session(str(session_id), request.resolved, requester=principal)
    return SuccessResponse()


@router.get("/sessions/{session_id}/handoff", response_model=HandoffPayloadResponse)
def preview_handoff(
    session_id: UUID,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    payload = engine.handoff_payload(str(session_id), principal)
    return HandoffPayloadResponse(subject=payload.subject, description=payload.description, session_id=payload.session_id)


@router.post("/sessions/{session_id}/handoff", response_model=HandoffResponse, status_code=status.HTTP_201_CREATED)
def hand_off(
    session_id: UUID,
    principal: Principal = Depends(get_current_principal),
    engine: ConversationEngine = Depends(get_conversation_engine),
    tickets: TicketService = Depends(get_ticket_service),
):
    ticket, payload = engine.hand_off(str(session_id), principal, tickets)
    return HandoffResponse(
        ticket=TicketResponse.model_validate(ticket),
        payload=HandoffPayloadResponse(
            subject=payload.subject,
            description=payload.description,
            session_id=payload.session_id,
        ),
    )
