from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from supportdesk.schemas.common import ApiModel


class _Details(BaseModel):
    # Stored as camelCase JSON (commentId, isInternal, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TicketCreated(_Details):
    action: Literal["ticket_created"] = "ticket_created"
    subject: str
    channel: str
    chat_session_id: Optional[str] = None


class CommentAdded(_Details):
    action: Literal["comment_added"] = "comment_added"
    comment_id: str
    is_internal: bool


class StatusChanged(_Details):
    action: Literal["status_changed"] = "status_changed"
    previous_status: str
    new_status: str
    reason: Optional[str] = None


class PriorityChanged(_Details):
    action: Literal["priority_changed"] = "priority_changed"
    new_priority: str


class SubjectChanged(_Details):
    action: Literal["subject_changed"] = "subject_changed"
    new_subject: str


class Assigned(_Details):
    action: Literal["assigned"] = "assigned"
    assignee_id: Optional[str] = None


class SessionStarted(_Details):
    action: Literal["session_started"] = "session_started"
    session_id: str


class SessionEnded(_Details):
    action: Literal["session_ended"] = "session_ended"
    session_id: str
    duration: int
    reason: str = "logout"


class ChatSessionStarted(_Details):
    action: Literal["chat_session_started"] = "chat_session_started"
    chat_session_id: str


class ChatFeedback(_Details):
    action: Literal["chat_feedback"] = "chat_feedback"
    chat_session_id: str
    message_id: str
    was_helpful: bool


class ChatResponseRegenerated(_Details):
    action: Literal["chat_response_regenerated"] = "chat_response_regenerated"
    chat_session_id: str
    message_id: str


class ChatSessionEnded(_Details):
    action: Literal["chat_session_ended"] = "chat_session_ended"
    chat_session_id: str
    resolved: bool


class ChatHandedOff(_Details):
    action: Literal["chat_handed_off"] = "chat_handed_off"
    chat_session_id: str
    ticket_id: str


ActivityDetails = Annotated[
    Union[
        TicketCreated,
        CommentAdded,
        StatusChanged,
        PriorityChanged,
        SubjectChanged,
        Assigned,
        SessionStarted,
        SessionEnded,
        ChatSessionStarted,
        ChatFeedback,
        ChatResponseRegenerated,
        ChatSessionEnded,
        ChatHandedOff,
    ],
    Field(discriminator="action"),
]


class ActivityResponse(ApiModel):
    id: str
    ticket_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    details: ActivityDetails
    created_at: datetime
