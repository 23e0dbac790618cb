from datetime import datetime
from typing import Optional
from uuid import UUID

from supportdesk.models.comment import CommentChannel
from supportdesk.schemas.auth_schema import AuthorSummary
from supportdesk.schemas.common import ApiModel, NonEmptyStr


class CommentCreateRequest(ApiModel):
    ticket_id: UUID
    body: NonEmptyStr
    body_plain: NonEmptyStr
    # Ignored (forced false) for requesters
    is_internal: Optional[bool] = False


class CommentResponse(ApiModel):
    id: str
    ticket_id: str
    author_id: str
    author: AuthorSummary
    body: str
    body_plain: str
    is_internal: bool
    is_system: bool
    channel: CommentChannel
    created_at: datetime
