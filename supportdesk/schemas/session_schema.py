from datetime import datetime
from typing import List, Optional

from pydantic import Field

from supportdesk.schemas.common import ApiModel


class SessionStartRequest(ApiModel):
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=500)


class AgentSessionResponse(ApiModel):
    id: str
    agent_id: str
    login_at: datetime
    logout_at: Optional[datetime] = None
    duration: Optional[int] = None
    reply_count: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class StaleCleanupResponse(ApiModel):
    closed: int
    sessions: List[AgentSessionResponse]
