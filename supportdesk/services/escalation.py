"""Escalation hint and chat-to-ticket hand-off payload. Pure functions over message lists."""
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from supportdesk.core.config import settings
from supportdesk.models.chat_message import ChatRole

TRANSCRIPT_HEADER = "--- Chat Conversation ---"
TRANSCRIPT_FOOTER = "--- End of Chat ---"
DETAIL_PROMPT = "Please describe your issue in more detail:"
DEFAULT_SUBJECT = "Support Request from Chat"


@dataclass(frozen=True)
class HandoffPayload:
    subject: str
    description: str
    session_id: Optional[str] = None


def assistant_turns(messages: Sequence[Any]) -> int:
    return sum(1 for m in messages if m.role == ChatRole.ASSISTANT)


def escalation_due(messages: Sequence[Any], threshold: Optional[int] = None) -> bool:
    """True once the assistant has replied `threshold` times.

    Stays true for the rest of the session; remembering that the requester
    dismissed the offer is up to the client.
    """
    limit = threshold if threshold is not None else settings.CHAT_ESCALATION_THRESHOLD
    return assistant_turns(messages) >= limit


def handoff_subject(messages: Sequence[Any], max_length: Optional[int] = None) -> str:
    max_len = max_length or settings.CHAT_SUBJECT_MAX_LENGTH
    first = next((m.content for m in messages if m.role == ChatRole.USER), None)
    if not first:
        return DEFAULT_SUBJECT
    return first[:max_len] + ("..." if len(first) > max_len else "")


def compose_handoff(
    messages: Sequence[Any],
    session_id: Optional[str] = None,
    subject_max_length: Optional[int] = None,
) -> HandoffPayload:
    transcript = "\n\n".join(
        f"{'Me' if m.role == ChatRole.USER else 'Support Bot'}: {m.content}" for m in messages
    )
    description = f"{TRANSCRIPT_HEADER}\n\n{transcript}\n\n{TRANSCRIPT_FOOTER}\n\n{DETAIL_PROMPT}"
    return HandoffPayload(
        subject=handoff_subject(messages, subject_max_length),
        description=description,
        session_id=session_id,
    )
