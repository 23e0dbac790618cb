"""
Activity log: the append-only audit trail every state change writes to.

Payloads are typed per action code (see schemas.activity_schema) and only
turned into JSON here, at the storage boundary.
"""
import logging
from typing import List, Optional

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from supportdesk.models.activity import Activity
from supportdesk.schemas.activity_schema import ActivityDetails, ActivityResponse

logger = logging.getLogger(__name__)

_details_adapter: TypeAdapter = TypeAdapter(ActivityDetails)


class ActivityLog:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        event: ActivityDetails,
        *,
        ticket_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Activity:
        """Stage one activity row in the caller's transaction.

        Does NOT commit: the row lands or rolls back together with the
        state change it describes.
        """
        entry = Activity(
            ticket_id=ticket_id,
            user_id=user_id,
            action=event.action,
            details=event.model_dump(mode="json", by_alias=True, exclude={"action"}),
        )
        self.db.add(entry)
        self.db.flush()
        logger.debug("activity %s staged (ticket=%s user=%s)", event.action, ticket_id, user_id)
        return entry

    def recent(
        self,
        *,
        ticket_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[ActivityResponse]:
        q = self.db.query(Activity)
        if ticket_id is not None:
            q = q.filter(Activity.ticket_id == ticket_id)
        if user_id is not None:
            q = q.filter(Activity.user_id == user_id)
        if action is not None:
            q = q.filter(Activity.action == action)
        rows = q.order_by(Activity.created_at.desc()).limit(limit).all()
        return [to_response(row) for row in rows]


def parse_details(row: Activity) -> ActivityDetails:
    return _details_adapter.validate_python({**(row.details or {}), "action": row.action})


def to_response(row: Activity) -> ActivityResponse:
    return ActivityResponse(
        id=row.id,
        ticket_id=row.ticket_id,
        user_id=row.user_id,
        action=row.action,
        details=parse_details(row),
        created_at=row.created_at,
    )
