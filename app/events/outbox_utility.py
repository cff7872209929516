from typing import Dict, Any
from app.models.outbox import OutboxEvent
from uuid import UUID


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: UUID,
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> OutboxEvent:
    """
    Records a domain event using the provided database connection (transaction).

    Passing 'conn' keeps the event atomic with the business change: if the
    surrounding transaction rolls back, the event disappears with it.
    """
    return await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        published=False,
        attempts=0,
        using_db=conn
    )
