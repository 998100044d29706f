"""
Participant history service.

Responsible for building a per-participant history of a round from the
notification log, so observers can render an authoritative record of
stakes, cancellations and payouts directly from the ledger.
"""
from typing import List, Dict, Any
from uuid import UUID

from sqlalchemy.orm import Session

from models import EventLog, EventType
from services.identity_service import normalize_address

# Events that concern a single participant (they all carry a "participant" key).
PARTICIPANT_EVENTS = {
    EventType.STAKE_RECORDED.value,
    EventType.STAKE_CANCELLED.value,
    EventType.PRIZE_CLAIMED.value,
    EventType.REFUND.value,
}


def get_participant_history(round_id: UUID, participant: str, db: Session) -> List[Dict[str, Any]]:
    """
    Return the ordered list of notifications in a round that concern the
    participant, plus the outcome publication (which concerns everyone).

    Each entry contains the event type, the tick it happened at and its
    payload, so the frontend can show the complete record without relying
    on client-side storage.
    """
    participant = normalize_address(participant)
    rows = (
        db.query(EventLog)
        .filter(EventLog.round_id == round_id)
        .order_by(EventLog.id)
        .all()
    )

    history: List[Dict[str, Any]] = []

    for event in rows:
        if event.event_type in PARTICIPANT_EVENTS:
            if event.data.get("participant") != participant:
                continue
        elif event.event_type != EventType.OUTCOME_PUBLISHED.value:
            # Round-level bookkeeping (creation, close) is not part of a participant's record.
            continue

        history.append({
            "event_id": event.id,
            "event_type": event.event_type,
            "tick": event.tick,
            "data": event.data,
        })

    return history
