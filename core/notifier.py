"""
通知：把結構化事件寫入 EventLog

事件和業務更新在同一個 transaction 內寫入，所以只有成功的呼叫會留下通知。
觀察者以短輪詢 /events 取得新事件（after=<最後一個 event id>）
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session
import logging

from models import EventLog, EventType
from core.clock import current_tick

logger = logging.getLogger(__name__)


def emit(
    db: Session,
    event_type: EventType,
    data: Dict[str, Any],
    round_id: Optional[UUID] = None,
    registry_id: Optional[UUID] = None,
) -> EventLog:
    event = EventLog(
        round_id=round_id,
        registry_id=registry_id,
        event_type=event_type.value,
        data=data,
        tick=current_tick(db),
    )
    db.add(event)
    db.flush()

    logger.info(f"Emitted {event_type.value} (round={round_id}, registry={registry_id}): {data}")
    return event


def list_events(
    db: Session,
    round_id: Optional[UUID] = None,
    registry_id: Optional[UUID] = None,
    after: int = 0,
    event_type: Optional[EventType] = None,
) -> List[EventLog]:
    """
    依照寫入順序列出事件

    參數：
        after: 只返回 id 大於此值的事件（短輪詢用）
        event_type: 只返回某一種事件
    """
    query = db.query(EventLog).filter(EventLog.id > after)
    if round_id is not None:
        query = query.filter(EventLog.round_id == round_id)
    if registry_id is not None:
        query = query.filter(EventLog.registry_id == registry_id)
    if event_type is not None:
        query = query.filter(EventLog.event_type == event_type.value)
    return query.order_by(EventLog.id).all()
