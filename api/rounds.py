"""
Round API Endpoints

重點：
1. 建立回合的呼叫者成為管理者
2. 公布結果、關閉回合只有管理者可以呼叫
3. 通知寫在 EventLog，觀察者透過 /events?after=<id> 短輪詢
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

import logging

from api import after_confirmed_call, to_http_exception
from database import get_db
from models import WageringRound
from schemas import (
    ActionResponse,
    CloseSubmit,
    EventResponse,
    HistoryEntry,
    HistoryResponse,
    OutcomeSubmit,
    RoundCreate,
    RoundResponse,
    StakeResponse,
    SupportResponse,
)
from core import notifier
from core.round_manager import RoundManager
from core.exceptions import EscrowException
from services.history_service import get_participant_history
from services.identity_service import normalize_address, normalize_prediction

router = APIRouter(prefix="/api/rounds", tags=["rounds"])
logger = logging.getLogger(__name__)


def round_response(db: Session, round_obj: WageringRound) -> RoundResponse:
    response = RoundResponse.model_validate(round_obj)
    response.phase = RoundManager.get_phase(db, round_obj.id)
    return response


@router.post("", response_model=RoundResponse)
def create_round(
    round_data: RoundCreate,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """
    建立回合（呼叫者成為管理者）

    參數：
        round_data: 手續費與四個 offset（從目前 tick 起算）
    """
    try:
        round_obj = RoundManager.create_round(
            db,
            caller,
            round_data.commission_percent,
            round_data.betting_offset,
            round_data.outcome_offset,
            round_data.claim_offset,
            round_data.close_offset,
        )
        response = round_response(db, round_obj)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to create round: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}", response_model=RoundResponse)
def get_round(round_id: UUID, db: Session = Depends(get_db)):
    """
    取得回合資訊

    返回：
        - 四個截止 tick、手續費
        - outcome（未公布為 null）、payout_rate_per_hundred
        - 託管總額、餘額、目前階段
    """
    try:
        round_obj = RoundManager.get_round(db, round_id)
        return round_response(db, round_obj)

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}/stakes/{participant}", response_model=StakeResponse)
def get_stake(round_id: UUID, participant: str, db: Session = Depends(get_db)):
    """取得參與者目前的下注與預測"""
    try:
        amount, prediction = RoundManager.get_stake(db, round_id, participant)
        return StakeResponse(
            participant=normalize_address(participant),
            amount=amount,
            prediction=prediction
        )

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get stake: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}/support/{prediction}", response_model=SupportResponse)
def get_support(round_id: UUID, prediction: str, db: Session = Depends(get_db)):
    """取得某個預測目前的支持總額"""
    try:
        RoundManager.get_round(db, round_id)
        support = RoundManager.get_support(db, round_id, prediction)
        normalized = normalize_prediction(prediction)
        return SupportResponse(prediction=normalized or prediction, support=support)

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get support: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/outcome", response_model=RoundResponse)
def publish_outcome(
    round_id: UUID,
    outcome_data: OutcomeSubmit,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """
    公布結果（管理者 endpoint）

    注意：
        輸家池為 0 時呼叫仍然成功，但 outcome 維持 null（回合只能退款）
    """
    try:
        round_obj = RoundManager.publish_outcome(db, round_id, caller, outcome_data.outcome)
        response = round_response(db, round_obj)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to publish outcome: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/close", response_model=ActionResponse)
def close_round(
    round_id: UUID,
    close_data: CloseSubmit,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """清算剩餘餘額到 destination（管理者 endpoint）"""
    try:
        RoundManager.close_round(db, round_id, caller, close_data.destination)
        after_confirmed_call(db)
        return ActionResponse(status="ok")

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to close round: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}/events", response_model=List[EventResponse])
def list_round_events(
    round_id: UUID,
    after: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """
    短輪詢通知

    參數：
        after: 上次看到的最後一個 event id
    """
    try:
        RoundManager.get_round(db, round_id)
        events = notifier.list_events(db, round_id=round_id, after=after)
        return [EventResponse.model_validate(event) for event in events]

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to list events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}/history/{participant}", response_model=HistoryResponse)
def get_history(round_id: UUID, participant: str, db: Session = Depends(get_db)):
    try:
        RoundManager.get_round(db, round_id)
        entries = get_participant_history(round_id, participant, db)
        return HistoryResponse(
            participant=normalize_address(participant),
            entries=[HistoryEntry(**entry) for entry in entries]
        )

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
