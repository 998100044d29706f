"""
Stake API Endpoints（參與者 endpoint）

職責：
1. 下注期：下注、加碼、減碼、取消、改變預測
2. 領獎期：領獎、退款

所有 endpoint 的呼叫者身分都來自 X-Caller header
"""
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
import logging

from api import after_confirmed_call, to_http_exception
from database import get_db
from models import Stake
from schemas import (
    PayoutResponse,
    PredictionChange,
    StakeAmount,
    StakePlace,
    StakeResponse,
)
from core.round_manager import RoundManager
from core.exceptions import EscrowException
from services.identity_service import normalize_address

router = APIRouter(prefix="/api/rounds", tags=["stakes"])
logger = logging.getLogger(__name__)


def _stake_response(stake: Stake) -> StakeResponse:
    return StakeResponse(
        participant=stake.participant,
        amount=stake.amount,
        prediction=stake.prediction
    )


@router.post("/{round_id}/stake", response_model=StakeResponse)
def place_stake(
    round_id: UUID,
    stake_data: StakePlace,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """
    下注

    前置條件：
    - 回合在 BETTING
    - 呼叫者目前沒有下注
    - 預測不是 none、金額 > 0
    """
    try:
        stake = RoundManager.place_stake(
            db, round_id, caller, stake_data.prediction, stake_data.amount
        )
        response = _stake_response(stake)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to place stake: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/stake/increase", response_model=StakeResponse)
def increase_stake(
    round_id: UUID,
    stake_data: StakeAmount,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        stake = RoundManager.increase_stake(db, round_id, caller, stake_data.amount)
        response = _stake_response(stake)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to increase stake: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/stake/decrease", response_model=StakeResponse)
def decrease_stake(
    round_id: UUID,
    stake_data: StakeAmount,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """減碼；減到 0 等同取消"""
    try:
        stake = RoundManager.decrease_stake(db, round_id, caller, stake_data.amount)
        response = _stake_response(stake)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to decrease stake: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/stake/cancel", response_model=StakeResponse)
def cancel_stake(
    round_id: UUID,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        stake = RoundManager.cancel_stake(db, round_id, caller)
        response = _stake_response(stake)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to cancel stake: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/stake/prediction", response_model=StakeResponse)
def change_prediction(
    round_id: UUID,
    prediction_data: PredictionChange,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        stake = RoundManager.change_prediction(db, round_id, caller, prediction_data.prediction)
        response = _stake_response(stake)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to change prediction: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/claim", response_model=PayoutResponse)
def claim(
    round_id: UUID,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """
    領獎

    返回：
        - amount: 獎金（floor(payout_rate_per_hundred * stake / 100)）
    """
    try:
        prize = RoundManager.claim(db, round_id, caller)
        after_confirmed_call(db)
        return PayoutResponse(participant=normalize_address(caller), amount=prize)

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to claim prize: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/refund", response_model=PayoutResponse)
def refund(
    round_id: UUID,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        amount = RoundManager.refund(db, round_id, caller)
        after_confirmed_call(db)
        return PayoutResponse(participant=normalize_address(caller), amount=amount)

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to refund: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
