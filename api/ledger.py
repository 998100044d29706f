"""
Ledger API Endpoints

職責：
1. 查詢 / 推進邏輯時鐘（時間只會在操作之間前進）
2. 查詢任何地址的入帳餘額
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import AccountResponse, ClockAdvance, ClockResponse
from core import clock
from core.custody import get_account_balance
from services.identity_service import normalize_address

router = APIRouter(prefix="/api", tags=["ledger"])
logger = logging.getLogger(__name__)


@router.get("/clock", response_model=ClockResponse)
def get_clock(db: Session = Depends(get_db)):
    return ClockResponse(tick=clock.current_tick(db))


@router.post("/clock/advance", response_model=ClockResponse)
def advance_clock(advance_data: ClockAdvance, db: Session = Depends(get_db)):
    """
    推進時鐘（由外部環境驅動，例如出塊或排程器）

    參數：
        advance_data.ticks: 推進的 tick 數（>= 0）
    """
    try:
        tick = clock.advance(db, advance_data.ticks)
        db.commit()
        logger.info(f"Clock advanced to tick {tick}")
        return ClockResponse(tick=tick)

    except Exception as e:
        logger.error(f"Failed to advance clock: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/accounts/{address}", response_model=AccountResponse)
def get_account(address: str, db: Session = Depends(get_db)):
    address = normalize_address(address)
    return AccountResponse(address=address, balance=get_account_balance(db, address))
