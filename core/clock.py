"""
邏輯時鐘：單調遞增的 tick 計數器

帳本只有一個時鐘（ledger_clock 表中 id=1 的那一列）。時間只會在操作之間前進，
任何操作內部讀到的 tick 都是同一個值
"""
from sqlalchemy.orm import Session
import logging

from models import LedgerClock

logger = logging.getLogger(__name__)

CLOCK_ROW_ID = 1


def ensure_clock(db: Session) -> LedgerClock:
    """
    建立時鐘列（已存在時不動作）

    注意：
        - 在應用啟動時呼叫一次（main.py lifespan），讀取端點永遠不寫入
        - 只 flush，不 commit
    """
    clock = db.query(LedgerClock).filter(LedgerClock.id == CLOCK_ROW_ID).first()
    if clock is None:
        clock = LedgerClock(id=CLOCK_ROW_ID, tick=0)
        db.add(clock)
        db.flush()
        logger.info("Seeded ledger clock at tick 0")
    return clock


def current_tick(db: Session) -> int:
    """取得目前的 tick（唯讀；時鐘尚未建立時視為 0）"""
    clock = db.query(LedgerClock).filter(LedgerClock.id == CLOCK_ROW_ID).first()
    return clock.tick if clock else 0


def advance(db: Session, ticks: int = 1) -> int:
    """
    推進時鐘

    參數：
        db: SQLAlchemy Session
        ticks: 要推進的 tick 數（必須 >= 0）

    返回：
        推進後的 tick

    注意：
        - 只 flush，不 commit（交由外層 transaction 處理）
    """
    if ticks < 0:
        raise ValueError(f"Clock cannot move backwards (ticks={ticks})")

    clock = db.query(LedgerClock).filter(
        LedgerClock.id == CLOCK_ROW_ID
    ).with_for_update(nowait=False).first()
    if clock is None:
        clock = ensure_clock(db)

    clock.tick += ticks
    db.flush()

    logger.debug(f"Clock advanced by {ticks} to tick {clock.tick}")
    return clock.tick
