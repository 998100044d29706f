"""
API 層

把帳本操作暴露為 HTTP endpoint；業務邏輯全部在 core/，這裡只負責：
- 從 X-Caller header 取得呼叫者身分
- 把 EscrowException 轉成對應的 HTTP 狀態碼
"""
from fastapi import HTTPException
from sqlalchemy.orm import Session

from core import clock
from core.exceptions import (
    EscrowException,
    IdentifierNotFound,
    NotAuthorized,
    RegistryNotFound,
    RoundNotFound,
)
from database import get_settings


def to_http_exception(e: EscrowException) -> HTTPException:
    """
    異常對應：
        找不到（回合、註冊表、識別碼） -> 404
        呼叫者不是管理者               -> 403
        其他前置條件失敗               -> 400
    """
    if isinstance(e, (RoundNotFound, RegistryNotFound, IdentifierNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, NotAuthorized):
        return HTTPException(status_code=403, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def after_confirmed_call(db: Session) -> None:
    """成功的寫入呼叫之後推進時鐘（ticks_per_call = 0 時不動作）"""
    ticks = get_settings().ticks_per_call
    if ticks:
        clock.advance(db, ticks)
        db.commit()
