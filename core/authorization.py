"""
權限檢查：判斷呼叫者是否為管理者

身分驗證本身不在這裡處理，呼叫者的身分由外部提供（API 層的 X-Caller header）
"""
from core.exceptions import NotAuthorized
from services.identity_service import normalize_address


def is_authorized(caller: str, administrator: str) -> bool:
    return normalize_address(caller) == normalize_address(administrator)


def require_authorized(caller: str, administrator: str) -> None:
    """
    異常：
        NotAuthorized: 呼叫者不是管理者
    """
    if not is_authorized(caller, administrator):
        raise NotAuthorized(caller)
