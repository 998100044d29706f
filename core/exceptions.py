"""
自定義異常類別

集中管理所有帳本業務邏輯異常，方便 API 層統一處理

所有異常都代表「前置條件不成立」：呼叫整體失敗，不會留下任何狀態變更或轉帳
"""


class EscrowException(Exception):
    """所有託管異常的基類"""
    pass


# ============ 查詢相關異常 ============

class RoundNotFound(EscrowException):
    """回合不存在"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class RegistryNotFound(EscrowException):
    """註冊表不存在"""
    def __init__(self, registry_id):
        self.registry_id = registry_id
        super().__init__(f"Registry {registry_id} not found")


class IdentifierNotFound(EscrowException):
    """註冊表中沒有綁定此識別碼"""
    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Identifier {identifier!r} is not bound to a round")


class IdentifierAlreadyBound(EscrowException):
    """識別碼已經綁定到其他回合（只能寫入一次）"""
    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Identifier {identifier!r} is already bound to a round")


# ============ 建立回合相關異常 ============

class InvalidSchedule(EscrowException):
    """截止時間必須嚴格遞增"""
    pass


class InvalidCommission(EscrowException):
    """手續費百分比必須介於 0 到 100"""
    pass


# ============ 權限與狀態異常 ============

class NotAuthorized(EscrowException):
    """呼叫者不是管理者"""
    def __init__(self, caller):
        self.caller = caller
        super().__init__(f"Caller {caller} is not authorized")


class InvalidStateTransition(EscrowException):
    """目前的 tick 不在操作允許的時間窗內"""
    pass


# ============ 下注相關異常 ============

class InvalidPrediction(EscrowException):
    """預測值為 none 或格式不正確"""
    pass


class InvalidAmount(EscrowException):
    """金額為零、負數或超過目前的下注"""
    pass


class StakeAlreadyActive(EscrowException):
    """參與者已經有下注（請改用 increase / decrease / change）"""
    pass


class NoActiveStake(EscrowException):
    """參與者沒有有效的下注"""
    pass


# ============ 結算相關異常 ============

class OutcomeAlreadyPublished(EscrowException):
    """結果只能公布一次"""
    pass


class OutcomeNotPublished(EscrowException):
    """尚未公布結果"""
    pass


class PredictionMismatch(EscrowException):
    """參與者的預測與公布的結果不同"""
    pass


class AlreadyClaimed(EscrowException):
    """已經領過獎金了"""
    pass


class AlreadyRefunded(EscrowException):
    """已經退過款了"""
    pass


class InvalidDestination(EscrowException):
    """目的地址是 null identity"""
    pass


class RoundAlreadyClosed(EscrowException):
    """餘額已經被清算過了"""
    pass


class InsufficientEscrow(EscrowException):
    """回合持有的餘額不足以支付"""
    pass
