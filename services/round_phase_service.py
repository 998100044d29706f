"""
回合階段服務：由邏輯時鐘推導回合目前所在的階段

回合不儲存狀態欄位，每次呼叫都以 (now, 四個截止 tick) 重新計算：
- BETTING：     now <= betting_deadline
- PUBLISHING：  betting_deadline < now < claim_deadline
- CLAIMING：    claim_deadline <= now < close_deadline
- CLOSED：      now >= close_deadline

注意 outcome_deadline 只在建立時參與排程驗證，不切割任何時間窗
"""
from typing import Tuple

from models import RoundPhase


def get_round_phase(now: int, deadlines: Tuple[int, int, int, int]) -> RoundPhase:
    """
    根據目前 tick 決定回合階段

    參數：
        now: 目前的邏輯 tick
        deadlines: (betting, outcome, claim, close) 四個絕對 tick

    返回：
        RoundPhase enum

    範例（deadlines = (1, 2, 3, 4)）：
        get_round_phase(1, ...) -> RoundPhase.BETTING
        get_round_phase(2, ...) -> RoundPhase.PUBLISHING
        get_round_phase(3, ...) -> RoundPhase.CLAIMING
        get_round_phase(9, ...) -> RoundPhase.CLOSED
    """
    betting_deadline, _, claim_deadline, close_deadline = deadlines

    if now <= betting_deadline:
        return RoundPhase.BETTING
    elif now < claim_deadline:
        return RoundPhase.PUBLISHING
    elif now < close_deadline:
        return RoundPhase.CLAIMING
    else:
        return RoundPhase.CLOSED


def is_valid_schedule(betting_offset: int, outcome_offset: int, claim_offset: int, close_offset: int) -> bool:
    """
    檢查排程是否合法：betting < outcome < claim < close，且 betting 至少 1 tick

    用途：
        建立回合前的驗證（回合建立後截止時間不可再變）
    """
    return 0 < betting_offset < outcome_offset < claim_offset < close_offset
