"""
計分服務：Pari-mutuel 的派彩計算邏輯

純整數運算，全部無條件捨去（floor）。捨去產生的零頭留在回合餘額中，
在回合關閉時由管理者一併清算
"""

# 單筆下注與回合託管總額的上限（uint256）
MAX_AMOUNT = 2 ** 256 - 1


def calculate_losing_pool(total_escrowed: int, winning_support: int) -> int:
    """
    計算輸家池：沒有押在公布結果上的下注總額

    參數：
        total_escrowed: 回合目前託管的總額
        winning_support: 押在公布結果上的支持總額

    返回：
        total_escrowed - winning_support
    """
    return total_escrowed - winning_support


def calculate_payout_rate(total_escrowed: int, losing_pool: int, commission_percent: int) -> int:
    """
    計算每 100 單位贏家下注可領取的金額（已扣除手續費）

    公式：
        floor(total_escrowed * (100 - commission_percent) / losing_pool)

    手續費以「整個池子」計算，不是只算輸家池

    範例：
        池子 1.75、輸家池 1.00、手續費 5%
        floor(175 * 95 / 100) = 166

    參數：
        total_escrowed: 回合目前託管的總額
        losing_pool: 輸家池（必須 > 0，呼叫者負責處理 0 的情況）
        commission_percent: 手續費百分比 0-100

    返回：
        payout_rate_per_hundred
    """
    if losing_pool <= 0:
        raise ValueError(f"Losing pool must be positive, got {losing_pool}")
    return total_escrowed * (100 - commission_percent) // losing_pool


def calculate_prize(payout_rate_per_hundred: int, stake: int) -> int:
    """
    計算贏家的獎金：floor(payout_rate_per_hundred * stake / 100)
    """
    return payout_rate_per_hundred * stake // 100
