"""
Round Manager：管理 WageringRound 的完整生命週期

職責：
1. 建立回合（排程 + 手續費驗證）
2. 下注期：下注、加碼、減碼、取消、改變預測
3. 公布期：管理者公布結果、計算派彩比例
4. 領獎期：贏家領獎、無結果時退款
5. 關閉期：管理者清算剩餘餘額

原則：
- 回合階段由時鐘推導（round_phase_service），不存狀態欄位
- 每個寫入操作：先鎖定回合，再檢查全部前置條件，最後才更新
- 所有更新、轉帳、通知都在同一個 transaction 內（@transactional）
"""
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional, Tuple
import logging

from models import EventType, PredictionSupport, RoundPhase, Stake, WageringRound
from core import clock, custody, notifier
from core.authorization import require_authorized
from core.locks import with_round_lock
from core.exceptions import (
    AlreadyClaimed,
    AlreadyRefunded,
    InvalidAmount,
    InvalidCommission,
    InvalidDestination,
    InvalidPrediction,
    InvalidSchedule,
    InvalidStateTransition,
    NoActiveStake,
    OutcomeAlreadyPublished,
    OutcomeNotPublished,
    PredictionMismatch,
    RoundAlreadyClosed,
    RoundNotFound,
    StakeAlreadyActive,
)
from services.identity_service import is_null_address, normalize_address, normalize_prediction
from services.payoff_service import (
    MAX_AMOUNT,
    calculate_losing_pool,
    calculate_payout_rate,
    calculate_prize,
)
from services.round_phase_service import get_round_phase, is_valid_schedule
from database import transactional

logger = logging.getLogger(__name__)


def _require_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Amount must not exceed {MAX_AMOUNT}, got {amount}")
    return amount


def _require_escrow_capacity(round_obj: WageringRound, amount: int) -> None:
    if round_obj.total_escrowed + amount > MAX_AMOUNT:
        raise InvalidAmount(
            f"Round {round_obj.id} cannot escrow more than {MAX_AMOUNT}"
        )


def _require_prediction(prediction: Optional[str]) -> str:
    normalized = normalize_prediction(prediction)
    if normalized is None:
        raise InvalidPrediction("Prediction cannot be none")
    return normalized


class RoundManager:
    """WageringRound 生命週期管理器"""

    # ============ 內部工具 ============

    @staticmethod
    def _lock_round(db: Session, round_id: UUID) -> WageringRound:
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        return round_obj

    @staticmethod
    def _require_phase(db: Session, round_obj: WageringRound, expected: RoundPhase, action: str) -> None:
        now = clock.current_tick(db)
        phase = get_round_phase(now, round_obj.deadlines)
        if phase != expected:
            raise InvalidStateTransition(
                f"Cannot {action} in round {round_obj.id} during {phase.value} "
                f"(tick {now}, requires {expected.value})"
            )

    @staticmethod
    def _find_stake(db: Session, round_id: UUID, participant: str) -> Optional[Stake]:
        return db.query(Stake).filter(
            Stake.round_id == round_id,
            Stake.participant == participant
        ).first()

    @staticmethod
    def _require_active_stake(db: Session, round_id: UUID, participant: str) -> Stake:
        stake = RoundManager._find_stake(db, round_id, participant)
        if not stake or stake.amount == 0:
            raise NoActiveStake(f"{participant} has no active stake in round {round_id}")
        return stake

    @staticmethod
    def _adjust_support(db: Session, round_id: UUID, prediction: str, delta: int) -> None:
        """
        調整某個預測的支持總額

        注意：
            - 支持歸零時刪除該列（只保留非零的預測）
        """
        support = db.query(PredictionSupport).filter(
            PredictionSupport.round_id == round_id,
            PredictionSupport.prediction == prediction
        ).first()

        if support is None:
            support = PredictionSupport(round_id=round_id, prediction=prediction, amount=0)
            db.add(support)

        support.amount += delta
        if support.amount < 0:
            raise InvalidAmount(
                f"Support for {prediction} in round {round_id} would become negative"
            )
        if support.amount == 0:
            db.delete(support)
        db.flush()

    @staticmethod
    def _release_stake(db: Session, round_obj: WageringRound, stake: Stake, amount: int) -> None:
        """從下注中退還 amount 給參與者（下注期使用）"""
        stake.amount -= amount
        round_obj.total_escrowed -= amount
        RoundManager._adjust_support(db, round_obj.id, stake.prediction, -amount)
        custody.credit(db, round_obj, stake.participant, amount)

    @staticmethod
    def _emit_stake_recorded(db: Session, round_obj: WageringRound, stake: Stake) -> None:
        notifier.emit(
            db,
            EventType.STAKE_RECORDED,
            {
                "participant": stake.participant,
                "prediction": stake.prediction,
                "total_stake": stake.amount,
            },
            round_id=round_obj.id,
        )

    @staticmethod
    def _emit_stake_cancelled(db: Session, round_obj: WageringRound, participant: str,
                              prediction: str, amount_returned: int) -> None:
        notifier.emit(
            db,
            EventType.STAKE_CANCELLED,
            {
                "participant": participant,
                "prediction": prediction,
                "amount_returned": amount_returned,
            },
            round_id=round_obj.id,
        )

    # ============ 建立 ============

    @staticmethod
    def open_round(
        db: Session,
        administrator: str,
        commission_percent: int,
        betting_offset: int,
        outcome_offset: int,
        claim_offset: int,
        close_offset: int,
    ) -> WageringRound:
        """
        建立回合（不 commit，讓外層 transaction 處理）

        截止時間以「從目前 tick 起算的 offset」傳入，存成絕對 tick

        異常：
            InvalidSchedule: offset 不是嚴格遞增
            InvalidCommission: 手續費不在 0-100
        """
        if not is_valid_schedule(betting_offset, outcome_offset, claim_offset, close_offset):
            raise InvalidSchedule(
                f"Offsets must be strictly increasing and positive, got "
                f"({betting_offset}, {outcome_offset}, {claim_offset}, {close_offset})"
            )

        if isinstance(commission_percent, bool) or not 0 <= commission_percent <= 100:
            raise InvalidCommission(
                f"Commission must be between 0 and 100, got {commission_percent}"
            )

        now = clock.current_tick(db)
        round_obj = WageringRound(
            administrator=normalize_address(administrator),
            commission_percent=commission_percent,
            created_tick=now,
            betting_deadline=now + betting_offset,
            outcome_deadline=now + outcome_offset,
            claim_deadline=now + claim_offset,
            close_deadline=now + close_offset,
            outcome=None,
            payout_rate_per_hundred=0,
            total_escrowed=0,
            balance=0,
            closed=False,
        )
        db.add(round_obj)
        db.flush()  # 取得 round_obj.id

        logger.info(
            f"Created round {round_obj.id} at tick {now} "
            f"(deadlines={round_obj.deadlines}, commission={commission_percent}%)"
        )
        return round_obj

    @staticmethod
    @transactional
    def create_round(
        db: Session,
        administrator: str,
        commission_percent: int,
        betting_offset: int,
        outcome_offset: int,
        claim_offset: int,
        close_offset: int,
    ) -> WageringRound:
        """直接建立一個回合，呼叫者成為管理者"""
        return RoundManager.open_round(
            db, administrator, commission_percent,
            betting_offset, outcome_offset, claim_offset, close_offset
        )

    # ============ 下注期 ============

    @staticmethod
    @transactional
    def place_stake(db: Session, round_id: UUID, participant: str, prediction: str, amount: int) -> Stake:
        """
        下注

        前置條件：
        1. 回合在 BETTING
        2. 預測不是 none
        3. 金額 > 0
        4. 參與者目前沒有有效的下注（已有下注請改用 increase / decrease / change）

        效果：
        - 記錄下注與預測
        - 託管總額、回合餘額、該預測的支持都加上 amount
        - 發出 STAKE_RECORDED
        """
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.BETTING, "place a stake")
        prediction = _require_prediction(prediction)
        _require_amount(amount)
        _require_escrow_capacity(round_obj, amount)

        stake = RoundManager._find_stake(db, round_id, participant)
        if stake and stake.amount > 0:
            raise StakeAlreadyActive(
                f"{participant} already has a stake in round {round_id}"
            )

        if stake is None:
            stake = Stake(round_id=round_id, participant=participant, amount=0)
            db.add(stake)

        stake.amount = amount
        stake.prediction = prediction
        round_obj.total_escrowed += amount
        custody.deposit(round_obj, amount)
        RoundManager._adjust_support(db, round_id, prediction, amount)

        logger.info(f"{participant} staked {amount} on {prediction} in round {round_id}")
        RoundManager._emit_stake_recorded(db, round_obj, stake)
        return stake

    @staticmethod
    @transactional
    def increase_stake(db: Session, round_id: UUID, participant: str, amount: int) -> Stake:
        """加碼：把 amount 加到目前的下注與其預測的支持上"""
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.BETTING, "increase a stake")
        stake = RoundManager._require_active_stake(db, round_id, participant)
        _require_amount(amount)
        _require_escrow_capacity(round_obj, amount)

        stake.amount += amount
        round_obj.total_escrowed += amount
        custody.deposit(round_obj, amount)
        RoundManager._adjust_support(db, round_id, stake.prediction, amount)

        logger.info(f"{participant} increased stake by {amount} to {stake.amount} in round {round_id}")
        RoundManager._emit_stake_recorded(db, round_obj, stake)
        return stake

    @staticmethod
    @transactional
    def decrease_stake(db: Session, round_id: UUID, participant: str, amount: int) -> Stake:
        """
        減碼：退還 amount 給參與者

        減到剛好 0 等同取消：預測清為 none，發出 STAKE_CANCELLED 而不是 STAKE_RECORDED

        異常：
            InvalidAmount: amount 為 0 或超過目前下注
        """
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.BETTING, "decrease a stake")
        stake = RoundManager._require_active_stake(db, round_id, participant)
        _require_amount(amount)

        if amount > stake.amount:
            raise InvalidAmount(
                f"Cannot decrease stake of {stake.amount} by {amount}"
            )

        prediction = stake.prediction
        RoundManager._release_stake(db, round_obj, stake, amount)

        if stake.amount == 0:
            stake.prediction = None
            logger.info(f"{participant} decreased stake to zero in round {round_id} (cancelled)")
            RoundManager._emit_stake_cancelled(db, round_obj, participant, prediction, amount)
        else:
            logger.info(f"{participant} decreased stake by {amount} to {stake.amount} in round {round_id}")
            RoundManager._emit_stake_recorded(db, round_obj, stake)

        return stake

    @staticmethod
    @transactional
    def cancel_stake(db: Session, round_id: UUID, participant: str) -> Stake:
        """取消下注：退還全部下注，下注與預測歸零"""
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.BETTING, "cancel a stake")
        stake = RoundManager._require_active_stake(db, round_id, participant)

        amount = stake.amount
        prediction = stake.prediction
        RoundManager._release_stake(db, round_obj, stake, amount)
        stake.prediction = None

        logger.info(f"{participant} cancelled stake of {amount} in round {round_id}")
        RoundManager._emit_stake_cancelled(db, round_obj, participant, prediction, amount)
        return stake

    @staticmethod
    @transactional
    def change_prediction(db: Session, round_id: UUID, participant: str, new_prediction: str) -> Stake:
        """
        改變預測：整筆下注的支持從舊預測移到新預測

        異常：
            InvalidPrediction: 新預測為 none 或與目前相同
        """
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.BETTING, "change a prediction")
        stake = RoundManager._require_active_stake(db, round_id, participant)
        new_prediction = _require_prediction(new_prediction)

        if new_prediction == stake.prediction:
            raise InvalidPrediction(
                f"{participant} already predicts {new_prediction} in round {round_id}"
            )

        RoundManager._adjust_support(db, round_id, stake.prediction, -stake.amount)
        RoundManager._adjust_support(db, round_id, new_prediction, stake.amount)
        stake.prediction = new_prediction

        logger.info(f"{participant} changed prediction to {new_prediction} in round {round_id}")
        RoundManager._emit_stake_recorded(db, round_obj, stake)
        return stake

    # ============ 公布期 ============

    @staticmethod
    @transactional
    def publish_outcome(db: Session, round_id: UUID, caller: str, outcome: str) -> WageringRound:
        """
        公布結果（管理者 endpoint）

        前置條件：
        1. 呼叫者是管理者
        2. 回合在 PUBLISHING
        3. 結果不是 none
        4. 尚未公布過結果

        流程：
        1. 計算輸家池 = 託管總額 - 結果的支持
        2. 輸家池為 0（沒有人押錯，或根本沒人下注）：
           不設定結果、不設定派彩比例、不發通知，回合退化成只能退款
        3. 否則設定結果與派彩比例，發出 OUTCOME_PUBLISHED
        """
        round_obj = RoundManager._lock_round(db, round_id)
        require_authorized(caller, round_obj.administrator)
        RoundManager._require_phase(db, round_obj, RoundPhase.PUBLISHING, "publish an outcome")
        outcome = _require_prediction(outcome)

        if round_obj.outcome is not None:
            raise OutcomeAlreadyPublished(
                f"Round {round_id} already has outcome {round_obj.outcome}"
            )

        winning_support = RoundManager.get_support(db, round_id, outcome)
        losing_pool = calculate_losing_pool(round_obj.total_escrowed, winning_support)

        if losing_pool == 0:
            logger.warning(
                f"Round {round_id}: losing pool is zero for outcome {outcome}, "
                f"leaving round without outcome (refund only)"
            )
            return round_obj

        round_obj.outcome = outcome
        round_obj.payout_rate_per_hundred = calculate_payout_rate(
            round_obj.total_escrowed, losing_pool, round_obj.commission_percent
        )

        logger.info(
            f"Published outcome {outcome} for round {round_id} "
            f"(pool={round_obj.total_escrowed}, losing={losing_pool}, "
            f"rate={round_obj.payout_rate_per_hundred})"
        )
        notifier.emit(
            db,
            EventType.OUTCOME_PUBLISHED,
            {
                "outcome": outcome,
                "payout_rate_per_hundred": round_obj.payout_rate_per_hundred,
            },
            round_id=round_id,
        )
        return round_obj

    # ============ 領獎期 ============

    @staticmethod
    @transactional
    def claim(db: Session, round_id: UUID, participant: str) -> int:
        """
        贏家領獎

        獎金 = floor(payout_rate_per_hundred * stake / 100)

        注意：
            - 只扣託管總額，不再扣支持（結果公布後支持是歷史資料）

        返回：
            獎金金額
        """
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.CLAIMING, "claim a prize")

        if round_obj.outcome is None:
            raise OutcomeNotPublished(f"Round {round_id} has no outcome")

        stake = RoundManager._require_active_stake(db, round_id, participant)
        if stake.prediction != round_obj.outcome:
            raise PredictionMismatch(
                f"{participant} predicted {stake.prediction}, outcome is {round_obj.outcome}"
            )
        if stake.claimed:
            raise AlreadyClaimed(f"{participant} already claimed in round {round_id}")

        prize = calculate_prize(round_obj.payout_rate_per_hundred, stake.amount)
        stake.claimed = True
        custody.credit(db, round_obj, participant, prize)
        round_obj.total_escrowed -= prize

        logger.info(f"{participant} claimed {prize} in round {round_id}")
        notifier.emit(
            db,
            EventType.PRIZE_CLAIMED,
            {"participant": participant, "prize": prize},
            round_id=round_id,
        )
        return prize

    @staticmethod
    @transactional
    def refund(db: Session, round_id: UUID, participant: str) -> int:
        """
        沒有結果時退回全部下注

        返回：
            退款金額
        """
        participant = normalize_address(participant)
        round_obj = RoundManager._lock_round(db, round_id)
        RoundManager._require_phase(db, round_obj, RoundPhase.CLAIMING, "refund")

        if round_obj.outcome is not None:
            raise OutcomeAlreadyPublished(
                f"Round {round_id} has outcome {round_obj.outcome}, refunds are closed"
            )

        stake = RoundManager._require_active_stake(db, round_id, participant)
        if stake.refunded:
            raise AlreadyRefunded(f"{participant} already refunded in round {round_id}")

        amount = stake.amount
        stake.refunded = True
        custody.credit(db, round_obj, participant, amount)
        round_obj.total_escrowed -= amount

        logger.info(f"Refunded {amount} to {participant} in round {round_id}")
        notifier.emit(
            db,
            EventType.REFUND,
            {"participant": participant, "amount": amount},
            round_id=round_id,
        )
        return amount

    # ============ 關閉期 ============

    @staticmethod
    @transactional
    def close_round(db: Session, round_id: UUID, caller: str, destination: str) -> int:
        """
        清算剩餘餘額（管理者 endpoint）

        前置條件：
        1. 呼叫者是管理者
        2. 回合在 CLOSED
        3. 曾經公布過結果（沒有結果的回合，剩下的錢仍屬於尚未退款的參與者）
        4. 目的地不是 null identity
        5. 尚未清算過

        返回：
            轉出的金額
        """
        round_obj = RoundManager._lock_round(db, round_id)
        require_authorized(caller, round_obj.administrator)
        RoundManager._require_phase(db, round_obj, RoundPhase.CLOSED, "close the round")

        if round_obj.outcome is None:
            raise OutcomeNotPublished(
                f"Round {round_id} cannot be closed without an outcome"
            )
        if is_null_address(destination):
            raise InvalidDestination("Destination cannot be the null address")
        if round_obj.closed:
            raise RoundAlreadyClosed(f"Round {round_id} was already closed")

        destination = normalize_address(destination)
        amount = round_obj.balance
        custody.credit(db, round_obj, destination, amount)
        round_obj.total_escrowed = 0
        round_obj.closed = True

        logger.info(f"Closed round {round_id}, swept {amount} to {destination}")
        notifier.emit(
            db,
            EventType.ROUND_CLOSED,
            {"destination": destination, "amount": amount},
            round_id=round_id,
        )
        return amount

    # ============ 查詢 ============

    @staticmethod
    def get_round(db: Session, round_id: UUID) -> WageringRound:
        """
        異常：
            RoundNotFound: 回合不存在
        """
        round_obj = db.query(WageringRound).filter(WageringRound.id == round_id).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        return round_obj

    @staticmethod
    def get_phase(db: Session, round_id: UUID) -> RoundPhase:
        round_obj = RoundManager.get_round(db, round_id)
        return get_round_phase(clock.current_tick(db), round_obj.deadlines)

    @staticmethod
    def get_stake(db: Session, round_id: UUID, participant: str) -> Tuple[int, Optional[str]]:
        """
        返回：
            (下注金額, 預測)；沒有下注時為 (0, None)
        """
        RoundManager.get_round(db, round_id)
        stake = RoundManager._find_stake(db, round_id, normalize_address(participant))
        if not stake:
            return 0, None
        return stake.amount, stake.prediction

    @staticmethod
    def get_support(db: Session, round_id: UUID, prediction: str) -> int:
        normalized = normalize_prediction(prediction)
        if normalized is None:
            return 0
        support = db.query(PredictionSupport).filter(
            PredictionSupport.round_id == round_id,
            PredictionSupport.prediction == normalized
        ).first()
        return support.amount if support else 0
