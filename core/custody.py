"""
託管轉帳：把回合持有的價值轉入某個地址

這是唯一會讓價值離開回合的路徑：退還下注、退款、獎金、關閉清算都走這裡
"""
from sqlalchemy.orm import Session
import logging

from models import Account, WageringRound
from core.exceptions import InsufficientEscrow

logger = logging.getLogger(__name__)


def deposit(round_obj: WageringRound, amount: int) -> None:
    """下注時價值隨呼叫一起進入回合"""
    round_obj.balance += amount


def credit(db: Session, round_obj: WageringRound, address: str, amount: int) -> Account:
    """
    從回合餘額轉出 amount 到 address

    參數：
        db: SQLAlchemy Session
        round_obj: 持有價值的回合（呼叫者應已持有 row lock）
        address: 收款地址
        amount: 金額（可以是 0，例如捨去後的獎金）

    返回：
        收款的 Account

    異常：
        InsufficientEscrow: 回合餘額不足
    """
    if amount > round_obj.balance:
        raise InsufficientEscrow(
            f"Round {round_obj.id} holds {round_obj.balance}, cannot credit {amount}"
        )

    account = db.query(Account).filter(Account.address == address).first()
    if account is None:
        account = Account(address=address, balance=0)
        db.add(account)

    round_obj.balance -= amount
    account.balance += amount
    db.flush()

    logger.info(f"Credited {amount} from round {round_obj.id} to {address}")
    return account


def get_account_balance(db: Session, address: str) -> int:
    account = db.query(Account).filter(Account.address == address).first()
    return account.balance if account else 0
