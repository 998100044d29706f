"""
資料模型：託管帳本的所有持久化狀態

- WageringRound：一個回合的排程、手續費、結果與託管餘額
- Stake：參與者在某回合的下注（含一次性的 claimed / refunded 旗標）
- PredictionSupport：每個預測目前的支持總額
- Registry / RegistryEntry：識別碼 → 回合 的對應表
- Account：轉帳目的地的入帳餘額
- EventLog：所有通知（觀察者以短輪詢讀取）
- LedgerClock：邏輯時鐘（單列）
"""
import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# 2**256 * 100 (payout rate upper bound) 有 80 位數
AMOUNT_DIGITS = 80


class BaseUnits(TypeDecorator):
    """
    金額欄位：任意精度的非負整數（base units）

    - PostgreSQL：NUMERIC(80, 0)
    - 其他資料庫（SQLite）：十進位字串，避免 64-bit INTEGER 溢位，也避免 REAL 失去精度

    進出資料庫都是 Python int；金額只在 Python 端運算，不在 SQL 裡比較或加總
    """
    impl = String(AMOUNT_DIGITS)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(AMOUNT_DIGITS, 0))
        return dialect.type_descriptor(String(AMOUNT_DIGITS))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return Decimal(int(value))
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class RoundPhase(str, enum.Enum):
    """回合階段（由時鐘推導，不存入資料庫）"""
    BETTING = "BETTING"
    PUBLISHING = "PUBLISHING"
    CLAIMING = "CLAIMING"
    CLOSED = "CLOSED"


class EventType(str, enum.Enum):
    STAKE_RECORDED = "STAKE_RECORDED"
    STAKE_CANCELLED = "STAKE_CANCELLED"
    OUTCOME_PUBLISHED = "OUTCOME_PUBLISHED"
    PRIZE_CLAIMED = "PRIZE_CLAIMED"
    REFUND = "REFUND"
    ROUND_CREATED = "ROUND_CREATED"
    ROUND_CLOSED = "ROUND_CLOSED"


class WageringRound(Base):
    __tablename__ = "wagering_rounds"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    administrator = Column(String(128), nullable=False, index=True)
    commission_percent = Column(Integer, nullable=False)

    # 絕對 tick，建立後不可變
    created_tick = Column(BigInteger, nullable=False)
    betting_deadline = Column(BigInteger, nullable=False)
    outcome_deadline = Column(BigInteger, nullable=False)
    claim_deadline = Column(BigInteger, nullable=False)
    close_deadline = Column(BigInteger, nullable=False)

    outcome = Column(String(66), nullable=True)
    payout_rate_per_hundred = Column(BaseUnits, nullable=False, default=0)

    total_escrowed = Column(BaseUnits, nullable=False, default=0)
    balance = Column(BaseUnits, nullable=False, default=0)
    closed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    stakes = relationship("Stake", back_populates="round", cascade="all, delete-orphan")
    supports = relationship("PredictionSupport", back_populates="round", cascade="all, delete-orphan")

    @property
    def deadlines(self):
        return (
            self.betting_deadline,
            self.outcome_deadline,
            self.claim_deadline,
            self.close_deadline,
        )


class Stake(Base):
    __tablename__ = "stakes"
    __table_args__ = (UniqueConstraint("round_id", "participant", name="uq_stake_participant"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Uuid, ForeignKey("wagering_rounds.id"), nullable=False, index=True)
    participant = Column(String(128), nullable=False)

    amount = Column(BaseUnits, nullable=False, default=0)
    # NULL = none sentinel（沒有有效的預測）
    prediction = Column(String(66), nullable=True)

    claimed = Column(Boolean, nullable=False, default=False)
    refunded = Column(Boolean, nullable=False, default=False)

    round = relationship("WageringRound", back_populates="stakes")


class PredictionSupport(Base):
    __tablename__ = "prediction_support"
    __table_args__ = (UniqueConstraint("round_id", "prediction", name="uq_support_prediction"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Uuid, ForeignKey("wagering_rounds.id"), nullable=False, index=True)
    prediction = Column(String(66), nullable=False)
    amount = Column(BaseUnits, nullable=False, default=0)

    round = relationship("WageringRound", back_populates="supports")


class Registry(Base):
    __tablename__ = "registries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    administrator = Column(String(128), nullable=False)
    # 註冊表自己的身分，作為它建立的所有回合的管理者
    address = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    entries = relationship("RegistryEntry", back_populates="registry", cascade="all, delete-orphan")


class RegistryEntry(Base):
    __tablename__ = "registry_entries"
    __table_args__ = (UniqueConstraint("registry_id", "identifier", name="uq_registry_identifier"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    registry_id = Column(Uuid, ForeignKey("registries.id"), nullable=False, index=True)
    identifier = Column(String(256), nullable=False)
    round_id = Column(Uuid, ForeignKey("wagering_rounds.id"), nullable=False)

    registry = relationship("Registry", back_populates="entries")


class Account(Base):
    __tablename__ = "accounts"

    address = Column(String(128), primary_key=True)
    balance = Column(BaseUnits, nullable=False, default=0)


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Uuid, ForeignKey("wagering_rounds.id"), nullable=True, index=True)
    registry_id = Column(Uuid, ForeignKey("registries.id"), nullable=True, index=True)
    event_type = Column(String(32), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    tick = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class LedgerClock(Base):
    __tablename__ = "ledger_clock"

    id = Column(Integer, primary_key=True)
    tick = Column(BigInteger, nullable=False, default=0)
