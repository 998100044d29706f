"""
並發控制工具

提供 Database-level 的鎖定機制，讓同一個回合上的操作完全序列化

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking），
SQLite 本身以整個資料庫的寫入鎖序列化，SQLAlchemy 會省略 FOR UPDATE
"""
from sqlalchemy.orm import Session, Query
from uuid import UUID

from models import Registry, WageringRound


def with_round_lock(round_id: UUID, db: Session) -> Query:
    """
    鎖定一個 WageringRound（行級鎖）

    使用場景：
    - 任何會改變下注、支持、餘額或結果的操作
    - 前置條件檢查和狀態更新必須在同一把鎖內完成（防止重複領獎）

    範例：
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(WageringRound).filter(
        WageringRound.id == round_id
    ).with_for_update(nowait=False)


def with_registry_lock(registry_id: UUID, db: Session) -> Query:
    """
    鎖定一個 Registry（行級鎖）

    使用場景：
    - 綁定新識別碼時（防止兩個請求同時綁定同一個識別碼）
    """
    return db.query(Registry).filter(
        Registry.id == registry_id
    ).with_for_update(nowait=False)
