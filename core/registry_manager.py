"""
Registry Manager：以人類可讀的識別碼管理多個 WageringRound

職責：
1. 建立 Registry（管理者 + 自己的身分地址）
2. 建立回合並綁定識別碼（只能寫入一次）
3. 查詢識別碼對應的回合
4. 轉發管理者操作（公布結果、關閉回合）

原則：
- 註冊表建立的回合由註冊表自己的身分管理，註冊表的管理者無法繞過註冊表直接操作
- 轉發時呼叫的是 RoundManager 的同一個入口，所有權限和狀態檢查都不會被削弱
"""
from sqlalchemy.orm import Session
from uuid import UUID, uuid4
from typing import Optional, Tuple
import logging

from models import EventType, Registry, RegistryEntry, WageringRound
from core import notifier
from core.authorization import require_authorized
from core.locks import with_registry_lock
from core.round_manager import RoundManager
from core.exceptions import (
    IdentifierAlreadyBound,
    IdentifierNotFound,
    RegistryNotFound,
)
from services.identity_service import generate_registry_address, normalize_address
from database import transactional

logger = logging.getLogger(__name__)


class RegistryManager:
    """Registry 管理器"""

    @staticmethod
    @transactional
    def create_registry(db: Session, administrator: str) -> Registry:
        """
        建立新的註冊表

        參數：
            db: SQLAlchemy Session
            administrator: 唯一可以建立回合、公布結果、關閉回合的身分

        返回：
            Registry（address 由 id 推導）
        """
        registry_id = uuid4()
        registry = Registry(
            id=registry_id,
            administrator=normalize_address(administrator),
            address=generate_registry_address(registry_id),
        )
        db.add(registry)
        db.flush()

        logger.info(f"Created registry {registry.id} (address={registry.address}) for {registry.administrator}")
        return registry

    @staticmethod
    def get_registry(db: Session, registry_id: UUID) -> Registry:
        registry = db.query(Registry).filter(Registry.id == registry_id).first()
        if not registry:
            raise RegistryNotFound(registry_id)
        return registry

    @staticmethod
    def _find_entry(db: Session, registry_id: UUID, identifier: str) -> Optional[RegistryEntry]:
        return db.query(RegistryEntry).filter(
            RegistryEntry.registry_id == registry_id,
            RegistryEntry.identifier == identifier
        ).first()

    @staticmethod
    def _require_entry(db: Session, registry_id: UUID, identifier: str) -> RegistryEntry:
        entry = RegistryManager._find_entry(db, registry_id, identifier)
        if not entry:
            raise IdentifierNotFound(identifier)
        return entry

    @staticmethod
    @transactional
    def create_round(
        db: Session,
        registry_id: UUID,
        caller: str,
        identifier: str,
        commission_percent: int,
        betting_offset: int,
        outcome_offset: int,
        claim_offset: int,
        close_offset: int,
    ) -> Tuple[RegistryEntry, WageringRound]:
        """
        建立回合並綁定識別碼

        流程：
        1. 鎖定註冊表並檢查權限
        2. 檢查識別碼尚未綁定
        3. 建立回合（管理者為註冊表的地址）
        4. 綁定識別碼並發出 ROUND_CREATED

        異常：
            RegistryNotFound: 註冊表不存在
            NotAuthorized: 呼叫者不是註冊表管理者
            IdentifierAlreadyBound: 識別碼已經被使用
            InvalidSchedule / InvalidCommission: 回合參數不合法
        """
        # 1. 取得並鎖定 Registry
        registry = with_registry_lock(registry_id, db).first()
        if not registry:
            raise RegistryNotFound(registry_id)
        require_authorized(caller, registry.administrator)

        # 2. 識別碼只能寫入一次
        if RegistryManager._find_entry(db, registry_id, identifier):
            raise IdentifierAlreadyBound(identifier)

        # 3. 建立回合（不 commit，和綁定放在同一個 transaction）
        round_obj = RoundManager.open_round(
            db, registry.address, commission_percent,
            betting_offset, outcome_offset, claim_offset, close_offset
        )

        # 4. 綁定並記錄事件
        entry = RegistryEntry(registry_id=registry_id, identifier=identifier, round_id=round_obj.id)
        db.add(entry)
        db.flush()

        logger.info(f"Registry {registry_id} bound {identifier!r} to round {round_obj.id}")
        notifier.emit(
            db,
            EventType.ROUND_CREATED,
            {"id": identifier, "round": str(round_obj.id)},
            round_id=round_obj.id,
            registry_id=registry_id,
        )
        return entry, round_obj

    @staticmethod
    def get(db: Session, registry_id: UUID, identifier: str) -> Optional[UUID]:
        """
        查詢識別碼對應的回合

        返回：
            回合 UUID；沒有綁定時返回 None
        """
        RegistryManager.get_registry(db, registry_id)
        entry = RegistryManager._find_entry(db, registry_id, identifier)
        return entry.round_id if entry else None

    @staticmethod
    def publish_outcome(db: Session, registry_id: UUID, caller: str, identifier: str, outcome: str) -> WageringRound:
        """
        轉發公布結果

        注意：
            - 不使用 @transactional：這裡不寫入任何資料，
              實際的寫入由 RoundManager.publish_outcome 自己的 transaction 完成
        """
        registry = RegistryManager.get_registry(db, registry_id)
        require_authorized(caller, registry.administrator)
        entry = RegistryManager._require_entry(db, registry_id, identifier)

        logger.info(f"Registry {registry_id} forwarding outcome {outcome!r} to {identifier!r}")
        return RoundManager.publish_outcome(db, entry.round_id, registry.address, outcome)

    @staticmethod
    def close_round(db: Session, registry_id: UUID, caller: str, identifier: str, destination: str) -> int:
        """轉發關閉回合，返回轉出的金額"""
        registry = RegistryManager.get_registry(db, registry_id)
        require_authorized(caller, registry.administrator)
        entry = RegistryManager._require_entry(db, registry_id, identifier)

        logger.info(f"Registry {registry_id} forwarding close of {identifier!r} to {destination}")
        return RoundManager.close_round(db, entry.round_id, registry.address, destination)
