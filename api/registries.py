"""
Registry API Endpoints

職責：
1. 建立註冊表（呼叫者成為管理者）
2. 以識別碼建立回合、查詢回合
3. 轉發公布結果與關閉回合（與直接呼叫回合有完全相同的檢查）
"""
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
import logging

from api import after_confirmed_call, to_http_exception
from api.rounds import round_response
from database import get_db
from schemas import (
    ActionResponse,
    CloseSubmit,
    OutcomeSubmit,
    RegistryEntryResponse,
    RegistryResponse,
    RegistryRoundCreate,
    RoundResponse,
)
from core.registry_manager import RegistryManager
from core.exceptions import EscrowException, IdentifierNotFound

router = APIRouter(prefix="/api/registries", tags=["registries"])
logger = logging.getLogger(__name__)


@router.post("", response_model=RegistryResponse)
def create_registry(
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        registry = RegistryManager.create_registry(db, caller)
        response = RegistryResponse.model_validate(registry)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to create registry: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{registry_id}/rounds", response_model=RoundResponse)
def create_registry_round(
    registry_id: UUID,
    round_data: RegistryRoundCreate,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    """
    以識別碼建立回合（管理者 endpoint）

    異常對應：
        識別碼已使用 -> 400
        不是管理者   -> 403
    """
    try:
        _, round_obj = RegistryManager.create_round(
            db,
            registry_id,
            caller,
            round_data.identifier,
            round_data.commission_percent,
            round_data.betting_offset,
            round_data.outcome_offset,
            round_data.claim_offset,
            round_data.close_offset,
        )
        response = round_response(db, round_obj)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to create round in registry: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{registry_id}/rounds/{identifier}", response_model=RegistryEntryResponse)
def get_registry_round(registry_id: UUID, identifier: str, db: Session = Depends(get_db)):
    """取得識別碼對應的回合 UUID"""
    try:
        round_id = RegistryManager.get(db, registry_id, identifier)
        if round_id is None:
            raise IdentifierNotFound(identifier)
        return RegistryEntryResponse(identifier=identifier, round_id=round_id)

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get registry round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{registry_id}/rounds/{identifier}/outcome", response_model=RoundResponse)
def publish_registry_outcome(
    registry_id: UUID,
    identifier: str,
    outcome_data: OutcomeSubmit,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        round_obj = RegistryManager.publish_outcome(
            db, registry_id, caller, identifier, outcome_data.outcome
        )
        response = round_response(db, round_obj)
        after_confirmed_call(db)
        return response

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to publish outcome through registry: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{registry_id}/rounds/{identifier}/close", response_model=ActionResponse)
def close_registry_round(
    registry_id: UUID,
    identifier: str,
    close_data: CloseSubmit,
    caller: str = Header(..., alias="X-Caller"),
    db: Session = Depends(get_db)
):
    try:
        RegistryManager.close_round(db, registry_id, caller, identifier, close_data.destination)
        after_confirmed_call(db)
        return ActionResponse(status="ok")

    except EscrowException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to close round through registry: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
