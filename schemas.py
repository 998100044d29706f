"""
API Request / Response schemas（pydantic）
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models import RoundPhase


# ============ Round ============

class RoundCreate(BaseModel):
    commission_percent: int
    betting_offset: int
    outcome_offset: int
    claim_offset: int
    close_offset: int


class RoundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    administrator: str
    commission_percent: int
    created_tick: int
    betting_deadline: int
    outcome_deadline: int
    claim_deadline: int
    close_deadline: int
    outcome: Optional[str]
    payout_rate_per_hundred: int
    total_escrowed: int
    balance: int
    closed: bool
    phase: Optional[RoundPhase] = None


class StakePlace(BaseModel):
    prediction: str
    amount: int


class StakeAmount(BaseModel):
    amount: int


class PredictionChange(BaseModel):
    prediction: str


class StakeResponse(BaseModel):
    participant: str
    amount: int
    prediction: Optional[str]


class SupportResponse(BaseModel):
    prediction: str
    support: int


class OutcomeSubmit(BaseModel):
    outcome: str


class CloseSubmit(BaseModel):
    destination: str


class PayoutResponse(BaseModel):
    participant: str
    amount: int


# ============ Registry ============

class RegistryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    administrator: str
    address: str


class RegistryRoundCreate(RoundCreate):
    identifier: str = Field(..., min_length=1, max_length=256)


class RegistryEntryResponse(BaseModel):
    identifier: str
    round_id: UUID


# ============ Events / Clock / Accounts ============

class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    data: Dict[str, Any]
    tick: int
    round_id: Optional[UUID] = None
    registry_id: Optional[UUID] = None
    created_at: datetime


class HistoryEntry(BaseModel):
    event_id: int
    event_type: str
    tick: int
    data: Dict[str, Any]


class HistoryResponse(BaseModel):
    participant: str
    entries: List[HistoryEntry]


class ClockResponse(BaseModel):
    tick: int


class ClockAdvance(BaseModel):
    ticks: int = Field(1, ge=0)


class AccountResponse(BaseModel):
    address: str
    balance: int


class ActionResponse(BaseModel):
    status: str
