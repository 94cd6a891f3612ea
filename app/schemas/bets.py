from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, List

from app.config import MIN_STAKE, MAX_SELECTIONS_PER_BET


class BetSelectionCreate(BaseModel):
    fixture_id: int = Field(..., gt=0)
    market: str = Field(..., min_length=1, max_length=100)
    selection: str = Field(..., min_length=1, max_length=200)
    odds: float = Field(..., gt=0)
    match_description: Optional[str] = Field(default=None, max_length=200)
    kickoff: Optional[datetime] = None


class BetCreate(BaseModel):
    stake: float
    selections: List[BetSelectionCreate]

    @field_validator("stake")
    @classmethod
    def stake_above_minimum(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("stake must be positive")
        if value < MIN_STAKE:
            raise ValueError(f"minimum stake is {MIN_STAKE}")
        return value

    @field_validator("selections")
    @classmethod
    def selection_count(cls, value: List[BetSelectionCreate]) -> List[BetSelectionCreate]:
        if not value:
            raise ValueError("at least one selection is required")
        if len(value) > MAX_SELECTIONS_PER_BET:
            raise ValueError(f"too many selections: maximum is {MAX_SELECTIONS_PER_BET}")
        return value

    @model_validator(mode="after")
    def distinct_fixtures(self):
        fixture_ids = [s.fixture_id for s in self.selections]
        if len(set(fixture_ids)) != len(fixture_ids):
            raise ValueError("duplicate fixture: a bet cannot combine selections from the same match")
        return self

    @property
    def is_combo(self) -> bool:
        return len(self.selections) > 1


class BetSelectionRead(BaseModel):
    id: int
    fixture_id: int
    market: str
    selection: str
    odds: float
    status: str
    selection_code: Optional[dict] = None
    match_description: Optional[str] = None
    kickoff: Optional[datetime] = None

    class Config:
        from_attributes = True


class BetRead(BaseModel):
    id: int
    user_id: str
    league_id: Optional[int] = None
    stake: float
    odds: float
    bet_type: str
    status: str
    payout: float
    week: int
    created_at: datetime
    settled_at: Optional[datetime] = None
    selections: List[BetSelectionRead] = []

    class Config:
        from_attributes = True


class CancelBetResponse(BaseModel):
    bet_id: int
    status: str
    refunded: float
