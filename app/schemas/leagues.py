from pydantic import BaseModel, Field, model_validator
from datetime import datetime, date
from typing import Optional, List

from app.config import (
    LEAGUE_NAME_MIN_LENGTH, LEAGUE_NAME_MAX_LENGTH, LEAGUE_MIN_BUDGET, LEAGUE_MIN_BET, DEFAULT_WEEKLY_BUDGET
)


class LeagueCreate(BaseModel):
    name: str = Field(..., min_length=LEAGUE_NAME_MIN_LENGTH, max_length=LEAGUE_NAME_MAX_LENGTH)
    budget: float = Field(default=DEFAULT_WEEKLY_BUDGET, ge=LEAGUE_MIN_BUDGET)
    min_bet: float = Field(default=LEAGUE_MIN_BET, ge=LEAGUE_MIN_BET)
    max_bet: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def max_not_below_min(self):
        if self.max_bet is not None and self.max_bet < self.min_bet:
            raise ValueError("max_bet must be greater than or equal to min_bet")
        return self


class JoinLeagueRequest(BaseModel):
    join_code: str = Field(..., min_length=4, max_length=12)


class LeagueRead(BaseModel):
    id: int
    name: str
    type: str
    week: int
    join_code: str
    budget: float
    min_bet: float
    max_bet: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StandingRow(BaseModel):
    position: int
    user_id: str
    username: str
    total_points: float
    last_week_points: float


class StandingsResponse(BaseModel):
    league_id: int
    week: int
    standings: List[StandingRow]


class AvailabilityUpdate(BaseModel):
    league_id: Optional[int] = None
    date: date
    is_live_betting_enabled: bool


class SettingUpdate(BaseModel):
    setting_key: str = Field(..., min_length=1, max_length=100)
    setting_value: str
    description: Optional[str] = None
