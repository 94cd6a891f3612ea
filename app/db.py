from sqlalchemy import (
    create_engine, Column, Integer, String, Float, DateTime, Date, Text, ForeignKey, Boolean, JSON,
    UniqueConstraint
)
from sqlalchemy.orm import sessionmaker, relationship, declarative_base
from datetime import datetime
import uuid

from app.config import DATABASE_URL, DEFAULT_WEEKLY_BUDGET

is_sqlite = DATABASE_URL.startswith("sqlite")
connect_args = {"check_same_thread": False} if is_sqlite else {}

engine_options = {
    "pool_pre_ping": True,
}
if not is_sqlite:
    engine_options["pool_recycle"] = 300

engine = create_engine(DATABASE_URL, connect_args=connect_args, **engine_options)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    Base.metadata.create_all(bind=engine)


def _uuid() -> str:
    return str(uuid.uuid4())


class League(Base):
    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    type = Column(String(20), nullable=False, default="standard")
    week = Column(Integer, nullable=False, default=1)
    join_code = Column(String(12), nullable=False, unique=True, index=True)
    budget = Column(Float, nullable=False, default=DEFAULT_WEEKLY_BUDGET)
    min_bet = Column(Float, nullable=False, default=1.0)
    max_bet = Column(Float, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship("Profile", back_populates="league")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(20), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    weekly_budget = Column(Float, nullable=False, default=DEFAULT_WEEKLY_BUDGET)
    total_points = Column(Float, nullable=False, default=0.0)
    last_week_points = Column(Float, nullable=False, default=0.0)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=True, index=True)
    role = Column(String(20), nullable=False, default="user")
    global_role = Column(String(20), nullable=False, default="user")
    theme = Column(String(20), nullable=False, default="system")
    is_pro = Column(Boolean, default=False)
    blocks_available = Column(Integer, nullable=False, default=0)
    weekly_points_history = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    league = relationship("League", back_populates="members")
    bets = relationship("Bet", back_populates="user")


class Bet(Base):
    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=True, index=True)
    stake = Column(Float, nullable=False)
    odds = Column(Float, nullable=False)
    bet_type = Column(String(10), nullable=False, default="single")
    status = Column(String(20), nullable=False, default="pending", index=True)
    payout = Column(Float, nullable=False, default=0.0)
    week = Column(Integer, nullable=False, default=1)
    fixture_id = Column(Integer, nullable=True, index=True)
    market = Column(String(100), nullable=True)
    selection = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    settled_at = Column(DateTime, nullable=True)

    user = relationship("Profile", back_populates="bets")
    selections = relationship(
        "BetSelection", back_populates="bet", cascade="all, delete-orphan", order_by="BetSelection.id"
    )


class BetSelection(Base):
    __tablename__ = "bet_selections"

    id = Column(Integer, primary_key=True, index=True)
    bet_id = Column(Integer, ForeignKey("bets.id"), nullable=False, index=True)
    fixture_id = Column(Integer, nullable=False, index=True)
    market = Column(String(100), nullable=False)
    selection = Column(String(200), nullable=False)
    odds = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    selection_code = Column(JSON, nullable=True)
    match_description = Column(String(200), nullable=True)
    kickoff = Column(DateTime, nullable=True)

    bet = relationship("Bet", back_populates="selections")


class MatchResult(Base):
    __tablename__ = "match_results"

    id = Column(Integer, primary_key=True, index=True)
    fixture_id = Column(Integer, nullable=False, unique=True, index=True)
    match_name = Column(String(200), nullable=True)
    home_team = Column(String(100), nullable=True)
    away_team = Column(String(100), nullable=True)
    league_id = Column(Integer, nullable=True)
    season = Column(Integer, nullable=True)
    home_goals = Column(Integer, nullable=True)
    away_goals = Column(Integer, nullable=True)
    halftime_home = Column(Integer, nullable=True)
    halftime_away = Column(Integer, nullable=True)
    outcome = Column(String(10), nullable=True)
    match_result = Column(String(10), nullable=True)
    kickoff_time = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)


class OddsCache(Base):
    __tablename__ = "match_odds_cache"

    id = Column(Integer, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    info = Column(String(200), nullable=True)
    last_updated = Column(DateTime, nullable=True)


class BettingSetting(Base):
    __tablename__ = "betting_settings"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), nullable=False, unique=True, index=True)
    setting_value = Column(Text, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class MatchAvailability(Base):
    __tablename__ = "match_availability_control"
    __table_args__ = (UniqueConstraint("league_id", "date", name="uq_availability_league_date"),)

    id = Column(Integer, primary_key=True, index=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=True, index=True)
    date = Column(Date, nullable=False, index=True)
    is_live_betting_enabled = Column(Boolean, nullable=False, default=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    league_id = Column(Integer, nullable=True)
    payment_type = Column(String(20), nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="EUR")
    transaction_id = Column(String(100), nullable=False, unique=True, index=True)
    payer_email = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False)
    ipn_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduledTask(Base):
    __tablename__ = "scheduled_tasks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    task_type = Column(String(50), nullable=False)
    run_at = Column(DateTime, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
