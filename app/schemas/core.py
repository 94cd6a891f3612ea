from enum import Enum
from typing import Literal


class BetStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


class BetType(str, Enum):
    SINGLE = "single"
    COMBO = "combo"


class Outcome(str, Enum):
    HOME = "home"
    AWAY = "away"
    DRAW = "draw"


class LeagueType(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


class Role(str, Enum):
    USER = "user"
    ADMIN_LEAGUE = "admin_league"


class GlobalRole(str, Enum):
    USER = "user"
    SUPERADMIN = "superadmin"


class PaymentType(str, Enum):
    DONATION = "donation"
    PRO = "pro"
    PREMIUM = "premium"


CompetitionContext = Literal["leagues", "selecciones", "coparey"]

TERMINAL_STATUSES = (BetStatus.WON.value, BetStatus.LOST.value, BetStatus.CANCELLED.value)
