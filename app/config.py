import os
from typing import Dict, List

SQLITE_URL = "sqlite:///./jambol.db"
POSTGRES_URL = os.environ.get("DATABASE_URL")

DATABASE_URL = POSTGRES_URL if POSTGRES_URL else SQLITE_URL

SERVICE_ROLE_KEY = os.environ.get("SERVICE_ROLE_KEY")
JWT_SECRET = os.environ.get("JWT_SECRET", "default-dev-secret-change-in-prod")
JWT_ALGORITHM = "HS256"
INTERNAL_FUNCTION_SECRET = os.environ.get("INTERNAL_FUNCTION_SECRET")

API_FOOTBALL_KEY = os.environ.get("API_FOOTBALL_KEY")
API_FOOTBALL_BASE = os.environ.get("API_FOOTBALL_BASE", "https://v3.football.api-sports.io")
FIXTURES_TIMEOUT_SECONDS = 15.0
ODDS_TIMEOUT_SECONDS = 20.0

PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000")

PAYPAL_IPN_URL = os.environ.get("PAYPAL_IPN_URL", "https://ipnpb.paypal.com/cgi-bin/webscr")
PAYPAL_SANDBOX_IPN_URL = os.environ.get(
    "PAYPAL_SANDBOX_IPN_URL", "https://ipnpb.sandbox.paypal.com/cgi-bin/webscr"
)

GA_MEASUREMENT_ID = os.environ.get("GA_MEASUREMENT_ID", "")
ADSENSE_CLIENT_ID = os.environ.get("ADSENSE_CLIENT_ID", "")

TASK_WORKER_ENABLED = os.environ.get("TASK_WORKER_ENABLED", "false").lower() == "true"
TASK_POLL_SECONDS = int(os.environ.get("TASK_POLL_SECONDS", "60"))
TASK_MAX_ATTEMPTS = 3
# A running task whose claim is older than this is presumed abandoned and picked up again.
TASK_LEASE_MINUTES = int(os.environ.get("TASK_LEASE_MINUTES", "30"))

DEFAULT_WEEKLY_BUDGET = 1000.0
MIN_STAKE = 0.01
MAX_SELECTIONS_PER_BET = 10
DEFAULT_CUTOFF_MINUTES = 15
SETTLEMENT_DELAY_HOURS = 5
FINISHED_FIXTURES_LOOKBACK = 50
FINISHED_STATUSES = ("FT", "AET", "PEN")
SELECCIONES_DAYS_AHEAD = 7

LEAGUE_NAME_MIN_LENGTH = 3
LEAGUE_NAME_MAX_LENGTH = 50
LEAGUE_MIN_BUDGET = 100.0
LEAGUE_MIN_BET = 1.0

BET_STATUSES: List[str] = ["pending", "won", "lost", "cancelled"]
PAYMENT_TYPES: List[str] = ["donation", "pro", "premium"]

# Each context owns a pair of odds cache rows: the current snapshot and the one it replaced.
COMPETITIONS: Dict[str, Dict] = {
    "leagues": {
        "label": "Leagues",
        "leagues": {
            140: {"name": "La Liga", "next": 10},
            2: {"name": "Champions League", "next": 18},
            3: {"name": "Europa League", "next": 18},
            262: {"name": "Liga MX", "next": 10},
        },
        "current_row": 1,
        "previous_row": 2,
        "setting": None,
        "process_function": "process-matchday-results",
        "results_function": "secure-run-process-matchday-results",
    },
    "selecciones": {
        "label": "Selecciones",
        # Fixtures are discovered by date; the league id is only used to settle them.
        "leagues": {
            32: {"name": "World Cup - Qualification Europe", "next": None},
        },
        "current_row": 3,
        "previous_row": 4,
        "setting": "enable_selecciones",
        "process_function": "process-selecciones-results",
        "results_function": "secure-run-process-selecciones-results",
    },
    "coparey": {
        "label": "Copa del Rey",
        "leagues": {
            143: {"name": "Copa del Rey", "next": 10},
        },
        "current_row": 5,
        "previous_row": 6,
        "setting": "enable_coparey",
        "process_function": "process-coparey-results",
        "results_function": "secure-run-process-coparey-results",
    },
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_JSON = os.environ.get("LOG_JSON", "false").lower() == "true"
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*").split(",")
