from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from app.config import ALLOWED_ORIGINS, LOG_JSON, LOG_LEVEL, TASK_WORKER_ENABLED
from app.db import init_db
from app.errors import JambolError
from app.routers import admin, bets, functions, health, jobs, leagues, odds
from app.services.background_jobs import start_all_jobs, stop_all_jobs
from app.services.monitoring import CallMonitor
from app.utils.logging import setup_logging, request_logger
from app.utils.messages import friendly_error

logger = setup_logging(level=LOG_LEVEL, json_format=LOG_JSON)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if TASK_WORKER_ENABLED:
        await start_all_jobs()
    yield
    if TASK_WORKER_ENABLED:
        await stop_all_jobs()


app = FastAPI(
    title="Jambol - Social Sports Betting",
    description="""
# Jambol API

Play-money football betting between friends, organised in private leagues.

## Features

- **Leagues**: private leagues with join codes, weekly budgets and standings
- **Bets**: single and combined bets on La Liga, European cups, Liga MX, Copa del Rey and national teams
- **Odds cache**: upstream odds refreshed into current/previous snapshots
- **Settlement**: bets settled automatically a few hours after the last kickoff

## Authentication

User endpoints take a bearer JWT. Internal functions take the `x-internal-secret` header;
secure wrappers also accept the service-role key or a superadmin token.
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "health", "description": "Health check and public configuration"},
        {"name": "functions", "description": "Edge functions invoked by schedulers, admins and PayPal"},
        {"name": "bets", "description": "Bet placement and cancellation"},
        {"name": "leagues", "description": "Leagues and standings"},
        {"name": "odds", "description": "Cached odds snapshots"},
        {"name": "admin", "description": "Betting settings and match availability"},
        {"name": "jobs", "description": "Delayed-task worker"}
    ]
)

app.state.monitor = CallMonitor()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Client-Info", "apikey", "X-Internal-Secret"],
    expose_headers=["X-Process-Time"],
)

app.include_router(health.router)
app.include_router(functions.router)
app.include_router(bets.router)
app.include_router(leagues.router)
app.include_router(odds.router)
app.include_router(admin.router)
app.include_router(jobs.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    process_time_ms = process_time * 1000

    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip() or (
        request.client.host if request.client else "unknown"
    )

    if process_time > 1.0:
        logger.warning(f"Slow request: {request.method} {request.url.path} took {process_time:.2f}s")

    request_logger.log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=process_time_ms,
        client_ip=client_ip
    )

    response.headers["X-Process-Time"] = str(round(process_time_ms, 2))

    return response


@app.exception_handler(JambolError)
async def jambol_error_handler(request: Request, exc: JambolError):
    content = {"error": exc.message}
    # Authorization failures stay bare.
    if 400 <= exc.status_code < 500 and exc.status_code != 401:
        content["message"] = friendly_error(exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0].get("msg", "invalid request") if errors else "invalid request"
    first = first.replace("Value error, ", "")
    return JSONResponse(
        status_code=400,
        content={"error": first, "message": friendly_error(first), "details": jsonable_errors(errors)},
    )


def jsonable_errors(errors):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip() or (
        request.client.host if request.client else "unknown"
    )

    request_logger.log_error(
        message=f"Unhandled exception: {type(exc).__name__}",
        exception=exc,
        path=request.url.path,
        client_ip=client_ip
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "type": type(exc).__name__
        }
    )


@app.get("/", tags=["health"])
def root():
    return {
        "name": "Jambol - Social Sports Betting",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc",
        "competitions": ["leagues", "coparey", "selecciones"],
    }
