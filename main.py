"""
Trend League Scoring Service

Scores fantasy trend teams, runs head-to-head matches (halftime, overtime,
golden goal) on a periodic scheduler, and pushes scoring plays to clients.
The HTTP surface is internal: bearer-token protected trigger endpoints
plus an unauthenticated health check.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8001

Environment Variables:
    PIPELINE_API_TOKEN - Required secret token for the trigger endpoints
    DATABASE_URL - Database connection (postgresql+pool://... or sqlite:///...)
    SCHEDULER_ENABLED - Run the match scheduler inside this process (default true)
"""

from contextlib import asynccontextmanager
from datetime import datetime

import pytz
from fastapi import FastAPI

from api.v1 import matches, pipelines, teams
from core.correlation_middleware import CorrelationMiddleware
from core.logging import setup_logging, get_logger
from core.middleware import setup_middleware
from core.resilience import is_circuit_open
from core.settings import settings
from db.base import close_db, init_db
from schemas.common import success_response
from services.halftime_service import HalftimeService
from services.match_scheduler import MatchScheduler
from services.overtime_service import OvertimeService
from services.push_transport import create_push_transport
from services.score_broadcaster import ScoreBroadcaster
from services.team_aggregator import TeamAggregator


def build_scheduler() -> MatchScheduler:
    """Wire the scoring services around one push transport."""
    transport = create_push_transport()
    return MatchScheduler(
        aggregator=TeamAggregator(),
        broadcaster=ScoreBroadcaster(transport),
        halftime=HalftimeService(transport),
        overtime=OvertimeService(transport),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(
        log_level=settings.log_level,
        json_format=settings.log_format == "json",
        service_name=settings.service_name,
    )
    log = get_logger()
    log.info("service_starting", service=settings.service_name)

    init_db()
    log.info("database_initialized")

    scheduler = build_scheduler()
    app.state.scheduler = scheduler
    app.state.aggregator = scheduler.aggregator

    if settings.scheduler_enabled:
        scheduler.start()
    else:
        log.info("scheduler_disabled")

    yield

    await scheduler.stop()
    close_db()
    log.info("service_stopped")


app = FastAPI(
    title="Trend League Scoring Service",
    description="Internal API for team scoring, match evaluation and batch rescoring",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationMiddleware)
setup_middleware(app)

app.include_router(pipelines.router, prefix="/v1")
app.include_router(teams.router, prefix="/v1")
app.include_router(matches.router, prefix="/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint (no authentication required)."""
    now = datetime.now(pytz.timezone(settings.challenge_timezone))
    return success_response(
        message="healthy",
        data={"push_circuit_open": is_circuit_open()},
        timestamp=now.isoformat(),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
