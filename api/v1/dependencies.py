"""
FastAPI dependencies for the long-lived services built in main.lifespan.
"""

from fastapi import Request

from services.match_scheduler import MatchScheduler
from services.team_aggregator import TeamAggregator


def get_aggregator(request: Request) -> TeamAggregator:
    return request.app.state.aggregator


def get_scheduler(request: Request) -> MatchScheduler:
    return request.app.state.scheduler
