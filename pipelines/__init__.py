"""
Pipeline Registry

Batch rescoring pipelines by name, plus helpers to run them. Cron jobs hit
the trigger endpoints; backfills pass a date inside the period to rescore.
"""

from datetime import date
from typing import Optional, Type

from core.logging import get_logger
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.team_scores import DailyTeamScoresPipeline, WeeklyTeamScoresPipeline
from schemas.common import ApiStatus
from schemas.pipeline import PipelineResult
from services.team_aggregator import TeamAggregator


# Daily first: a weekly run reads the same daily stats
PIPELINE_REGISTRY: dict[str, Type[BasePipeline]] = {
    cls.config.name: cls for cls in (DailyTeamScoresPipeline, WeeklyTeamScoresPipeline)
}


def get_pipeline(name: str, aggregator: Optional[TeamAggregator] = None) -> BasePipeline:
    """
    Instantiate a pipeline by name.

    Args:
        name: Registered pipeline name (e.g. "daily_team_scores")
        aggregator: Shared aggregator; a fresh one is built when omitted

    Raises:
        KeyError: If pipeline name not found
    """
    if name not in PIPELINE_REGISTRY:
        available = ", ".join(PIPELINE_REGISTRY)
        raise KeyError(f"Unknown pipeline '{name}'. Available: {available}")
    return PIPELINE_REGISTRY[name](aggregator)


async def run_pipeline(
    name: str,
    date_override: Optional[date] = None,
    aggregator: Optional[TeamAggregator] = None,
) -> PipelineResult:
    return await get_pipeline(name, aggregator).run(date_override=date_override)


async def run_all_pipelines(
    date_override: Optional[date] = None,
    aggregator: Optional[TeamAggregator] = None,
) -> dict[str, PipelineResult]:
    """Run every registered pipeline in order; one failing run does not stop the next."""
    log = get_logger("pipeline").bind(operation="run_all")
    log.info("all_pipelines_started", count=len(PIPELINE_REGISTRY))

    results = {}
    for name in PIPELINE_REGISTRY:
        results[name] = await run_pipeline(name, date_override, aggregator)

    log.info(
        "all_pipelines_completed",
        success_count=sum(1 for r in results.values() if r.status == ApiStatus.SUCCESS),
        total_count=len(results),
    )
    return results


def list_pipelines() -> list[dict]:
    return [cls.get_info() for cls in PIPELINE_REGISTRY.values()]


__all__ = [
    "BasePipeline",
    "PipelineConfig",
    "PipelineContext",
    "DailyTeamScoresPipeline",
    "WeeklyTeamScoresPipeline",
    "PIPELINE_REGISTRY",
    "get_pipeline",
    "run_pipeline",
    "run_all_pipelines",
    "list_pipelines",
]
