"""
Pipeline Configuration

Frozen metadata for a rescoring pipeline.
"""

import re
from dataclasses import dataclass

from scoring.periods import Scope

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Attributes:
        name: Registry and ScoringRun name, snake_case (e.g. "weekly_team_scores")
        display_name: Human-readable name
        description: What the run rescores
        target_table: Table the run writes
        scope: Period the run resolves from its target date (daily or ISO week)
    """

    name: str
    display_name: str
    description: str
    target_table: str
    scope: Scope = Scope.DAILY

    def __post_init__(self):
        if not _NAME_PATTERN.match(self.name or ""):
            raise ValueError(f"Pipeline name must be snake_case, got {self.name!r}")
        if not self.target_table:
            raise ValueError("Pipeline target_table is required")
        # Accept "daily" / "weekly" strings as well as Scope members
        object.__setattr__(self, "scope", Scope(self.scope))
