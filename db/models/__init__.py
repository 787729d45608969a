# Import all models to ensure they are registered with the database
from .assets import Asset, AssetDailyStat, BrandRatingStat
from .teams import Team
from .lineups import Lineup
from .matches import Match, MatchStatus
from .team_scores import TeamScore, ScoringBreakdownRow
from .scoring_run import ScoringRun

# Creation order respects foreign keys
ALL_MODELS = [
    Asset, AssetDailyStat, BrandRatingStat,
    Team, Lineup, Match,
    TeamScore, ScoringBreakdownRow,
    ScoringRun,
]

__all__ = [
    'Asset', 'AssetDailyStat', 'BrandRatingStat', 'Team', 'Lineup', 'Match', 'MatchStatus',
    'TeamScore', 'ScoringBreakdownRow', 'ScoringRun', 'ALL_MODELS',
]
