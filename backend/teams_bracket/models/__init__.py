from teams_bracket.models.match import Match, MatchCategory, MatchStatus
from teams_bracket.models.matchup import KNOCKOUT_PHASES, Matchup, MatchupPhase, MatchupStatus
from teams_bracket.models.stage import GameFormation, Stage, StageGender
from teams_bracket.models.team import Team

__all__ = [
    "Stage",
    "StageGender",
    "GameFormation",
    "Team",
    "Matchup",
    "MatchupPhase",
    "MatchupStatus",
    "KNOCKOUT_PHASES",
    "Match",
    "MatchCategory",
    "MatchStatus",
]
