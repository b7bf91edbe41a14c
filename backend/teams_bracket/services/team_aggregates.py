"""
Team aggregate counters.

Every write to Team's counters goes through increment() or reset().
Differentials (match_diff, game_diff) are derived here and never set directly.
"""

from dataclasses import dataclass, fields
from datetime import datetime

from teams_bracket.models.team import Team
from teams_bracket.services.bracket_rules import POINTS_PER_WIN


@dataclass(frozen=True)
class StatDelta:
    matchups_played: int = 0
    matchups_won: int = 0
    matchups_lost: int = 0
    points: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    games_won: int = 0
    games_lost: int = 0

    def __neg__(self) -> "StatDelta":
        return StatDelta(**{f.name: -getattr(self, f.name) for f in fields(self)})

    def __add__(self, other: "StatDelta") -> "StatDelta":
        return StatDelta(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def is_zero(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))


def match_delta(won: bool, games_won: int, games_lost: int) -> StatDelta:
    """Contribution of one finished match to one side's team."""
    return StatDelta(
        matches_won=1 if won else 0,
        matches_lost=0 if won else 1,
        games_won=games_won,
        games_lost=games_lost,
    )


def matchup_delta(won: bool) -> StatDelta:
    """Contribution of one finished group matchup to one side's team."""
    return StatDelta(
        matchups_played=1,
        matchups_won=1 if won else 0,
        matchups_lost=0 if won else 1,
        points=POINTS_PER_WIN if won else 0,
    )


def increment(team: Team, delta: StatDelta) -> Team:
    """Apply delta (possibly negative, to revert) and refresh differentials."""
    for f in fields(delta):
        value = getattr(delta, f.name)
        if value:
            setattr(team, f.name, getattr(team, f.name) + value)
    team.match_diff = team.matches_won - team.matches_lost
    team.game_diff = team.games_won - team.games_lost
    team.updated_at = datetime.utcnow()
    return team


def reset(team: Team) -> Team:
    """Zero all counters and clear the position."""
    for f in fields(StatDelta):
        setattr(team, f.name, 0)
    team.match_diff = 0
    team.game_diff = 0
    team.position = None
    team.updated_at = datetime.utcnow()
    return team
