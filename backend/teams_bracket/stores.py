"""
Stores: SQLModel-backed persistence for the bracket engine.

Stores only add/flush; the calling service owns the transaction and commits.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from sqlmodel import Session, select

from teams_bracket.errors import NotFoundError
from teams_bracket.models.match import Match, MatchCategory, MatchStatus
from teams_bracket.models.matchup import Matchup, MatchupStatus
from teams_bracket.models.stage import Stage
from teams_bracket.models.team import Team
from teams_bracket.services import team_aggregates
from teams_bracket.services.team_aggregates import StatDelta


class StageStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, stage_id: int) -> Stage:
        stage = self.session.get(Stage, stage_id)
        if not stage:
            raise NotFoundError(f"Stage {stage_id} not found")
        return stage

    def update(self, stage: Stage) -> Stage:
        self.session.add(stage)
        self.session.flush()
        return stage


class TeamStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, team_id: int) -> Team:
        team = self.session.get(Team, team_id)
        if not team:
            raise NotFoundError(f"Team {team_id} not found")
        return team

    def list_by_stage(self, stage_id: int, group_id: Optional[str] = None) -> List[Team]:
        query = select(Team).where(Team.stage_id == stage_id)
        if group_id is not None:
            query = query.where(Team.group_id == group_id)
        return list(self.session.exec(query.order_by(Team.seed, Team.id)).all())

    def create_many(self, teams: Sequence[Team]) -> List[Team]:
        self.session.add_all(teams)
        self.session.flush()
        return list(teams)

    def update(self, team: Team) -> Team:
        team.updated_at = datetime.utcnow()
        self.session.add(team)
        self.session.flush()
        return team

    def update_positions(self, positions: Sequence[Tuple[int, int]]) -> None:
        """Write (team_id, position) pairs as one batch."""
        for team_id, position in positions:
            team = self.get(team_id)
            team.position = position
            self.session.add(team)
        self.session.flush()

    def increment_stats(self, deltas: Sequence[Tuple[int, StatDelta]]) -> None:
        """Apply (team_id, delta) pairs as one batch."""
        for team_id, delta in deltas:
            if delta.is_zero():
                continue
            team = team_aggregates.increment(self.get(team_id), delta)
            self.session.add(team)
        self.session.flush()

    def reset_stats(self, stage_id: int) -> None:
        for team in self.list_by_stage(stage_id):
            self.session.add(team_aggregates.reset(team))
        self.session.flush()

    def delete_by_stage(self, stage_id: int) -> int:
        teams = self.list_by_stage(stage_id)
        for team in teams:
            self.session.delete(team)
        self.session.flush()
        return len(teams)


class MatchupStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, matchup_id: int) -> Matchup:
        matchup = self.session.get(Matchup, matchup_id)
        if not matchup:
            raise NotFoundError(f"Matchup {matchup_id} not found")
        return matchup

    def list_by_stage(self, stage_id: int, phase: Optional[str] = None) -> List[Matchup]:
        query = select(Matchup).where(Matchup.stage_id == stage_id)
        if phase is not None:
            query = query.where(Matchup.phase == phase)
        return list(self.session.exec(query.order_by(Matchup.bracket_order, Matchup.id)).all())

    def create(self, matchup: Matchup) -> Matchup:
        self.session.add(matchup)
        self.session.flush()
        return matchup

    def create_many(self, matchups: Sequence[Matchup]) -> List[Matchup]:
        self.session.add_all(matchups)
        self.session.flush()
        return list(matchups)

    def update(self, matchup: Matchup) -> Matchup:
        matchup.updated_at = datetime.utcnow()
        self.session.add(matchup)
        self.session.flush()
        return matchup

    def record_result(self, matchup: Matchup, winner_team_id: int) -> Matchup:
        matchup.status = MatchupStatus.FINISHED.value
        matchup.winner_team_id = winner_team_id
        return self.update(matchup)

    def mark_has_decider(self, matchup: Matchup, total_matches: int) -> Matchup:
        matchup.has_decider = True
        matchup.total_matches = total_matches
        return self.update(matchup)

    def all_finished_for_phase(self, stage_id: int, phase: str) -> bool:
        matchups = self.list_by_stage(stage_id, phase=phase)
        return bool(matchups) and all(m.status == MatchupStatus.FINISHED for m in matchups)

    def delete_by_stage(self, stage_id: int) -> int:
        matchups = self.list_by_stage(stage_id)
        for matchup in matchups:
            self.session.delete(matchup)
        self.session.flush()
        return len(matchups)


class MatchStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, match_id: int) -> Match:
        match = self.session.get(Match, match_id)
        if not match:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    def list_by_matchup(self, matchup_id: int) -> List[Match]:
        return list(
            self.session.exec(
                select(Match).where(Match.matchup_id == matchup_id).order_by(Match.ordinal)
            ).all()
        )

    def list_by_stage(self, stage_id: int) -> List[Match]:
        return list(
            self.session.exec(
                select(Match).where(Match.stage_id == stage_id).order_by(Match.matchup_id, Match.ordinal)
            ).all()
        )

    def count_pending_regular(self, stage_id: int, phase: str) -> int:
        """Unplayed non-decider matches of the stage's matchups in phase."""
        query = (
            select(Match)
            .join(Matchup, Match.matchup_id == Matchup.id)
            .where(Match.stage_id == stage_id)
            .where(Matchup.phase == phase)
            .where(Match.status == MatchStatus.PENDING.value)
            .where(Match.category != MatchCategory.decider.value)
        )
        return len(self.session.exec(query).all())

    def create_many(self, matches: Sequence[Match]) -> List[Match]:
        self.session.add_all(matches)
        self.session.flush()
        return list(matches)

    def update(self, match: Match) -> Match:
        self.session.add(match)
        self.session.flush()
        return match

    def record_result(
        self,
        match: Match,
        set_scores: List[Dict[str, int]],
        team_a_sets: int,
        team_b_sets: int,
        winner_team_id: int,
    ) -> Match:
        match.set_scores = [dict(s) for s in set_scores]
        match.team_a_sets = team_a_sets
        match.team_b_sets = team_b_sets
        match.winner_team_id = winner_team_id
        match.status = MatchStatus.FINISHED.value
        match.finished_at = datetime.utcnow()
        return self.update(match)

    def delete_by_stage(self, stage_id: int) -> int:
        matches = self.list_by_stage(stage_id)
        for match in matches:
            self.session.delete(match)
        self.session.flush()
        return len(matches)


# =============================================================================
# Player statistics (collaborator)
# =============================================================================


@dataclass(frozen=True)
class PlayerStatDelta:
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    games_won: int = 0
    games_lost: int = 0

    def __neg__(self) -> "PlayerStatDelta":
        return PlayerStatDelta(**{f.name: -getattr(self, f.name) for f in fields(self)})


class PlayerStatsCollaborator(Protocol):
    def increment(self, stage_id: int, player_id: str, delta: PlayerStatDelta) -> None:
        ...


class NullPlayerStats:
    """Default collaborator: player statistics live outside the bracket engine."""

    def increment(self, stage_id: int, player_id: str, delta: PlayerStatDelta) -> None:
        return None
