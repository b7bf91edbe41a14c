"""
Classification: deterministic standings for a stage or a group.

Tie-break cascade (descending unless noted):
1. points
2. match differential
3. game differential
4. games won
5. team name (ascending), then team id
"""

import logging
from typing import List, Sequence, Tuple

from sqlmodel import Session

from teams_bracket.models.team import Team
from teams_bracket.stores import TeamStore

logger = logging.getLogger(__name__)


def classification_key(team: Team) -> Tuple[int, int, int, int, str, int]:
    return (
        -team.points,
        -team.match_diff,
        -team.game_diff,
        -team.games_won,
        team.name,
        team.id or 0,
    )


def rank_teams(teams: Sequence[Team]) -> List[Team]:
    return sorted(teams, key=classification_key)


def group_standings(session: Session, stage_id: int, group_id: str) -> List[Team]:
    """Teams of one group in classification order. Does not write positions."""
    return rank_teams(TeamStore(session).list_by_stage(stage_id, group_id=group_id))


def recalculate_classification(session: Session, stage_id: int, commit: bool = True) -> List[Team]:
    """
    Recompute positions 1..N for every team of the stage.

    Positions are written as one batch; with commit=False the caller's
    transaction owns the write. Idempotent.
    """
    store = TeamStore(session)
    ranked = rank_teams(store.list_by_stage(stage_id))
    store.update_positions([(team.id, position) for position, team in enumerate(ranked, start=1)])

    if commit:
        session.commit()
        for team in ranked:
            session.refresh(team)

    logger.debug("Classification for stage %s: %s", stage_id, [t.name for t in ranked])
    return ranked
