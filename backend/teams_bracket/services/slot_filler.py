"""
Elimination Slot Filler: once every group matchup is finished, resolve the
knockout sides that come from group positions, walk BYE matchups over, and
move winners into the next matchup.

Re-entrant: sides that already hold a team are never touched.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session

from teams_bracket.models.matchup import KNOCKOUT_PHASES, Matchup, MatchupPhase
from teams_bracket.services.bracket_rules import QUALIFIERS_PER_GROUP
from teams_bracket.services.classification import group_standings
from teams_bracket.services.origins import GroupOrigin, origin_from_dict
from teams_bracket.stores import MatchStore, MatchupStore, TeamStore

logger = logging.getLogger(__name__)

SIDES = ("a", "b")


def _side_team(matchup: Matchup, side: str) -> Optional[int]:
    return getattr(matchup, f"team_{side}_id")


def _first_empty_side(target: Matchup) -> Optional[str]:
    for side in SIDES:
        if _side_team(target, side) is None:
            return side
    return None


def propagate_winner(session: Session, matchup: Matchup) -> Optional[Matchup]:
    """
    Write matchup's winner into its next matchup.

    The winner takes the first empty side (team_a, else team_b), whichever
    feeder finishes first. No-op (returns None) for the final, an undecided
    matchup, or a full target.
    """
    if matchup.next_matchup_id is None or matchup.winner_team_id is None:
        return None

    store = MatchupStore(session)
    target = store.get(matchup.next_matchup_id)
    side = _first_empty_side(target)
    if side is None:
        return None

    setattr(target, f"team_{side}_id", matchup.winner_team_id)
    store.update(target)
    logger.info(
        "Team %s advanced from matchup %s to matchup %s (side %s)",
        matchup.winner_team_id,
        matchup.id,
        target.id,
        side,
    )
    return target


def retract_winner(session: Session, matchup: Matchup) -> Optional[Matchup]:
    """Undo propagate_winner for matchup's current winner, if it is still in place."""
    if matchup.next_matchup_id is None or matchup.winner_team_id is None:
        return None

    store = MatchupStore(session)
    target = store.get(matchup.next_matchup_id)
    for side in SIDES:
        if _side_team(target, side) == matchup.winner_team_id:
            setattr(target, f"team_{side}_id", None)
            store.update(target)
            return target
    return None


def qualifier_lookup(session: Session, stage_id: int) -> Dict[Tuple[int, str], int]:
    """(rank, group) -> team_id for the qualifying ranks of every group."""
    group_ids = sorted({t.group_id for t in TeamStore(session).list_by_stage(stage_id) if t.group_id})
    lookup: Dict[Tuple[int, str], int] = {}
    for group_id in group_ids:
        standings = group_standings(session, stage_id, group_id)
        for rank, team in enumerate(standings[:QUALIFIERS_PER_GROUP], start=1):
            lookup[(rank, group_id)] = team.id
    return lookup


def _resolve_group_origin(data, lookup: Dict[Tuple[int, str], int]) -> Optional[int]:
    origin = origin_from_dict(data)
    if isinstance(origin, GroupOrigin):
        return lookup.get((origin.rank, origin.group))
    return None


def knockout_matchups(session: Session, stage_id: int) -> List[Matchup]:
    """Knockout matchups, earliest round first."""
    store = MatchupStore(session)
    result: List[Matchup] = []
    for phase in KNOCKOUT_PHASES:
        result.extend(store.list_by_stage(stage_id, phase=phase.value))
    return result


def knockout_seeded(session: Session, stage_id: int) -> bool:
    """True once any knockout side has been filled from a group position."""
    for matchup in knockout_matchups(session, stage_id):
        for side in SIDES:
            origin = origin_from_dict(getattr(matchup, f"origin_{side}"))
            if isinstance(origin, GroupOrigin) and _side_team(matchup, side) is not None:
                return True
    return False


def fill_elimination_slots(session: Session, stage_id: int) -> Dict[str, int]:
    """
    Resolve group origins into teams and walk BYE matchups over.

    Does nothing until every group matchup of the stage is finished and
    every regular group match is played (a 6-a-side matchup can be decided
    before its third match, which still counts for the standings).
    Does not commit.

    Returns:
        Dict with:
        - slots_filled: knockout sides set from group standings
        - byes_resolved: BYE matchups finished by walkover
    """
    summary = {"slots_filled": 0, "byes_resolved": 0}

    store = MatchupStore(session)
    if not store.all_finished_for_phase(stage_id, MatchupPhase.GROUP.value):
        return summary
    if MatchStore(session).count_pending_regular(stage_id, MatchupPhase.GROUP.value):
        return summary

    matchups = knockout_matchups(session, stage_id)
    if not matchups:
        return summary

    lookup = qualifier_lookup(session, stage_id)

    for matchup in matchups:
        if matchup.is_bye:
            if matchup.is_finished:
                continue
            team_id = matchup.team_a_id or _resolve_group_origin(matchup.origin_a, lookup)
            if team_id is None:
                # e.g. the group had no second place; stays open
                continue
            matchup.team_a_id = team_id
            store.record_result(matchup, winner_team_id=team_id)
            propagate_winner(session, matchup)
            summary["byes_resolved"] += 1
            logger.info("BYE matchup %s: team %s advances by walkover", matchup.id, team_id)
            continue

        changed = False
        for side in SIDES:
            if _side_team(matchup, side) is not None:
                continue
            team_id = _resolve_group_origin(getattr(matchup, f"origin_{side}"), lookup)
            if team_id is not None:
                setattr(matchup, f"team_{side}_id", team_id)
                summary["slots_filled"] += 1
                changed = True
        if changed:
            store.update(matchup)

    logger.info(
        "Elimination slots for stage %s: %d filled, %d byes resolved",
        stage_id,
        summary["slots_filled"],
        summary["byes_resolved"],
    )
    return summary
