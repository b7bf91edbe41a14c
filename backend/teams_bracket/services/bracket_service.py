"""
Bracket Service: stage setup, team renames, bracket generation, reset and
cancellation.

generate_groups_and_bracket() builds every matchup of a stage in one
transaction: group round robins (snake-drafted groups from 6 teams up, a
single round robin below that) plus the knockout tree. Either everything is
written or nothing is.
"""

import logging
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session

from teams_bracket.errors import ValidationError
from teams_bracket.models.matchup import Matchup, MatchupPhase, MatchupStatus
from teams_bracket.models.stage import GameFormation, Stage, StageGender
from teams_bracket.models.team import Team
from teams_bracket.services.bracket_rules import (
    FEMALE,
    GROUP_LETTERS,
    MALE,
    MAX_TEAM_NAME_LENGTH,
    MIN_TEAMS,
    TEAM_SIZES,
    compute_group_count,
    has_elimination_phase,
    matches_per_matchup,
)
from teams_bracket.services.elimination_templates import (
    MatchupTemplate,
    TemplateConfig,
    generate_elimination_templates,
)
from teams_bracket.services.group_assignment import snake_assign
from teams_bracket.services.match_generation import create_matchup_matches
from teams_bracket.services.match_results import release_matchup_locks
from teams_bracket.services.origins import MatchupWinner
from teams_bracket.services.round_robin import generate_round_robin
from teams_bracket.stores import MatchStore, MatchupStore, StageStore, TeamStore

logger = logging.getLogger(__name__)


# =============================================================================
# Stage and teams
# =============================================================================


def create_stage(
    session: Session,
    name: str,
    team_size: int = 4,
    gender: str = StageGender.mixed.value,
    game_formation: str = GameFormation.draw.value,
) -> Stage:
    if team_size not in TEAM_SIZES:
        raise ValidationError(f"team_size must be one of {sorted(TEAM_SIZES)}, got {team_size}")
    if gender not in {g.value for g in StageGender}:
        raise ValidationError(f"Invalid gender: {gender}")
    if game_formation not in {f.value for f in GameFormation}:
        raise ValidationError(f"Invalid game_formation: {game_formation}")

    stage = Stage(name=name, team_size=team_size, gender=gender, game_formation=game_formation)
    session.add(stage)
    session.commit()
    session.refresh(stage)
    return stage


def validate_roster(stage: Stage, players: Sequence[Dict[str, Any]], label: str) -> None:
    """Roster size must match the stage; a mixed roster is half women, half men."""
    if len(players) != stage.team_size:
        raise ValidationError(f"{label}: expected {stage.team_size} players, got {len(players)}")

    for player in players:
        if player.get("id") in (None, ""):
            raise ValidationError(f"{label}: every player needs an id")
        if player.get("gender") not in (FEMALE, MALE):
            raise ValidationError(f"{label}: player {player['id']} has invalid gender {player.get('gender')!r}")

    if stage.is_mixed:
        women = sum(1 for p in players if p["gender"] == FEMALE)
        men = len(players) - women
        if women != men:
            raise ValidationError(f"{label}: mixed teams need {stage.team_size // 2} women and {stage.team_size // 2} men")


def _check_team_name(name: str) -> None:
    if not name:
        raise ValidationError("Team name cannot be empty")
    if len(name) > MAX_TEAM_NAME_LENGTH:
        raise ValidationError(f"Team name cannot be longer than {MAX_TEAM_NAME_LENGTH} characters")


def create_teams(session: Session, stage_id: int, rosters: Sequence[Dict[str, Any]]) -> List[Team]:
    """
    Create teams for a stage.

    Each roster is {"name": optional str, "players": [{"id", "name", "level", "gender"}]}.
    Unnamed teams are called "Equipe N". A player may belong to one team only.
    """
    stage = StageStore(session).get(stage_id)
    if MatchupStore(session).list_by_stage(stage_id):
        raise ValidationError(f"Stage {stage_id} already has a bracket; teams are locked")

    team_store = TeamStore(session)
    existing = team_store.list_by_stage(stage_id)
    seen = {pid for team in existing for pid in team.player_ids()}
    names = {team.name for team in existing}

    teams: List[Team] = []
    for offset, roster in enumerate(rosters, start=1):
        seed = len(existing) + offset
        name = (roster.get("name") or f"Equipe {seed}").strip()
        _check_team_name(name)
        players = [dict(p) for p in roster.get("players") or []]
        validate_roster(stage, players, name)

        ids = [str(p["id"]) for p in players]
        duplicated = (set(ids) & seen) | {pid for pid in ids if ids.count(pid) > 1}
        if duplicated:
            raise ValidationError(f"{name}: players {sorted(duplicated)} are already on a team")
        if name in names:
            raise ValidationError(f"Team name '{name}' is already used in this stage")
        seen.update(ids)
        names.add(name)

        teams.append(Team(stage_id=stage_id, name=name, seed=seed, players=players))

    team_store.create_many(teams)
    session.commit()
    for team in teams:
        session.refresh(team)

    logger.info("Created %d teams for stage %s", len(teams), stage_id)
    return teams


def rename_team(session: Session, team_id: int, name: str) -> Team:
    """Rename a team. Names stay unique within the stage; allowed at any point."""
    team_store = TeamStore(session)
    team = team_store.get(team_id)
    name = (name or "").strip()
    _check_team_name(name)

    taken = {t.name for t in team_store.list_by_stage(team.stage_id) if t.id != team.id}
    if name in taken:
        raise ValidationError(f"Team name '{name}' is already used in this stage")

    previous = team.name
    team.name = name
    try:
        team_store.update(team)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(team)

    logger.info("Team %s renamed from '%s' to '%s'", team_id, previous, name)
    return team


# =============================================================================
# Bracket generation
# =============================================================================


def _group_matchups(
    stage: Stage, groups: Sequence[Tuple[Optional[str], Sequence[Team]]]
) -> List[Matchup]:
    total_matches = matches_per_matchup(stage.team_size)
    matchups: List[Matchup] = []
    for group_id, teams in groups:
        if len(teams) < MIN_TEAMS:
            continue
        for pairing in generate_round_robin(teams, group_id=group_id):
            matchups.append(
                Matchup(
                    stage_id=stage.id,
                    phase=MatchupPhase.GROUP.value,
                    round_number=pairing.round_number,
                    bracket_order=len(matchups) + 1,
                    group_id=group_id,
                    team_a_id=pairing.team_a.id,
                    team_b_id=pairing.team_b.id,
                    total_matches=total_matches,
                )
            )
    return matchups


def store_elimination_templates(session: Session, stage: Stage, templates: Sequence[MatchupTemplate]) -> List[Matchup]:
    """
    Store templates in batch order (deepest round first), so next_matchup_id
    always points at a stored matchup; winner origins get ids in a second pass.
    """
    store = MatchupStore(session)
    created: List[Matchup] = []
    for template in templates:
        created.append(
            store.create(
                Matchup(
                    stage_id=stage.id,
                    phase=template.phase,
                    bracket_order=template.bracket_order,
                    origin_a=template.origin_a.to_dict(),
                    origin_b=template.origin_b.to_dict(),
                    total_matches=template.total_matches,
                    is_bye=template.is_bye,
                    next_matchup_id=created[template.next_index].id if template.next_index is not None else None,
                )
            )
        )

    by_slot = {(t.phase, t.slot): m for t, m in zip(templates, created)}
    for template, matchup in zip(templates, created):
        changed = False
        for side in ("a", "b"):
            origin = getattr(template, f"origin_{side}")
            if isinstance(origin, MatchupWinner):
                source = by_slot[(origin.phase, origin.slot)]
                resolved = MatchupWinner(phase=origin.phase, slot=origin.slot, matchup_id=source.id)
                setattr(matchup, f"origin_{side}", resolved.to_dict())
                changed = True
        if changed:
            store.update(matchup)
    return created


def generate_groups_and_bracket(
    session: Session, stage_id: int, rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Build groups, group matchups (with their matches) and the knockout tree.

    Raises ValidationError for fewer than 2 teams, an existing bracket, or an
    invalid roster. Nothing is written on failure.

    Returns:
        Dict with:
        - groups: {group_id: [team_id, ...]} ({} for a single round robin)
        - group_matchups: number of round-robin matchups
        - elimination_matchups: number of knockout matchups
        - byes: number of BYE matchups
        - matches: number of matches created
    """
    stage = StageStore(session).get(stage_id)
    team_store = TeamStore(session)
    matchup_store = MatchupStore(session)

    teams = team_store.list_by_stage(stage_id)
    if len(teams) < MIN_TEAMS:
        raise ValidationError(f"Stage {stage_id} needs at least {MIN_TEAMS} teams, has {len(teams)}")
    if matchup_store.list_by_stage(stage_id):
        raise ValidationError(f"Stage {stage_id} already has matchups")
    for team in teams:
        validate_roster(stage, team.players, team.name)

    group_count = compute_group_count(len(teams))
    if group_count > len(GROUP_LETTERS):
        raise ValidationError(f"Unsupported group count: {group_count}")

    # Build everything in memory first
    if group_count:
        grouped = snake_assign(teams, group_count)
        groups: List[Tuple[Optional[str], Sequence[Team]]] = list(grouped.items())
        templates = generate_elimination_templates(list(grouped), TemplateConfig(team_size=stage.team_size))
        if not has_elimination_phase(group_count):
            logger.warning("Stage %s: %d groups, no knockout phase", stage_id, group_count)
    else:
        groups = [(None, teams)]
        templates = []

    rng = rng or random.Random()
    try:
        for group_id, members in groups:
            for team in members:
                team.group_id = group_id
                team_store.update(team)

        group_matchups = matchup_store.create_many(_group_matchups(stage, groups))
        matches = []
        for matchup in group_matchups:
            matches.extend(create_matchup_matches(session, stage, matchup, rng))

        knockout = store_elimination_templates(session, stage, templates)
        session.commit()
    except Exception:
        session.rollback()
        raise

    summary = {
        "groups": {group_id: [t.id for t in members] for group_id, members in groups if group_id},
        "group_matchups": len(group_matchups),
        "elimination_matchups": len(knockout),
        "byes": sum(1 for m in knockout if m.is_bye),
        "matches": len(matches),
    }
    logger.info(
        "Stage %s bracket: %d groups, %d group matchups, %d knockout matchups (%d byes)",
        stage_id,
        group_count,
        summary["group_matchups"],
        summary["elimination_matchups"],
        summary["byes"],
    )
    return summary


# =============================================================================
# Reset
# =============================================================================


def reset_stage_results(session: Session, stage_id: int, rng: Optional[random.Random] = None) -> Dict[str, int]:
    """
    Discard every result of a stage and start the matchups over.

    Matches are deleted, matchups go back to SCHEDULED (knockout sides back to
    their origins), team counters are zeroed and group matches are drawn again.
    """
    stage_store = StageStore(session)
    stage = stage_store.get(stage_id)
    matchup_store = MatchupStore(session)
    match_store = MatchStore(session)
    total_matches = matches_per_matchup(stage.team_size)

    try:
        deleted = match_store.delete_by_stage(stage_id)

        matchups = matchup_store.list_by_stage(stage_id)
        for matchup in matchups:
            matchup.status = MatchupStatus.SCHEDULED.value
            matchup.team_a_wins = 0
            matchup.team_b_wins = 0
            matchup.finished_matches = 0
            matchup.total_matches = total_matches
            matchup.has_decider = False
            matchup.winner_team_id = None
            if matchup.phase != MatchupPhase.GROUP:
                matchup.team_a_id = None
                matchup.team_b_id = None
            matchup_store.update(matchup)

        TeamStore(session).reset_stats(stage_id)
        stage.champion_team_id = None
        stage_store.update(stage)

        rng = rng or random.Random()
        created = 0
        for matchup in matchups:
            if matchup.phase == MatchupPhase.GROUP:
                created += len(create_matchup_matches(session, stage, matchup, rng))
        session.commit()
    except Exception:
        session.rollback()
        raise

    release_matchup_locks(m.id for m in matchups)
    logger.info("Stage %s reset: %d matches deleted, %d matches drawn", stage_id, deleted, created)
    return {"matches_deleted": deleted, "matchups_reset": len(matchups), "matches_created": created}


def cancel_bracket(session: Session, stage_id: int) -> Dict[str, int]:
    """
    Delete the stage's matches, matchups and teams so it can start over
    from team registration. The stage itself is kept, without a champion.
    """
    stage_store = StageStore(session)
    stage = stage_store.get(stage_id)
    matchup_store = MatchupStore(session)
    matchup_ids = [m.id for m in matchup_store.list_by_stage(stage_id)]

    try:
        matches = MatchStore(session).delete_by_stage(stage_id)
        matchups = matchup_store.delete_by_stage(stage_id)
        teams = TeamStore(session).delete_by_stage(stage_id)
        stage.champion_team_id = None
        stage_store.update(stage)
        session.commit()
    except Exception:
        session.rollback()
        raise

    release_matchup_locks(matchup_ids)
    logger.info(
        "Stage %s bracket cancelled: %d matches, %d matchups, %d teams deleted",
        stage_id,
        matches,
        matchups,
        teams,
    )
    return {"matches_deleted": matches, "matchups_deleted": matchups, "teams_deleted": teams}
