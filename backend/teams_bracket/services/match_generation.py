"""
Match generation for a matchup: fixed lineups, manual lineups and the decider.

TEAMS_4: 2 matches (mixed stage: women pair, men pair)
TEAMS_6: 3 matches (mixed stage: women pair, men pair, mixed pair)
Decider (TEAMS_4 only): ordinal 3, created when the first two matches split 1-1.
"""

import logging
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session

from teams_bracket.errors import ValidationError
from teams_bracket.models.match import Match, MatchCategory
from teams_bracket.models.matchup import Matchup
from teams_bracket.models.stage import GameFormation, Stage, StageGender
from teams_bracket.models.team import Team
from teams_bracket.services.bracket_rules import (
    DECIDER_ORDINAL,
    FEMALE,
    MALE,
    MATCHES_PER_MATCHUP,
    PLAYERS_PER_SIDE,
)
from teams_bracket.stores import MatchStore, MatchupStore, StageStore, TeamStore

logger = logging.getLogger(__name__)

Player = Dict[str, Any]
Lineup = Tuple[int, str, List[Player], List[Player]]  # (ordinal, category, team_a pair, team_b pair)


def _by_gender(team: Team, gender: str) -> List[Player]:
    return [dict(p) for p in team.players if p.get("gender") == gender]


def _shuffled(players: Sequence[Player], rng: random.Random) -> List[Player]:
    result = [dict(p) for p in players]
    rng.shuffle(result)
    return result


def _same_gender_category(stage: Stage) -> str:
    if stage.gender == StageGender.women:
        return MatchCategory.women.value
    return MatchCategory.men.value


def _require_mixed_roster(team: Team, per_gender: int) -> None:
    women = len(_by_gender(team, FEMALE))
    men = len(_by_gender(team, MALE))
    if women != per_gender or men != per_gender:
        raise ValidationError(
            f"Team '{team.name}' needs {per_gender} women and {per_gender} men, has {women} and {men}"
        )


def build_lineups(stage: Stage, team_a: Team, team_b: Team, rng: random.Random) -> List[Lineup]:
    """Draw the fixed matches of a matchup from both rosters."""
    if stage.team_size not in MATCHES_PER_MATCHUP:
        raise ValidationError(f"Unsupported team size: {stage.team_size}")

    for team in (team_a, team_b):
        if len(team.players) != stage.team_size:
            raise ValidationError(
                f"Team '{team.name}' has {len(team.players)} players, expected {stage.team_size}"
            )

    if stage.is_mixed:
        per_gender = stage.team_size // 2
        _require_mixed_roster(team_a, per_gender)
        _require_mixed_roster(team_b, per_gender)

        women_a = _shuffled(_by_gender(team_a, FEMALE), rng)
        men_a = _shuffled(_by_gender(team_a, MALE), rng)
        women_b = _shuffled(_by_gender(team_b, FEMALE), rng)
        men_b = _shuffled(_by_gender(team_b, MALE), rng)

        lineups: List[Lineup] = [
            (1, MatchCategory.women.value, women_a[:2], women_b[:2]),
            (2, MatchCategory.men.value, men_a[:2], men_b[:2]),
        ]
        if stage.team_size == 6:
            lineups.append((3, MatchCategory.mixed.value, [women_a[2], men_a[2]], [women_b[2], men_b[2]]))
        return lineups

    category = _same_gender_category(stage)
    players_a = _shuffled(team_a.players, rng)
    players_b = _shuffled(team_b.players, rng)
    return [
        (
            ordinal,
            category,
            players_a[(ordinal - 1) * PLAYERS_PER_SIDE : ordinal * PLAYERS_PER_SIDE],
            players_b[(ordinal - 1) * PLAYERS_PER_SIDE : ordinal * PLAYERS_PER_SIDE],
        )
        for ordinal in range(1, MATCHES_PER_MATCHUP[stage.team_size] + 1)
    ]


def _empty_lineups(stage: Stage) -> List[Lineup]:
    if stage.is_mixed:
        categories = [MatchCategory.women.value, MatchCategory.men.value, MatchCategory.mixed.value]
    else:
        categories = [_same_gender_category(stage)] * 3
    return [
        (ordinal, categories[ordinal - 1], [], [])
        for ordinal in range(1, MATCHES_PER_MATCHUP[stage.team_size] + 1)
    ]


def _resolved_teams(session: Session, matchup: Matchup) -> Tuple[Team, Team]:
    if matchup.team_a_id is None or matchup.team_b_id is None:
        raise ValidationError(f"Matchup {matchup.id} does not have both teams defined yet")
    teams = TeamStore(session)
    return teams.get(matchup.team_a_id), teams.get(matchup.team_b_id)


def create_matchup_matches(
    session: Session, stage: Stage, matchup: Matchup, rng: Optional[random.Random] = None
) -> List[Match]:
    """
    Create the fixed matches of a matchup inside the caller's transaction.

    Manual game formation creates the matches with empty lineups.
    """
    if MatchStore(session).list_by_matchup(matchup.id):
        raise ValidationError(f"Matchup {matchup.id} already has matches")

    team_a, team_b = _resolved_teams(session, matchup)
    if stage.game_formation == GameFormation.manual:
        lineups = _empty_lineups(stage)
    else:
        lineups = build_lineups(stage, team_a, team_b, rng or random.Random())

    matches = [
        Match(
            stage_id=matchup.stage_id,
            matchup_id=matchup.id,
            ordinal=ordinal,
            category=category,
            team_a_players=pair_a,
            team_b_players=pair_b,
        )
        for ordinal, category, pair_a, pair_b in lineups
    ]
    return MatchStore(session).create_many(matches)


def generate_matchup_matches(
    session: Session, matchup_id: int, rng: Optional[random.Random] = None
) -> List[Match]:
    """Create and commit the matches of one matchup (both teams must be known)."""
    matchup = MatchupStore(session).get(matchup_id)
    stage = StageStore(session).get(matchup.stage_id)

    matches = create_matchup_matches(session, stage, matchup, rng)
    session.commit()
    for match in matches:
        session.refresh(match)

    logger.info("Generated %d matches for matchup %s", len(matches), matchup_id)
    return matches


# =============================================================================
# Manual lineups
# =============================================================================


def _pair_key(players: Sequence[Player]) -> frozenset:
    return frozenset(str(p["id"]) for p in players)


def _pick(team: Team, player_ids: Sequence[str]) -> List[Player]:
    if len(player_ids) != PLAYERS_PER_SIDE:
        raise ValidationError(f"Each side needs exactly {PLAYERS_PER_SIDE} players")
    if len(set(player_ids)) != len(player_ids):
        raise ValidationError("A player cannot be paired with themselves")

    roster = {str(p["id"]): p for p in team.players}
    picked = []
    for player_id in player_ids:
        if str(player_id) not in roster:
            raise ValidationError(f"Player {player_id} does not belong to team '{team.name}'")
        picked.append(dict(roster[str(player_id)]))
    return picked


def _required_genders(stage: Stage, category: str) -> Optional[List[str]]:
    """Sorted genders a pair must have for category, None when any pair fits."""
    if category == MatchCategory.women:
        return [FEMALE, FEMALE]
    if category == MatchCategory.men:
        return [MALE, MALE]
    if stage.is_mixed:
        return [FEMALE, MALE]
    return None


def define_match_players(
    session: Session, match_id: int, team_a_player_ids: Sequence[str], team_b_player_ids: Sequence[str]
) -> Match:
    """
    Fill the empty lineup of a match.

    - players must belong to their side's team
    - a pair cannot repeat inside the matchup
    - a player cannot play two non-decider matches of the matchup
    - pair genders must fit the match category (women, men, or one of each
      for mixed and decider matches of a mixed stage)
    """
    match_store = MatchStore(session)
    match = match_store.get(match_id)
    if match.team_a_players or match.team_b_players:
        raise ValidationError(f"Match {match_id} already has players defined")

    matchup = MatchupStore(session).get(match.matchup_id)
    team_a, team_b = _resolved_teams(session, matchup)
    pair_a = _pick(team_a, team_a_player_ids)
    pair_b = _pick(team_b, team_b_player_ids)

    others = [m for m in match_store.list_by_matchup(matchup.id) if m.id != match.id]
    for other in others:
        if other.team_a_players and _pair_key(other.team_a_players) == _pair_key(pair_a):
            raise ValidationError(f"Pair {sorted(_pair_key(pair_a))} already played in this matchup")
        if other.team_b_players and _pair_key(other.team_b_players) == _pair_key(pair_b):
            raise ValidationError(f"Pair {sorted(_pair_key(pair_b))} already played in this matchup")

    if not match.is_decider:
        used = set()
        for other in others:
            if not other.is_decider:
                used |= _pair_key(other.team_a_players) | _pair_key(other.team_b_players)
        repeated = (_pair_key(pair_a) | _pair_key(pair_b)) & used
        if repeated:
            raise ValidationError(f"Players {sorted(repeated)} already played a match in this matchup")

    required = _required_genders(StageStore(session).get(matchup.stage_id), match.category)
    for pair in (pair_a, pair_b):
        genders = sorted(p.get("gender") for p in pair)
        if required is not None and genders != required:
            raise ValidationError(
                f"Match {match_id} ({match.category}) needs {required} players, got {genders}"
            )

    match.team_a_players = pair_a
    match.team_b_players = pair_b
    match_store.update(match)
    session.commit()
    session.refresh(match)
    return match


# =============================================================================
# Decider
# =============================================================================


def needs_decider(matchup: Matchup, matches: Sequence[Match]) -> bool:
    """
    True when a TEAMS_4 matchup has both regular matches finished at 1-1
    and no decider yet. TEAMS_6 (3 fixed matches) never needs one.
    """
    if matchup.has_decider or matchup.total_matches != MATCHES_PER_MATCHUP[4]:
        return False
    if any(m.is_decider for m in matches):
        return False

    finished = [m for m in matches if not m.is_decider and m.is_finished]
    if len(finished) != MATCHES_PER_MATCHUP[4]:
        return False

    wins_a = sum(1 for m in finished if m.winner_team_id == matchup.team_a_id)
    wins_b = sum(1 for m in finished if m.winner_team_id == matchup.team_b_id)
    return wins_a == 1 and wins_b == 1


def _decider_pair(stage: Stage, team: Team, rng: random.Random) -> List[Player]:
    if stage.is_mixed:
        women = _by_gender(team, FEMALE)
        men = _by_gender(team, MALE)
        if not women or not men:
            raise ValidationError(f"Team '{team.name}' needs a woman and a man for the decider")
        return [rng.choice(women), rng.choice(men)]
    return _shuffled(team.players, rng)[:PLAYERS_PER_SIDE]


def generate_decider_if_needed(
    session: Session, matchup_id: int, rng: Optional[random.Random] = None, commit: bool = True
) -> Optional[Match]:
    """
    Create the decider for a matchup tied 1-1, at most once.

    Returns the new decider, or None when none is needed (already exists,
    TEAMS_6, or the regular matches are not finished and split).
    """
    matchup_store = MatchupStore(session)
    matchup = matchup_store.get(matchup_id)
    match_store = MatchStore(session)

    if not needs_decider(matchup, match_store.list_by_matchup(matchup_id)):
        return None

    stage = StageStore(session).get(matchup.stage_id)
    team_a, team_b = _resolved_teams(session, matchup)

    if stage.game_formation == GameFormation.manual:
        pair_a: List[Player] = []
        pair_b: List[Player] = []
    else:
        rng = rng or random.Random()
        pair_a = _decider_pair(stage, team_a, rng)
        pair_b = _decider_pair(stage, team_b, rng)

    (decider,) = match_store.create_many(
        [
            Match(
                stage_id=matchup.stage_id,
                matchup_id=matchup.id,
                ordinal=DECIDER_ORDINAL,
                category=MatchCategory.decider.value,
                team_a_players=pair_a,
                team_b_players=pair_b,
            )
        ]
    )
    matchup_store.mark_has_decider(matchup, total_matches=DECIDER_ORDINAL)

    if commit:
        session.commit()
        session.refresh(decider)

    logger.info("Decider created for matchup %s (match %s)", matchup_id, decider.id)
    return decider
