"""
Match Result Processor.

register_match_result() records one match and drives its matchup through
SCHEDULED -> IN_PROGRESS -> FINISHED:

1. revert the match's previous contribution (result edits)
2. record the match and apply its contribution to both teams
3. recompute the matchup counters from all of its matches
4. on finish: award group points / propagate the winner / crown the champion
5. create the decider when a TEAMS_4 matchup splits 1-1

Writes to one matchup are serialized by an in-process lock per matchup id.
"""

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from teams_bracket.errors import BracketError, ValidationError
from teams_bracket.models.match import Match
from teams_bracket.models.matchup import Matchup, MatchupPhase, MatchupStatus
from teams_bracket.services.bracket_rules import MATCHES_TO_WIN
from teams_bracket.services.classification import recalculate_classification
from teams_bracket.services.match_generation import generate_decider_if_needed, needs_decider
from teams_bracket.services.slot_filler import (
    fill_elimination_slots,
    knockout_seeded,
    propagate_winner,
    retract_winner,
)
from teams_bracket.services.team_aggregates import StatDelta, match_delta, matchup_delta
from teams_bracket.stores import (
    MatchStore,
    MatchupStore,
    NullPlayerStats,
    PlayerStatDelta,
    PlayerStatsCollaborator,
    StageStore,
    TeamStore,
)

logger = logging.getLogger(__name__)

SetScore = Dict[str, int]

# =============================================================================
# Per-matchup locks
# =============================================================================

_locks: Dict[int, threading.Lock] = {}
_locks_guard = threading.Lock()


def matchup_lock(matchup_id: int) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(matchup_id)
        if lock is None:
            lock = _locks[matchup_id] = threading.Lock()
        return lock


def release_matchup_locks(matchup_ids: Iterable[int]) -> None:
    """Forget the locks of matchups that were reset or deleted."""
    with _locks_guard:
        for matchup_id in matchup_ids:
            _locks.pop(matchup_id, None)


# =============================================================================
# Outcomes
# =============================================================================


@dataclass
class MatchResultOutcome:
    match_id: int
    matchup_id: int
    winner_team_id: int
    team_a_sets: int
    team_b_sets: int
    matchup_status: str
    matchup_winner_team_id: Optional[int] = None
    decider_match_id: Optional[int] = None


@dataclass
class BatchResultOutcome:
    processed: List[MatchResultOutcome] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


# =============================================================================
# Score helpers
# =============================================================================


def normalize_set_scores(set_scores: Sequence[Dict[str, Any]]) -> List[SetScore]:
    """Accept [{"team_a": 6, "team_b": 4}, ...]; games must be non-negative ints."""
    if not set_scores:
        raise ValidationError("At least one set score is required")

    normalized = []
    for i, score in enumerate(set_scores, start=1):
        try:
            games_a = int(score["team_a"])
            games_b = int(score["team_b"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Set {i}: expected integer 'team_a' and 'team_b' games")
        if games_a < 0 or games_b < 0:
            raise ValidationError(f"Set {i}: games cannot be negative")
        normalized.append({"team_a": games_a, "team_b": games_b})
    return normalized


def count_sets(set_scores: Sequence[SetScore]) -> Tuple[int, int]:
    sets_a = sum(1 for s in set_scores if s["team_a"] > s["team_b"])
    sets_b = sum(1 for s in set_scores if s["team_b"] > s["team_a"])
    return sets_a, sets_b


def count_games(set_scores: Sequence[SetScore]) -> Tuple[int, int]:
    return sum(s["team_a"] for s in set_scores), sum(s["team_b"] for s in set_scores)


# =============================================================================
# Contributions
# =============================================================================


def _team_deltas(matchup: Matchup, match: Match) -> List[Tuple[int, StatDelta]]:
    """Per-team contribution of a finished match."""
    games_a, games_b = count_games(match.set_scores or [])
    a_won = match.winner_team_id == matchup.team_a_id
    return [
        (matchup.team_a_id, match_delta(a_won, games_a, games_b)),
        (matchup.team_b_id, match_delta(not a_won, games_b, games_a)),
    ]


def _apply_player_stats(
    player_stats: PlayerStatsCollaborator, matchup: Matchup, match: Match, sign: int
) -> None:
    scores = match.set_scores or []
    sets_a, sets_b = count_sets(scores)
    games_a, games_b = count_games(scores)
    a_won = match.winner_team_id == matchup.team_a_id

    sides = [
        (match.team_a_players, a_won, sets_a, sets_b, games_a, games_b),
        (match.team_b_players, not a_won, sets_b, sets_a, games_b, games_a),
    ]
    for players, won, sets_won, sets_lost, games_won, games_lost in sides:
        delta = PlayerStatDelta(
            matches_played=1,
            matches_won=1 if won else 0,
            matches_lost=0 if won else 1,
            sets_won=sets_won,
            sets_lost=sets_lost,
            games_won=games_won,
            games_lost=games_lost,
        )
        for player in players:
            player_stats.increment(match.stage_id, str(player["id"]), delta if sign > 0 else -delta)


# =============================================================================
# Matchup state
# =============================================================================


def recompute_matchup_counters(matchup: Matchup, matches: Sequence[Match]) -> None:
    """Rebuild win counts and finished count from the matchup's matches."""
    finished = [m for m in matches if m.is_finished]
    matchup.team_a_wins = sum(1 for m in finished if m.winner_team_id == matchup.team_a_id)
    matchup.team_b_wins = sum(1 for m in finished if m.winner_team_id == matchup.team_b_id)
    matchup.finished_matches = len(finished)
    matchup.has_decider = any(m.is_decider for m in matches)
    matchup.total_matches = max(matchup.total_matches, len(matches))


def is_matchup_finished(matchup: Matchup, matches: Sequence[Match]) -> bool:
    if matchup.team_a_wins >= MATCHES_TO_WIN or matchup.team_b_wins >= MATCHES_TO_WIN:
        return True
    if matchup.total_matches == 3 and matchup.finished_matches == 3:
        return True
    return any(m.is_decider and m.is_finished for m in matches)


def _matchup_winner(matchup: Matchup) -> int:
    return matchup.team_a_id if matchup.team_a_wins > matchup.team_b_wins else matchup.team_b_id


def _finish_matchup(session: Session, matchup: Matchup, winner_team_id: int, classify: bool) -> None:
    """Record the matchup result and run its phase effects."""
    MatchupStore(session).record_result(matchup, winner_team_id)
    loser_team_id = matchup.loser_team_id

    if matchup.phase == MatchupPhase.GROUP:
        TeamStore(session).increment_stats(
            [(winner_team_id, matchup_delta(True)), (loser_team_id, matchup_delta(False))]
        )
        if classify:
            recalculate_classification(session, matchup.stage_id, commit=False)
            fill_elimination_slots(session, matchup.stage_id)
    elif matchup.phase == MatchupPhase.FINAL:
        stage_store = StageStore(session)
        stage = stage_store.get(matchup.stage_id)
        stage.champion_team_id = winner_team_id
        stage_store.update(stage)
        logger.info("Stage %s champion: team %s", matchup.stage_id, winner_team_id)
    else:
        propagate_winner(session, matchup)


def _reopen_matchup(session: Session, matchup: Matchup) -> None:
    """Take back the phase effects of a finished matchup whose outcome changed."""
    previous_winner = matchup.winner_team_id
    previous_loser = matchup.loser_team_id

    if matchup.phase == MatchupPhase.GROUP:
        TeamStore(session).increment_stats(
            [(previous_winner, -matchup_delta(True)), (previous_loser, -matchup_delta(False))]
        )
    elif matchup.phase == MatchupPhase.FINAL:
        stage_store = StageStore(session)
        stage = stage_store.get(matchup.stage_id)
        stage.champion_team_id = None
        stage_store.update(stage)
    elif matchup.next_matchup_id is not None:
        target = MatchupStore(session).get(matchup.next_matchup_id)
        if target.finished_matches > 0 or target.is_finished:
            raise ValidationError(
                f"Matchup {matchup.id} result already used by matchup {target.id}; "
                "reset that matchup first"
            )
        if MatchStore(session).list_by_matchup(target.id):
            raise ValidationError(f"Matchup {target.id} already has matches; cannot move its teams")
        retract_winner(session, matchup)

    matchup.winner_team_id = None
    matchup.status = MatchupStatus.IN_PROGRESS.value


# =============================================================================
# Registration
# =============================================================================


def _register(
    session: Session,
    match_id: int,
    set_scores: Sequence[Dict[str, Any]],
    player_stats: PlayerStatsCollaborator,
    classify: bool,
) -> MatchResultOutcome:
    match_store = MatchStore(session)
    matchup_store = MatchupStore(session)
    team_store = TeamStore(session)

    match = match_store.get(match_id)
    matchup = matchup_store.get(match.matchup_id)

    if matchup.team_a_id is None or matchup.team_b_id is None:
        raise ValidationError(f"Matchup {matchup.id} does not have both teams defined yet")
    if matchup.is_bye:
        raise ValidationError(f"Matchup {matchup.id} is a BYE and has no matches to play")
    if not match.team_a_players or not match.team_b_players:
        raise ValidationError(f"Match {match_id} has no players defined")

    scores = normalize_set_scores(set_scores)
    sets_a, sets_b = count_sets(scores)
    if sets_a == sets_b:
        raise ValidationError(f"Match {match_id}: sets are tied {sets_a}-{sets_b}, no winner")
    winner_team_id = matchup.team_a_id if sets_a > sets_b else matchup.team_b_id

    was_finished = matchup.is_finished
    previous_matchup_winner = matchup.winner_team_id

    if matchup.phase == MatchupPhase.GROUP and knockout_seeded(session, matchup.stage_id):
        raise ValidationError(
            f"Match {match_id}: the knockout phase is already seeded from group standings; reset the stage first"
        )

    if match.is_finished:
        logger.info("Match %s: editing result, reverting previous contribution", match_id)
        team_store.increment_stats([(team_id, -delta) for team_id, delta in _team_deltas(matchup, match)])
        _apply_player_stats(player_stats, matchup, match, sign=-1)

    match_store.record_result(match, scores, sets_a, sets_b, winner_team_id)
    team_store.increment_stats(_team_deltas(matchup, match))
    _apply_player_stats(player_stats, matchup, match, sign=1)

    matches = match_store.list_by_matchup(matchup.id)
    recompute_matchup_counters(matchup, matches)

    now_finished = is_matchup_finished(matchup, matches)
    new_matchup_winner = _matchup_winner(matchup) if now_finished else None

    if was_finished and new_matchup_winner != previous_matchup_winner:
        _reopen_matchup(session, matchup)

    if now_finished and new_matchup_winner != previous_matchup_winner:
        _finish_matchup(session, matchup, new_matchup_winner, classify)
    else:
        if not now_finished:
            matchup.status = (
                MatchupStatus.IN_PROGRESS.value if matchup.finished_matches else MatchupStatus.SCHEDULED.value
            )
        matchup_store.update(matchup)
        if matchup.phase == MatchupPhase.GROUP and classify and (was_finished or now_finished):
            recalculate_classification(session, matchup.stage_id, commit=False)
            fill_elimination_slots(session, matchup.stage_id)

    return MatchResultOutcome(
        match_id=match.id,
        matchup_id=matchup.id,
        winner_team_id=winner_team_id,
        team_a_sets=sets_a,
        team_b_sets=sets_b,
        matchup_status=matchup.status,
        matchup_winner_team_id=matchup.winner_team_id,
    )


def _create_decider(
    session: Session, outcome: MatchResultOutcome, rng: Optional[random.Random]
) -> None:
    """Decider creation is best effort: a failure is logged and can be retried."""
    matchup_store = MatchupStore(session)
    matchup = matchup_store.get(outcome.matchup_id)
    if not needs_decider(matchup, MatchStore(session).list_by_matchup(matchup.id)):
        return
    try:
        decider = generate_decider_if_needed(session, matchup.id, rng=rng)
    except (BracketError, SQLAlchemyError):
        session.rollback()
        logger.exception("Failed to create decider for matchup %s", outcome.matchup_id)
        return
    if decider is not None:
        outcome.decider_match_id = decider.id


def register_match_result(
    session: Session,
    match_id: int,
    set_scores: Sequence[Dict[str, Any]],
    player_stats: Optional[PlayerStatsCollaborator] = None,
    rng: Optional[random.Random] = None,
) -> MatchResultOutcome:
    """
    Record the result of one match and update its matchup.

    Raises NotFoundError for an unknown match and ValidationError for a
    result that cannot be applied; in both cases nothing is written.
    """
    player_stats = player_stats or NullPlayerStats()
    match = MatchStore(session).get(match_id)

    with matchup_lock(match.matchup_id):
        session.refresh(match)
        try:
            outcome = _register(session, match_id, set_scores, player_stats, classify=True)
            session.commit()
        except Exception:
            session.rollback()
            raise

        _create_decider(session, outcome, rng)

    logger.info(
        "Match %s result: %d-%d, matchup %s %s",
        match_id,
        outcome.team_a_sets,
        outcome.team_b_sets,
        outcome.matchup_id,
        outcome.matchup_status,
    )
    return outcome


def register_match_results(
    session: Session,
    stage_id: int,
    results: Sequence[Dict[str, Any]],
    player_stats: Optional[PlayerStatsCollaborator] = None,
    rng: Optional[random.Random] = None,
) -> BatchResultOutcome:
    """
    Record many results for one stage.

    Each item is {"match_id": int, "set_scores": [...]}. Items are applied
    grouped by matchup; a failing item is rolled back and reported without
    affecting the others. Classification and the elimination fill run once
    at the end.
    """
    player_stats = player_stats or NullPlayerStats()
    StageStore(session).get(stage_id)
    match_store = MatchStore(session)
    batch = BatchResultOutcome()

    # Unknown or foreign matches land under None and are reported as errors
    by_matchup: Dict[Optional[int], List[Dict[str, Any]]] = {}
    for item in results:
        match_id = item.get("match_id")
        match = session.get(Match, match_id) if match_id is not None else None
        key = match.matchup_id if match is not None and match.stage_id == stage_id else None
        by_matchup.setdefault(key, []).append(item)

    for matchup_id, items in by_matchup.items():
        for item in items:
            match_id = item.get("match_id")
            try:
                if matchup_id is None:
                    if match_id is None:
                        raise ValidationError("match_id is required")
                    match_store.get(match_id)
                    raise ValidationError(f"Match {match_id} does not belong to stage {stage_id}")
                with matchup_lock(matchup_id):
                    outcome = _register(session, match_id, item.get("set_scores") or [], player_stats, classify=False)
                    session.commit()
                    _create_decider(session, outcome, rng)
            except (BracketError, SQLAlchemyError) as e:
                session.rollback()
                logger.warning("Batch result for match %s failed: %s", match_id, e)
                batch.errors.append({"match_id": match_id, "error": str(e)})
                continue
            batch.processed.append(outcome)

    recalculate_classification(session, stage_id, commit=False)
    fill_elimination_slots(session, stage_id)
    session.commit()

    logger.info(
        "Batch results for stage %s: %d processed, %d failed",
        stage_id,
        len(batch.processed),
        len(batch.errors),
    )
    return batch
