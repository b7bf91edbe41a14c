"""
Teams Bracket API Routes
Stage setup, bracket generation, results and standings. Bracket logic lives
in teams_bracket.services; these handlers only translate HTTP.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from teams_bracket.database import get_session
from teams_bracket.errors import BracketError, NotFoundError
from teams_bracket.models.matchup import Matchup
from teams_bracket.services import bracket_service, classification, match_generation, match_results
from teams_bracket.services.origins import origin_label
from teams_bracket.stores import MatchStore, MatchupStore, StageStore, TeamStore

router = APIRouter()


def _http_error(e: BracketError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=422, detail=str(e))


# ============================================================================
# Request/Response Models
# ============================================================================


class StageCreateRequest(BaseModel):
    name: str
    team_size: int = 4
    gender: str = "mixed"
    game_formation: str = "draw"


class StageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    team_size: int
    gender: str
    game_formation: str
    champion_team_id: Optional[int] = None
    created_at: datetime


class PlayerPayload(BaseModel):
    id: str
    name: str
    gender: str
    level: Optional[str] = None


class RosterPayload(BaseModel):
    name: Optional[str] = None
    players: List[PlayerPayload]


class TeamsCreateRequest(BaseModel):
    teams: List[RosterPayload]


class TeamRenameRequest(BaseModel):
    name: str


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stage_id: int
    name: str
    seed: int
    group_id: Optional[str] = None
    players: List[Dict[str, Any]]
    matchups_played: int
    matchups_won: int
    matchups_lost: int
    points: int
    matches_won: int
    matches_lost: int
    match_diff: int
    games_won: int
    games_lost: int
    game_diff: int
    position: Optional[int] = None


class MatchupResponse(BaseModel):
    id: int
    stage_id: int
    phase: str
    round_number: Optional[int] = None
    bracket_order: int
    group_id: Optional[str] = None
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    origin_a: Optional[str] = None
    origin_b: Optional[str] = None
    status: str
    team_a_wins: int
    team_b_wins: int
    total_matches: int
    finished_matches: int
    has_decider: bool
    winner_team_id: Optional[int] = None
    next_matchup_id: Optional[int] = None
    is_bye: bool


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    matchup_id: int
    ordinal: int
    category: str
    team_a_players: List[Dict[str, Any]]
    team_b_players: List[Dict[str, Any]]
    set_scores: Optional[List[Dict[str, int]]] = None
    team_a_sets: int
    team_b_sets: int
    status: str
    winner_team_id: Optional[int] = None


class SetScorePayload(BaseModel):
    team_a: int = Field(ge=0)
    team_b: int = Field(ge=0)


class MatchResultRequest(BaseModel):
    set_scores: List[SetScorePayload]


class BatchResultItem(BaseModel):
    match_id: int
    set_scores: List[SetScorePayload]


class BatchResultRequest(BaseModel):
    results: List[BatchResultItem]


class MatchPlayersRequest(BaseModel):
    team_a_player_ids: List[str]
    team_b_player_ids: List[str]


def _matchup_response(matchup: Matchup) -> MatchupResponse:
    return MatchupResponse(
        id=matchup.id,
        stage_id=matchup.stage_id,
        phase=matchup.phase,
        round_number=matchup.round_number,
        bracket_order=matchup.bracket_order,
        group_id=matchup.group_id,
        team_a_id=matchup.team_a_id,
        team_b_id=matchup.team_b_id,
        origin_a=origin_label(matchup.origin_a),
        origin_b=origin_label(matchup.origin_b),
        status=matchup.status,
        team_a_wins=matchup.team_a_wins,
        team_b_wins=matchup.team_b_wins,
        total_matches=matchup.total_matches,
        finished_matches=matchup.finished_matches,
        has_decider=matchup.has_decider,
        winner_team_id=matchup.winner_team_id,
        next_matchup_id=matchup.next_matchup_id,
        is_bye=matchup.is_bye,
    )


# ============================================================================
# Stage / Teams
# ============================================================================


@router.post("/stages", response_model=StageResponse, status_code=201)
def create_stage(payload: StageCreateRequest, session: Session = Depends(get_session)):
    try:
        return bracket_service.create_stage(
            session,
            name=payload.name,
            team_size=payload.team_size,
            gender=payload.gender,
            game_formation=payload.game_formation,
        )
    except BracketError as e:
        raise _http_error(e)


@router.get("/stages/{stage_id}", response_model=StageResponse)
def get_stage(stage_id: int, session: Session = Depends(get_session)):
    try:
        return StageStore(session).get(stage_id)
    except BracketError as e:
        raise _http_error(e)


@router.post("/stages/{stage_id}/teams", response_model=List[TeamResponse], status_code=201)
def create_teams(stage_id: int, payload: TeamsCreateRequest, session: Session = Depends(get_session)):
    try:
        return bracket_service.create_teams(
            session, stage_id, [roster.model_dump() for roster in payload.teams]
        )
    except BracketError as e:
        raise _http_error(e)


@router.get("/stages/{stage_id}/teams", response_model=List[TeamResponse])
def get_teams(stage_id: int, session: Session = Depends(get_session)):
    """Teams of a stage, by position once classified (seed order before that)."""
    try:
        StageStore(session).get(stage_id)
    except BracketError as e:
        raise _http_error(e)
    teams = TeamStore(session).list_by_stage(stage_id)
    return sorted(teams, key=lambda t: (t.position is None, t.position or 0, t.seed, t.id))


@router.patch("/teams/{team_id}", response_model=TeamResponse)
def rename_team(team_id: int, payload: TeamRenameRequest, session: Session = Depends(get_session)):
    try:
        return bracket_service.rename_team(session, team_id, payload.name)
    except BracketError as e:
        raise _http_error(e)


# ============================================================================
# Bracket
# ============================================================================


@router.post("/stages/{stage_id}/bracket", status_code=201)
def generate_bracket(stage_id: int, session: Session = Depends(get_session)):
    try:
        return bracket_service.generate_groups_and_bracket(session, stage_id)
    except BracketError as e:
        raise _http_error(e)


@router.delete("/stages/{stage_id}/bracket")
def cancel_bracket(stage_id: int, session: Session = Depends(get_session)):
    """Delete matches, matchups and teams of the stage."""
    try:
        return bracket_service.cancel_bracket(session, stage_id)
    except BracketError as e:
        raise _http_error(e)


@router.get("/stages/{stage_id}/matchups", response_model=List[MatchupResponse])
def get_matchups(stage_id: int, phase: Optional[str] = None, session: Session = Depends(get_session)):
    try:
        StageStore(session).get(stage_id)
    except BracketError as e:
        raise _http_error(e)
    return [_matchup_response(m) for m in MatchupStore(session).list_by_stage(stage_id, phase=phase)]


@router.get("/matchups/{matchup_id}/matches", response_model=List[MatchResponse])
def get_matchup_matches(matchup_id: int, session: Session = Depends(get_session)):
    try:
        MatchupStore(session).get(matchup_id)
    except BracketError as e:
        raise _http_error(e)
    return MatchStore(session).list_by_matchup(matchup_id)


@router.post("/matchups/{matchup_id}/matches", response_model=List[MatchResponse], status_code=201)
def generate_matchup_matches(matchup_id: int, session: Session = Depends(get_session)):
    try:
        return match_generation.generate_matchup_matches(session, matchup_id)
    except BracketError as e:
        raise _http_error(e)


@router.post("/matchups/{matchup_id}/decider")
def generate_decider(matchup_id: int, session: Session = Depends(get_session)):
    """Create the decider if the matchup needs one. Returns {"decider": match or null}."""
    try:
        decider = match_generation.generate_decider_if_needed(session, matchup_id)
    except BracketError as e:
        raise _http_error(e)
    return {"decider": MatchResponse.model_validate(decider) if decider else None}


@router.put("/matches/{match_id}/players", response_model=MatchResponse)
def define_match_players(match_id: int, payload: MatchPlayersRequest, session: Session = Depends(get_session)):
    try:
        return match_generation.define_match_players(
            session, match_id, payload.team_a_player_ids, payload.team_b_player_ids
        )
    except BracketError as e:
        raise _http_error(e)


# ============================================================================
# Results / Standings
# ============================================================================


@router.post("/matches/{match_id}/result")
def register_match_result(match_id: int, payload: MatchResultRequest, session: Session = Depends(get_session)):
    try:
        outcome = match_results.register_match_result(
            session, match_id, [s.model_dump() for s in payload.set_scores]
        )
    except BracketError as e:
        raise _http_error(e)
    return outcome


@router.post("/stages/{stage_id}/results")
def register_match_results(stage_id: int, payload: BatchResultRequest, session: Session = Depends(get_session)):
    try:
        return match_results.register_match_results(
            session,
            stage_id,
            [{"match_id": r.match_id, "set_scores": [s.model_dump() for s in r.set_scores]} for r in payload.results],
        )
    except BracketError as e:
        raise _http_error(e)


@router.post("/stages/{stage_id}/classification", response_model=List[TeamResponse])
def recalculate_classification(stage_id: int, session: Session = Depends(get_session)):
    try:
        StageStore(session).get(stage_id)
    except BracketError as e:
        raise _http_error(e)
    return classification.recalculate_classification(session, stage_id)


@router.post("/stages/{stage_id}/reset")
def reset_stage(stage_id: int, session: Session = Depends(get_session)):
    try:
        return bracket_service.reset_stage_results(session, stage_id)
    except BracketError as e:
        raise _http_error(e)
