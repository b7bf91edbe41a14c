"""Match result processing: matchup state, deciders, edits and batches."""

import threading

import pytest
from sqlmodel import Session, SQLModel, create_engine

from teams_bracket.errors import NotFoundError, ValidationError
from teams_bracket.models.match import Match
from teams_bracket.models.matchup import Matchup
from teams_bracket.models.team import Team
from teams_bracket.services.bracket_service import generate_groups_and_bracket, reset_stage_results
from teams_bracket.services.match_generation import generate_decider_if_needed, generate_matchup_matches
from teams_bracket.services.match_results import matchup_lock, register_match_result, register_match_results
from teams_bracket.stores import MatchStore, MatchupStore, TeamStore
from tests.factories import WIN_A, WIN_B, make_stage, make_teams, matches_of, play_group_phase, rng, win_matchup


class RecordingPlayerStats:
    def __init__(self):
        self.totals = {}

    def increment(self, stage_id, player_id, delta):
        current = self.totals.setdefault(player_id, {"matches_played": 0, "matches_won": 0, "games_won": 0})
        current["matches_played"] += delta.matches_played
        current["matches_won"] += delta.matches_won
        current["games_won"] += delta.games_won


def single_matchup(session: Session, team_size: int = 4):
    stage = make_stage(session, team_size=team_size)
    home, away = make_teams(session, stage, ["Home", "Away"])
    generate_groups_and_bracket(session, stage.id, rng=rng())
    (matchup,) = MatchupStore(session).list_by_stage(stage.id)
    return stage, home, away, matchup


def test_two_nil_finishes_group_matchup(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, second = matches_of(session, matchup)

    outcome = register_match_result(session, first.id, WIN_A)
    assert outcome.matchup_status == "IN_PROGRESS"

    outcome = register_match_result(session, second.id, WIN_A)
    assert outcome.matchup_status == "FINISHED"
    assert outcome.matchup_winner_team_id == matchup.team_a_id

    winner = TeamStore(session).get(matchup.team_a_id)
    loser = TeamStore(session).get(matchup.team_b_id)
    assert (winner.points, winner.matchups_played, winner.matchups_won) == (3, 1, 1)
    assert (loser.points, loser.matchups_played, loser.matchups_lost) == (0, 1, 1)
    assert (winner.matches_won, winner.games_won, winner.games_lost) == (2, 24, 10)
    assert (loser.matches_lost, loser.game_diff) == (2, -14)
    assert (winner.position, loser.position) == (1, 2)


def test_split_creates_exactly_one_decider(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, second = matches_of(session, matchup)

    register_match_result(session, first.id, WIN_A)
    outcome = register_match_result(session, second.id, WIN_B)

    assert outcome.decider_match_id is not None
    session.refresh(matchup)
    assert matchup.has_decider
    assert matchup.total_matches == 3
    assert matchup.status == "IN_PROGRESS"

    decider = MatchStore(session).get(outcome.decider_match_id)
    assert (decider.ordinal, decider.category) == (3, "decider")
    # mixed stage: one woman and one man per side
    assert sorted(p["gender"] for p in decider.team_a_players) == ["female", "male"]
    assert sorted(p["gender"] for p in decider.team_b_players) == ["female", "male"]

    assert generate_decider_if_needed(session, matchup.id) is None
    assert len(matches_of(session, matchup)) == 3

    outcome = register_match_result(session, decider.id, WIN_B)
    assert outcome.matchup_status == "FINISHED"
    assert outcome.matchup_winner_team_id == matchup.team_b_id


def test_six_a_side_never_gets_a_decider(session: Session):
    stage, home, away, matchup = single_matchup(session, team_size=6)
    first, second, third = matches_of(session, matchup)
    assert [m.category for m in (first, second, third)] == ["women", "men", "mixed"]

    register_match_result(session, first.id, WIN_A)
    outcome = register_match_result(session, second.id, WIN_B)
    assert outcome.decider_match_id is None
    assert generate_decider_if_needed(session, matchup.id) is None

    outcome = register_match_result(session, third.id, WIN_A)
    assert outcome.matchup_status == "FINISHED"
    assert len(matches_of(session, matchup)) == 3


def test_editing_a_result_reverts_previous_contribution(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, _ = matches_of(session, matchup)

    register_match_result(session, first.id, WIN_A)
    register_match_result(session, first.id, WIN_A)
    register_match_result(session, first.id, WIN_B)

    team_a = TeamStore(session).get(matchup.team_a_id)
    team_b = TeamStore(session).get(matchup.team_b_id)
    assert (team_a.matches_won, team_a.matches_lost, team_a.games_won, team_a.games_lost) == (0, 1, 5, 12)
    assert (team_b.matches_won, team_b.matches_lost, team_b.games_won, team_b.games_lost) == (1, 0, 12, 5)

    session.refresh(matchup)
    assert (matchup.team_a_wins, matchup.team_b_wins, matchup.finished_matches) == (0, 1, 1)


def test_edit_that_flips_the_matchup_reverts_points(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, second = matches_of(session, matchup)

    register_match_result(session, first.id, WIN_A)
    register_match_result(session, second.id, WIN_A)
    assert TeamStore(session).get(matchup.team_a_id).points == 3

    outcome = register_match_result(session, second.id, WIN_B)

    assert outcome.matchup_status == "IN_PROGRESS"
    assert outcome.decider_match_id is not None
    team_a = TeamStore(session).get(matchup.team_a_id)
    team_b = TeamStore(session).get(matchup.team_b_id)
    assert (team_a.points, team_a.matchups_played, team_a.matchups_won) == (0, 0, 0)
    assert (team_b.points, team_b.matchups_played, team_b.matchups_lost) == (0, 0, 0)


def test_player_stats_follow_edits(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, _ = matches_of(session, matchup)
    stats = RecordingPlayerStats()

    register_match_result(session, first.id, WIN_A, player_stats=stats)
    register_match_result(session, first.id, WIN_B, player_stats=stats)

    player_a = str(first.team_a_players[0]["id"])
    player_b = str(first.team_b_players[0]["id"])
    assert stats.totals[player_a] == {"matches_played": 1, "matches_won": 0, "games_won": 5}
    assert stats.totals[player_b] == {"matches_played": 1, "matches_won": 1, "games_won": 12}


def test_tied_sets_rejected_and_nothing_written(session: Session):
    stage, home, away, matchup = single_matchup(session)
    first, _ = matches_of(session, matchup)

    with pytest.raises(ValidationError):
        register_match_result(session, first.id, [{"team_a": 6, "team_b": 4}, {"team_a": 3, "team_b": 6}])

    assert MatchStore(session).get(first.id).status == "PENDING"
    assert TeamStore(session).get(matchup.team_a_id).games_won == 0


def test_unknown_match(session: Session):
    with pytest.raises(NotFoundError):
        register_match_result(session, 999, WIN_A)


def test_knockout_match_requires_both_teams(session: Session):
    stage = make_stage(session)
    make_teams(session, stage, ["Solo 1", "Solo 2"])
    matchup = MatchupStore(session).create(Matchup(stage_id=stage.id, phase="SEMI", bracket_order=1))
    match = Match(stage_id=stage.id, matchup_id=matchup.id, ordinal=1, category="women")
    session.add(match)
    session.commit()

    with pytest.raises(ValidationError):
        register_match_result(session, match.id, WIN_A)


def test_batch_isolates_failures(session: Session):
    stage = make_stage(session)
    make_teams(session, stage, ["A", "B", "C"])
    generate_groups_and_bracket(session, stage.id, rng=rng())
    matchups = MatchupStore(session).list_by_stage(stage.id)

    results = []
    for matchup in matchups:
        for match in matches_of(session, matchup):
            results.append({"match_id": match.id, "set_scores": WIN_A})
    results.insert(1, {"match_id": 999, "set_scores": WIN_A})
    results.insert(2, {"match_id": results[0]["match_id"], "set_scores": [{"team_a": 6, "team_b": 6}]})

    batch = register_match_results(session, stage.id, results)

    assert len(batch.processed) == 6
    assert sorted(e["match_id"] for e in batch.errors) == sorted([999, results[0]["match_id"]])
    assert all(m.status == "FINISHED" for m in MatchupStore(session).list_by_stage(stage.id))
    positions = sorted(t.position for t in TeamStore(session).list_by_stage(stage.id))
    assert positions == [1, 2, 3]


def seeded_semis(session: Session):
    stage = make_stage(session)
    make_teams(session, stage, [f"Equipe {i}" for i in range(1, 7)])
    generate_groups_and_bracket(session, stage.id, rng=rng())
    play_group_phase(session, stage.id)
    semi1, semi2 = MatchupStore(session).list_by_stage(stage.id, phase="SEMI")
    (final,) = MatchupStore(session).list_by_stage(stage.id, phase="FINAL")
    for semi in (semi1, semi2):
        generate_matchup_matches(session, semi.id, rng=rng())
    return stage, semi1, semi2, final


def test_knockout_edit_that_flips_the_winner(session: Session):
    stage, semi1, semi2, final = seeded_semis(session)
    win_matchup(session, semi1, semi1.team_a_id)
    session.refresh(final)
    assert final.team_a_id == semi1.team_a_id

    second = matches_of(session, semi1)[1]
    outcome = register_match_result(session, second.id, WIN_B)

    assert outcome.matchup_status == "IN_PROGRESS"
    assert outcome.matchup_winner_team_id is None
    assert outcome.decider_match_id is not None
    session.refresh(final)
    assert final.team_a_id is None

    outcome = register_match_result(session, outcome.decider_match_id, WIN_B)
    assert outcome.matchup_winner_team_id == semi1.team_b_id
    session.refresh(final)
    assert (final.team_a_id, final.team_b_id) == (semi1.team_b_id, None)


def test_knockout_edit_refused_once_next_matchup_has_matches(session: Session):
    stage, semi1, semi2, final = seeded_semis(session)
    win_matchup(session, semi1, semi1.team_a_id)
    win_matchup(session, semi2, semi2.team_a_id)
    generate_matchup_matches(session, final.id, rng=rng())
    second = matches_of(session, semi1)[1]

    with pytest.raises(ValidationError, match="already has matches"):
        register_match_result(session, second.id, WIN_B)

    session.refresh(semi1)
    session.refresh(final)
    assert (semi1.status, semi1.winner_team_id) == ("FINISHED", semi1.team_a_id)
    assert final.team_a_id == semi1.team_a_id
    assert MatchStore(session).get(second.id).set_scores == WIN_A


def test_final_edit_clears_the_champion(session: Session):
    stage, semi1, semi2, final = seeded_semis(session)
    win_matchup(session, semi1, semi1.team_a_id)
    win_matchup(session, semi2, semi2.team_a_id)
    generate_matchup_matches(session, final.id, rng=rng())
    session.refresh(final)

    win_matchup(session, final, final.team_a_id)
    session.refresh(stage)
    assert stage.champion_team_id == final.team_a_id

    register_match_result(session, matches_of(session, final)[1].id, WIN_B)
    session.refresh(stage)
    session.refresh(final)
    assert stage.champion_team_id is None
    assert (final.status, final.winner_team_id) == ("IN_PROGRESS", None)


def test_reset_releases_matchup_locks(session: Session):
    stage, home, away, matchup = single_matchup(session)
    lock = matchup_lock(matchup.id)
    assert matchup_lock(matchup.id) is lock

    reset_stage_results(session, stage.id, rng=rng())

    assert matchup_lock(matchup.id) is not lock


def test_concurrent_results_on_one_matchup(tmp_path):
    # File database: each thread gets its own connection
    engine = create_engine(f"sqlite:///{tmp_path / 'threads.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        stage = make_stage(session)
        make_teams(session, stage, ["Home", "Away"])
        generate_groups_and_bracket(session, stage.id, rng=rng())
        (matchup,) = MatchupStore(session).list_by_stage(stage.id)
        matchup_id, team_a_id = matchup.id, matchup.team_a_id
        match_ids = [m.id for m in matches_of(session, matchup)]

    barrier = threading.Barrier(len(match_ids))
    failures = []

    def play(match_id):
        with Session(engine) as thread_session:
            barrier.wait()
            try:
                register_match_result(thread_session, match_id, WIN_A)
            except Exception as e:
                failures.append(e)

    threads = [threading.Thread(target=play, args=(match_id,)) for match_id in match_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    with Session(engine) as session:
        matchup = session.get(Matchup, matchup_id)
        team = session.get(Team, team_a_id)
        assert (matchup.status, matchup.team_a_wins, matchup.finished_matches) == ("FINISHED", 2, 2)
        assert matchup.winner_team_id == team_a_id
        assert (team.points, team.matchups_won, team.matches_won, team.games_won) == (3, 1, 2, 24)
        assert team.position == 1
    engine.dispose()
