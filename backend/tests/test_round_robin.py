"""Round-robin pairing: every pair exactly once, circle-method rounds."""

from collections import Counter

import pytest

from teams_bracket.errors import ValidationError
from teams_bracket.services.round_robin import generate_round_robin, rr_pairings_by_round


@pytest.mark.parametrize("n", [2, 3, 4, 5, 6, 7, 8])
def test_every_pair_exactly_once(n):
    teams = [f"T{i}" for i in range(1, n + 1)]
    pairings = generate_round_robin(teams)

    assert len(pairings) == n * (n - 1) // 2
    pairs = [frozenset((p.team_a, p.team_b)) for p in pairings]
    assert len(set(pairs)) == len(pairs)
    assert all(p.team_a != p.team_b for p in pairings)


@pytest.mark.parametrize("n,rounds", [(4, 3), (5, 5), (6, 5), (3, 3)])
def test_round_count(n, rounds):
    pairings = generate_round_robin(list(range(n)))
    assert max(p.round_number for p in pairings) == rounds


def test_team_plays_once_per_round():
    pairings = generate_round_robin(list(range(6)))
    for round_number in {p.round_number for p in pairings}:
        in_round = [t for p in pairings if p.round_number == round_number for t in (p.team_a, p.team_b)]
        assert Counter(in_round).most_common(1)[0][1] == 1


def test_circle_method_order_for_four():
    # Index 0 fixed, last moves to position 1 each round
    assert rr_pairings_by_round(4) == [
        (1, 0, 3),
        (1, 1, 2),
        (2, 0, 2),
        (2, 3, 1),
        (3, 0, 1),
        (3, 2, 3),
    ]


def test_odd_count_drops_bye_pairs():
    pairings = rr_pairings_by_round(3)
    assert len(pairings) == 3
    assert all(3 not in (a, b) for _, a, b in pairings)


def test_sequence_and_group_tag():
    pairings = generate_round_robin(["A1", "A2", "A3"], group_id="A")
    assert [p.sequence for p in pairings] == [1, 2, 3]
    assert {p.group_id for p in pairings} == {"A"}


@pytest.mark.parametrize("teams", [[], ["solo"]])
def test_fewer_than_two_teams_rejected(teams):
    with pytest.raises(ValidationError):
        generate_round_robin(teams)
