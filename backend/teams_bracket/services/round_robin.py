"""
Round-robin pairings for a group (or a whole stage without groups).

Circle method: fix index 0, rotate the rest one position per round.
"""

from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TypeVar

from teams_bracket.errors import ValidationError
from teams_bracket.services.bracket_rules import MIN_TEAMS

T = TypeVar("T")


@dataclass(frozen=True)
class RoundRobinPairing(Generic[T]):
    round_number: int  # 1-based
    sequence: int  # 1-based across the whole schedule
    team_a: T
    team_b: T
    group_id: Optional[str] = None


def rr_pairings_by_round(team_count: int) -> list[tuple[int, int, int]]:
    """
    Round-robin pairings by index. Returns list of (round_number, idx_a, idx_b).

    For odd counts a virtual BYE takes the last position; pairs touching it
    are dropped. Rounds: n-1 (even n) or n (odd n).
    """
    n = team_count
    n2 = n + 1 if n % 2 == 1 else n
    half = n2 // 2
    bye_idx = n if n % 2 == 1 else -1

    result: list[tuple[int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, n2):
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            result.append((round_num, a, b))
        # Rotate: keep 0 fixed, last moves to position 1
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


def generate_round_robin(teams: Sequence[T], group_id: Optional[str] = None) -> List[RoundRobinPairing[T]]:
    """
    Pair every team with every other team exactly once.

    Produces n*(n-1)/2 pairings tagged with round and sequence number.
    Raises ValidationError for fewer than two teams.
    """
    if len(teams) < MIN_TEAMS:
        raise ValidationError(f"Round robin needs at least {MIN_TEAMS} teams, got {len(teams)}")

    pairings: List[RoundRobinPairing[T]] = []
    for sequence, (round_num, a, b) in enumerate(rr_pairings_by_round(len(teams)), start=1):
        pairings.append(
            RoundRobinPairing(
                round_number=round_num,
                sequence=sequence,
                team_a=teams[a],
                team_b=teams[b],
                group_id=group_id,
            )
        )
    return pairings
