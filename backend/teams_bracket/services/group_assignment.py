"""
Snake-draft group assignment.

Teams are dealt across groups in boustrophedon order (A, B, C, C, B, A, ...),
so group sizes never differ by more than one.
"""

from typing import Dict, List, Sequence, TypeVar

from teams_bracket.services.bracket_rules import group_labels

T = TypeVar("T")


def snake_group_index(team_index: int, group_count: int) -> int:
    round_idx = team_index // group_count
    pos = team_index % group_count
    return pos if round_idx % 2 == 0 else group_count - 1 - pos


def snake_assign(teams: Sequence[T], group_count: int) -> Dict[str, List[T]]:
    """
    Distribute ordered teams into group_count groups.

    Returns {group_letter: [teams in draft order]} with every letter present,
    in letter order.
    """
    if group_count < 1:
        raise ValueError(f"group_count must be >= 1, got {group_count}")

    labels = group_labels(group_count)
    groups: Dict[str, List[T]] = {label: [] for label in labels}
    for i, team in enumerate(teams):
        groups[labels[snake_group_index(i, group_count)]].append(team)
    return groups
