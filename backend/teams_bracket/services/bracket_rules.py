"""
Bracket Rules (Single Source of Truth)

Constants and sizing rules for team stages. All other modules must import
from here. Do NOT duplicate these rules elsewhere.
"""

import string
from typing import Dict, FrozenSet, List

# =============================================================================
# Team formats
# =============================================================================

# Players per team: TEAMS_4 and TEAMS_6
TEAM_SIZES: FrozenSet[int] = frozenset({4, 6})

# Matches in a matchup before any decider
MATCHES_PER_MATCHUP: Dict[int, int] = {
    4: 2,
    6: 3,
}

# Roster entry genders
FEMALE = "female"
MALE = "male"

PLAYERS_PER_SIDE = 2

# Decider is the third match of a TEAMS_4 matchup
DECIDER_ORDINAL = 3

# Matches a side must win to take the matchup
MATCHES_TO_WIN = 2

# Points awarded for a group matchup win (losses give 0)
POINTS_PER_WIN = 3


# =============================================================================
# Group phase
# =============================================================================

MIN_TEAMS = 2
MAX_TEAM_NAME_LENGTH = 100

# Below this a stage is a single round robin, no groups, no knockout
MIN_TEAMS_FOR_GROUPS = 6

PREFERRED_GROUP_SIZE = 3
MAX_GROUP_SIZE = 4

GROUP_LETTERS = string.ascii_uppercase

# Teams that qualify from each group into the knockout phase
QUALIFIERS_PER_GROUP = 2

# Group counts with a curated knockout topology
MIN_ELIMINATION_GROUPS = 2
MAX_ELIMINATION_GROUPS = 8


def compute_group_sizes(team_count: int) -> List[int]:
    """
    Return the group sizes for a team count, or [] when the stage has no groups.

    Groups of 3 are preferred; the remainder is absorbed by groups of 4:
    - remainder 0: all 3s           (9  -> [3, 3, 3])
    - remainder 1: one 4            (10 -> [3, 3, 4])
    - remainder 2: two 4s           (11 -> [3, 4, 4], 8 -> [4, 4])
    """
    if team_count < MIN_TEAMS_FOR_GROUPS:
        return []

    threes = team_count // PREFERRED_GROUP_SIZE
    remainder = team_count % PREFERRED_GROUP_SIZE

    if remainder == 0:
        return [PREFERRED_GROUP_SIZE] * threes
    if remainder == 1:
        return [PREFERRED_GROUP_SIZE] * (threes - 1) + [MAX_GROUP_SIZE]
    return [PREFERRED_GROUP_SIZE] * (threes - 2) + [MAX_GROUP_SIZE, MAX_GROUP_SIZE]


def compute_group_count(team_count: int) -> int:
    return len(compute_group_sizes(team_count))


def group_labels(group_count: int) -> List[str]:
    """Letters for group_count groups, in order ("A", "B", ...)."""
    if group_count > len(GROUP_LETTERS):
        raise ValueError(f"group_count must be <= {len(GROUP_LETTERS)}, got {group_count}")
    return list(GROUP_LETTERS[:group_count])


def matches_per_matchup(team_size: int) -> int:
    if team_size not in TEAM_SIZES:
        raise ValueError(f"team_size must be one of {sorted(TEAM_SIZES)}, got {team_size}")
    return MATCHES_PER_MATCHUP[team_size]


def has_elimination_phase(group_count: int) -> bool:
    return MIN_ELIMINATION_GROUPS <= group_count <= MAX_ELIMINATION_GROUPS
