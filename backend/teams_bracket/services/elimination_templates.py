"""
Elimination Templates: the fixed knockout tree for 2..8 groups.

Each supported group count maps to a strategy backed by a literal pairing
table (first knockout round + how its winners meet in the next round).
Later rounds always pair slots (1, 2), (3, 4), ...

Templates are emitted deepest round first (Final, Semifinal, Quarterfinal,
Round of 16) and reference each other by index within the batch:
`next_index` always points at an earlier template, so the caller can store
them in order and thread ids backward.

Bracket order numbers run earliest round first, e.g. for 5-8 groups:
Round of 16 = 1..8, Quarters = 9..12, Semis = 13, 14, Final = 15.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from teams_bracket.errors import ValidationError
from teams_bracket.models.matchup import KNOCKOUT_PHASES, MatchupPhase
from teams_bracket.services.bracket_rules import (
    GROUP_LETTERS,
    MAX_ELIMINATION_GROUPS,
    MIN_ELIMINATION_GROUPS,
    matches_per_matchup,
)
from teams_bracket.services.origins import ByeSlot, GroupOrigin, MatchupWinner, Origin

logger = logging.getLogger(__name__)

BYE = "BYE"


@dataclass(frozen=True)
class TemplateConfig:
    team_size: int = 4

    @property
    def total_matches(self) -> int:
        return matches_per_matchup(self.team_size)


@dataclass(frozen=True)
class MatchupTemplate:
    phase: str
    slot: int  # 1-based position within the phase
    bracket_order: int
    origin_a: Origin
    origin_b: Origin
    next_index: Optional[int]  # index of the target template in the same batch; None for the Final
    next_side: Optional[str]  # "a" or "b": which side of the target this winner feeds
    total_matches: int
    is_bye: bool = False


@dataclass(frozen=True)
class BracketTable:
    """
    Literal topology for one group count.

    first_round: (side_a, side_b) per matchup, "1A" = 1st of group A, "BYE" = bye.
    second_round: first-round slots whose winners meet, per second-round matchup.
    """

    name: str
    first_phase: MatchupPhase
    first_round: Tuple[Tuple[str, str], ...]
    second_round: Tuple[Tuple[int, int], ...]


# =============================================================================
# Pairing tables (keyed by group count)
# =============================================================================

_SEQUENTIAL_QUARTERS = ((1, 2), (3, 4), (5, 6), (7, 8))
_SEQUENTIAL_SEMIS = ((1, 2), (3, 4))

BRACKET_TABLES: Dict[int, BracketTable] = {
    2: BracketTable(
        name="direct_semis",
        first_phase=MatchupPhase.SEMI,
        first_round=(("1A", "2B"), ("1B", "2A")),
        second_round=((1, 2),),
    ),
    3: BracketTable(
        name="quarters_2_byes",
        first_phase=MatchupPhase.QUARTER,
        first_round=(("1A", BYE), ("1C", "2B"), ("1B", BYE), ("2A", "2C")),
        second_round=_SEQUENTIAL_SEMIS,
    ),
    4: BracketTable(
        name="quarters_cross",
        first_phase=MatchupPhase.QUARTER,
        first_round=(("1A", "2B"), ("1C", "2D"), ("1B", "2A"), ("1D", "2C")),
        second_round=_SEQUENTIAL_SEMIS,
    ),
    5: BracketTable(
        name="round_of_16_6_byes",
        first_phase=MatchupPhase.ROUND_OF_16,
        first_round=(
            ("1A", BYE),
            ("1D", BYE),
            ("1B", BYE),
            ("1E", BYE),
            ("1C", BYE),
            ("2A", BYE),
            ("2B", "2C"),
            ("2D", "2E"),
        ),
        second_round=((1, 7), (4, 2), (3, 8), (5, 6)),
    ),
    6: BracketTable(
        name="round_of_16_4_byes",
        first_phase=MatchupPhase.ROUND_OF_16,
        first_round=(
            ("1A", BYE),
            ("1C", BYE),
            ("1B", BYE),
            ("1D", BYE),
            ("2B", "2C"),
            ("2D", "2A"),
            ("1E", "2F"),
            ("1F", "2E"),
        ),
        second_round=((1, 5), (4, 7), (3, 6), (2, 8)),
    ),
    7: BracketTable(
        name="round_of_16_2_byes",
        first_phase=MatchupPhase.ROUND_OF_16,
        first_round=(
            ("1A", BYE),
            ("1E", "2F"),
            ("1C", "2D"),
            ("1G", "2B"),
            ("1B", BYE),
            ("1F", "2E"),
            ("1D", "2C"),
            ("2A", "2G"),
        ),
        second_round=_SEQUENTIAL_QUARTERS,
    ),
    8: BracketTable(
        name="round_of_16_cross",
        first_phase=MatchupPhase.ROUND_OF_16,
        first_round=(
            ("1A", "2B"),
            ("1C", "2D"),
            ("1E", "2F"),
            ("1G", "2H"),
            ("1B", "2A"),
            ("1D", "2C"),
            ("1F", "2E"),
            ("1H", "2G"),
        ),
        second_round=_SEQUENTIAL_QUARTERS,
    ),
}


# =============================================================================
# Strategies
# =============================================================================


class FixedTopologyStrategy:
    """Builds the template batch for one BracketTable."""

    def __init__(self, table: BracketTable):
        self.table = table

    @property
    def name(self) -> str:
        return self.table.name

    def phases(self) -> List[str]:
        """Knockout phases this topology uses, earliest first."""
        start = KNOCKOUT_PHASES.index(self.table.first_phase)
        return [phase.value for phase in KNOCKOUT_PHASES[start:]]

    def _feeders(self, round_idx: int, slot: int) -> Tuple[int, int]:
        # Slots of the previous round whose winners meet in (round_idx, slot)
        if round_idx == 1:
            return self.table.second_round[slot - 1]
        return (2 * slot - 1, 2 * slot)

    def _resolve(self, code: str, groups: Sequence[str]) -> Origin:
        if code == BYE:
            return ByeSlot()
        rank, letter = int(code[0]), code[1]
        return GroupOrigin(rank=rank, group=groups[GROUP_LETTERS.index(letter)])

    def generate(self, groups: Sequence[str], config: TemplateConfig) -> List[MatchupTemplate]:
        phases = self.phases()
        counts = [len(self.table.first_round)]
        while counts[-1] > 1:
            counts.append(counts[-1] // 2)

        order_offsets = [sum(counts[:i]) for i in range(len(counts))]

        # (round_idx, slot) -> (next_slot, side)
        next_of: Dict[Tuple[int, int], Tuple[int, str]] = {}
        for round_idx in range(1, len(phases)):
            for slot in range(1, counts[round_idx] + 1):
                slot_a, slot_b = self._feeders(round_idx, slot)
                next_of[(round_idx - 1, slot_a)] = (slot, "a")
                next_of[(round_idx - 1, slot_b)] = (slot, "b")

        templates: List[MatchupTemplate] = []
        index_of: Dict[Tuple[int, int], int] = {}

        for round_idx in reversed(range(len(phases))):
            phase = phases[round_idx]
            for slot in range(1, counts[round_idx] + 1):
                if round_idx == 0:
                    code_a, code_b = self.table.first_round[slot - 1]
                    origin_a = self._resolve(code_a, groups)
                    origin_b = self._resolve(code_b, groups)
                else:
                    slot_a, slot_b = self._feeders(round_idx, slot)
                    prev_phase = phases[round_idx - 1]
                    origin_a = MatchupWinner(phase=prev_phase, slot=slot_a)
                    origin_b = MatchupWinner(phase=prev_phase, slot=slot_b)

                next_index = None
                next_side = None
                if round_idx < len(phases) - 1:
                    next_slot, next_side = next_of[(round_idx, slot)]
                    next_index = index_of[(round_idx + 1, next_slot)]

                index_of[(round_idx, slot)] = len(templates)
                templates.append(
                    MatchupTemplate(
                        phase=phase,
                        slot=slot,
                        bracket_order=order_offsets[round_idx] + slot,
                        origin_a=origin_a,
                        origin_b=origin_b,
                        next_index=next_index,
                        next_side=next_side,
                        total_matches=config.total_matches,
                        is_bye=isinstance(origin_b, ByeSlot),
                    )
                )

        return templates


ELIMINATION_STRATEGIES: Dict[int, FixedTopologyStrategy] = {
    group_count: FixedTopologyStrategy(table) for group_count, table in BRACKET_TABLES.items()
}


def get_strategy(group_count: int) -> Optional[FixedTopologyStrategy]:
    return ELIMINATION_STRATEGIES.get(group_count)


def generate_elimination_templates(
    groups: Sequence[str], config: Optional[TemplateConfig] = None
) -> List[MatchupTemplate]:
    """
    Build the knockout templates for the given sorted group labels.

    - fewer than 2 groups: [] (the stage is a plain round robin)
    - more than 8 groups: [] with a warning, no knockout phase
    """
    config = config or TemplateConfig()
    group_count = len(groups)

    if list(groups) != sorted(groups):
        raise ValidationError(f"Group labels must be sorted, got {list(groups)}")

    if group_count < MIN_ELIMINATION_GROUPS:
        return []

    strategy = get_strategy(group_count)
    if strategy is None:
        logger.warning(
            "No elimination topology for %d groups (max %d); skipping knockout phase",
            group_count,
            MAX_ELIMINATION_GROUPS,
        )
        return []

    templates = strategy.generate(groups, config)
    logger.info(
        "Elimination template %s: %d matchups, %d byes",
        strategy.name,
        len(templates),
        sum(1 for t in templates if t.is_bye),
    )
    return templates
