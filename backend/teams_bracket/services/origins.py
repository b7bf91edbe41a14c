"""
Origins: where the team on a knockout side comes from.

An origin is one of
- GroupOrigin(rank, group)            "1º Grupo A"
- MatchupWinner(matchup_id, phase, slot)  "Vencedor Quartas 1"
- ByeSlot()                           "BYE"

Stored on Matchup.origin_a / origin_b as JSON ({"kind": ...}).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from teams_bracket.models.matchup import MatchupPhase

KIND_GROUP = "group"
KIND_WINNER = "winner"
KIND_BYE = "bye"

BYE_LABEL = "BYE"

PHASE_LABELS: Dict[str, str] = {
    MatchupPhase.ROUND_OF_16.value: "Oitavas",
    MatchupPhase.QUARTER.value: "Quartas",
    MatchupPhase.SEMI.value: "Semifinal",
    MatchupPhase.FINAL.value: "Final",
}

# Only the exact "{rank}º Grupo {Letter}" form is a group origin
_GROUP_LABEL_RE = re.compile(r"^(\d)º Grupo ([A-Z])$")


@dataclass(frozen=True)
class GroupOrigin:
    rank: int
    group: str

    @property
    def label(self) -> str:
        return f"{self.rank}º Grupo {self.group}"

    @property
    def key(self) -> str:
        return f"{self.rank}{self.group}"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": KIND_GROUP, "rank": self.rank, "group": self.group}


@dataclass(frozen=True)
class MatchupWinner:
    phase: str
    slot: int  # 1-based position of the source matchup within its phase
    matchup_id: Optional[int] = None  # known once the source matchup is stored

    @property
    def label(self) -> str:
        return f"Vencedor {PHASE_LABELS[self.phase]} {self.slot}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": KIND_WINNER,
            "phase": self.phase,
            "slot": self.slot,
            "matchup_id": self.matchup_id,
        }


@dataclass(frozen=True)
class ByeSlot:
    @property
    def label(self) -> str:
        return BYE_LABEL

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": KIND_BYE}


Origin = Union[GroupOrigin, MatchupWinner, ByeSlot]


def origin_from_dict(data: Union[Dict[str, Any], str, None]) -> Optional[Origin]:
    """
    Inverse of Origin.to_dict(). None stays None.

    A plain string is a legacy display label and goes through
    parse_origin_label().
    """
    if data is None:
        return None
    if isinstance(data, str):
        return parse_origin_label(data)

    kind = data.get("kind")
    if kind == KIND_GROUP:
        return GroupOrigin(rank=int(data["rank"]), group=str(data["group"]))
    if kind == KIND_WINNER:
        matchup_id = data.get("matchup_id")
        return MatchupWinner(
            phase=str(data["phase"]),
            slot=int(data["slot"]),
            matchup_id=int(matchup_id) if matchup_id is not None else None,
        )
    if kind == KIND_BYE:
        return ByeSlot()
    raise ValueError(f"Unknown origin kind: {kind!r}")


def parse_origin_label(label: str) -> Optional[Origin]:
    """
    Parse a legacy display label.

    Recognizes "{rank}º Grupo {Letter}" and "BYE" only. Anything else,
    including winner labels such as "Vencedor Quartas 1", returns None:
    those sides are filled by propagation, never by group lookup.
    """
    text = label.strip()
    if text == BYE_LABEL:
        return ByeSlot()
    match = _GROUP_LABEL_RE.match(text)
    if match is None:
        return None
    return GroupOrigin(rank=int(match.group(1)), group=match.group(2))


def origin_label(data: Union[Dict[str, Any], str, None]) -> Optional[str]:
    origin = origin_from_dict(data)
    return origin.label if origin is not None else None
