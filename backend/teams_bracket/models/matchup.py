from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from teams_bracket.models.match import Match


class MatchupPhase(str, Enum):
    GROUP = "GROUP"
    ROUND_OF_16 = "ROUND_OF_16"
    QUARTER = "QUARTER"
    SEMI = "SEMI"
    FINAL = "FINAL"


class MatchupStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


# Earliest knockout round first
KNOCKOUT_PHASES = (
    MatchupPhase.ROUND_OF_16,
    MatchupPhase.QUARTER,
    MatchupPhase.SEMI,
    MatchupPhase.FINAL,
)


class Matchup(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    phase: str = Field(default=MatchupPhase.GROUP.value, index=True)
    round_number: Optional[int] = Field(default=None)  # round-robin round (group phase only)
    bracket_order: int  # 1..N within the group phase, or the fixed bracket number
    group_id: Optional[str] = Field(default=None)

    # Sides: concrete team ids (nullable until resolved) + symbolic origins
    team_a_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_b_id: Optional[int] = Field(default=None, foreign_key="team.id")
    origin_a: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    origin_b: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    status: str = Field(default=MatchupStatus.SCHEDULED.value)
    team_a_wins: int = Field(default=0)
    team_b_wins: int = Field(default=0)
    total_matches: int = Field(default=2)  # 2 (TEAMS_4) / 3 (TEAMS_6 or TEAMS_4 with decider)
    finished_matches: int = Field(default=0)
    has_decider: bool = Field(default=False)
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Propagation edge (null only for the final and group matchups)
    next_matchup_id: Optional[int] = Field(default=None, foreign_key="matchup.id")
    is_bye: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    matches: List["Match"] = Relationship(back_populates="matchup")

    @property
    def is_finished(self) -> bool:
        return self.status == MatchupStatus.FINISHED

    @property
    def loser_team_id(self) -> Optional[int]:
        if self.winner_team_id is None:
            return None
        return self.team_b_id if self.winner_team_id == self.team_a_id else self.team_a_id
