from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from teams_bracket.models.matchup import Matchup


class MatchCategory(str, Enum):
    women = "women"
    men = "men"
    mixed = "mixed"
    decider = "decider"


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    FINISHED = "FINISHED"


class Match(SQLModel, table=True):
    # One match per ordinal; also keeps a second decider from ever being stored
    __table_args__ = (SAUniqueConstraint("matchup_id", "ordinal", name="uq_matchup_ordinal"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    matchup_id: int = Field(foreign_key="matchup.id", index=True)
    ordinal: int  # 1..3 (3 is the decider in TEAMS_4)
    category: str

    # Pairs: [{"id", "name", "level", "gender"}] x2, empty until defined (manual formation)
    team_a_players: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    team_b_players: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Result: [{"team_a": 6, "team_b": 4}, ...]
    set_scores: Optional[List[Dict[str, int]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    team_a_sets: int = Field(default=0)
    team_b_sets: int = Field(default=0)
    status: str = Field(default=MatchStatus.PENDING.value)
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = Field(default=None)

    matchup: "Matchup" = Relationship(back_populates="matches")

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    @property
    def is_decider(self) -> bool:
        return self.category == MatchCategory.decider
