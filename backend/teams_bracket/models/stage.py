from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from teams_bracket.models.team import Team


class StageGender(str, Enum):
    men = "men"
    women = "women"
    mixed = "mixed"


class GameFormation(str, Enum):
    draw = "draw"  # lineups drawn automatically from the rosters
    manual = "manual"  # matches created empty, organizer sets the pairs


class Stage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    team_size: int = Field(default=4)  # 4 (TEAMS_4) or 6 (TEAMS_6)
    gender: str = Field(default=StageGender.mixed.value)
    game_formation: str = Field(default=GameFormation.draw.value)

    # Set when the final matchup finishes
    champion_team_id: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    teams: List["Team"] = Relationship(back_populates="stage")

    @property
    def is_mixed(self) -> bool:
        return self.gender == StageGender.mixed
