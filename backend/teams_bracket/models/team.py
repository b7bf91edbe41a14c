from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from teams_bracket.models.stage import Stage


class Team(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("stage_id", "name", name="uq_stage_team_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    name: str  # "Equipe 1" or a custom name
    seed: int = Field(default=0)  # 1-based draw order, drives the snake draft

    # Group letter ("A".."H"); null when the stage is a single round robin
    group_id: Optional[str] = Field(default=None, index=True)

    # Roster: [{"id", "name", "level", "gender"}], always 4 or 6 entries
    players: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Aggregates. Written only through services.team_aggregates
    matchups_played: int = Field(default=0)
    matchups_won: int = Field(default=0)
    matchups_lost: int = Field(default=0)
    points: int = Field(default=0)  # 3 per matchup won
    matches_won: int = Field(default=0)
    matches_lost: int = Field(default=0)
    match_diff: int = Field(default=0)
    games_won: int = Field(default=0)
    games_lost: int = Field(default=0)
    game_diff: int = Field(default=0)

    position: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    stage: "Stage" = Relationship(back_populates="teams")

    def player_ids(self) -> List[str]:
        return [str(p["id"]) for p in self.players]
