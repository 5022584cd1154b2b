"""Free-form comments and short tags members attach to a player."""

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.schemas.base import timestamp_field


class PlayerComment(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "player_comments"

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="players.id", index=True)
    author_id: str = Field(index=True)

    content: str
    is_public: bool = Field(default=True)

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class PlayerTag(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "player_tags"
    __table_args__ = (
        UniqueConstraint("player_id", "tag_name", name="uq_player_tags_player_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="players.id", index=True)
    tagger_id: str = Field(index=True)

    tag_name: str = Field(index=True)
    tag_type: str = Field(description="positive, negative or neutral")
    description: Optional[str] = Field(default=None)

    created_at: datetime = timestamp_field()
