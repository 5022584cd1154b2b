"""One table for all four report kinds; the payload columns used depend on ``kind``."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, Index, String
from sqlmodel import Field, SQLModel

from app.schemas.base import timestamp_field


class PlayerReport(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "player_reports"
    __table_args__ = (
        Index("ix_player_reports_player_kind_created", "main_player_id", "kind", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str = Field(sa_column=Column("kind", String, nullable=False, index=True))
    reporter_id: str = Field(index=True, description="Authenticated caller id")
    main_player_id: int = Field(foreign_key="players.id", index=True)

    description: Optional[str] = Field(default=None)
    evidence_urls: list[str] = Field(
        default_factory=list, sa_column=Column("evidence_urls", JSON, nullable=False)
    )

    # kind == "player"
    title: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)

    # kind == "organization"
    org_external_id: Optional[str] = Field(default=None, index=True)
    org_name: Optional[str] = Field(default=None)

    # kind in ("alt_account", "affiliated_people")
    secondary_handle: Optional[str] = Field(default=None, index=True)
    secondary_external_id: Optional[str] = Field(default=None, index=True)
    secondary_display_name: Optional[str] = Field(default=None)
    secondary_player_id: Optional[int] = Field(default=None, foreign_key="players.id")
    relationship_type: Optional[str] = Field(default=None)

    created_at: datetime = timestamp_field()
