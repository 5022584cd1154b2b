from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from app.schemas.base import ObservedMixin


class PlayerHandleHistory(ObservedMixin, table=True):  # type: ignore[call-arg]
    __tablename__ = "player_handle_history"
    __table_args__ = (
        UniqueConstraint("player_id", "handle", name="uq_handle_history_player_handle"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="players.id", index=True)

    handle: str = Field(index=True)
    display_name: Optional[str] = Field(default=None)


class PlayerOrgHistory(ObservedMixin, table=True):  # type: ignore[call-arg]
    __tablename__ = "player_org_history"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "org_external_id", name="uq_org_history_player_org"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="players.id", index=True)

    org_external_id: str = Field(index=True, description="Organization id/tag upstream")
    org_name: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)
    is_current: bool = Field(default=True, index=True)
