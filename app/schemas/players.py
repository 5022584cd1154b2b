from typing import Optional
from datetime import datetime

from sqlmodel import Field

from app.schemas.base import AwareDateTime, ObservedMixin, timestamp_field


class Player(ObservedMixin, table=True):  # type: ignore[call-arg]
    """Canonical record for one externally identified community member.

    ``external_id`` is the merge key; handles are mutable and may repeat
    across players over time.
    """

    __tablename__ = "players"

    id: Optional[int] = Field(default=None, primary_key=True)
    external_id: str = Field(
        unique=True, index=True, description="Stable id issued by the identity source"
    )

    current_handle: str = Field(index=True)
    current_display_name: Optional[str] = Field(default=None)
    avatar_url: Optional[str] = Field(default=None)

    last_external_sync_at: Optional[datetime] = Field(default=None, sa_type=AwareDateTime)
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()
