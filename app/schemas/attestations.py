"""Polymorphic vote table shared by reports, comments and tags."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Index, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.schemas.base import timestamp_field


class Attestation(SQLModel, table=True):  # type: ignore[call-arg]
    """One voter's position on one artifact."""

    __tablename__ = "attestations"
    __table_args__ = (
        UniqueConstraint(
            "artifact_kind",
            "artifact_id",
            "voter_id",
            name="uq_attestation_voter",
        ),
        Index(
            "ix_attestations_artifact_lookup",
            "artifact_kind",
            "artifact_id",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    artifact_kind: str = Field(
        sa_column=Column("artifact_kind", String, nullable=False),
    )
    artifact_id: int = Field(description="ID of the report/comment/tag (polymorphic, no FK)")
    voter_id: str = Field(index=True)

    attestation_type: str = Field(
        sa_column=Column("attestation_type", String, nullable=False),
    )
    comment: Optional[str] = Field(default=None)

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()
