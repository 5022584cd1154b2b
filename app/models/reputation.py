"""Pydantic models for identity and reputation requests/responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.models.fields import AttestationType, MatchType, TagType

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class MutationOutcome(Generic[T]):
    """Result of a write plus the external ids of players whose view changed.

    Callers use ``invalidate`` to drop any cached rendering of those players;
    it is populated even when the write turned out to be a no-op.
    """

    value: T
    invalidate: tuple[str, ...] = field(default_factory=tuple)


class Page(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)
    total: int = 0


class MutationResponse(BaseModel, Generic[T]):
    data: T
    invalidate: List[str] = Field(default_factory=list)


class AttestationCounts(BaseModel):
    support: int = 0
    dispute: int = 0
    neutral: int = 0

    @property
    def total(self) -> int:
        return self.support + self.dispute + self.neutral


class PlayerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    current_handle: str
    current_display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    first_observed_at: datetime
    last_observed_at: datetime
    last_external_sync_at: Optional[datetime] = None
    is_active: bool = True


class HandleHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    handle: str
    display_name: Optional[str] = None
    first_observed_at: datetime
    last_observed_at: datetime


class OrgHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    org_external_id: str
    org_name: Optional[str] = None
    role: Optional[str] = None
    is_current: bool
    first_observed_at: datetime
    last_observed_at: datetime


class PlayerDetails(BaseModel):
    player: PlayerRead
    handle_history: List[HandleHistoryRead] = Field(default_factory=list)
    org_history: List[OrgHistoryRead] = Field(default_factory=list)


class PlayerSearchMatch(BaseModel):
    player: PlayerRead
    match_type: MatchType


class AttestationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    artifact_kind: str
    artifact_id: int
    voter_id: str
    attestation_type: str
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    reporter_id: str
    main_player_id: int
    description: Optional[str] = None
    evidence_urls: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    category: Optional[str] = None
    org_external_id: Optional[str] = None
    org_name: Optional[str] = None
    secondary_handle: Optional[str] = None
    secondary_external_id: Optional[str] = None
    secondary_display_name: Optional[str] = None
    secondary_player_id: Optional[int] = None
    relationship_type: Optional[str] = None
    created_at: datetime


class ReportWithAttestations(ReportRead):
    attestation_counts: AttestationCounts = Field(default_factory=AttestationCounts)


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: int
    author_id: str
    content: str
    is_public: bool
    created_at: datetime


class CommentWithAttestations(CommentRead):
    attestation_counts: AttestationCounts = Field(default_factory=AttestationCounts)


class TagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: int
    tagger_id: str
    tag_name: str
    tag_type: str
    description: Optional[str] = None
    created_at: datetime


class TagWithAttestations(TagRead):
    attestation_counts: AttestationCounts = Field(default_factory=AttestationCounts)


class ReportPayload(BaseModel):
    """Caller-supplied report body; which fields are required depends on the kind."""

    main_player_id: Optional[int] = None
    description: Optional[str] = None
    evidence_urls: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    category: Optional[str] = None
    org_external_id: Optional[str] = None
    org_name: Optional[str] = None
    secondary_handle: Optional[str] = None
    relationship_type: Optional[str] = None


class VoteRequest(BaseModel):
    attestation_type: AttestationType
    comment: Optional[str] = Field(default=None, max_length=2000)


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    is_public: bool = True


class TagCreate(BaseModel):
    tag_name: str = Field(min_length=1, max_length=64)
    tag_type: TagType
    description: Optional[str] = None


class LookupRequest(BaseModel):
    handle: str = Field(min_length=1, max_length=64)
