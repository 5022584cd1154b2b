"""Attestation engine shared by reports, comments and tags.

Every "I agree / I dispute / no opinion" interaction is the same keyed upsert
on ``(artifact_kind, artifact_id, voter_id)``. Each write reports back the
external id of the player the artifact belongs to so callers can invalidate
cached views of that player.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, AttestationType
from app.models.reputation import AttestationCounts, MutationOutcome
from app.schemas.attestations import Attestation
from app.schemas.base import utcnow
from app.schemas.player_feedback import PlayerComment, PlayerTag
from app.schemas.players import Player
from app.schemas.reports import PlayerReport

logger = logging.getLogger(__name__)

_VOTE_TYPES = {t.value for t in AttestationType}

# artifact kind -> (table, column holding the owning player's id)
_ARTIFACT_OWNERS: dict[ArtifactKind, tuple[Any, Any]] = {
    ArtifactKind.REPORT: (PlayerReport, PlayerReport.main_player_id),
    ArtifactKind.COMMENT: (PlayerComment, PlayerComment.player_id),
    ArtifactKind.TAG: (PlayerTag, PlayerTag.player_id),
}


def parse_artifact_kind(value: ArtifactKind | str) -> ArtifactKind:
    try:
        return ArtifactKind(value)
    except ValueError as exc:
        raise ReputationValidationError(
            f"Unknown artifact kind: {value!r}",
            field="artifact_kind",
            error_code="invalid_artifact_kind",
        ) from exc


def parse_attestation_type(value: AttestationType | str) -> AttestationType:
    try:
        return AttestationType(value)
    except ValueError as exc:
        raise ReputationValidationError(
            f"attestation_type must be one of support, dispute, neutral; got {value!r}",
            field="attestation_type",
            error_code="invalid_attestation_type",
        ) from exc


def _require_voter(voter_id: str) -> str:
    if not voter_id or not voter_id.strip():
        raise ReputationValidationError(
            "An authenticated caller id is required",
            field="voter_id",
            error_code="missing_caller",
        )
    return voter_id.strip()


async def artifact_owner_external_id(
    db: AsyncSession, kind: ArtifactKind, artifact_id: int
) -> Optional[str]:
    """Follow artifact -> owning player -> external id; None if the artifact is gone."""
    model, player_column = _ARTIFACT_OWNERS[kind]
    stmt = (
        select(Player.external_id)  # type: ignore[call-overload]
        .join(model, player_column == Player.id)
        .where(model.id == artifact_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_vote(
    db: AsyncSession, kind: ArtifactKind, artifact_id: int, voter_id: str
) -> Optional[Attestation]:
    stmt = select(Attestation).where(
        Attestation.artifact_kind == kind.value,  # type: ignore[arg-type]
        Attestation.artifact_id == artifact_id,  # type: ignore[arg-type]
        Attestation.voter_id == voter_id,  # type: ignore[arg-type]
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def upsert_vote(
    db: AsyncSession,
    kind: ArtifactKind,
    artifact_id: int,
    voter_id: str,
    attestation_type: AttestationType,
    comment: Optional[str] = None,
    keep_existing: bool = False,
) -> Attestation:
    """Insert or update the single vote row for (artifact, voter).

    Must run inside a transaction. A concurrent first vote by the same voter
    surfaces as a unique violation inside the savepoint; the winner's row is
    then updated instead. With ``keep_existing`` an existing row is returned
    as it is.
    """
    now = utcnow()
    existing = await _find_vote(db, kind, artifact_id, voter_id)
    if existing is None:
        try:
            async with db.begin_nested():
                row = Attestation(
                    artifact_kind=kind.value,
                    artifact_id=artifact_id,
                    voter_id=voter_id,
                    attestation_type=attestation_type.value,
                    comment=comment,
                    created_at=now,
                    updated_at=now,
                )
                db.add(row)
                await db.flush()
            return row
        except IntegrityError:
            existing = await _find_vote(db, kind, artifact_id, voter_id)
            if existing is None:
                raise
            logger.info(
                f"Concurrent vote by {voter_id} on {kind.value}:{artifact_id}; updating"
            )

    if keep_existing:
        return existing
    existing.attestation_type = attestation_type.value
    existing.comment = comment
    existing.updated_at = now
    db.add(existing)
    await db.flush()
    return existing


async def vote(
    db: AsyncSession,
    artifact_kind: ArtifactKind | str,
    artifact_id: int,
    voter_id: str,
    attestation_type: AttestationType | str,
    comment: Optional[str] = None,
) -> Optional[MutationOutcome[Attestation]]:
    """Record or change a caller's attestation on an artifact.

    Args:
        db: Async database session (not inside a transaction)
        artifact_kind: "report", "comment" or "tag"
        artifact_id: ID of the artifact being voted on
        voter_id: Authenticated caller id
        attestation_type: "support", "dispute" or "neutral"
        comment: Optional free text stored with the vote

    Returns:
        The vote row with the owning player's external id to invalidate,
        or None when the artifact does not exist.

    Raises:
        ReputationValidationError: invalid kind, type or caller, before any write.
    """
    kind = parse_artifact_kind(artifact_kind)
    vote_type = parse_attestation_type(attestation_type)
    voter = _require_voter(voter_id)

    async with db.begin():
        owner = await artifact_owner_external_id(db, kind, artifact_id)
        if owner is None:
            return None
        row = await upsert_vote(db, kind, artifact_id, voter, vote_type, comment)

    return MutationOutcome(value=row, invalidate=(owner,))


async def remove_vote(
    db: AsyncSession,
    artifact_kind: ArtifactKind | str,
    artifact_id: int,
    voter_id: str,
) -> MutationOutcome[bool]:
    """Delete the caller's vote on an artifact; missing votes are a no-op.

    ``value`` tells whether a row was deleted. ``invalidate`` carries the
    artifact's player either way (empty only when the artifact is gone).
    """
    kind = parse_artifact_kind(artifact_kind)
    voter = _require_voter(voter_id)

    async with db.begin():
        owner = await artifact_owner_external_id(db, kind, artifact_id)
        result = await db.execute(
            delete(Attestation).where(
                Attestation.artifact_kind == kind.value,  # type: ignore[arg-type]
                Attestation.artifact_id == artifact_id,  # type: ignore[arg-type]
                Attestation.voter_id == voter,  # type: ignore[arg-type]
            )
        )
        deleted = (result.rowcount or 0) > 0

    if deleted:
        logger.debug(f"Removed vote by {voter} on {kind.value}:{artifact_id}")
    return MutationOutcome(value=deleted, invalidate=(owner,) if owner else ())


async def count_attestations(
    db: AsyncSession, kind: ArtifactKind, artifact_ids: Iterable[int]
) -> dict[int, AttestationCounts]:
    """Raw support/dispute/neutral counts per artifact. Runs in the caller's transaction."""
    ids = list(artifact_ids)
    counts = {artifact_id: AttestationCounts() for artifact_id in ids}
    if not ids:
        return counts

    stmt = (
        select(
            Attestation.artifact_id,
            Attestation.attestation_type,
            func.count(),
        )  # type: ignore[call-overload]
        .where(
            Attestation.artifact_kind == kind.value,  # type: ignore[arg-type]
            Attestation.artifact_id.in_(ids),  # type: ignore[attr-defined]
        )
        .group_by(Attestation.artifact_id, Attestation.attestation_type)
    )
    for artifact_id, vote_type, n in (await db.execute(stmt)).all():
        bucket = counts[artifact_id]
        if vote_type in _VOTE_TYPES:
            setattr(bucket, vote_type, n)
    return counts


async def summarize(
    db: AsyncSession, artifact_kind: ArtifactKind | str, artifact_ids: Iterable[int]
) -> dict[int, AttestationCounts]:
    kind = parse_artifact_kind(artifact_kind)
    async with db.begin():
        return await count_attestations(db, kind, artifact_ids)


async def list_attestations(
    db: AsyncSession, artifact_kind: ArtifactKind | str, artifact_id: int
) -> list[Attestation]:
    """All votes on one artifact, oldest first."""
    kind = parse_artifact_kind(artifact_kind)
    async with db.begin():
        stmt = (
            select(Attestation)
            .where(
                Attestation.artifact_kind == kind.value,  # type: ignore[arg-type]
                Attestation.artifact_id == artifact_id,  # type: ignore[arg-type]
            )
            .order_by(Attestation.created_at, Attestation.id)
        )
        return list((await db.execute(stmt)).scalars())
