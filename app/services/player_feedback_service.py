"""Comments and tags on players.

Both are attestable artifacts: votes on them go through the attestation
engine. Re-tagging a player with an existing tag name counts as support for
the existing tag rather than creating a duplicate, unless the caller
already voted on it.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, AttestationType, TagType
from app.models.reputation import (
    CommentWithAttestations,
    MutationOutcome,
    Page,
    TagWithAttestations,
)
from app.schemas.base import utcnow
from app.schemas.player_feedback import PlayerComment, PlayerTag
from app.schemas.players import Player
from app.services.attestation_service import count_attestations, upsert_vote
from app.services.pagination import resolve_pagination

logger = logging.getLogger(__name__)


def _require_caller(caller_id: str, field: str) -> str:
    if not caller_id or not caller_id.strip():
        raise ReputationValidationError(
            "An authenticated caller id is required",
            field=field,
            error_code="missing_caller",
        )
    return caller_id.strip()


def normalize_tag_name(tag_name: str) -> str:
    """Tags compare case-insensitively with collapsed whitespace."""
    return " ".join(tag_name.split()).lower()


async def add_comment(
    db: AsyncSession,
    player_id: int,
    author_id: str,
    content: str,
    is_public: bool = True,
) -> Optional[MutationOutcome[PlayerComment]]:
    """Attach a comment to a player; None if the player does not exist."""
    author = _require_caller(author_id, "author_id")
    text = (content or "").strip()
    if not text:
        raise ReputationValidationError(
            "Comment content is required", field="content", error_code="missing_field"
        )

    async with db.begin():
        player = await db.get(Player, player_id)
        if player is None:
            return None
        now = utcnow()
        comment = PlayerComment(
            player_id=player_id,
            author_id=author,
            content=text,
            is_public=is_public,
            created_at=now,
            updated_at=now,
        )
        db.add(comment)
        await db.flush()
        external_id = player.external_id

    return MutationOutcome(value=comment, invalidate=(external_id,))


async def _find_tag(db: AsyncSession, player_id: int, tag_name: str) -> Optional[PlayerTag]:
    stmt = select(PlayerTag).where(
        PlayerTag.player_id == player_id,  # type: ignore[arg-type]
        PlayerTag.tag_name == tag_name,  # type: ignore[arg-type]
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def add_tag(
    db: AsyncSession,
    player_id: int,
    tagger_id: str,
    tag_name: str,
    tag_type: TagType | str,
    description: Optional[str] = None,
) -> Optional[MutationOutcome[PlayerTag]]:
    """Tag a player, or support the identical tag someone else already added.

    Returns:
        The (new or existing) tag and the player to invalidate, or None if
        the player does not exist.

    Raises:
        ReputationValidationError: bad input, or the caller already added
            this tag to this player.
    """
    tagger = _require_caller(tagger_id, "tagger_id")
    name = normalize_tag_name(tag_name or "")
    if not name:
        raise ReputationValidationError(
            "Tag name is required", field="tag_name", error_code="missing_field"
        )
    try:
        kind = TagType(tag_type)
    except ValueError as exc:
        raise ReputationValidationError(
            f"tag_type must be positive, negative or neutral; got {tag_type!r}",
            field="tag_type",
            error_code="invalid_tag_type",
        ) from exc

    async with db.begin():
        player = await db.get(Player, player_id)
        if player is None:
            return None
        external_id = player.external_id

        tag = await _find_tag(db, player_id, name)
        if tag is None:
            try:
                async with db.begin_nested():
                    tag = PlayerTag(
                        player_id=player_id,
                        tagger_id=tagger,
                        tag_name=name,
                        tag_type=kind.value,
                        description=(description or "").strip() or None,
                        created_at=utcnow(),
                    )
                    db.add(tag)
                    await db.flush()
                logger.info(f"{tagger} tagged player {external_id} as {name!r}")
                return MutationOutcome(value=tag, invalidate=(external_id,))
            except IntegrityError:
                tag = await _find_tag(db, player_id, name)
                if tag is None:
                    raise

        if tag.tagger_id == tagger:
            raise ReputationValidationError(
                "You have already tagged this player with this tag",
                field="tag_name",
                error_code="duplicate_tag",
            )
        vote = await upsert_vote(
            db, ArtifactKind.TAG, tag.id, tagger, AttestationType.SUPPORT, keep_existing=True  # type: ignore[arg-type]
        )
        logger.info(
            f"{tagger} re-tagged player {external_id} as {name!r}; vote stands at {vote.attestation_type}"
        )

    return MutationOutcome(value=tag, invalidate=(external_id,))


async def list_comments(
    db: AsyncSession,
    player_id: int,
    page: int = 1,
    page_size: Optional[int] = None,
) -> Page[CommentWithAttestations]:
    """Public comments on a player, newest first."""
    limit, offset = resolve_pagination(page, page_size)
    filters = [
        PlayerComment.player_id == player_id,  # type: ignore[arg-type]
        PlayerComment.is_public.is_(True),  # type: ignore[attr-defined]
    ]
    async with db.begin():
        total = (
            await db.execute(select(func.count()).select_from(PlayerComment).where(*filters))
        ).scalar_one()
        stmt = (
            select(PlayerComment)
            .where(*filters)
            .order_by(PlayerComment.created_at.desc(), PlayerComment.id.desc())  # type: ignore[attr-defined, union-attr]
            .limit(limit)
            .offset(offset)
        )
        comments = list((await db.execute(stmt)).scalars())
        counts = await count_attestations(
            db, ArtifactKind.COMMENT, [c.id for c in comments]  # type: ignore[misc]
        )

    data = []
    for comment in comments:
        read = CommentWithAttestations.model_validate(comment)
        read.attestation_counts = counts[comment.id]  # type: ignore[index]
        data.append(read)
    return Page[CommentWithAttestations](data=data, total=total)


async def list_tags(db: AsyncSession, player_id: int) -> list[TagWithAttestations]:
    """All tags on a player with their vote counts, newest first."""
    async with db.begin():
        stmt = (
            select(PlayerTag)
            .where(PlayerTag.player_id == player_id)  # type: ignore[arg-type]
            .order_by(PlayerTag.created_at.desc(), PlayerTag.id.desc())  # type: ignore[attr-defined, union-attr]
        )
        tags = list((await db.execute(stmt)).scalars())
        counts = await count_attestations(
            db, ArtifactKind.TAG, [t.id for t in tags]  # type: ignore[misc]
        )

    result = []
    for tag in tags:
        read = TagWithAttestations.model_validate(tag)
        read.attestation_counts = counts[tag.id]  # type: ignore[index]
        result.append(read)
    return result
