"""Player identity resolution.

Maps a handle or an external id onto exactly one ``Player`` row, consulting
the external identity source when the local store cannot answer. Handles are
mutable and non-unique; ``external_id`` is the only dedup key. Creation of a
player and its first handle-history row happens inside one savepoint so a
concurrent creator for the same external id makes us re-read the winner
instead of failing.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import IdentitySourceError
from app.models.fields import MatchType, PlayerSort
from app.models.reputation import (
    HandleHistoryRead,
    MutationOutcome,
    OrgHistoryRead,
    Page,
    PlayerDetails,
    PlayerRead,
    PlayerSearchMatch,
)
from app.schemas.base import utcnow
from app.schemas.player_feedback import PlayerTag
from app.schemas.player_history import PlayerHandleHistory, PlayerOrgHistory
from app.schemas.players import Player
from app.services.identity_source import ExternalIdentity, IdentitySource, OrgMembership
from app.services.player_feedback_service import normalize_tag_name
from app.services.pagination import resolve_pagination

logger = logging.getLogger(__name__)


async def _find_by_external_id(db: AsyncSession, external_id: str) -> Optional[Player]:
    stmt = select(Player).where(Player.external_id == external_id)  # type: ignore[arg-type]
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_active_by_handle(db: AsyncSession, handle: str) -> Optional[Player]:
    """Most recently observed active player currently using ``handle``."""
    stmt = (
        select(Player)
        .where(
            Player.current_handle == handle,  # type: ignore[arg-type]
            Player.is_active.is_(True),  # type: ignore[attr-defined]
        )
        .order_by(Player.last_observed_at.desc())  # type: ignore[attr-defined]
        .limit(1)
    )
    return (await db.execute(stmt)).scalars().first()


async def _find_handle_row(
    db: AsyncSession, player_id: int, handle: str
) -> Optional[PlayerHandleHistory]:
    stmt = select(PlayerHandleHistory).where(
        PlayerHandleHistory.player_id == player_id,  # type: ignore[arg-type]
        PlayerHandleHistory.handle == handle,  # type: ignore[arg-type]
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def record_handle(
    db: AsyncSession,
    player: Player,
    handle: str,
    display_name: Optional[str],
    now: datetime,
) -> PlayerHandleHistory:
    """Note that ``player`` was seen using ``handle``.

    Inserts a history row the first time a (player, handle) pair is seen,
    otherwise bumps the existing row. Must run inside a transaction.
    """
    row = await _find_handle_row(db, player.id, handle)  # type: ignore[arg-type]
    if row is None:
        try:
            async with db.begin_nested():
                row = PlayerHandleHistory(
                    player_id=player.id,  # type: ignore[arg-type]
                    handle=handle,
                    display_name=display_name,
                    first_observed_at=now,
                    last_observed_at=now,
                )
                db.add(row)
                await db.flush()
            return row
        except IntegrityError:
            row = await _find_handle_row(db, player.id, handle)  # type: ignore[arg-type]
            if row is None:
                raise
    row.last_observed_at = now
    if display_name:
        row.display_name = display_name
    db.add(row)
    return row


async def record_org_affiliations(
    db: AsyncSession,
    player: Player,
    memberships: Iterable[OrgMembership],
    now: Optional[datetime] = None,
) -> list[PlayerOrgHistory]:
    """Reconcile a player's organization history with an observed membership set.

    New organizations get a row, known ones are bumped and flagged current,
    and every other current row is flagged not current. Must run inside a
    transaction.

    Returns:
        The history rows flagged current after reconciliation.
    """
    now = now or utcnow()
    observed = {m.org_external_id: m for m in memberships}

    stmt = select(PlayerOrgHistory).where(
        PlayerOrgHistory.player_id == player.id  # type: ignore[arg-type]
    )
    existing = {row.org_external_id: row for row in (await db.execute(stmt)).scalars()}

    current: list[PlayerOrgHistory] = []
    for org_id, row in existing.items():
        if org_id in observed:
            membership = observed[org_id]
            row.is_current = True
            row.last_observed_at = now
            row.org_name = membership.org_name or row.org_name
            row.role = membership.role or row.role
            current.append(row)
        elif row.is_current:
            row.is_current = False
            logger.info(f"Player {player.external_id} left org {org_id}")
        db.add(row)

    for org_id, membership in observed.items():
        if org_id in existing:
            continue
        row = PlayerOrgHistory(
            player_id=player.id,  # type: ignore[arg-type]
            org_external_id=org_id,
            org_name=membership.org_name,
            role=membership.role,
            is_current=True,
            first_observed_at=now,
            last_observed_at=now,
        )
        db.add(row)
        current.append(row)

    await db.flush()
    return current


async def _insert_player(
    db: AsyncSession, identity: ExternalIdentity, now: datetime
) -> Optional[Player]:
    """Create a player plus its first handle row; None if another writer won."""
    try:
        async with db.begin_nested():
            player = Player(
                external_id=identity.external_id,
                current_handle=identity.handle,
                current_display_name=identity.display_name,
                avatar_url=identity.avatar_url,
                first_observed_at=now,
                last_observed_at=now,
                last_external_sync_at=now,
                created_at=now,
                updated_at=now,
            )
            db.add(player)
            await db.flush()
            db.add(
                PlayerHandleHistory(
                    player_id=player.id,  # type: ignore[arg-type]
                    handle=identity.handle,
                    display_name=identity.display_name,
                    first_observed_at=now,
                    last_observed_at=now,
                )
            )
            await db.flush()
    except IntegrityError:
        logger.info(
            f"Concurrent creation for external id {identity.external_id}; "
            "using existing row"
        )
        return None
    return player


def to_player_read(player: Player) -> PlayerRead:
    return PlayerRead.model_validate(player)


class IdentityResolver:
    """Resolve handles and external ids to canonical players.

    Built once per process with its identity source and handed to whatever
    needs it (routes, report service).
    """

    def __init__(
        self,
        source: IdentitySource,
        lookup_timeout_seconds: float | None = None,
    ) -> None:
        self.source = source
        self.lookup_timeout_seconds = (
            lookup_timeout_seconds or settings.identity_lookup_timeout_seconds
        )

    async def _lookup(
        self,
        call: Callable[[str], Awaitable[Optional[ExternalIdentity]]],
        key: str,
    ) -> Optional[ExternalIdentity]:
        """Run an identity-source call; any failure counts as not found."""
        try:
            return await asyncio.wait_for(call(key), timeout=self.lookup_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Identity lookup for {key!r} timed out after "
                f"{self.lookup_timeout_seconds}s"
            )
        except IdentitySourceError as exc:
            logger.warning(f"Identity lookup for {key!r} failed: {exc}")
        except Exception:
            logger.exception(f"Unexpected identity source error for {key!r}")
        return None

    async def _upsert_from_identity(
        self, db: AsyncSession, identity: ExternalIdentity
    ) -> tuple[Player, bool]:
        """Create or refresh the player for a freshly fetched identity.

        Must run inside a transaction. Returns the player and whether this
        call created it.
        """
        now = utcnow()
        player = await _find_by_external_id(db, identity.external_id)
        if player is None:
            player = await _insert_player(db, identity, now)
            if player is not None:
                logger.info(
                    f"Created player {identity.handle} ({identity.external_id})"
                )
                if identity.organizations is not None:
                    await record_org_affiliations(db, player, identity.organizations, now)
                return player, True
            player = await _find_by_external_id(db, identity.external_id)
            if player is None:
                raise RuntimeError(
                    f"Player {identity.external_id} vanished after unique conflict"
                )

        if player.current_handle != identity.handle:
            logger.info(
                f"Player {identity.external_id} changed handle "
                f"{player.current_handle} -> {identity.handle}"
            )
            player.current_handle = identity.handle
        await record_handle(db, player, identity.handle, identity.display_name, now)

        if identity.display_name:
            player.current_display_name = identity.display_name
        if identity.avatar_url:
            player.avatar_url = identity.avatar_url
        player.last_external_sync_at = now
        player.last_observed_at = now
        player.updated_at = now
        db.add(player)

        if identity.organizations is not None:
            await record_org_affiliations(db, player, identity.organizations, now)
        await db.flush()
        return player, False

    async def resolve_by_handle(self, db: AsyncSession, handle: str) -> Optional[Player]:
        """Return the canonical player for a handle, creating it on first sight.

        Args:
            db: Async database session (not inside a transaction)
            handle: Public handle as typed by the caller

        Returns:
            The Player, or None when neither the store nor the identity
            source knows the handle (or the source failed).
        """
        handle = handle.strip()
        if not handle:
            return None

        async with db.begin():
            player = await _find_active_by_handle(db, handle)
            if player is not None:
                now = utcnow()
                player.last_observed_at = now
                db.add(player)
                await record_handle(db, player, handle, player.current_display_name, now)
        if player is not None:
            return player

        identity = await self._lookup(self.source.lookup_by_handle, handle)
        if identity is None:
            logger.debug(f"Handle {handle!r} not found upstream")
            return None

        async with db.begin():
            player, _ = await self._upsert_from_identity(db, identity)
        return player

    async def resolve_by_external_id(
        self,
        db: AsyncSession,
        external_id: str,
        refresh: bool = True,
    ) -> Optional[Player]:
        """Return the player for an external id, re-syncing it from upstream.

        When the source cannot be reached the stored player (if any) is
        returned untouched. ``refresh=False`` skips the source entirely.
        """
        async with db.begin():
            player = await _find_by_external_id(db, external_id)
        if not refresh:
            return player

        identity = await self._lookup(self.source.lookup_by_external_id, external_id)
        if identity is None:
            return player
        if identity.external_id != external_id:
            logger.warning(
                f"Identity source answered {identity.external_id} for {external_id}"
            )
            return player

        async with db.begin():
            player, _ = await self._upsert_from_identity(db, identity)
        return player

    async def search_by_handle(
        self,
        db: AsyncSession,
        term: str,
        limit: int = 20,
    ) -> list[PlayerSearchMatch]:
        """Search current and historical handles, then ask the source.

        Results are deduplicated by player and tagged with why they matched;
        an upstream identity missing from both local sets is created so
        follow-up calls can reference it.
        """
        term = term.strip()
        if not term:
            return []
        pattern = f"%{term}%"

        async with db.begin():
            current_stmt = (
                select(Player)
                .where(
                    Player.is_active.is_(True),  # type: ignore[attr-defined]
                    Player.current_handle.ilike(pattern),  # type: ignore[attr-defined]
                )
                .order_by(Player.current_handle)
                .limit(limit)
            )
            current = list((await db.execute(current_stmt)).scalars())

            historical_ids = (
                select(PlayerHandleHistory.player_id)  # type: ignore[call-overload]
                .where(PlayerHandleHistory.handle.ilike(pattern))  # type: ignore[attr-defined]
            )
            historical_stmt = (
                select(Player)
                .where(
                    Player.is_active.is_(True),  # type: ignore[attr-defined]
                    Player.id.in_(historical_ids),  # type: ignore[union-attr]
                    ~Player.current_handle.ilike(pattern),  # type: ignore[attr-defined]
                )
                .order_by(Player.last_observed_at.desc())  # type: ignore[attr-defined]
                .limit(limit)
            )
            historical = list((await db.execute(historical_stmt)).scalars())

        matches: list[PlayerSearchMatch] = []
        seen: set[str] = set()
        for players, match_type in (
            (current, MatchType.CURRENT),
            (historical, MatchType.HISTORICAL),
        ):
            for player in players:
                if player.external_id in seen:
                    continue
                seen.add(player.external_id)
                matches.append(
                    PlayerSearchMatch(player=to_player_read(player), match_type=match_type)
                )

        identity = await self._lookup(self.source.lookup_by_handle, term)
        if identity is not None and identity.external_id not in seen:
            async with db.begin():
                player, created = await self._upsert_from_identity(db, identity)
            if player.is_active:
                # an existing row now carries the upstream handle as current
                match_type = MatchType.NEWLY_SOURCED if created else MatchType.CURRENT
                matches.append(
                    PlayerSearchMatch(player=to_player_read(player), match_type=match_type)
                )

        return matches

    async def sync_org_affiliations(
        self,
        db: AsyncSession,
        external_id: str,
        memberships: Iterable[OrgMembership],
    ) -> MutationOutcome[list[PlayerOrgHistory]] | None:
        """Apply an observed membership set to a known player."""
        async with db.begin():
            player = await _find_by_external_id(db, external_id)
            if player is None:
                return None
            rows = await record_org_affiliations(db, player, memberships)
        return MutationOutcome(value=rows, invalidate=(player.external_id,))


async def get_player_details(
    db: AsyncSession, external_id: str
) -> Optional[PlayerDetails]:
    """Player plus handle and organization history, newest first."""
    async with db.begin():
        player = await _find_by_external_id(db, external_id)
        if player is None:
            return None
        handle_stmt = (
            select(PlayerHandleHistory)
            .where(PlayerHandleHistory.player_id == player.id)  # type: ignore[arg-type]
            .order_by(PlayerHandleHistory.first_observed_at.desc())  # type: ignore[attr-defined]
        )
        handles = list((await db.execute(handle_stmt)).scalars())
        org_stmt = (
            select(PlayerOrgHistory)
            .where(PlayerOrgHistory.player_id == player.id)  # type: ignore[arg-type]
            .order_by(PlayerOrgHistory.first_observed_at.desc())  # type: ignore[attr-defined]
        )
        orgs = list((await db.execute(org_stmt)).scalars())
        return PlayerDetails(
            player=to_player_read(player),
            handle_history=[HandleHistoryRead.model_validate(h) for h in handles],
            org_history=[OrgHistoryRead.model_validate(o) for o in orgs],
        )


async def list_players(
    db: AsyncSession,
    page: int = 1,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    sort: PlayerSort = PlayerSort.ALPHABETICAL,
    tags: Optional[list[str]] = None,
    orgs: Optional[list[str]] = None,
) -> Page[PlayerRead]:
    """Paginated list of active players.

    ``search`` matches current or past handles, ``tags`` keeps players carrying
    any of the tag names and ``orgs`` keeps current members of any of the
    organization ids.
    """
    limit, offset = resolve_pagination(page, page_size)

    filters = [Player.is_active.is_(True)]  # type: ignore[attr-defined]
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        historical_ids = (
            select(PlayerHandleHistory.player_id)  # type: ignore[call-overload]
            .where(PlayerHandleHistory.handle.ilike(pattern))  # type: ignore[attr-defined]
        )
        filters.append(
            Player.current_handle.ilike(pattern)  # type: ignore[attr-defined]
            | Player.id.in_(historical_ids)  # type: ignore[union-attr]
        )

    tag_names = {normalize_tag_name(t) for t in tags or []} - {""}
    if tag_names:
        tagged_ids = (
            select(PlayerTag.player_id)  # type: ignore[call-overload]
            .where(PlayerTag.tag_name.in_(tag_names))  # type: ignore[attr-defined]
        )
        filters.append(Player.id.in_(tagged_ids))  # type: ignore[union-attr]

    org_ids = {o.strip() for o in orgs or []} - {""}
    if org_ids:
        member_ids = (
            select(PlayerOrgHistory.player_id)  # type: ignore[call-overload]
            .where(
                PlayerOrgHistory.org_external_id.in_(org_ids),  # type: ignore[attr-defined]
                PlayerOrgHistory.is_current.is_(True),  # type: ignore[attr-defined]
            )
        )
        filters.append(Player.id.in_(member_ids))  # type: ignore[union-attr]

    if sort == PlayerSort.RECENT:
        order = Player.last_observed_at.desc()  # type: ignore[attr-defined]
    else:
        order = Player.current_handle.asc()  # type: ignore[attr-defined]

    async with db.begin():
        total = (
            await db.execute(select(func.count()).select_from(Player).where(*filters))
        ).scalar_one()
        rows = (
            await db.execute(
                select(Player).where(*filters).order_by(order).limit(limit).offset(offset)
            )
        ).scalars()
        return Page[PlayerRead](data=[to_player_read(p) for p in rows], total=total)


async def deactivate_player(
    db: AsyncSession, external_id: str
) -> MutationOutcome[bool]:
    """Soft-delete a player; deactivating an unknown id is a no-op."""
    async with db.begin():
        player = await _find_by_external_id(db, external_id)
        if player is None:
            return MutationOutcome(value=False, invalidate=(external_id,))
        changed = player.is_active
        player.is_active = False
        player.updated_at = utcnow()
        db.add(player)
    if changed:
        logger.info(f"Deactivated player {external_id}")
    return MutationOutcome(value=changed, invalidate=(external_id,))
