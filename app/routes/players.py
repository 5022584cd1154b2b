from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_identity_resolver, require_caller_id, validation_http_error
from app.errors import ReputationValidationError
from app.models.fields import PlayerSort
from app.models.reputation import (
    LookupRequest,
    MutationResponse,
    Page,
    PlayerDetails,
    PlayerRead,
    PlayerSearchMatch,
)
from app.services.identity_resolver import (
    IdentityResolver,
    deactivate_player,
    get_player_details,
    list_players,
    to_player_read,
)
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/players", tags=["players"])


@router.get("", response_model=Page[PlayerRead])
async def list_players_handler(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    search: Optional[str] = Query(None, description="Match current or past handles"),
    sort: PlayerSort = PlayerSort.ALPHABETICAL,
    tags: Optional[List[str]] = Query(None, description="Players carrying any of these tags"),
    orgs: Optional[List[str]] = Query(None, description="Current members of any of these orgs"),
    db: AsyncSession = Depends(get_session),
) -> Page[PlayerRead]:
    """List active players."""
    try:
        return await list_players(
            db,
            page=page,
            page_size=page_size,
            search=search,
            sort=sort,
            tags=tags,
            orgs=orgs,
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc


@router.get("/search", response_model=List[PlayerSearchMatch])
async def search_players(
    q: str = Query(..., min_length=1, description="Search query"),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> List[PlayerSearchMatch]:
    """Search players by current and historical handle (typeahead)."""
    return await resolver.search_by_handle(db, q, limit=limit)


@router.post("/lookup", response_model=PlayerRead)
async def lookup_player(
    body: LookupRequest,
    db: AsyncSession = Depends(get_session),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> PlayerRead:
    """Resolve a handle to its canonical player, fetching it upstream if new."""
    player = await resolver.resolve_by_handle(db, body.handle)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return to_player_read(player)


@router.get("/{external_id}", response_model=PlayerDetails)
async def get_player(
    external_id: str,
    db: AsyncSession = Depends(get_session),
) -> PlayerDetails:
    """Return a player with handle and organization history."""
    details = await get_player_details(db, external_id)
    if details is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return details


@router.post(
    "/{external_id}/refresh",
    response_model=MutationResponse[PlayerRead],
    dependencies=[Depends(require_caller_id)],
)
async def refresh_player(
    external_id: str,
    db: AsyncSession = Depends(get_session),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> MutationResponse[PlayerRead]:
    """Re-sync a player from the identity source."""
    player = await resolver.resolve_by_external_id(db, external_id, refresh=True)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return MutationResponse[PlayerRead](
        data=to_player_read(player), invalidate=[player.external_id]
    )


@router.delete(
    "/{external_id}",
    response_model=MutationResponse[bool],
    dependencies=[Depends(require_caller_id)],
)
async def deactivate_player_handler(
    external_id: str,
    db: AsyncSession = Depends(get_session),
) -> MutationResponse[bool]:
    """Soft-delete a player. Unknown ids are a no-op."""
    outcome = await deactivate_player(db, external_id)
    return MutationResponse[bool](data=outcome.value, invalidate=list(outcome.invalidate))
