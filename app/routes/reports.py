from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_report_service, require_caller_id, validation_http_error
from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, ReportKind
from app.models.reputation import (
    AttestationCounts,
    AttestationRead,
    CommentCreate,
    CommentRead,
    CommentWithAttestations,
    MutationResponse,
    Page,
    ReportPayload,
    ReportRead,
    ReportWithAttestations,
    TagCreate,
    TagRead,
    TagWithAttestations,
    VoteRequest,
)
from app.services import attestation_service, player_feedback_service
from app.services.report_service import ReportService, get_report, get_reports_by_player
from app.utils.db_async import get_session

router = APIRouter(prefix="/api", tags=["reports"])


@router.post("/reports/{kind}", response_model=MutationResponse[ReportRead], status_code=201)
async def create_report(
    kind: ReportKind,
    payload: ReportPayload,
    caller_id: str = Depends(require_caller_id),
    db: AsyncSession = Depends(get_session),
    service: ReportService = Depends(get_report_service),
) -> MutationResponse[ReportRead]:
    """File a report of the given kind about ``payload.main_player_id``."""
    try:
        outcome = await service.create_report(db, kind, caller_id, payload)
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return MutationResponse[ReportRead](
        data=ReportRead.model_validate(outcome.value),
        invalidate=list(outcome.invalidate),
    )


@router.get("/reports", response_model=Page[ReportWithAttestations])
async def list_reports(
    player_id: int = Query(..., description="Internal id of the reported player"),
    kind: Optional[ReportKind] = None,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
) -> Page[ReportWithAttestations]:
    """Reports about a player, newest first."""
    try:
        return await get_reports_by_player(
            db, player_id, page=page, page_size=page_size, kind=kind
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc


@router.get("/reports/{report_id}", response_model=ReportWithAttestations)
async def get_report_handler(
    report_id: int,
    db: AsyncSession = Depends(get_session),
) -> ReportWithAttestations:
    report = await get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.put(
    "/attestations/{artifact_kind}/{artifact_id}",
    response_model=MutationResponse[AttestationRead],
)
async def cast_vote(
    artifact_kind: ArtifactKind,
    artifact_id: int,
    body: VoteRequest,
    caller_id: str = Depends(require_caller_id),
    db: AsyncSession = Depends(get_session),
) -> MutationResponse[AttestationRead]:
    """Record or change the caller's vote on a report, comment or tag."""
    try:
        outcome = await attestation_service.vote(
            db, artifact_kind, artifact_id, caller_id, body.attestation_type, body.comment
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail=f"{artifact_kind.value.title()} not found")
    return MutationResponse[AttestationRead](
        data=AttestationRead.model_validate(outcome.value),
        invalidate=list(outcome.invalidate),
    )


@router.delete(
    "/attestations/{artifact_kind}/{artifact_id}",
    response_model=MutationResponse[bool],
)
async def withdraw_vote(
    artifact_kind: ArtifactKind,
    artifact_id: int,
    caller_id: str = Depends(require_caller_id),
    db: AsyncSession = Depends(get_session),
) -> MutationResponse[bool]:
    """Remove the caller's vote; removing a vote that does not exist is not an error."""
    outcome = await attestation_service.remove_vote(db, artifact_kind, artifact_id, caller_id)
    return MutationResponse[bool](data=outcome.value, invalidate=list(outcome.invalidate))


@router.get(
    "/attestations/{artifact_kind}/{artifact_id}",
    response_model=List[AttestationRead],
)
async def list_votes(
    artifact_kind: ArtifactKind,
    artifact_id: int,
    db: AsyncSession = Depends(get_session),
) -> List[AttestationRead]:
    rows = await attestation_service.list_attestations(db, artifact_kind, artifact_id)
    return [AttestationRead.model_validate(row) for row in rows]


@router.get(
    "/attestations/{artifact_kind}/{artifact_id}/summary",
    response_model=AttestationCounts,
)
async def vote_summary(
    artifact_kind: ArtifactKind,
    artifact_id: int,
    db: AsyncSession = Depends(get_session),
) -> AttestationCounts:
    counts = await attestation_service.summarize(db, artifact_kind, [artifact_id])
    return counts[artifact_id]


@router.post(
    "/players/{player_id}/comments",
    response_model=MutationResponse[CommentRead],
    status_code=201,
)
async def add_comment(
    player_id: int,
    body: CommentCreate,
    caller_id: str = Depends(require_caller_id),
    db: AsyncSession = Depends(get_session),
) -> MutationResponse[CommentRead]:
    try:
        outcome = await player_feedback_service.add_comment(
            db, player_id, caller_id, body.content, is_public=body.is_public
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return MutationResponse[CommentRead](
        data=CommentRead.model_validate(outcome.value),
        invalidate=list(outcome.invalidate),
    )


@router.get("/players/{player_id}/comments", response_model=Page[CommentWithAttestations])
async def list_comments(
    player_id: int,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
) -> Page[CommentWithAttestations]:
    """Public comments on a player, newest first."""
    try:
        return await player_feedback_service.list_comments(
            db, player_id, page=page, page_size=page_size
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc


@router.post(
    "/players/{player_id}/tags",
    response_model=MutationResponse[TagRead],
    status_code=201,
)
async def add_tag(
    player_id: int,
    body: TagCreate,
    caller_id: str = Depends(require_caller_id),
    db: AsyncSession = Depends(get_session),
) -> MutationResponse[TagRead]:
    """Tag a player; an existing tag with the same name gets the caller's support."""
    try:
        outcome = await player_feedback_service.add_tag(
            db, player_id, caller_id, body.tag_name, body.tag_type, body.description
        )
    except ReputationValidationError as exc:
        raise validation_http_error(exc) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return MutationResponse[TagRead](
        data=TagRead.model_validate(outcome.value),
        invalidate=list(outcome.invalidate),
    )


@router.get("/players/{player_id}/tags", response_model=List[TagWithAttestations])
async def list_tags(
    player_id: int,
    db: AsyncSession = Depends(get_session),
) -> List[TagWithAttestations]:
    return await player_feedback_service.list_tags(db, player_id)
