"""Report store for the four report kinds.

All kinds share one table and one control flow. What differs per kind is
captured by a small strategy: which payload fields are required, which
columns get written, and whether a second handle should be resolved to a
player before the report is stored. That resolution is advisory: when the
identity source cannot place the handle the report is still created, with
only the raw handle recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, PlayerReportCategory, ReportKind
from app.models.reputation import (
    AttestationCounts,
    MutationOutcome,
    Page,
    ReportPayload,
    ReportWithAttestations,
)
from app.schemas.base import utcnow
from app.schemas.players import Player
from app.schemas.reports import PlayerReport
from app.services.attestation_service import count_attestations
from app.services.identity_resolver import IdentityResolver
from app.services.pagination import resolve_pagination

logger = logging.getLogger(__name__)


def _clean_str(val: Optional[str]) -> Optional[str]:
    """Clean optional string field, returning None for empty strings."""
    if val and val.strip():
        return val.strip()
    return None


def _require(value: Optional[str], field: str, kind: ReportKind) -> str:
    cleaned = _clean_str(value)
    if cleaned is None:
        raise ReputationValidationError(
            f"{field} is required for {kind.value} reports",
            field=field,
            error_code="missing_field",
        )
    return cleaned


class ReportKindStrategy:
    """Per-kind payload handling. Subclasses override what differs."""

    kind: ReportKind

    def columns(self, payload: ReportPayload) -> dict[str, Any]:
        """Validate the kind-specific payload and map it onto report columns."""
        raise NotImplementedError

    async def enrich(
        self,
        db: AsyncSession,
        resolver: IdentityResolver,
        columns: dict[str, Any],
    ) -> dict[str, Any]:
        return {}


class PlayerReportStrategy(ReportKindStrategy):
    kind = ReportKind.PLAYER

    def columns(self, payload: ReportPayload) -> dict[str, Any]:
        category = _clean_str(payload.category) or PlayerReportCategory.BEHAVIOR.value
        try:
            category = PlayerReportCategory(category).value
        except ValueError as exc:
            raise ReputationValidationError(
                f"Unknown report category: {category!r}",
                field="category",
                error_code="invalid_category",
            ) from exc
        return {
            "title": _require(payload.title, "title", self.kind),
            "category": category,
        }


class OrganizationReportStrategy(ReportKindStrategy):
    kind = ReportKind.ORGANIZATION

    def columns(self, payload: ReportPayload) -> dict[str, Any]:
        return {
            "org_external_id": _require(payload.org_external_id, "org_external_id", self.kind),
            "org_name": _clean_str(payload.org_name),
        }


class SecondaryHandleStrategy(ReportKindStrategy):
    """Alt-account and affiliated-people reports name a second handle."""

    def __init__(self, kind: ReportKind, keeps_relationship: bool = False) -> None:
        self.kind = kind
        self.keeps_relationship = keeps_relationship

    def columns(self, payload: ReportPayload) -> dict[str, Any]:
        columns: dict[str, Any] = {
            "secondary_handle": _require(payload.secondary_handle, "secondary_handle", self.kind),
        }
        if self.keeps_relationship:
            columns["relationship_type"] = _clean_str(payload.relationship_type)
        return columns

    async def enrich(
        self,
        db: AsyncSession,
        resolver: IdentityResolver,
        columns: dict[str, Any],
    ) -> dict[str, Any]:
        handle = columns["secondary_handle"]
        try:
            player = await resolver.resolve_by_handle(db, handle)
        except Exception:
            logger.exception(f"Could not resolve secondary handle {handle!r}; storing raw")
            return {}
        if player is None:
            logger.info(f"Secondary handle {handle!r} not found; storing raw handle only")
            return {}
        return {
            "secondary_external_id": player.external_id,
            "secondary_display_name": player.current_display_name,
            "secondary_player_id": player.id,
        }


STRATEGIES: dict[ReportKind, ReportKindStrategy] = {
    ReportKind.PLAYER: PlayerReportStrategy(),
    ReportKind.ORGANIZATION: OrganizationReportStrategy(),
    ReportKind.ALT_ACCOUNT: SecondaryHandleStrategy(ReportKind.ALT_ACCOUNT),
    ReportKind.AFFILIATED_PEOPLE: SecondaryHandleStrategy(
        ReportKind.AFFILIATED_PEOPLE, keeps_relationship=True
    ),
}


def parse_report_kind(value: ReportKind | str) -> ReportKind:
    try:
        return ReportKind(value)
    except ValueError as exc:
        raise ReputationValidationError(
            f"Unknown report kind: {value!r}",
            field="kind",
            error_code="invalid_report_kind",
        ) from exc


@dataclass
class ReportService:
    """Creates reports; needs the resolver for second-handle enrichment."""

    resolver: IdentityResolver

    async def create_report(
        self,
        db: AsyncSession,
        kind: ReportKind | str,
        reporter_id: str,
        payload: ReportPayload,
    ) -> Optional[MutationOutcome[PlayerReport]]:
        """Store a report about ``payload.main_player_id``.

        Args:
            db: Async database session (not inside a transaction)
            kind: One of the four report kinds
            reporter_id: Authenticated caller id
            payload: Report body

        Returns:
            The created report with the main player's external id to
            invalidate, or None when the main player does not exist.

        Raises:
            ReputationValidationError: bad kind, caller or payload; nothing written.
        """
        report_kind = parse_report_kind(kind)
        strategy = STRATEGIES[report_kind]
        reporter = _clean_str(reporter_id)
        if reporter is None:
            raise ReputationValidationError(
                "An authenticated caller id is required",
                field="reporter_id",
                error_code="missing_caller",
            )
        if payload.main_player_id is None:
            raise ReputationValidationError(
                "main_player_id is required",
                field="main_player_id",
                error_code="missing_field",
            )
        columns = strategy.columns(payload)

        async with db.begin():
            main_player = await db.get(Player, payload.main_player_id)
            if main_player is None:
                return None
            main_external_id = main_player.external_id

        columns.update(await strategy.enrich(db, self.resolver, columns))

        async with db.begin():
            report = PlayerReport(
                kind=report_kind.value,
                reporter_id=reporter,
                main_player_id=payload.main_player_id,
                description=_clean_str(payload.description),
                evidence_urls=[u.strip() for u in payload.evidence_urls if u and u.strip()],
                created_at=utcnow(),
                **columns,
            )
            db.add(report)
            await db.flush()

        logger.info(
            f"{reporter} filed {report_kind.value} report {report.id} "
            f"on player {main_external_id}"
        )
        return MutationOutcome(value=report, invalidate=(main_external_id,))


def _with_counts(
    report: PlayerReport, counts: AttestationCounts
) -> ReportWithAttestations:
    read = ReportWithAttestations.model_validate(report, from_attributes=True)
    read.attestation_counts = counts
    return read


async def get_report(
    db: AsyncSession, report_id: int
) -> Optional[ReportWithAttestations]:
    """Single report with its attestation counts, or None."""
    async with db.begin():
        report = await db.get(PlayerReport, report_id)
        if report is None:
            return None
        counts = await count_attestations(db, ArtifactKind.REPORT, [report_id])
        return _with_counts(report, counts[report_id])


async def get_reports_by_player(
    db: AsyncSession,
    player_id: int,
    page: int = 1,
    page_size: Optional[int] = None,
    kind: ReportKind | str | None = None,
) -> Page[ReportWithAttestations]:
    """Reports about a player, newest first, with attestation counts.

    Args:
        db: Async database session
        player_id: Internal id of the main player
        page: 1-based page number
        page_size: Rows per page (default 20, capped at 100)
        kind: Restrict to one report kind

    Returns:
        Page with the requested slice and the total row count
    """
    limit, offset = resolve_pagination(page, page_size)
    filters = [PlayerReport.main_player_id == player_id]  # type: ignore[arg-type]
    if kind is not None:
        filters.append(PlayerReport.kind == parse_report_kind(kind).value)  # type: ignore[arg-type]

    async with db.begin():
        total = (
            await db.execute(
                select(func.count()).select_from(PlayerReport).where(*filters)
            )
        ).scalar_one()
        stmt = (
            select(PlayerReport)
            .where(*filters)
            .order_by(PlayerReport.created_at.desc(), PlayerReport.id.desc())  # type: ignore[attr-defined, union-attr]
            .limit(limit)
            .offset(offset)
        )
        reports = list((await db.execute(stmt)).scalars())
        counts = await count_attestations(
            db, ArtifactKind.REPORT, [r.id for r in reports]  # type: ignore[misc]
        )

    return Page[ReportWithAttestations](
        data=[_with_counts(r, counts[r.id]) for r in reports],  # type: ignore[index]
        total=total,
    )
