"""Integration tests for the four report kinds."""

import pytest
from sqlalchemy import func, select

from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, AttestationType, ReportKind
from app.models.reputation import ReportPayload
from app.schemas.players import Player
from app.schemas.reports import PlayerReport
from app.services import attestation_service
from app.services.report_service import ReportService, get_report, get_reports_by_player


@pytest.fixture()
def report_service(resolver) -> ReportService:
    return ReportService(resolver=resolver)


async def _report_count(db) -> int:
    async with db.begin():
        return (await db.execute(select(func.count()).select_from(PlayerReport))).scalar_one()


@pytest.mark.asyncio
class TestCreateReport:
    async def test_player_report(self, db_session, report_service, make_player):
        nova = await make_player("E1", "Nova")

        outcome = await report_service.create_report(
            db_session,
            ReportKind.PLAYER,
            "U1",
            ReportPayload(
                main_player_id=nova.id,
                title="Ramming at spawn",
                description="Repeatedly",
                evidence_urls=["https://clips/1", "  "],
            ),
        )

        assert outcome is not None
        report = outcome.value
        assert report.id is not None
        assert report.kind == "player"
        assert report.category == "behavior"
        assert report.evidence_urls == ["https://clips/1"]
        assert outcome.invalidate == ("E1",)

    async def test_organization_report(self, db_session, report_service, make_player):
        nova = await make_player("E1", "Nova")

        outcome = await report_service.create_report(
            db_session,
            "organization",
            "U1",
            ReportPayload(main_player_id=nova.id, org_external_id="PIRATES", org_name="Pirates"),
        )

        assert outcome.value.org_external_id == "PIRATES"
        assert outcome.value.org_name == "Pirates"

    async def test_alt_account_with_unknown_secondary_is_stored_raw(
        self, db_session, report_service, make_player
    ):
        nova = await make_player("E1", "Nova")

        outcome = await report_service.create_report(
            db_session,
            ReportKind.ALT_ACCOUNT,
            "U1",
            ReportPayload(main_player_id=nova.id, secondary_handle="Ghost"),
        )

        report = outcome.value
        assert report.secondary_handle == "Ghost"
        assert report.secondary_external_id is None
        assert report.secondary_display_name is None
        assert report.secondary_player_id is None

    async def test_alt_account_survives_source_outage(
        self, db_session, report_service, make_player, identity_source
    ):
        nova = await make_player("E1", "Nova")
        identity_source.go_offline()

        outcome = await report_service.create_report(
            db_session,
            ReportKind.ALT_ACCOUNT,
            "U1",
            ReportPayload(main_player_id=nova.id, secondary_handle="Ghost"),
        )

        assert outcome is not None
        assert outcome.value.secondary_player_id is None

    async def test_affiliated_people_resolves_secondary(
        self, db_session, report_service, make_player, identity_source
    ):
        nova = await make_player("E1", "Nova")
        identity_source.add("E9", "Wingman", display_name="The Wingman")

        outcome = await report_service.create_report(
            db_session,
            ReportKind.AFFILIATED_PEOPLE,
            "U1",
            ReportPayload(
                main_player_id=nova.id,
                secondary_handle="Wingman",
                relationship_type="flies with",
            ),
        )

        report = outcome.value
        assert report.secondary_external_id == "E9"
        assert report.secondary_display_name == "The Wingman"
        assert report.relationship_type == "flies with"
        async with db_session.begin():
            wingman = (
                await db_session.execute(select(Player).where(Player.external_id == "E9"))
            ).scalar_one()
        assert report.secondary_player_id == wingman.id

    async def test_missing_main_player_returns_none(self, db_session, report_service):
        outcome = await report_service.create_report(
            db_session,
            ReportKind.PLAYER,
            "U1",
            ReportPayload(main_player_id=999, title="x"),
        )

        assert outcome is None
        assert await _report_count(db_session) == 0

    @pytest.mark.parametrize(
        ("kind", "payload", "field"),
        [
            ("player", {"title": ""}, "title"),
            ("organization", {}, "org_external_id"),
            ("alt_account", {}, "secondary_handle"),
            ("affiliated_people", {"secondary_handle": " "}, "secondary_handle"),
        ],
    )
    async def test_invalid_payload_writes_nothing(
        self, db_session, report_service, make_player, kind, payload, field
    ):
        nova = await make_player("E1", "Nova")

        with pytest.raises(ReputationValidationError) as exc_info:
            await report_service.create_report(
                db_session, kind, "U1", ReportPayload(main_player_id=nova.id, **payload)
            )

        assert exc_info.value.field == field
        assert await _report_count(db_session) == 0

    async def test_missing_caller_is_rejected(self, db_session, report_service, make_player):
        nova = await make_player("E1", "Nova")

        with pytest.raises(ReputationValidationError) as exc_info:
            await report_service.create_report(
                db_session, "player", " ", ReportPayload(main_player_id=nova.id, title="x")
            )

        assert exc_info.value.error_code == "missing_caller"

    async def test_unknown_kind_is_rejected(self, db_session, report_service):
        with pytest.raises(ReputationValidationError):
            await report_service.create_report(
                db_session, "ship", "U1", ReportPayload(main_player_id=1)
            )


@pytest.mark.asyncio
class TestReadReports:
    async def test_get_report_includes_counts(self, db_session, report_service, make_player):
        nova = await make_player("E1", "Nova")
        created = await report_service.create_report(
            db_session, "player", "U1", ReportPayload(main_player_id=nova.id, title="x")
        )
        report_id = created.value.id
        await attestation_service.vote(db_session, ArtifactKind.REPORT, report_id, "U2", "support")
        await attestation_service.vote(db_session, ArtifactKind.REPORT, report_id, "U3", "dispute")
        await attestation_service.vote(
            db_session, ArtifactKind.REPORT, report_id, "U4", AttestationType.SUPPORT
        )

        report = await get_report(db_session, report_id)

        assert report.attestation_counts.support == 2
        assert report.attestation_counts.dispute == 1
        assert report.attestation_counts.neutral == 0

    async def test_get_missing_report_is_none(self, db_session):
        assert await get_report(db_session, 42) is None

    async def test_reports_by_player_pages_and_filters(
        self, db_session, report_service, make_player
    ):
        nova = await make_player("E1", "Nova")
        other = await make_player("E2", "Other")
        for i in range(3):
            await report_service.create_report(
                db_session, "player", "U1", ReportPayload(main_player_id=nova.id, title=f"t{i}")
            )
        await report_service.create_report(
            db_session,
            "organization",
            "U1",
            ReportPayload(main_player_id=nova.id, org_external_id="ORG"),
        )
        await report_service.create_report(
            db_session, "player", "U1", ReportPayload(main_player_id=other.id, title="else")
        )

        page = await get_reports_by_player(db_session, nova.id, page=1, page_size=2)
        assert page.total == 4
        assert len(page.data) == 2
        assert page.data[0].id > page.data[1].id

        second = await get_reports_by_player(db_session, nova.id, page=2, page_size=2)
        assert {r.id for r in page.data}.isdisjoint({r.id for r in second.data})

        orgs = await get_reports_by_player(db_session, nova.id, kind=ReportKind.ORGANIZATION)
        assert orgs.total == 1
        assert orgs.data[0].org_external_id == "ORG"

    async def test_reports_by_player_rejects_bad_page(self, db_session):
        with pytest.raises(ReputationValidationError):
            await get_reports_by_player(db_session, 1, page=0)
