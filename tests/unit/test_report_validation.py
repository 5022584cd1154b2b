"""Unit tests for per-kind report payload rules and input parsing."""

import pytest

from app.errors import ReputationValidationError
from app.models.fields import ArtifactKind, AttestationType, ReportKind
from app.models.reputation import ReportPayload
from app.services.attestation_service import parse_artifact_kind, parse_attestation_type
from app.services.player_feedback_service import normalize_tag_name
from app.services.report_service import STRATEGIES, parse_report_kind


class TestReportKindColumns:
    """Tests for the strategy column mapping."""

    def test_player_report_requires_title(self):
        with pytest.raises(ReputationValidationError) as exc_info:
            STRATEGIES[ReportKind.PLAYER].columns(ReportPayload(main_player_id=1, title="  "))
        assert exc_info.value.field == "title"
        assert exc_info.value.error_code == "missing_field"

    def test_player_report_category_defaults_to_behavior(self):
        columns = STRATEGIES[ReportKind.PLAYER].columns(
            ReportPayload(main_player_id=1, title="Griefing")
        )
        assert columns == {"title": "Griefing", "category": "behavior"}

    def test_player_report_rejects_unknown_category(self):
        with pytest.raises(ReputationValidationError) as exc_info:
            STRATEGIES[ReportKind.PLAYER].columns(
                ReportPayload(main_player_id=1, title="x", category="rude")
            )
        assert exc_info.value.error_code == "invalid_category"

    def test_organization_report_requires_org(self):
        with pytest.raises(ReputationValidationError) as exc_info:
            STRATEGIES[ReportKind.ORGANIZATION].columns(ReportPayload(main_player_id=1))
        assert exc_info.value.field == "org_external_id"

    def test_alt_account_requires_secondary_handle(self):
        with pytest.raises(ReputationValidationError) as exc_info:
            STRATEGIES[ReportKind.ALT_ACCOUNT].columns(ReportPayload(main_player_id=1))
        assert exc_info.value.field == "secondary_handle"

    def test_alt_account_drops_relationship_type(self):
        columns = STRATEGIES[ReportKind.ALT_ACCOUNT].columns(
            ReportPayload(main_player_id=1, secondary_handle=" Ghost ", relationship_type="x")
        )
        assert columns == {"secondary_handle": "Ghost"}

    def test_affiliated_people_keeps_relationship_type(self):
        columns = STRATEGIES[ReportKind.AFFILIATED_PEOPLE].columns(
            ReportPayload(main_player_id=1, secondary_handle="Ghost", relationship_type="wingman")
        )
        assert columns == {"secondary_handle": "Ghost", "relationship_type": "wingman"}


class TestParsers:
    def test_report_kind(self):
        assert parse_report_kind("alt_account") is ReportKind.ALT_ACCOUNT
        with pytest.raises(ReputationValidationError):
            parse_report_kind("ship")

    def test_artifact_kind(self):
        assert parse_artifact_kind("tag") is ArtifactKind.TAG
        with pytest.raises(ReputationValidationError):
            parse_artifact_kind("player")

    def test_attestation_type(self):
        assert parse_attestation_type("dispute") is AttestationType.DISPUTE
        with pytest.raises(ReputationValidationError) as exc_info:
            parse_attestation_type("agree")
        assert exc_info.value.error_code == "invalid_attestation_type"

    def test_tag_names_are_normalized(self):
        assert normalize_tag_name("  Good   Pilot ") == "good pilot"
