"""Unit tests for the member-lookup adapter."""

import json

import httpx
import pytest

from app.errors import IdentitySourceError
from app.services.identity_source import (
    HttpIdentitySource,
    is_success_flag,
    parse_member_envelope,
)


def _envelope(success=1, member=None, code="OK"):
    return {"success": success, "code": code, "data": {"member": member} if member else {}}


NOVA = {"id": "12345", "nickname": "Nova", "displayname": "Nova Prime", "avatar": "https://x/a.png"}


class TestIsSuccessFlag:
    """Upstream mixes integer and boolean success flags."""

    @pytest.mark.parametrize("value", [1, True, "1", "true", "TRUE"])
    def test_truthy_forms(self, value):
        assert is_success_flag(value) is True

    @pytest.mark.parametrize("value", [0, 2, False, None, "yes", "", [], {}])
    def test_everything_else_is_failure(self, value):
        assert is_success_flag(value) is False


class TestParseMemberEnvelope:
    """Tests for parse_member_envelope()."""

    def test_integer_success(self):
        identity = parse_member_envelope(_envelope(success=1, member=NOVA))
        assert identity is not None
        assert identity.external_id == "12345"
        assert identity.handle == "Nova"
        assert identity.display_name == "Nova Prime"
        assert identity.avatar_url == "https://x/a.png"
        assert identity.organizations is None

    def test_boolean_success(self):
        identity = parse_member_envelope(_envelope(success=True, member=NOVA))
        assert identity is not None
        assert identity.handle == "Nova"

    def test_numeric_id_is_stringified(self):
        identity = parse_member_envelope(_envelope(member={**NOVA, "id": 987}))
        assert identity is not None
        assert identity.external_id == "987"

    def test_unsuccessful_envelope_is_not_found(self):
        assert parse_member_envelope(_envelope(success=0, code="ErrNotFound")) is None

    def test_missing_member_is_not_found(self):
        assert parse_member_envelope({"success": 1, "data": {}}) is None
        assert parse_member_envelope({"success": 1, "data": None}) is None

    def test_member_without_nickname_is_malformed(self):
        with pytest.raises(IdentitySourceError):
            parse_member_envelope(_envelope(member={"id": "1"}))

    def test_non_object_body_is_malformed(self):
        with pytest.raises(IdentitySourceError):
            parse_member_envelope(["not", "an", "object"])

    def test_empty_optional_fields_become_none(self):
        identity = parse_member_envelope(
            _envelope(member={"id": "1", "nickname": "Ghost", "displayname": "", "avatar": ""})
        )
        assert identity is not None
        assert identity.display_name is None
        assert identity.avatar_url is None

    def test_organizations_are_parsed_when_present(self):
        member = {
            **NOVA,
            "organizations": [
                {"id": "ORGA", "name": "Alpha", "role": "Officer"},
                {"name": "no id, skipped"},
            ],
        }
        identity = parse_member_envelope(_envelope(member=member))
        assert identity is not None
        assert identity.organizations is not None
        assert [o.org_external_id for o in identity.organizations] == ["ORGA"]
        assert identity.organizations[0].role == "Officer"


def _source(handler) -> HttpIdentitySource:
    return HttpIdentitySource(
        base_url="https://members.test",
        handle_path="/member/nickname",
        id_path="/member/id",
        token="secret",
        timeout_seconds=2.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
class TestHttpIdentitySource:
    """Tests for the httpx-backed adapter."""

    async def test_lookup_by_handle_posts_nickname(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["token"] = request.headers.get("X-Rsi-Token")
            return httpx.Response(200, json=_envelope(member=NOVA))

        identity = await _source(handler).lookup_by_handle("Nova")

        assert identity is not None
        assert identity.external_id == "12345"
        assert seen["url"] == "https://members.test/member/nickname"
        assert seen["body"] == {"nickname": "Nova"}
        assert seen["token"] == "secret"

    async def test_lookup_by_external_id_posts_member_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_envelope(success=True, member=NOVA))

        identity = await _source(handler).lookup_by_external_id("12345")

        assert identity is not None
        assert seen["body"] == {"member_id": "12345"}

    async def test_http_404_is_not_found(self):
        source = _source(lambda request: httpx.Response(404))
        assert await source.lookup_by_handle("Nobody") is None

    async def test_server_error_raises(self):
        source = _source(lambda request: httpx.Response(503))
        with pytest.raises(IdentitySourceError) as exc_info:
            await source.lookup_by_handle("Nova")
        assert exc_info.value.status_code == 503

    async def test_non_json_body_raises(self):
        source = _source(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(IdentitySourceError):
            await source.lookup_by_handle("Nova")

    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(IdentitySourceError):
            await _source(handler).lookup_by_handle("Nova")
