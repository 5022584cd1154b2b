"""Adapter for the external member-lookup service.

The upstream answers ``POST <base><path>`` with an envelope like::

    {"success": 1, "code": "OK", "data": {"member": {"id": "...",
     "nickname": "...", "displayname": "...", "avatar": "..."}}}

``success`` arrives as either ``1`` or ``true``; this module is the only
place that knows about that, everything else sees ``ExternalIdentity``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from app.config import settings
from app.errors import IdentitySourceError

logger = logging.getLogger(__name__)

_USER_AGENT = "player-reputation/1.0 (+identity lookup)"


@dataclass(frozen=True, slots=True)
class OrgMembership:
    org_external_id: str
    org_name: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ExternalIdentity:
    """Profile data for one member as the identity source reports it."""

    external_id: str
    handle: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    # None means the source said nothing about memberships
    organizations: Optional[tuple[OrgMembership, ...]] = None


class IdentitySource(Protocol):
    async def lookup_by_handle(self, handle: str) -> Optional[ExternalIdentity]: ...

    async def lookup_by_external_id(
        self, external_id: str
    ) -> Optional[ExternalIdentity]: ...


def is_success_flag(value: Any) -> bool:
    """Upstream uses both ``1`` and ``true`` for success."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true"}
    return False


def parse_member_envelope(payload: Any) -> Optional[ExternalIdentity]:
    """Turn a member-lookup response body into an identity.

    Returns None for a well-formed "not found" answer and raises
    IdentitySourceError when the body cannot be interpreted at all.
    """
    if not isinstance(payload, dict):
        raise IdentitySourceError("Malformed identity response: expected an object")

    if not is_success_flag(payload.get("success")):
        logger.debug(
            f"Identity source reported no member: "
            f"{payload.get('code')} {payload.get('msg') or payload.get('message')}"
        )
        return None

    data = payload.get("data") or {}
    member = data.get("member") if isinstance(data, dict) else None
    if not isinstance(member, dict):
        return None

    external_id = member.get("id")
    handle = member.get("nickname")
    if not external_id or not handle:
        raise IdentitySourceError("Malformed identity response: member lacks id/nickname")

    organizations = None
    raw_orgs = member.get("organizations")
    if isinstance(raw_orgs, list):
        organizations = tuple(
            OrgMembership(
                org_external_id=str(org["id"]),
                org_name=org.get("name"),
                role=org.get("role"),
            )
            for org in raw_orgs
            if isinstance(org, dict) and org.get("id")
        )

    return ExternalIdentity(
        external_id=str(external_id),
        handle=str(handle),
        display_name=member.get("displayname") or None,
        avatar_url=member.get("avatar") or None,
        organizations=organizations,
    )


class HttpIdentitySource:
    """Identity source backed by the upstream JSON member-lookup API."""

    def __init__(
        self,
        base_url: str | None = None,
        handle_path: str | None = None,
        id_path: str | None = None,
        token: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.identity_source_base_url).rstrip("/")
        self.handle_path = handle_path or settings.identity_source_handle_path
        self.id_path = id_path or settings.identity_source_id_path
        self.token = token if token is not None else settings.identity_source_token
        timeout = timeout_seconds or settings.identity_lookup_timeout_seconds
        self.timeout = httpx.Timeout(timeout, connect=min(5.0, timeout))
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": _USER_AGENT,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["X-Rsi-Token"] = self.token
        return headers

    async def lookup_by_handle(self, handle: str) -> Optional[ExternalIdentity]:
        return await self._lookup(self.handle_path, {"nickname": handle})

    async def lookup_by_external_id(
        self, external_id: str
    ) -> Optional[ExternalIdentity]:
        return await self._lookup(self.id_path, {"member_id": external_id})

    async def _lookup(
        self, path: str, body: dict[str, str]
    ) -> Optional[ExternalIdentity]:
        url = f"{self.base_url}{path}"
        logger.debug(f"Identity lookup {path} {body}")
        try:
            async with httpx.AsyncClient(
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise IdentitySourceError(f"Identity lookup failed: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise IdentitySourceError(
                f"Identity lookup returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise IdentitySourceError("Identity lookup returned non-JSON body") from exc

        return parse_member_envelope(payload)
