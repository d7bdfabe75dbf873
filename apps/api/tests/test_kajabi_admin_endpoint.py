from datetime import datetime, timezone
from uuid import uuid4

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from elevate_api.api.v1.endpoints import kajabi_admin
from elevate_api.models.audit_log import AuditLog
from elevate_api.models.user import User
from elevate_api.schemas.kajabi import parse_kajabi_payload
from elevate_api.services.kajabi import KajabiClient, ingest_kajabi_delivery
from elevate_api.services.kajabi.enrollment import KAJABI_INVITE


ACTOR = {"X-Actor-Id": "admin-42"}
ALLOWED_TAGS = frozenset({"elevate-ai-1-completed"})


def _mock_kajabi_client() -> KajabiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"contacts": []})
        if request.method == "POST" and request.url.path == "/contacts":
            return httpx.Response(201, json={"contact": {"id": 555}})
        if request.method == "POST" and request.url.path.endswith("/grant"):
            return httpx.Response(200, json={})
        return httpx.Response(404)

    return KajabiClient(
        "key",
        "secret",
        base_url="https://kajabi.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_reprocess_credits_users_registered_later(app_with_db, make_user):
    app, session_factory = app_with_db
    raw = {
        "event_type": "contact.tagged",
        "contact": {"id": 31, "email": "late.joiner@example.com"},
        "tag": {"name": "elevate-ai-1-completed"},
    }
    async with session_factory() as session:
        await ingest_kajabi_delivery(
            session,
            parse_kajabi_payload(raw),
            datetime(2025, 5, 6, 3, 0, tzinfo=timezone.utc),
            raw_payload=raw,
            allowed_tags=ALLOWED_TAGS,
        )
        await make_user(session, email="late.joiner@example.com")
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/admin/kajabi/reprocess", json={"limit": 10})
        missing = await client.post("/api/v1/admin/kajabi/reprocess", json={"eventId": str(uuid4())})

    assert response.status_code == 200
    assert response.json() == {"processed": 1, "counts": {"processed": 1}}
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_invite_links_contact_and_audits(app_with_db, make_user):
    app, session_factory = app_with_db
    app.dependency_overrides[kajabi_admin.get_kajabi_client] = _mock_kajabi_client
    async with session_factory() as session:
        user = await make_user(session, name="Sari Dewi")
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/admin/kajabi/invite",
            json={"userId": str(user.id), "offerId": "offer-1"},
            headers=ACTOR,
        )
        unknown = await client.post(
            "/api/v1/admin/kajabi/invite",
            json={"userId": str(uuid4())},
            headers=ACTOR,
        )
        empty = await client.post("/api/v1/admin/kajabi/invite", json={}, headers=ACTOR)

    assert response.status_code == 200
    assert response.json() == {"contactId": "555", "offerGranted": True, "userId": str(user.id)}
    assert unknown.status_code == 404
    assert empty.status_code == 400

    async with session_factory() as session:
        refreshed = await session.get(User, user.id)
        assert refreshed.kajabi_contact_id == "555"
        audit = (await session.execute(select(AuditLog).where(AuditLog.action == KAJABI_INVITE))).scalar_one()
        assert audit.actor_id == "admin-42"
        assert audit.meta["offer_granted"] is True


@pytest.mark.asyncio
async def test_invite_without_credentials_is_unavailable(app_with_db, monkeypatch):
    app, _ = app_with_db
    monkeypatch.setattr(kajabi_admin.settings, "kajabi_api_key", None)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/admin/kajabi/invite", json={"email": "x@example.com"}, headers=ACTOR
        )

    assert response.status_code == 503
