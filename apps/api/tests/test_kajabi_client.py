import json

import httpx
import pytest

from elevate_api.core.settings import settings
from elevate_api.services.kajabi import KajabiClient, KajabiClientError
from elevate_api.services.kajabi.client import split_name


def _client(handler) -> tuple[KajabiClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = KajabiClient(
        "key-123",
        "secret-456",
        base_url="https://kajabi.test/v1/",
        http_client=http_client,
    )
    return client, http_client


@pytest.mark.asyncio
async def test_enroll_creates_contact_and_grants_offer():
    calls: list[tuple[str, str, dict | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        calls.append((request.method, request.url.path, body))
        assert request.headers["Authorization"] == "Bearer key-123"
        assert request.headers["X-Kajabi-Client-Secret"] == "secret-456"
        if request.method == "GET" and request.url.path == "/v1/contacts":
            assert request.url.params["email"] == "sari.dewi@example.com"
            return httpx.Response(200, json={"contacts": []})
        if request.method == "POST" and request.url.path == "/v1/contacts":
            return httpx.Response(201, json={"contact": {"id": 555, **body["contact"]}})
        if request.method == "POST" and request.url.path == "/v1/contacts/555/offers/offer-9/grant":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404)

    client, http_client = _client(handler)
    async with http_client:
        result = await client.enroll_user("Sari.Dewi@example.com", "Sari Dewi Putri", offer_id="offer-9")

    assert result.contact_id == "555"
    assert result.created is True
    assert result.offer_granted is True
    create_body = calls[1][2]
    assert create_body == {
        "contact": {"email": "sari.dewi@example.com", "first_name": "Sari", "last_name": "Dewi Putri"}
    }
    assert [call[0] for call in calls] == ["GET", "POST", "POST"]


@pytest.mark.asyncio
async def test_existing_contact_is_updated_without_offer():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"contacts": [{"id": "88", "email": "budi@example.com"}]})
        if request.method == "PUT" and request.url.path == "/v1/contacts/88":
            return httpx.Response(200, json={"contact": {"id": "88"}})
        return httpx.Response(500)

    client, http_client = _client(handler)
    async with http_client:
        result = await client.enroll_user("budi@example.com", "Budi")

    assert result.contact_id == "88"
    assert result.created is False
    assert result.offer_granted is False


@pytest.mark.asyncio
async def test_missing_contact_lookup_returns_none():
    client, http_client = _client(lambda request: httpx.Response(404))
    async with http_client:
        assert await client.find_contact_by_email("nobody@example.com") is None


@pytest.mark.asyncio
async def test_api_errors_surface_status_and_message():
    client, http_client = _client(lambda request: httpx.Response(422, json={"message": "Offer is archived"}))
    async with http_client:
        with pytest.raises(KajabiClientError) as excinfo:
            await client.grant_offer("555", "offer-9")

    assert excinfo.value.status_code == 422
    assert "Offer is archived" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transport_failures_become_client_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, http_client = _client(handler)
    async with http_client:
        with pytest.raises(KajabiClientError):
            await client.get_contact_tags("555")
        assert await client.health_check() is False


@pytest.mark.asyncio
async def test_tag_management_calls():
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "GET":
            return httpx.Response(200, json={"tags": [{"id": 1, "name": "elevate-ai-1-completed"}]})
        return httpx.Response(204)

    client, http_client = _client(handler)
    async with http_client:
        assert await client.tag_contact("555", 1) is True
        assert await client.untag_contact("555", 1) is True
        tags = await client.get_contact_tags("555")

    assert tags == [{"id": 1, "name": "elevate-ai-1-completed"}]
    assert seen == [
        ("POST", "/v1/contacts/555/tags/1"),
        ("DELETE", "/v1/contacts/555/tags/1"),
        ("GET", "/v1/contacts/555/tags"),
    ]


def test_from_settings_requires_credentials(monkeypatch):
    monkeypatch.setattr(settings, "kajabi_api_key", None)
    with pytest.raises(KajabiClientError):
        KajabiClient.from_settings()


def test_split_name():
    assert split_name("Sari") == ("Sari", "")
    assert split_name("  Sari  Dewi Putri ") == ("Sari", "Dewi Putri")
    assert split_name("") == ("", "")
