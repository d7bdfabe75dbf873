"""HTTP client for the Kajabi contacts and offers API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from elevate_api.core.settings import settings


class KajabiClientError(RuntimeError):
    """Raised when a Kajabi API call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class KajabiEnrollmentResult:
    contact_id: str
    created: bool
    offer_granted: bool = False


def split_name(name: str) -> tuple[str, str]:
    parts = name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


class KajabiClient:
    """Thin async wrapper over the Kajabi REST API.

    Pass ``http_client`` to reuse a pooled client (or a mock transport in
    tests); otherwise a short-lived client is opened per request.
    """

    def __init__(
        self,
        api_key: str,
        client_secret: str,
        *,
        base_url: str = "https://api.kajabi.com",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Kajabi-Client-Secret": client_secret,
        }

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient | None = None) -> "KajabiClient":
        if not settings.kajabi_api_key or not settings.kajabi_client_secret:
            raise KajabiClientError("KAJABI_API_KEY and KAJABI_CLIENT_SECRET must be configured")
        return cls(
            settings.kajabi_api_key,
            settings.kajabi_client_secret,
            base_url=settings.kajabi_base_url,
            timeout=settings.kajabi_timeout_seconds,
            http_client=http_client,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True
        url = f"{self._base_url}{path}"
        try:
            return await client.request(method, url, params=params, json=json, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("Kajabi request failed", method=method, path=path, error=str(exc))
            raise KajabiClientError(f"Kajabi request failed: {exc}") from exc
        finally:
            if close_client:
                await client.aclose()

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        message = _error_message(response)
        logger.warning("Kajabi API error", action=action, status_code=response.status_code, message=message)
        raise KajabiClientError(f"Failed to {action}: {message}", status_code=response.status_code)

    async def find_contact_by_email(self, email: str) -> dict[str, Any] | None:
        response = await self._request("GET", "/contacts", params={"email": email.strip().lower()})
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "find contact")
        contacts = response.json().get("contacts") or []
        return contacts[0] if contacts else None

    async def create_or_update_contact(self, email: str, name: str) -> tuple[dict[str, Any], bool]:
        """Upsert a contact by email. Returns the contact and whether it was created."""

        first_name, last_name = split_name(name)
        contact = {"email": email.strip().lower(), "first_name": first_name, "last_name": last_name}

        existing = await self.find_contact_by_email(email)
        if existing is not None:
            response = await self._request("PUT", f"/contacts/{existing['id']}", json={"contact": contact})
            self._raise_for_status(response, "update contact")
            return response.json().get("contact") or existing, False

        response = await self._request("POST", "/contacts", json={"contact": contact})
        self._raise_for_status(response, "create contact")
        return response.json()["contact"], True

    async def grant_offer(self, contact_id: str | int, offer_id: str | int) -> bool:
        response = await self._request("POST", f"/contacts/{contact_id}/offers/{offer_id}/grant")
        self._raise_for_status(response, "grant offer")
        return True

    async def tag_contact(self, contact_id: str | int, tag_id: str | int) -> bool:
        response = await self._request("POST", f"/contacts/{contact_id}/tags/{tag_id}")
        self._raise_for_status(response, "tag contact")
        return True

    async def untag_contact(self, contact_id: str | int, tag_id: str | int) -> bool:
        response = await self._request("DELETE", f"/contacts/{contact_id}/tags/{tag_id}")
        self._raise_for_status(response, "remove tag")
        return True

    async def get_contact_tags(self, contact_id: str | int) -> list[dict[str, Any]]:
        response = await self._request("GET", f"/contacts/{contact_id}/tags")
        self._raise_for_status(response, "get contact tags")
        return list(response.json().get("tags") or [])

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", "/contacts", params={"limit": 1})
        except KajabiClientError:
            return False
        return response.status_code == 200

    async def enroll_user(self, email: str, name: str, offer_id: str | int | None = None) -> KajabiEnrollmentResult:
        """Ensure a contact exists for ``email`` and optionally grant ``offer_id``."""

        contact, created = await self.create_or_update_contact(email, name)
        contact_id = str(contact["id"])
        offer_granted = False
        if offer_id:
            offer_granted = await self.grant_offer(contact_id, offer_id)
        logger.info(
            "Kajabi enrollment complete",
            contact_id=contact_id,
            created=created,
            offer_granted=offer_granted,
        )
        return KajabiEnrollmentResult(contact_id=contact_id, created=created, offer_granted=offer_granted)
