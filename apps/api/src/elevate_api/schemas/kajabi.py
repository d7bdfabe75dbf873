from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# meta: schema: kajabi-webhook


class KajabiPayloadError(ValueError):
    """Raised when a webhook body matches neither supported shape."""


# JSON:API deliveries without a contact node id carry this placeholder.
UNKNOWN_CONTACT_ID = "0"


class KajabiContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    tags: list[str] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return str(int(value))
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class KajabiTag(BaseModel):
    name: str = Field(min_length=1)


class KajabiTagEvent(BaseModel):
    """Contact-tagged event in the simple Kajabi webhook shape."""

    model_config = ConfigDict(extra="allow")

    event_id: str | None = None
    event_type: Literal["contact.tagged", "tag.added", "tag.removed"]
    contact: KajabiContact
    tag: KajabiTag

    @field_validator("event_id", mode="before")
    @classmethod
    def _blank_event_id(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _included_node(included: list[Any], *types: str) -> dict[str, Any]:
    for node in included:
        if isinstance(node, dict) and node.get("type") in types:
            return node
    return {}


def _from_json_api(raw: dict[str, Any]) -> KajabiTagEvent:
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    attributes = data.get("attributes") if isinstance(data.get("attributes"), dict) else {}
    included = raw.get("included") if isinstance(raw.get("included"), list) else []

    contact_node = _included_node(included, "contacts", "contact")
    tag_node = _included_node(included, "tags", "tag")
    contact_attrs = contact_node.get("attributes") or {}
    tag_attrs = tag_node.get("attributes") or {}

    email = contact_attrs.get("email") or contact_attrs.get("email_address")
    tag_name = str(tag_attrs.get("name") or tag_attrs.get("title") or "").strip().lower()
    if not email or not tag_name:
        raise KajabiPayloadError("Missing email or tag name in JSON:API payload")

    event_type = attributes.get("event") or raw.get("event") or "tag.added"
    if event_type not in ("contact.tagged", "tag.added", "tag.removed"):
        event_type = "tag.added"
    return KajabiTagEvent(
        event_id=data.get("id") or raw.get("event_id"),
        event_type=event_type,
        contact=KajabiContact(id=contact_node.get("id") or UNKNOWN_CONTACT_ID, email=str(email)),
        tag=KajabiTag(name=tag_name),
    )


def parse_kajabi_payload(raw: Any) -> KajabiTagEvent:
    """Parse a webhook body, trying the simple shape before the JSON:API envelope."""

    if not isinstance(raw, dict):
        raise KajabiPayloadError("Kajabi webhook body must be a JSON object")
    try:
        return KajabiTagEvent.model_validate(raw)
    except ValidationError as exc:
        try:
            return _from_json_api(raw)
        except (KajabiPayloadError, ValidationError) as fallback_exc:
            raise KajabiPayloadError(f"Invalid Kajabi webhook payload: {fallback_exc}") from exc


def extract_event_time(raw: Any) -> datetime | None:
    """Return the delivery's ``created_at`` as aware UTC, if present and parseable."""

    if not isinstance(raw, dict):
        return None
    candidates = [raw.get("created_at")]
    data = raw.get("data")
    if isinstance(data, dict) and isinstance(data.get("attributes"), dict):
        candidates.append(data["attributes"].get("created_at"))
    for value in candidates:
        if not isinstance(value, str) or not value.strip():
            continue
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


class KajabiWebhookResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    reason: str | None = None
    external_event_id: str = Field(..., alias="externalEventId")
    user_id: UUID | None = Field(None, alias="userId")
    points_awarded: int = Field(0, alias="pointsAwarded")


class KajabiReprocessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: UUID | None = Field(None, alias="eventId")
    limit: int = Field(50, ge=1, le=500)


class KajabiReprocessResponse(BaseModel):
    processed: int = 0
    counts: dict[str, int] = Field(default_factory=dict)


class KajabiInviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID | None = Field(None, alias="userId")
    email: str | None = None
    name: str | None = None
    offer_id: str | None = Field(None, alias="offerId")


class KajabiInviteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact_id: str = Field(..., alias="contactId")
    offer_granted: bool = Field(False, alias="offerGranted")
    user_id: UUID | None = Field(None, alias="userId")
