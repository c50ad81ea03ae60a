"""
WhatsApp Cloud API webhook envelope.

The envelope is ``{"object": ..., "entry": [{"id", "changes": [{"field",
"value"}]}]}``. Every level tolerates unknown fields, and messages, statuses
and errors stay raw dicts so a new provider sub-type never breaks parsing.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EnvelopeMetadata(BaseModel):
    """Business phone number that received the event."""

    model_config = ConfigDict(extra="allow")

    phone_number_id: str = "unknown"
    display_phone_number: str = "unknown"


class EnvelopeContact(BaseModel):
    """Sender contact record (``value.contacts[]``)."""

    model_config = ConfigDict(extra="allow")

    wa_id: str = "unknown"
    profile: dict[str, Any] | None = None
    profile_name: str | None = None

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.get("name"):
            return str(self.profile["name"])
        return self.profile_name or "unknown"


class ChangeValue(BaseModel):
    """Payload of one change: zero or more messages, statuses and errors."""

    model_config = ConfigDict(extra="allow")

    messaging_product: str | None = None
    metadata: EnvelopeMetadata | None = None
    contacts: list[EnvelopeContact] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("contacts", "messages", "statuses", "errors", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class Change(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str | None = None
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    changes: list[Change] = Field(default_factory=list)


class WebhookEnvelope(BaseModel):
    """Top-level webhook payload delivered by the messaging provider."""

    model_config = ConfigDict(extra="allow")

    object: str | None = None
    entry: list[Entry] = Field(default_factory=list)

    @property
    def message_count(self) -> int:
        return sum(
            len(change.value.messages) for e in self.entry for change in e.changes
        )

    @property
    def status_count(self) -> int:
        return sum(
            len(change.value.statuses) for e in self.entry for change in e.changes
        )
