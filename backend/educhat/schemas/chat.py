"""Chat message schemas and the envelopes exchanged over the live channel.

Every frame is tagged with ``type``. Inbound frames are validated here before
they reach the service layer, so handlers only ever see typed envelopes.
"""
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_serializer
from pydantic.alias_generators import to_camel

from educhat.core.exceptions import MalformedEnvelope


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessageRead(CamelModel):
    id: str
    sender_id: str
    receiver_id: str
    message: str
    attachment_url: Optional[str] = None
    read: bool = False
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    @field_serializer("created_at", when_used="json")
    def serialize_created_at(self, value: datetime) -> str:
        # DB에는 naive UTC로 저장됨
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# --- Inbound (client -> server) ---

class ChatInbound(CamelModel):
    type: Literal["chat"]
    sender_id: str = Field(min_length=1)
    receiver_id: str = Field(min_length=1)
    content: str
    attachment_url: Optional[str] = None


class PingInbound(CamelModel):
    type: Literal["ping"]


class PongInbound(CamelModel):
    type: Literal["pong"]


InboundEnvelope = Annotated[
    Union[ChatInbound, PingInbound, PongInbound],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundEnvelope)


def parse_inbound(raw: Union[str, bytes]) -> Union[ChatInbound, PingInbound, PongInbound]:
    """Validates a raw frame. Raises MalformedEnvelope on bad JSON, unknown type or missing fields."""
    try:
        return _inbound_adapter.validate_json(raw)
    except ValidationError as e:
        raise MalformedEnvelope(str(e)) from e


# --- Outbound (server -> client) ---

class ChatOutbound(CamelModel):
    type: Literal["chat"] = "chat"
    data: ChatMessageRead


class PingOutbound(CamelModel):
    type: Literal["ping"] = "ping"


class PongOutbound(CamelModel):
    type: Literal["pong"] = "pong"


def dump_envelope(envelope: CamelModel) -> dict:
    """JSON-ready dict with camelCase keys and ISO-8601 timestamps."""
    return envelope.model_dump(mode="json", by_alias=True)
