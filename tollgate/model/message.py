"""Wire messages exchanged between frontend contexts and the orchestrator.

Every message is a flat JSON object tagged by ``type``. Field names on the
wire are camelCase (``promptId``, ``requiresApproval``); Python attributes
are snake_case. Use ``parse_message`` for inbound payloads and
``dump_message`` before handing a message to a transport.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class MessageType(StrEnum):
    """Discriminator values of the message taxonomy."""

    TASK = "TASK"
    PROMPT = "PROMPT"
    PROMPT_RESPONSE = "PROMPT_RESPONSE"
    PROMPT_CANCEL = "PROMPT_CANCEL"
    PROMPT_CLOSED = "PROMPT_CLOSED"
    FETCH_SETTINGS = "FETCH_SETTINGS"
    SETTINGS_DATA = "SETTINGS_DATA"
    UPDATE_SETTINGS = "UPDATE_SETTINGS"
    SETTINGS_UPDATED = "SETTINGS_UPDATED"
    FETCH_RELAYS = "FETCH_RELAYS"
    RELAYS_DATA = "RELAYS_DATA"
    ADD_RELAY = "ADD_RELAY"
    REMOVE_RELAY = "REMOVE_RELAY"
    FETCH_PERMISSIONS = "FETCH_PERMISSIONS"
    PERMISSIONS_DATA = "PERMISSIONS_DATA"
    DATA_UPDATE = "DATA_UPDATE"
    ERROR = "ERROR"


class PromptOutcome(StrEnum):
    """How a prompt was resolved."""

    APPROVED = "approved"
    DENIED = "denied"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PromptResponse(_WireModel):
    """The human's decision on a prompt."""

    approved: bool
    remember: bool = False


class KeyValue(_WireModel):
    """A ``{key, value}`` pair as listed in RELAYS_DATA and PERMISSIONS_DATA."""

    key: str
    value: Any


# ============================================================================
# Frontend -> backend
# ============================================================================


class TaskMessage(_WireModel):
    type: Literal["TASK"] = "TASK"
    task: dict[str, Any]
    requires_approval: bool = Field(default=False, alias="requiresApproval")


class PromptResponseMessage(_WireModel):
    type: Literal["PROMPT_RESPONSE"] = "PROMPT_RESPONSE"
    prompt_id: str = Field(alias="promptId")
    response: PromptResponse


class PromptCancelMessage(_WireModel):
    """The prompt surface closed without answering."""

    type: Literal["PROMPT_CANCEL"] = "PROMPT_CANCEL"
    prompt_id: str = Field(alias="promptId")


class FetchSettingsMessage(_WireModel):
    type: Literal["FETCH_SETTINGS"] = "FETCH_SETTINGS"


class UpdateSettingsMessage(_WireModel):
    """Write one setting. A null value deletes it."""

    type: Literal["UPDATE_SETTINGS"] = "UPDATE_SETTINGS"
    key: str
    value: Any = None


class FetchRelaysMessage(_WireModel):
    type: Literal["FETCH_RELAYS"] = "FETCH_RELAYS"


class AddRelayMessage(_WireModel):
    type: Literal["ADD_RELAY"] = "ADD_RELAY"
    url: str


class RemoveRelayMessage(_WireModel):
    type: Literal["REMOVE_RELAY"] = "REMOVE_RELAY"
    key: str


class FetchPermissionsMessage(_WireModel):
    type: Literal["FETCH_PERMISSIONS"] = "FETCH_PERMISSIONS"


# ============================================================================
# Backend -> frontend
# ============================================================================


class PromptMessage(_WireModel):
    type: Literal["PROMPT"] = "PROMPT"
    prompt_id: str = Field(alias="promptId")
    task: dict[str, Any]


class PromptClosedMessage(_WireModel):
    type: Literal["PROMPT_CLOSED"] = "PROMPT_CLOSED"
    prompt_id: str = Field(alias="promptId")
    outcome: PromptOutcome


class SettingsDataMessage(_WireModel):
    type: Literal["SETTINGS_DATA"] = "SETTINGS_DATA"
    data: dict[str, Any] = Field(default_factory=dict)


class SettingsUpdatedMessage(_WireModel):
    type: Literal["SETTINGS_UPDATED"] = "SETTINGS_UPDATED"
    key: str
    value: Any = None


class RelaysDataMessage(_WireModel):
    type: Literal["RELAYS_DATA"] = "RELAYS_DATA"
    data: list[KeyValue] = Field(default_factory=list)


class PermissionsDataMessage(_WireModel):
    type: Literal["PERMISSIONS_DATA"] = "PERMISSIONS_DATA"
    data: list[KeyValue] = Field(default_factory=list)


class DataUpdateMessage(_WireModel):
    type: Literal["DATA_UPDATE"] = "DATA_UPDATE"
    data: Any = None


class ErrorMessage(_WireModel):
    type: Literal["ERROR"] = "ERROR"
    message: str


Message = Annotated[
    TaskMessage
    | PromptResponseMessage
    | PromptCancelMessage
    | FetchSettingsMessage
    | UpdateSettingsMessage
    | FetchRelaysMessage
    | AddRelayMessage
    | RemoveRelayMessage
    | FetchPermissionsMessage
    | PromptMessage
    | PromptClosedMessage
    | SettingsDataMessage
    | SettingsUpdatedMessage
    | RelaysDataMessage
    | PermissionsDataMessage
    | DataUpdateMessage
    | ErrorMessage,
    Field(discriminator="type"),
]

INBOUND_TYPES = frozenset(
    {
        MessageType.TASK,
        MessageType.PROMPT_RESPONSE,
        MessageType.PROMPT_CANCEL,
        MessageType.FETCH_SETTINGS,
        MessageType.UPDATE_SETTINGS,
        MessageType.FETCH_RELAYS,
        MessageType.ADD_RELAY,
        MessageType.REMOVE_RELAY,
        MessageType.FETCH_PERMISSIONS,
    }
)

_message_adapter: TypeAdapter[Any] = TypeAdapter(Message)


def parse_message(raw: dict[str, Any]) -> Any:
    """Validate a raw payload into its typed message.

    Raises:
        pydantic.ValidationError: If the type is unknown or fields are invalid.
    """
    return _message_adapter.validate_python(raw)


def dump_message(message: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Serialize a message to its JSON-ready wire form."""
    if isinstance(message, dict):
        return message
    return message.model_dump(mode="json", by_alias=True)
