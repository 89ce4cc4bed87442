"""JSON-RPC 2.0 protocol: message models, classification, and line framing.

This module defines the wire protocol between the host and the agent
process. Messages are JSON-encoded, one message per line, and transmitted
over the agent's stdin/stdout.

Wire format::

    {"jsonrpc": "2.0", ...}\\n

Inbound values are classified into exactly one of three message kinds with
shape predicates applied in a fixed order (request, response, notification).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Final, Literal

from pydantic import BaseModel, ValidationError, field_validator

from acp_bridge.types import JsonRpcId, JsonValue

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────

JSONRPC_VERSION: Final = "2.0"
"""Protocol tag carried by every message."""

REQUEST_TIMEOUT_MS: Final = 30_000
"""Time a host-initiated call waits for its response, in milliseconds."""

REQUEST_TIMEOUT_SECONDS: Final = REQUEST_TIMEOUT_MS / 1000

LOG_PREVIEW_CHARS: Final = 200
"""Number of characters of raw traffic included in debug logs."""


class ErrorCode:
    """JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


# ── Message models ─────────────────────────────────────────────────────────


class JsonRpcErrorObject(BaseModel):
    """Error member of a response.

    ``code`` and ``message`` are optional on input so that a malformed error
    object from the peer still parses. Any error member other than null marks
    the response as a failure, with or without a message.
    """

    code: int | None = None
    message: str | None = None
    data: JsonValue = None

    model_config = {"extra": "allow"}

    def to_wire(self) -> dict[str, JsonValue]:
        d: dict[str, JsonValue] = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


class JsonRpcRequest(BaseModel):
    """Call expecting a response, in either direction."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: JsonRpcId
    method: str
    params: JsonValue = None

    def to_wire(self) -> dict[str, JsonValue]:
        d: dict[str, JsonValue] = {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "method": self.method,
        }
        if self.params is not None:
            d["params"] = self.params
        return d


class JsonRpcResponse(BaseModel):
    """Answer to a request, correlated by ``id``."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: JsonRpcId | None
    result: JsonValue = None
    error: JsonRpcErrorObject | None = None

    @field_validator("error", mode="before")
    @classmethod
    def coerce_error(cls, value: object) -> object:
        """Normalize any non-null error member into an error object.

        A bare value such as ``"boom"`` becomes the message and is kept as
        ``data``; mistyped ``code``/``message`` members are dropped or
        stringified.
        """
        if value is None or isinstance(value, JsonRpcErrorObject):
            return value
        if not isinstance(value, dict):
            return {"message": str(value), "data": value}
        code = value.get("code")
        message = value.get("message")
        return {
            **value,
            "code": code if isinstance(code, int) and not isinstance(code, bool) else None,
            "message": message if message is None or isinstance(message, str) else str(message),
        }

    def to_wire(self) -> dict[str, JsonValue]:
        d: dict[str, JsonValue] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            d["error"] = self.error.to_wire()
        else:
            d["result"] = self.result
        return d

    @property
    def error_message(self) -> str | None:
        """The remote error message, or None when the response is a success.

        An error without a message yields an empty string.
        """
        if self.error is None:
            return None
        return self.error.message or ""

    @classmethod
    def success(cls, id: JsonRpcId, result: object) -> JsonRpcResponse:
        """Build a success response without validating *result*.

        Values JSON cannot represent surface as ``TypeError`` from
        :func:`encode_message`.
        """
        return cls.model_construct(id=id, result=result)

    @classmethod
    def failure(
        cls, id: JsonRpcId | None, code: int, message: str, data: JsonValue = None
    ) -> JsonRpcResponse:
        return cls(id=id, error=JsonRpcErrorObject(code=code, message=message, data=data))


class JsonRpcNotification(BaseModel):
    """One-way message without an ``id``."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: JsonValue = None

    def to_wire(self) -> dict[str, JsonValue]:
        d: dict[str, JsonValue] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            d["params"] = self.params
        return d


type JsonRpcMessage = JsonRpcRequest | JsonRpcResponse | JsonRpcNotification


# ── Classification ─────────────────────────────────────────────────────────


def _is_id(value: object) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, (int, float, str)) and not isinstance(value, bool)


def is_request(value: Mapping[str, object]) -> bool:
    """Return True if *value* has the shape of a JSON-RPC request."""
    return (
        value.get("jsonrpc") == JSONRPC_VERSION
        and _is_id(value.get("id"))
        and isinstance(value.get("method"), str)
    )


def is_response(value: Mapping[str, object]) -> bool:
    """Return True if *value* has the shape of a JSON-RPC response.

    ``result``/``error`` are checked by key presence, so ``"result": null``
    still counts.
    """
    if value.get("jsonrpc") != JSONRPC_VERSION or "id" not in value:
        return False
    msg_id = value["id"]
    return (msg_id is None or _is_id(msg_id)) and ("result" in value or "error" in value)


def is_notification(value: Mapping[str, object]) -> bool:
    """Return True if *value* has the shape of a JSON-RPC notification."""
    return (
        value.get("jsonrpc") == JSONRPC_VERSION
        and isinstance(value.get("method"), str)
        and "id" not in value
    )


def classify_message(value: object) -> JsonRpcMessage | None:
    """Classify a decoded JSON value into a typed message.

    Predicates are applied in the order request, response, notification.

    Args:
        value: A value produced by :func:`decode_line`.

    Returns:
        The validated message model, or None if *value* matches no shape or
        fails validation.
    """
    if not isinstance(value, dict):
        logger.debug("Ignoring non-object message: %r", value)
        return None

    model: type[JsonRpcRequest | JsonRpcResponse | JsonRpcNotification]
    if is_request(value):
        model = JsonRpcRequest
    elif is_response(value):
        model = JsonRpcResponse
    elif is_notification(value):
        model = JsonRpcNotification
    else:
        logger.debug("Ignoring unclassifiable message: %r", value)
        return None

    try:
        return model.model_validate(value)
    except ValidationError as exc:
        logger.warning("Dropping malformed %s: %s", model.__name__, exc)
        return None


# ── Line framing ───────────────────────────────────────────────────────────


def encode_message(message: BaseModel | Mapping[str, object]) -> bytes:
    """Serialize *message* to one UTF-8 JSON line terminated by ``\\n``.

    Raises:
        TypeError: If the payload contains values JSON cannot represent.
        ValueError: If the payload contains circular references.
    """
    if isinstance(message, BaseModel):
        to_wire = getattr(message, "to_wire", None)
        payload = to_wire() if to_wire is not None else message.model_dump(by_alias=True)
    else:
        payload = message
    return (json.dumps(payload, ensure_ascii=False, default=_json_default) + "\n").encode(
        "utf-8"
    )


def _json_default(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def decode_line(line: bytes | str) -> JsonValue | None:
    """Parse one framed line.

    Malformed input is logged and dropped: the return value is None and no
    exception propagates, so a bad line never ends the connection.
    """
    try:
        text = line.decode("utf-8") if isinstance(line, bytes) else line
        value: JsonValue = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning(
            "Failed to parse message: %s (line=%r)", exc, line[:LOG_PREVIEW_CHARS]
        )
        return None
    return value
