"""Validation of client-submitted message batches.

Transcripts arrive from the client after a stream completes, so they may be
replayed, truncated or tampered with. Nothing is persisted until the whole
batch passes these checks.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from lexia_models import Message, MessageRole, ToolCall, ToolResult
from lexia.errors import ValidationError
from lexia.services.tools import ToolCapabilitySchema

logger = logging.getLogger(__name__)


class IncomingToolCall(BaseModel):
    """Tool call as sent by the client."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class IncomingToolResult(BaseModel):
    """Tool result as sent by the client."""

    model_config = ConfigDict(extra="forbid")

    tool_call_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    output: Any = None
    is_error: bool = False


class IncomingMessage(BaseModel):
    """Message as sent by the client."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = Field(None, min_length=1)
    role: MessageRole
    content: str = ""
    tool_calls: list[IncomingToolCall] = Field(default_factory=list)
    tool_result: IncomingToolResult | None = None


def _check_role_shape(index: int, message: IncomingMessage) -> None:
    if message.role == MessageRole.USER:
        if message.tool_calls or message.tool_result:
            raise ValidationError(f"Message {index}: user messages cannot carry tool payloads")
        if not message.content.strip():
            raise ValidationError(f"Message {index}: user message has no content")
    elif message.role == MessageRole.ASSISTANT:
        if message.tool_result:
            raise ValidationError(f"Message {index}: assistant messages cannot carry tool results")
        if not message.content.strip() and not message.tool_calls:
            raise ValidationError(f"Message {index}: assistant message has no content or tool calls")
    elif message.role == MessageRole.TOOL:
        if message.tool_calls:
            raise ValidationError(f"Message {index}: tool messages cannot carry tool calls")
        if message.tool_result is None:
            raise ValidationError(f"Message {index}: tool message has no tool result")


def validate_messages(
    messages: Any,
    schema: ToolCapabilitySchema,
    conversation_id: str = "",
    require_ids: bool = False,
) -> list[Message]:
    """Validate a raw batch against the message shape and the tool schema.

    With ``require_ids`` every message must carry a client ID, which is what
    makes a replayed batch recognizable.

    Returns normalized messages in the original order, or raises
    ValidationError with a readable reason and the underlying cause.
    """
    if not isinstance(messages, list):
        raise ValidationError("Messages must be a list", cause=type(messages).__name__)

    validated: list[Message] = []
    seen_message_ids: set[str] = set()
    call_names: dict[str, str] = {}

    for index, raw in enumerate(messages):
        try:
            incoming = IncomingMessage.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Message {index} is malformed", cause=e) from e

        _check_role_shape(index, incoming)

        if incoming.id is None:
            if require_ids:
                raise ValidationError(f"Message {index}: missing message id")
        else:
            if incoming.id in seen_message_ids:
                raise ValidationError(f"Message {index}: duplicate message id {incoming.id!r}")
            seen_message_ids.add(incoming.id)

        tool_calls: list[ToolCall] = []
        for call in incoming.tool_calls:
            spec = schema.get(call.name)
            if spec is None:
                raise ValidationError(
                    f"Message {index}: unknown tool {call.name!r}",
                    cause={"allowed_tools": schema.names},
                )
            if call.id in call_names:
                raise ValidationError(f"Message {index}: duplicate tool call id {call.id!r}")
            try:
                arguments = spec.arguments.model_validate(call.arguments)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Message {index}: invalid arguments for tool {call.name!r}", cause=e
                ) from e
            call_names[call.id] = call.name
            tool_calls.append(
                ToolCall(
                    id=call.id,
                    name=call.name,
                    arguments=arguments.model_dump(mode="json", by_alias=True, exclude_unset=True),
                )
            )

        tool_result: ToolResult | None = None
        if incoming.tool_result is not None:
            result = incoming.tool_result
            if result.name not in schema:
                raise ValidationError(
                    f"Message {index}: result for unknown tool {result.name!r}",
                    cause={"allowed_tools": schema.names},
                )
            expected = call_names.get(result.tool_call_id)
            if expected is not None and expected != result.name:
                raise ValidationError(
                    f"Message {index}: result names {result.name!r} but call "
                    f"{result.tool_call_id!r} invoked {expected!r}"
                )
            tool_result = ToolResult(**result.model_dump())

        validated.append(
            Message(
                conversation_id=conversation_id,
                client_id=incoming.id,
                role=incoming.role,
                content=incoming.content,
                tool_calls=tool_calls,
                tool_result=tool_result,
            )
        )

    logger.debug(f"Validated {len(validated)} messages")
    return validated
