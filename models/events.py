"""Wire events exchanged with chat clients."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Literal, Union

from pydantic import BaseModel, StrictBool, ValidationError

from models.message import Message, now_ms

CONNECTED_NOTICE = "Successfully connected to the room"


class TypingPayload(BaseModel):
    """Structured control payload: `{"type": "typing", "isTyping": bool}`."""

    type: Literal["typing"]
    isTyping: StrictBool


@dataclass(frozen=True)
class TypingControl:
    is_typing: bool


@dataclass(frozen=True)
class ChatText:
    raw: str


InboundPayload = Union[TypingControl, ChatText]


def decode_inbound(raw: str) -> InboundPayload:
    """
    Decode a client payload.

    Anything that does not validate as a typing-control record, JSON or
    not, is chat text and is returned verbatim.
    """
    try:
        payload = TypingPayload.model_validate_json(raw)
    except ValidationError:
        return ChatText(raw)
    return TypingControl(is_typing=payload.isTyping)


def connected_event() -> Dict[str, Any]:
    return {"type": "connected", "message": CONNECTED_NOTICE}


def history_event(messages: Iterable[Message]) -> Dict[str, Any]:
    return {"type": "history", "messages": [message.to_dict() for message in messages]}


def user_list_event(users: Iterable[str]) -> Dict[str, Any]:
    return {"type": "userList", "users": list(users)}


def typing_event(typing_users: Iterable[str]) -> Dict[str, Any]:
    return {"type": "typing", "typingUsers": list(typing_users)}


def system_event(text: str) -> Dict[str, Any]:
    return {"type": "system", "text": text, "timestamp": now_ms()}


def message_event(message: Message) -> Dict[str, Any]:
    return {"type": "message", **message.to_dict()}


def error_event(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}
