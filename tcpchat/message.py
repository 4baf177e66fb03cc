"""Chat message model and its binary wire format.

A message on the wire is a fixed-size header followed by the payload:

    offset 0   uint8   message type
    offset 1   3 bytes padding (zero)
    offset 4   uint32  sender id      (0 for the server)
    offset 8   uint32  recipient id   (0 for broadcast or the server)
    offset 12  uint32  payload size

All integers are little-endian.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Iterator, Union


class MessageType(enum.IntEnum):
    """Kinds of message exchanged between clients and the server."""

    TEXT_MESSAGE = 0
    CLIENT_JOINED = 1
    CLIENT_LEFT = 2
    SERVER_SHUTDOWN = 3
    FILE_TRANSFER_REQUEST = 4
    FILE_TRANSFER_DATA = 5
    FILE_TRANSFER_ACK = 6
    ERROR_MESSAGE = 7


_HEADER = struct.Struct("<B3xIII")
HEADER_SIZE = _HEADER.size

TypeValue = Union[MessageType, int]


def _coerce_type(value: int) -> TypeValue:
    try:
        return MessageType(value)
    except ValueError:
        return value


class IncompleteMessageError(ValueError):
    """Raised when a buffer does not yet hold a whole header or message."""

    def __init__(self, needed: int, available: int) -> None:
        super().__init__(f"incomplete message: need {needed} bytes, have {available}")
        self.needed = needed
        self.available = available


@dataclass
class MessageHeader:
    """Fixed-size header that precedes every payload."""

    type: TypeValue = MessageType.TEXT_MESSAGE
    sender_id: int = 0
    recipient_id: int = 0
    payload_size: int = 0

    def pack(self) -> bytes:
        """Return the header's wire bytes."""
        try:
            return _HEADER.pack(
                int(self.type), self.sender_id, self.recipient_id, self.payload_size
            )
        except struct.error as exc:
            raise ValueError(f"header field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data) -> "MessageHeader":
        """Read a header from the start of ``data``."""
        if len(data) < HEADER_SIZE:
            raise IncompleteMessageError(HEADER_SIZE, len(data))
        type_value, sender_id, recipient_id, payload_size = _HEADER.unpack_from(data)
        return cls(_coerce_type(type_value), sender_id, recipient_id, payload_size)


@dataclass
class Message:
    """A header together with its payload bytes."""

    header: MessageHeader = field(default_factory=MessageHeader)
    payload: bytes = b""

    @classmethod
    def from_text(
        cls, type: TypeValue, sender_id: int, recipient_id: int, text: str
    ) -> "Message":
        """Build a message whose payload is ``text`` encoded as UTF-8."""
        payload = text.encode("utf-8")
        header = MessageHeader(type, sender_id, recipient_id, len(payload))
        return cls(header, payload)

    def text(self) -> str:
        """Return the payload decoded as UTF-8, replacing invalid bytes."""
        return self.payload.decode("utf-8", errors="replace")


def serialize_message(msg: Message) -> bytes:
    """Return the wire bytes of ``msg``: header followed by payload."""
    return msg.header.pack() + bytes(msg.payload)


def deserialize_header(buffer) -> MessageHeader:
    """Read the header at the start of ``buffer`` without consuming it."""
    return MessageHeader.unpack(buffer)


def deserialize_message_from_buffer(buffer: bytearray) -> Message:
    """Take one whole message off the front of ``buffer``.

    The buffer is left untouched if it does not yet hold a whole message.
    """
    header = deserialize_header(buffer)
    total = HEADER_SIZE + header.payload_size
    if len(buffer) < total:
        raise IncompleteMessageError(total, len(buffer))
    payload = bytes(buffer[HEADER_SIZE:total])
    del buffer[:total]
    return Message(header, payload)


def iter_messages(buffer: bytearray) -> Iterator[Message]:
    """Yield and consume every whole message at the front of ``buffer``."""
    while len(buffer) >= HEADER_SIZE:
        try:
            msg = deserialize_message_from_buffer(buffer)
        except IncompleteMessageError:
            return
        yield msg