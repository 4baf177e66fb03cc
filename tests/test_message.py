import pytest

from tcpchat.message import (
    HEADER_SIZE,
    IncompleteMessageError,
    Message,
    MessageHeader,
    MessageType,
    deserialize_header,
    deserialize_message_from_buffer,
    iter_messages,
    serialize_message,
)


def test_wire_layout_of_text_message():
    msg = Message.from_text(MessageType.TEXT_MESSAGE, 1, 2, "hi")
    expected = bytes(
        [0, 0, 0, 0, 1, 0, 0, 0, 2, 0, 0, 0, 2, 0, 0, 0]
    ) + b"hi"
    assert serialize_message(msg) == expected


def test_from_text_sets_payload_size():
    msg = Message.from_text(MessageType.CLIENT_JOINED, 0, 0, "Client 3 joined.")
    assert msg.header.payload_size == len(msg.payload)
    assert msg.text() == "Client 3 joined."
    assert msg.header.type is MessageType.CLIENT_JOINED


def test_from_text_encodes_utf8():
    msg = Message.from_text(MessageType.TEXT_MESSAGE, 5, 0, "héllo")
    assert msg.payload == "héllo".encode("utf-8")
    assert msg.header.payload_size == len("héllo".encode("utf-8"))


def test_text_replaces_invalid_bytes():
    msg = Message(MessageHeader(payload_size=2), b"\xff\xfe")
    assert msg.text() == "\ufffd\ufffd"


def test_default_message_is_empty_text():
    msg = Message()
    assert msg.header.type is MessageType.TEXT_MESSAGE
    assert msg.payload == b""
    assert serialize_message(msg) == bytes(HEADER_SIZE)


def test_header_round_trip():
    header = MessageHeader(MessageType.FILE_TRANSFER_ACK, 7, 9, 123)
    packed = header.pack()
    assert len(packed) == HEADER_SIZE
    assert MessageHeader.unpack(packed) == header


def test_header_pack_rejects_out_of_range():
    with pytest.raises(ValueError):
        MessageHeader(MessageType.TEXT_MESSAGE, -1, 0, 0).pack()


def test_unknown_type_is_kept_as_int():
    raw = bytearray(MessageHeader(MessageType.TEXT_MESSAGE, 1, 0, 0).pack())
    raw[0] = 200
    header = deserialize_header(raw)
    assert header.type == 200
    assert not isinstance(header.type, MessageType)


def test_deserialize_header_needs_full_header():
    with pytest.raises(IncompleteMessageError) as info:
        deserialize_header(b"\x00" * (HEADER_SIZE - 1))
    assert info.value.needed == HEADER_SIZE
    assert info.value.available == HEADER_SIZE - 1


def test_deserialize_header_does_not_consume():
    data = bytearray(serialize_message(Message.from_text(MessageType.TEXT_MESSAGE, 1, 0, "x")))
    before = bytes(data)
    deserialize_header(data)
    assert bytes(data) == before


def test_deserialize_round_trip_consumes_buffer():
    msg = Message.from_text(MessageType.SERVER_SHUTDOWN, 0, 4, "bye")
    buffer = bytearray(serialize_message(msg))
    result = deserialize_message_from_buffer(buffer)
    assert result == msg
    assert buffer == bytearray()


def test_deserialize_leaves_remaining_bytes():
    first = Message.from_text(MessageType.TEXT_MESSAGE, 1, 0, "one")
    second = Message.from_text(MessageType.CLIENT_LEFT, 2, 0, "two")
    buffer = bytearray(serialize_message(first) + serialize_message(second))
    assert deserialize_message_from_buffer(buffer) == first
    assert bytes(buffer) == serialize_message(second)


def test_incomplete_payload_leaves_buffer_untouched():
    wire = serialize_message(Message.from_text(MessageType.TEXT_MESSAGE, 1, 0, "payload"))
    buffer = bytearray(wire[:-2])
    with pytest.raises(IncompleteMessageError) as info:
        deserialize_message_from_buffer(buffer)
    assert bytes(buffer) == wire[:-2]
    assert info.value.needed == len(wire)


def test_empty_payload_message():
    msg = Message.from_text(MessageType.FILE_TRANSFER_REQUEST, 3, 4, "")
    buffer = bytearray(serialize_message(msg))
    assert deserialize_message_from_buffer(buffer) == msg
    assert len(buffer) == 0


def test_iter_messages_yields_all_complete_messages():
    messages = [
        Message.from_text(MessageType.TEXT_MESSAGE, i, 0, f"message {i}")
        for i in range(1, 5)
    ]
    wire = b"".join(serialize_message(m) for m in messages)
    buffer = bytearray(wire)
    assert list(iter_messages(buffer)) == messages
    assert len(buffer) == 0


def test_iter_messages_stops_at_partial_message():
    first = Message.from_text(MessageType.TEXT_MESSAGE, 1, 0, "complete")
    second = serialize_message(Message.from_text(MessageType.TEXT_MESSAGE, 2, 0, "partial"))
    buffer = bytearray(serialize_message(first) + second[:HEADER_SIZE + 3])
    assert list(iter_messages(buffer)) == [first]
    assert bytes(buffer) == second[:HEADER_SIZE + 3]


def test_iter_messages_byte_by_byte_stream():
    msg = Message.from_text(MessageType.TEXT_MESSAGE, 9, 0, "streamed")
    wire = serialize_message(msg)
    buffer = bytearray()
    received = []
    for byte in wire:
        buffer.append(byte)
        received.extend(iter_messages(buffer))
    assert received == [msg]
    assert len(buffer) == 0