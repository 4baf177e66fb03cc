import socket
import time

import pytest

from tcpchat.message import (
    IncompleteMessageError,
    Message,
    MessageType,
    deserialize_message_from_buffer,
    serialize_message,
)
from tcpchat.server import Server
from tcpchat.sockets import SocketError


class Peer:
    def __init__(self, port):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=5)
        self.buffer = bytearray()

    def send(self, msg):
        self.sock.sendall(serialize_message(msg))

    def read(self, timeout=5.0):
        self.sock.settimeout(timeout)
        while True:
            try:
                return deserialize_message_from_buffer(self.buffer)
            except IncompleteMessageError:
                pass
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError("peer closed")
            self.buffer.extend(chunk)

    def close(self):
        self.sock.close()


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def server():
    srv = Server(0)
    srv.start()
    yield srv
    srv.stop()


def connect(server, expected_ids):
    peer = Peer(server.port)
    assert wait_until(lambda: server.client_ids() == expected_ids)
    return peer


def test_start_and_stop_change_running_state():
    srv = Server(0)
    assert srv.is_running_properly() is False
    srv.start()
    try:
        assert srv.is_running_properly() is True
        assert srv.port > 0
    finally:
        srv.stop()
    assert srv.is_running_properly() is False


def test_stop_twice_is_harmless():
    srv = Server(0)
    srv.start()
    srv.stop()
    srv.stop()
    assert srv.is_running_properly() is False
    assert srv.client_ids() == []


def test_port_before_start_is_requested_port():
    srv = Server(0)
    assert srv.port == 0


def test_start_failure_raises():
    srv = Server(70000)
    with pytest.raises(SocketError):
        srv.start()
    assert srv.is_running_properly() is False


def test_context_manager_stops_server():
    with Server(0) as srv:
        assert srv.is_running_properly() is True
    assert srv.is_running_properly() is False


def test_join_is_announced_to_existing_clients(server):
    first = connect(server, [1])
    second = connect(server, [1, 2])
    try:
        msg = first.read()
        assert msg.header.type == MessageType.CLIENT_JOINED
        assert msg.header.sender_id == 2
        assert msg.text() == "Client 2 joined."
    finally:
        first.close()
        second.close()


def test_text_is_relayed_with_server_assigned_sender(server):
    first = connect(server, [1])
    second = connect(server, [1, 2])
    try:
        first.read()  # join notice
        second.send(Message.from_text(MessageType.TEXT_MESSAGE, 77, 0, "hi all"))
        msg = first.read()
        assert msg.header.type == MessageType.TEXT_MESSAGE
        assert msg.header.sender_id == 2
        assert msg.text() == "hi all"
        with pytest.raises(socket.timeout):
            second.read(timeout=0.3)
    finally:
        first.close()
        second.close()


def test_departure_is_announced_and_client_removed(server):
    first = connect(server, [1])
    second = connect(server, [1, 2])
    try:
        first.read()  # join notice
        first.close()
        msg = second.read()
        assert msg.header.type == MessageType.CLIENT_LEFT
        assert msg.header.sender_id == 1
        assert msg.text() == "Client 1 left."
        assert wait_until(lambda: server.client_ids() == [2])
    finally:
        second.close()


def test_broadcast_message_respects_exclusion(server):
    first = connect(server, [1])
    second = connect(server, [1, 2])
    try:
        first.read()  # join notice
        everyone = Message.from_text(MessageType.TEXT_MESSAGE, 0, 0, "to all")
        server.broadcast_message(everyone, 0)
        assert first.read().text() == "to all"
        assert second.read().text() == "to all"

        some = Message.from_text(MessageType.TEXT_MESSAGE, 0, 0, "not you")
        server.broadcast_message(some, 1)
        assert second.read().text() == "not you"
        with pytest.raises(socket.timeout):
            first.read(timeout=0.3)
    finally:
        first.close()
        second.close()


def test_stop_disconnects_clients():
    srv = Server(0)
    srv.start()
    peer = connect(srv, [1])
    try:
        srv.stop()
        peer.sock.settimeout(5)
        assert peer.sock.recv(4096) == b""
        assert srv.client_ids() == []
    finally:
        peer.close()


def test_client_ids_keep_counting_across_restart():
    srv = Server(0)
    srv.start()
    peer = connect(srv, [1])
    assert srv.client_ids() == [1]
    peer.close()
    srv.stop()
    srv.start()
    try:
        assert srv.is_running_properly() is True
        again = connect(srv, [2])
        assert srv.client_ids() == [2]
        again.close()
        wait_until(lambda: srv.client_ids() == [])
        assert srv.client_ids() == []
    finally:
        srv.stop()