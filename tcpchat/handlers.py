"""Server-side handling of connected clients and of the messages they send."""

from __future__ import annotations

import abc
import logging
import threading
from typing import Optional, Protocol

from tcpchat.message import (
    Message,
    MessageType,
    iter_messages,
    serialize_message,
)
from tcpchat.sockets import ChatSocket, SocketError

log = logging.getLogger(__name__)

RECEIVE_CHUNK = 4096


class ServerLike(Protocol):
    """What a client handler needs from the server that owns it."""

    def broadcast_message(self, msg: Message, sender_id_to_exclude: int = 0) -> None:
        ...

    def signal_client_finished(self, client_id: int) -> None:
        ...


class MessageHandler(abc.ABC):
    """Strategy that decides what the server does with an incoming message."""

    @abc.abstractmethod
    def handle_message(
        self, msg: Message, client_handler: "ClientHandler", server: ServerLike
    ) -> None:
        """Act on ``msg``, received through ``client_handler``."""


class BroadcastMessageHandler(MessageHandler):
    """Relays text messages to every other connected client."""

    def handle_message(
        self, msg: Message, client_handler: "ClientHandler", server: ServerLike
    ) -> None:
        if msg.header.type == MessageType.TEXT_MESSAGE:
            log.info("Broadcasting message from client %d", msg.header.sender_id)
            server.broadcast_message(msg, client_handler.client_id)
        else:
            log.warning(
                "Unhandled message type %d from client %d",
                int(msg.header.type),
                msg.header.sender_id,
            )


class ClientHandler:
    """Owns one client connection and reads its messages on a worker thread."""

    def __init__(
        self,
        client_id: int,
        sock: ChatSocket,
        server: ServerLike,
        message_handler: MessageHandler,
    ) -> None:
        self._id = client_id
        self._socket = sock
        self._server = server
        self._message_handler = message_handler
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()
        self._buffer = bytearray()

    def __repr__(self) -> str:
        return f"ClientHandler(id={self._id}, running={self.is_running()})"

    @property
    def client_id(self) -> int:
        """Identifier the server gave this client."""
        return self._id

    def is_running(self) -> bool:
        """Return True while the connection is being served."""
        return self._running.is_set()

    def start(self) -> None:
        """Begin reading from the client on a background thread."""
        if self._running.is_set():
            return
        self._running.set()
        self._thread = threading.Thread(
            target=self._run, name=f"client-{self._id}", daemon=True
        )
        self._thread.start()
        log.info("ClientHandler %d started", self._id)

    def stop(self) -> None:
        """Signal the worker to finish, close the socket and wait for it."""
        self._running.clear()
        if self._socket.is_valid():
            self._socket.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        log.info("ClientHandler %d stopped", self._id)

    def send_message(self, msg: Message) -> None:
        """Send ``msg`` to the client; a failed send ends the connection."""
        if not self._socket.is_valid() or not self._running.is_set():
            log.warning(
                "ClientHandler %d: cannot send, socket invalid or not running", self._id
            )
            return
        data = serialize_message(msg)
        try:
            with self._send_lock:
                self._socket.send(data)
        except (SocketError, ValueError) as exc:
            log.warning("ClientHandler %d: failed to send message: %s", self._id, exc)
            self._running.clear()

    def _run(self) -> None:
        try:
            while self._running.is_set():
                if not self._socket.is_valid():
                    log.warning("ClientHandler %d: socket became invalid", self._id)
                    break
                try:
                    chunk = self._socket.receive(RECEIVE_CHUNK)
                except SocketError as exc:
                    if self._running.is_set():
                        log.warning("ClientHandler %d: receive error: %s", self._id, exc)
                    break
                if not chunk:
                    log.info("ClientHandler %d: connection closed by peer", self._id)
                    break
                self._buffer.extend(chunk)
                for msg in iter_messages(self._buffer):
                    msg.header.sender_id = self._id
                    log.debug(
                        "ClientHandler %d: received message of type %d size %d",
                        self._id,
                        int(msg.header.type),
                        msg.header.payload_size,
                    )
                    self._message_handler.handle_message(msg, self, self._server)
        finally:
            self._running.clear()
            if self._socket.is_valid():
                self._socket.close()
            self._server.signal_client_finished(self._id)