"""Chat client: connects to a server, sends queued messages and shows incoming ones."""

from __future__ import annotations

import abc
import logging
import queue
import sys
import threading
from typing import Optional, TextIO

from tcpchat.message import Message, MessageType, iter_messages, serialize_message
from tcpchat.sockets import ChatSocket, SocketError, create_socket

log = logging.getLogger(__name__)

PROMPT = "Enter message (or '/quit', '/file <id> <path>'): "
RECEIVE_CHUNK = 4096

_STOP = object()

_FILE_TRANSFER_TYPES = frozenset(
    {
        MessageType.FILE_TRANSFER_REQUEST,
        MessageType.FILE_TRANSFER_DATA,
        MessageType.FILE_TRANSFER_ACK,
    }
)


class FileTransferHandler(abc.ABC):
    """Strategy for file transfer requests and file transfer messages."""

    @abc.abstractmethod
    def request_file_transfer(self, recipient_id: str, file_path: str) -> None:
        """Ask for ``file_path`` to be sent to ``recipient_id``."""

    @abc.abstractmethod
    def handle_message(self, msg: Message) -> None:
        """Act on a file transfer message received from the server."""

    @abc.abstractmethod
    def attach(self, client: "Client") -> None:
        """Bind the handler to the client it works for."""


class BasicFileTransferHandler(FileTransferHandler):
    """Reports file transfer requests and messages on the client's output."""

    def __init__(self) -> None:
        self._client: Optional[Client] = None

    def attach(self, client: "Client") -> None:
        self._client = client

    def _say(self, text: str) -> None:
        if self._client is not None:
            self._client._emit(text)
        else:
            print(text)

    def request_file_transfer(self, recipient_id: str, file_path: str) -> None:
        self._say(
            f"[File Transfer] Requesting transfer of '{file_path}' "
            f"to client '{recipient_id}'"
        )

    def handle_message(self, msg: Message) -> None:
        self._say(
            f"[File Transfer] Received file transfer message type: {int(msg.header.type)}"
        )


def format_incoming(msg: Message) -> Optional[str]:
    """Return the console line for ``msg``, or None for file transfer messages."""
    kind = msg.header.type
    text = msg.text()
    if kind == MessageType.TEXT_MESSAGE:
        sender = msg.header.sender_id
        who = "Server" if sender == 0 else f"User {sender}"
        return f"[{who}]: {text}"
    if kind in (MessageType.CLIENT_JOINED, MessageType.CLIENT_LEFT):
        return f"[Notification]: {text}"
    if kind == MessageType.SERVER_SHUTDOWN:
        return f"[Server]: {text}. Disconnecting."
    if kind in _FILE_TRANSFER_TYPES:
        return None
    if kind == MessageType.ERROR_MESSAGE:
        return f"[Error from Server]: {text}"
    return f"Client: Received unhandled message type: {int(kind)}"


class Client:
    """A chat client with one thread receiving and one thread sending."""

    def __init__(self, output: Optional[TextIO] = None) -> None:
        self._output = output if output is not None else sys.stdout
        self._output_lock = threading.Lock()
        self._socket: Optional[ChatSocket] = None
        self._connected = threading.Event()
        self._client_id = 0
        self._send_queue: "queue.Queue[object]" = queue.Queue()
        self._buffer = bytearray()
        self._receive_thread: Optional[threading.Thread] = None
        self._send_thread: Optional[threading.Thread] = None
        self._file_transfer: FileTransferHandler = BasicFileTransferHandler()
        self._file_transfer.attach(self)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        return f"Client(connected={self.is_connected()})"

    def _emit(self, text: str) -> None:
        with self._output_lock:
            self._output.write(text + "\n")
            self._output.flush()

    def _prompt(self) -> None:
        with self._output_lock:
            self._output.write(PROMPT)
            self._output.flush()

    def is_connected(self) -> bool:
        """Return True while the connection to the server is up."""
        return self._connected.is_set()

    def connect_to_server(self, ip_address: str, port: int) -> None:
        """Connect and start the worker threads; raises SocketError on failure."""
        if self._connected.is_set():
            log.info("Client: already connected")
            return
        self.disconnect()
        sock = create_socket()
        sock.connect(ip_address, port)
        self._socket = sock
        self._buffer = bytearray()
        send_queue: "queue.Queue[object]" = queue.Queue()
        self._send_queue = send_queue
        self._connected.set()
        self._receive_thread = threading.Thread(
            target=self._receive_messages,
            args=(sock, send_queue),
            name="chat-client-receive",
            daemon=True,
        )
        self._send_thread = threading.Thread(
            target=self._send_messages,
            args=(sock, send_queue),
            name="chat-client-send",
            daemon=True,
        )
        self._receive_thread.start()
        self._send_thread.start()
        log.info("Client: connected to server %s:%d", ip_address, port)

    def disconnect(self) -> None:
        """Send what is queued, close the connection and wait for the threads."""
        if (
            self._socket is None
            and self._receive_thread is None
            and self._send_thread is None
        ):
            return
        current = threading.current_thread()
        self._send_queue.put(_STOP)
        if self._send_thread is not None and self._send_thread is not current:
            self._send_thread.join()
        self._connected.clear()
        if self._socket is not None:
            self._socket.close()
        if self._receive_thread is not None and self._receive_thread is not current:
            self._receive_thread.join()
        self._send_thread = None
        self._receive_thread = None
        self._socket = None
        self._send_queue = queue.Queue()
        log.info("Client: disconnected")

    def send_chat_message(self, text: str) -> None:
        """Queue ``text`` as a broadcast chat message."""
        if not self._connected.is_set():
            raise ConnectionError("not connected; cannot send message")
        msg = Message.from_text(MessageType.TEXT_MESSAGE, self._client_id, 0, text)
        self.add_message_to_send_queue(msg)

    def request_file_transfer(self, recipient_id: str, file_path: str) -> None:
        """Hand a file transfer request to the file transfer handler."""
        if not self._connected.is_set():
            raise ConnectionError("not connected; cannot request file transfer")
        self._file_transfer.request_file_transfer(recipient_id, file_path)

    def add_message_to_send_queue(self, msg: Message) -> None:
        """Queue ``msg`` for the send thread."""
        self._send_queue.put(msg)

    def _receive_messages(self, sock: ChatSocket, send_queue: "queue.Queue[object]") -> None:
        try:
            while self._connected.is_set():
                try:
                    chunk = sock.receive(RECEIVE_CHUNK)
                except SocketError as exc:
                    if self._connected.is_set():
                        log.warning("Client: receive error: %s", exc)
                    break
                if not chunk:
                    if self._connected.is_set():
                        log.info("Client: connection closed by server")
                    break
                self._buffer.extend(chunk)
                for msg in iter_messages(self._buffer):
                    self._process_incoming_message(msg)
                    if not self._connected.is_set():
                        break
        finally:
            self._connected.clear()
            send_queue.put(_STOP)

    def _send_messages(self, sock: ChatSocket, send_queue: "queue.Queue[object]") -> None:
        while True:
            msg = send_queue.get()
            if msg is _STOP:
                break
            try:
                sock.send(serialize_message(msg))
            except (SocketError, ValueError) as exc:
                log.warning("Client: failed to send message: %s", exc)
                self._connected.clear()
                sock.close()
                break

    def _process_incoming_message(self, msg: Message) -> None:
        line = format_incoming(msg)
        if msg.header.type == MessageType.SERVER_SHUTDOWN:
            self._connected.clear()
        if line is None:
            self._file_transfer.handle_message(msg)
        else:
            self._emit("\n" + line)
        self._prompt()