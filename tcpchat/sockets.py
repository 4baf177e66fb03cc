"""Thin TCP socket wrapper used by the chat server and client."""

from __future__ import annotations

import socket
import threading
from typing import Optional


class SocketError(OSError):
    """Raised when a socket operation fails."""


class ChatSocket:
    """An IPv4 TCP socket that may be connected, listening or closed."""

    def __init__(self, sock: Optional[socket.socket] = None) -> None:
        self._sock = sock
        self._lock = threading.Lock()

    def __enter__(self) -> "ChatSocket":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ChatSocket(fd={self.fileno()})"

    def _install(self, sock: socket.socket) -> None:
        with self._lock:
            old, self._sock = self._sock, sock
        if old is not None:
            old.close()

    def _require(self) -> socket.socket:
        sock = self._sock
        if sock is None:
            raise SocketError("socket is closed")
        return sock

    def connect(self, ip_address: str, port: int) -> None:
        """Connect to ``ip_address`` (dotted IPv4) on ``port``."""
        try:
            socket.inet_pton(socket.AF_INET, ip_address)
        except (OSError, TypeError) as exc:
            raise SocketError(f"invalid address: {ip_address!r}") from exc
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.connect((ip_address, port))
        except (OSError, OverflowError) as exc:
            sock.close()
            raise SocketError(f"connection to {ip_address}:{port} failed: {exc}") from exc
        self._install(sock)

    def bind(self, port: int) -> None:
        """Bind to ``port`` on all interfaces with address reuse enabled."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", port))
        except (OSError, OverflowError) as exc:
            sock.close()
            raise SocketError(f"bind to port {port} failed: {exc}") from exc
        self._install(sock)

    def listen(self, backlog: int = socket.SOMAXCONN) -> None:
        """Start accepting connections."""
        sock = self._require()
        try:
            sock.listen(backlog)
        except OSError as exc:
            raise SocketError(f"listen failed: {exc}") from exc

    def accept(self) -> Optional["ChatSocket"]:
        """Wait for a connection; return None if the socket was closed or failed."""
        sock = self._sock
        if sock is None:
            return None
        try:
            conn, _ = sock.accept()
        except OSError:
            return None
        return ChatSocket(conn)

    def send(self, data: bytes) -> int:
        """Send all of ``data`` and return the number of bytes sent."""
        if not data:
            raise ValueError("nothing to send")
        sock = self._require()
        try:
            sock.sendall(data)
        except OSError as exc:
            raise SocketError(f"send failed: {exc}") from exc
        return len(data)

    def receive(self, max_len: int = 4096) -> bytes:
        """Receive up to ``max_len`` bytes; an empty result means the peer closed."""
        if max_len <= 0:
            raise ValueError("max_len must be positive")
        sock = self._require()
        try:
            return sock.recv(max_len)
        except OSError as exc:
            raise SocketError(f"receive failed: {exc}") from exc

    def close(self) -> None:
        """Shut down and close the socket; safe to call more than once."""
        with self._lock:
            sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def is_valid(self) -> bool:
        """Return True while the socket is open."""
        return self._sock is not None

    def fileno(self) -> int:
        """Return the underlying descriptor, or -1 once closed."""
        sock = self._sock
        return sock.fileno() if sock is not None else -1

    @property
    def port(self) -> int:
        """Local port the socket is bound to."""
        sock = self._require()
        return sock.getsockname()[1]


def create_socket() -> ChatSocket:
    """Return a new, not yet opened, chat socket."""
    return ChatSocket()