"""Chat server: accepts clients, relays their messages and cleans up after them."""

from __future__ import annotations

import itertools
import logging
import queue
import socket
import threading
from typing import List, Optional

from tcpchat.handlers import BroadcastMessageHandler, ClientHandler
from tcpchat.message import Message, MessageType
from tcpchat.sockets import SocketError, create_socket

log = logging.getLogger(__name__)


class Server:
    """A TCP chat server listening on one port."""

    def __init__(self, port: int) -> None:
        self._port = port
        self._listen_socket = create_socket()
        self._running = threading.Event()
        self._next_id = itertools.count(1)
        self._clients: List[ClientHandler] = []
        self._clients_lock = threading.Lock()
        self._finished: "queue.Queue[Optional[int]]" = queue.Queue()
        self._accept_thread: Optional[threading.Thread] = None
        self._cleanup_thread: Optional[threading.Thread] = None
        self._message_handler = BroadcastMessageHandler()
        log.info("Server created for port %d", port)

    def __enter__(self) -> "Server":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def __repr__(self) -> str:
        return f"Server(port={self.port}, running={self._running.is_set()})"

    @property
    def port(self) -> int:
        """Port actually listened on, or the requested one when not listening."""
        if self._listen_socket.is_valid():
            return self._listen_socket.port
        return self._port

    def client_ids(self) -> List[int]:
        """Identifiers of the clients currently held by the server, in join order."""
        with self._clients_lock:
            return [handler.client_id for handler in self._clients]

    def start(self) -> None:
        """Bind, listen and start serving; raises SocketError if that fails."""
        if self._running.is_set():
            return
        self._listen_socket.bind(self._port)
        try:
            self._listen_socket.listen(socket.SOMAXCONN)
        except SocketError:
            self._listen_socket.close()
            raise
        self._finished = queue.Queue()
        self._running.set()
        self._accept_thread = threading.Thread(
            target=self._accept_connections, name="chat-accept", daemon=True
        )
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_clients,
            args=(self._finished,),
            name="chat-cleanup",
            daemon=True,
        )
        self._accept_thread.start()
        self._cleanup_thread.start()
        log.info("Server started and listening on port %d", self.port)

    def stop(self) -> None:
        """Stop accepting, disconnect every client and wait for all threads."""
        if not self._running.is_set():
            return
        self._running.clear()
        log.info("Server stopping...")

        self._wake_acceptor()
        self._listen_socket.close()
        self._finished.put(None)

        for thread in (self._accept_thread, self._cleanup_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join()
        self._accept_thread = None
        self._cleanup_thread = None

        with self._clients_lock:
            handlers, self._clients = self._clients, []
        for handler in handlers:
            handler.stop()
        log.info("Server stopped")

    def is_running_properly(self) -> bool:
        """Return True while the server runs and its listening socket is open."""
        return self._running.is_set() and self._listen_socket.is_valid()

    def broadcast_message(self, msg: Message, sender_id_to_exclude: int = 0) -> None:
        """Send ``msg`` to every running client except ``sender_id_to_exclude``.

        An exclusion of 0 sends to everyone.
        """
        with self._clients_lock:
            targets = [
                handler
                for handler in self._clients
                if handler.is_running()
                and (sender_id_to_exclude == 0 or handler.client_id != sender_id_to_exclude)
            ]
        for handler in targets:
            handler.send_message(msg)

    def signal_client_finished(self, client_id: int) -> None:
        """Queue a client whose connection ended for removal."""
        log.info("Client %d signaled finished", client_id)
        self._finished.put(client_id)

    def _wake_acceptor(self) -> None:
        if not self._listen_socket.is_valid():
            return
        try:
            port = self._listen_socket.port
            with socket.create_connection(("127.0.0.1", port), timeout=1):
                pass
        except OSError:
            pass

    def _accept_connections(self) -> None:
        log.debug("Accept thread started")
        while self._running.is_set():
            if not self._listen_socket.is_valid():
                break
            conn = self._listen_socket.accept()
            if conn is None or not conn.is_valid():
                if not self._listen_socket.is_valid():
                    break
                continue
            if not self._running.is_set():
                conn.close()
                break

            client_id = next(self._next_id)
            log.info("Accepted new connection as client %d", client_id)
            handler = ClientHandler(client_id, conn, self, self._message_handler)
            with self._clients_lock:
                self._clients.append(handler)
            handler.start()

            joined = Message.from_text(
                MessageType.CLIENT_JOINED, client_id, 0, f"Client {client_id} joined."
            )
            self.broadcast_message(joined, client_id)
        log.debug("Accept thread finished")

    def _cleanup_clients(self, finished: "queue.Queue[Optional[int]]") -> None:
        log.debug("Cleanup thread started")
        while True:
            client_id = finished.get()
            if client_id is None:
                break
            self._remove_client(client_id)
        log.debug("Cleanup thread finished")

    def _remove_client(self, client_id: int) -> None:
        with self._clients_lock:
            handler = next(
                (h for h in self._clients if h.client_id == client_id), None
            )
            if handler is not None:
                self._clients.remove(handler)
        if handler is None:
            log.info("Client %d not found for removal", client_id)
            return
        handler.stop()
        log.info("Client %d removed", client_id)
        left = Message.from_text(
            MessageType.CLIENT_LEFT, client_id, 0, f"Client {client_id} left."
        )
        self.broadcast_message(left)