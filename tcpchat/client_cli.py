"""Command that runs an interactive chat client on the terminal."""

from __future__ import annotations

import sys
from typing import List, NamedTuple, Optional, Sequence, Tuple

from tcpchat.client import PROMPT, Client
from tcpchat.server_cli import DEFAULT_PORT, parse_port
from tcpchat.sockets import SocketError

DEFAULT_HOST = "127.0.0.1"
USAGE = "Usage: /file <recipient_id> <file_path>"


class _Command(NamedTuple):
    kind: str
    args: Tuple[str, ...]


def parse_args(argv: Sequence[str]) -> Tuple[str, int]:
    """Return the server address and port named by ``argv``, with defaults."""
    host = argv[0] if len(argv) > 0 else DEFAULT_HOST
    port = parse_port([argv[1]]) if len(argv) > 1 else DEFAULT_PORT
    return host, port


def _split(line: str) -> List[str]:
    parts = line.split(" ")
    if parts and parts[-1] == "":
        parts.pop()
    return parts


def parse_command(line: str) -> _Command:
    """Classify one input line as quit, file, usage, chat or none."""
    if line == "/quit":
        return _Command("quit", ())
    if line.startswith("/file"):
        parts = _split(line)
        if len(parts) == 3:
            return _Command("file", (parts[1], parts[2]))
        return _Command("usage", ())
    if not line:
        return _Command("none", ())
    return _Command("chat", (line,))


def main(argv: Optional[List[str]] = None) -> int:
    """Connect to the server and relay lines typed on stdin until /quit or EOF."""
    args = sys.argv[1:] if argv is None else list(argv)
    host, port = parse_args(args)
    client = Client()
    try:
        client.connect_to_server(host, port)
    except SocketError as exc:
        print(f"Client: Failed to connect to server {host}:{port}: {exc}", file=sys.stderr)
        return 1

    with client:
        print("Connected to server. Type '/quit' to exit.")
        print("Type '/file <recipient_id> <file_path>' to request a file transfer.")
        while True:
            print(PROMPT, end="", flush=True)
            raw = sys.stdin.readline()
            if raw == "":
                break
            command = parse_command(raw.removesuffix("\n"))
            if command.kind == "quit":
                break
            try:
                if command.kind == "file":
                    client.request_file_transfer(*command.args)
                elif command.kind == "usage":
                    print(USAGE)
                elif command.kind == "chat":
                    client.send_chat_message(command.args[0])
            except ConnectionError as exc:
                print(f"Client: {exc}", file=sys.stderr)
    print("Exiting client.")
    return 0


if __name__ == "__main__":
    sys.exit(main())