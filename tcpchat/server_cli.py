"""Command that runs the chat server until interrupted."""

from __future__ import annotations

import logging
import re
import signal
import sys
import time
from typing import List, Optional, Sequence

from tcpchat.server import Server
from tcpchat.sockets import SocketError

DEFAULT_PORT = 8080

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


def parse_port(argv: Sequence[str]) -> int:
    """Return the port named by the first argument, or the default.

    Leading digits are used, as with a lenient integer parse; an argument
    that does not start with a number falls back to the default with a
    warning on stderr.
    """
    if not argv:
        return DEFAULT_PORT
    text = argv[0]
    match = _INT_PREFIX.match(text)
    if match:
        value = int(match.group(1))
        if _INT_MIN <= value <= _INT_MAX:
            return value
    print(
        f"Invalid port number: {text}. Using default {DEFAULT_PORT}",
        file=sys.stderr,
    )
    return DEFAULT_PORT


def main(argv: Optional[List[str]] = None) -> int:
    """Run the server on the port given in ``argv`` until a signal stops it."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = sys.argv[1:] if argv is None else list(argv)
    port = parse_port(args)
    server = Server(port)

    def _on_signal(signum, frame):
        print(f"\nInterrupt signal ({signum}) received.")
        print("Shutting down server...")
        server.stop()
        raise SystemExit(signum)

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        try:
            server.start()
        except SocketError as exc:
            print(f"Server: failed to start on port {port}: {exc}", file=sys.stderr)
            return 1
        print("Server is running. Press Ctrl+C to exit.")
        while server.is_running_properly():
            time.sleep(1)
        return 0
    finally:
        server.stop()
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)


if __name__ == "__main__":
    sys.exit(main())