"""Multi-client TCP chat server and console client with a fixed-header message format."""

__version__ = "0.1.0"
__all__ = ["message", "sockets", "handlers", "server", "server_cli", "client", "client_cli"]