# tcpchat

A small chat system over TCP: a server that accepts many clients and relays
their text messages to every other client, and an interactive console client.

Every message on the wire is a 16-byte header followed by a payload. The
header holds the message type (one byte, then three bytes of padding), the
sender id, the recipient id and the payload length, each a little-endian
32-bit unsigned integer.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Running the server

```
tcpchat-server [PORT]
```

The port defaults to 8080. Leading digits of the argument are used; if it
does not start with a number, the server reports that on stderr and uses the
default. If the server cannot bind or listen, it reports the error and exits
with status 1. Ctrl+C (SIGINT) or SIGTERM stops the server and disconnects
every client. Progress is logged to stderr.

The server numbers clients from 1 as they connect. When a client connects,
the other clients get a `CLIENT_JOINED` notice ("Client N joined."); when one
leaves, every remaining client gets a `CLIENT_LEFT` notice ("Client N left.").
A text message from a client is stamped with that client's id and sent to
every other connected client. Other message types sent by clients are logged
and otherwise ignored.

## Running the client

```
tcpchat-client [HOST] [PORT]
```

The host defaults to `127.0.0.1` and the port to 8080; the port argument is
read the same way as the server's. If the connection fails the client exits
with status 1. Once connected, type a line and press Enter to send it to the
chat. Empty lines are ignored. The client also takes these commands:

- `/quit` ends the session. End of input does the same.
- `/file <recipient_id> <file_path>` requests a file transfer. Any other form
  of a line starting with `/file` prints the usage line.

Incoming messages are shown as:

- `[User N]: text` for a text message from client N, `[Server]: text` for a
  text message with sender id 0;
- `[Notification]: ...` for join and leave notices;
- `[Server]: text. Disconnecting.` for a server shutdown message, after which
  the client stops receiving;
- `[Error from Server]: text` for an error message.

## Using the library

The modules are:

- `tcpchat.message`: `MessageType`, `MessageHeader`, `Message`,
  `serialize_message`, `deserialize_header`, `deserialize_message_from_buffer`,
  `iter_messages` and `IncompleteMessageError`.
- `tcpchat.sockets`: `ChatSocket`, a TCP socket wrapper that raises
  `SocketError`, and `create_socket`.
- `tcpchat.handlers`: `ClientHandler`, which serves one connection on a
  thread, and the `MessageHandler` strategy with its `BroadcastMessageHandler`.
- `tcpchat.server`: `Server`.
- `tcpchat.client`: `Client`, `format_incoming` and the
  `FileTransferHandler` / `BasicFileTransferHandler` strategy.
- `tcpchat.server_cli` and `tcpchat.client_cli`: the two commands.

Framing messages:

```python
from tcpchat.message import Message, MessageType, serialize_message, iter_messages

msg = Message.from_text(MessageType.TEXT_MESSAGE, 1, 0, "hello")
wire = bytearray(serialize_message(msg))
for received in iter_messages(wire):
    print(received.text())
```

`iter_messages` consumes every whole message at the front of the buffer and
leaves an incomplete trailing message in place;
`deserialize_message_from_buffer` raises `IncompleteMessageError` in that case.

Embedding the server and the client:

```python
from tcpchat.server import Server
from tcpchat.client import Client

server = Server(0)      # 0 picks a free port
server.start()          # raises SocketError if binding fails

client = Client()       # writes incoming messages to stdout by default
client.connect_to_server("127.0.0.1", server.port)
client.send_chat_message("hello")
client.disconnect()     # sends what is queued, then closes
server.stop()
```

`Server` and `Client` can also be used as context managers. `send_chat_message`
and `request_file_transfer` raise `ConnectionError` when the client is not
connected.

## What it does not do

- File transfer is not carried out. `BasicFileTransferHandler` only prints a
  line for a request and for each file transfer message received; no file is
  read, sent or written.
- The client is never told its own id; it sends with sender id 0 and the
  server fills in the real one.
- The recipient id is not used for routing: there are no private messages.
- There is no login, no authentication, no encryption and no message history.