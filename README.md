# roomchat

A small chat room over plain TCP. One server accepts any number of clients.
Each message a client sends goes out to every other client. Each message is
also appended to a history file. That file is replayed to anyone who joins
later.

## Install

```
pip install .
```

## Running the server

```
roomchat-server [--host HOST] [--port PORT] [--history PATH]
```

The defaults are host `0.0.0.0`, port 5566, and history file
`../history.info`, relative to the working directory. The history file must
already exist and be readable. If it does not, or the address cannot be
bound, the server prints an error and exits with status 1.

When a client connects, the server does three things in order:

1. It sends the client every line stored in the history file.
2. It sends a welcome line.
3. From then on, it relays that client's messages to everyone else in the room.

Joins, messages and departures are printed on the server's console.

Each non-empty line typed at the server's console is sent to all clients as a
system message. It is also recorded in the history. Stop the server with
Ctrl-C or end of input.

## Running the client

```
roomchat-client NAME [--host HOST] [--port PORT] [--timeout SECONDS]
```

- `NAME` is the user name shown to others.
- By default the client connects to `127.0.0.1:5566` with a one-second timeout.
- The host must be a dotted IPv4 address.

Type a line and press Enter to send it. The client echoes the line locally as
`[HH:MM:SS]<我>:message`. Incoming messages are printed as they arrive.

To leave, type any of `bye`, `quit`, `exit` or `886`, in any letter case.

## Wire format

A client sends:

```
message[HH:MM:SS]<username>name</username>
```

The server passes this on to the other clients as:

```
[HH:MM:SS]<name>:message
```

The server appends each relayed line to the history file. System messages are
prefixed with `系统消息：`.

## Using it from Python

```python
from roomchat.history import HistoryFile
from roomchat.server import ChatServer

with ChatServer("0.0.0.0", 5566, HistoryFile("history.info")) as server:
    server.serve_forever()
```

Entering the `with` block starts the server if it has not been started. For
finer control, call `ChatServer.start()` and then `ChatServer.poll(timeout)`
yourself. `poll` returns the display lines it produced.
`ChatServer.broadcast_system(text)` sends an announcement to every client.

```python
from roomchat.client import ChatClient

with ChatClient("alice") as client:
    client.connect("127.0.0.1", 5566, 1.0)
    client.send("hello", None)
    print(client.receive())
```

`ChatClient.send` raises `roomchat.client.ExitRequested` when given an exit
word, and closes the connection.

The helpers in `roomchat.protocol` build and parse messages without a network:

- `encode_client_message`
- `parse_client_message`, which returns a `ChatMessage`
- `ChatMessage.to_broadcast`
- `system_message`
- `is_exit_word`
- `format_timestamp`

`roomchat.history.HistoryFile` reads and appends the history file.

## What it does not do

- There are no user accounts, passwords or sign-in. The name a client gives
  is taken as it is.
- Both programs are console programs. There is no graphical window.
- Messages are not encrypted.