"""Chat room client: connects to a server, sends lines and shows what arrives."""

from __future__ import annotations

import argparse
import socket
import sys
import threading
from collections.abc import Sequence
from datetime import datetime

from roomchat.protocol import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ENCODING,
    RECV_SIZE,
    encode_client_message,
    format_timestamp,
    is_exit_word,
)

CONNECT_TIMEOUT = 1.0
SELF_LABEL = "<我>:"
CONNECTED_LINE = "客户端连接服务器成功"
DISCONNECTED = "与服务器断开连接！"


class ExitRequested(Exception):
    """Raised when the user types a word that ends the session."""


class ChatClient:
    """One user's connection to a chat room server."""

    def __init__(self, username: str) -> None:
        self.username = username
        self._sock: socket.socket | None = None

    @property
    def connected(self) -> bool:
        """Whether the client currently holds an open connection."""
        return self._sock is not None

    def connect(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                timeout: float = CONNECT_TIMEOUT) -> None:
        """Connect to the server at ``host``:``port``.

        Raises ``ValueError`` for an address that is not dotted IPv4 or a port
        out of range, ``TimeoutError`` when the server does not answer in time
        and ``ConnectionError`` for any other failure.
        """
        if self._sock is not None:
            raise RuntimeError("client is already connected")
        try:
            socket.inet_pton(socket.AF_INET, host)
        except (OSError, ValueError) as exc:
            raise ValueError("无效的 IP 地址！") from exc
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"invalid port: {port}")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect((host, port))
        except TimeoutError as exc:
            sock.close()
            raise TimeoutError("连接超时，无法连接到服务器") from exc
        except OSError as exc:
            sock.close()
            raise ConnectionError(
                f"客户端连接服务器失败，错误代码: {exc.errno}"
            ) from exc
        sock.settimeout(None)
        self._sock = sock

    def send(self, text: str, when: datetime | None = None) -> str | None:
        """Send ``text`` to the room and return the line to show locally.

        Empty text sends nothing and returns ``None``. An exit word closes the
        connection and raises :class:`ExitRequested`.
        """
        if self._sock is None:
            raise ConnectionError(DISCONNECTED)
        if not text:
            return None
        if is_exit_word(text):
            self.close()
            raise ExitRequested(text)
        stamp = when if when is not None else datetime.now()
        payload = encode_client_message(text, self.username, stamp)
        try:
            self._sock.sendall(payload)
        except OSError as exc:
            raise ConnectionError(DISCONNECTED) from exc
        return f"{format_timestamp(stamp)}{SELF_LABEL}{text}"

    def receive(self) -> str:
        """Block until data arrives from the server and return it as text.

        Raises ``ConnectionError`` when the server closes the connection or
        the read fails.
        """
        if self._sock is None:
            raise ConnectionError(DISCONNECTED)
        try:
            data = self._sock.recv(RECV_SIZE)
        except OSError as exc:
            raise ConnectionError("接收消息时出错") from exc
        if not data:
            self.close()
            raise ConnectionError(DISCONNECTED)
        return data.decode(ENCODING, errors="replace")

    def close(self) -> None:
        """Close the connection; closing twice is harmless."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()

    def __enter__(self) -> ChatClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _print_incoming(client: ChatClient) -> None:
    while client.connected:
        try:
            line = client.receive()
        except ConnectionError as exc:
            if client.connected or str(exc) == DISCONNECTED:
                print(exc, file=sys.stderr, flush=True)
            return
        print(line, flush=True)


def main(argv: Sequence[str] | None = None) -> int:
    """Join a chat room and relay standard input to it."""
    parser = argparse.ArgumentParser(prog="roomchat-client", description="Join a chat room.")
    parser.add_argument("username")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=CONNECT_TIMEOUT)
    args = parser.parse_args(argv)

    with ChatClient(args.username) as client:
        try:
            client.connect(args.host, args.port, args.timeout)
        except (ValueError, OSError) as exc:
            print(exc, file=sys.stderr)
            return 1
        print(CONNECTED_LINE, flush=True)

        reader = threading.Thread(target=_print_incoming, args=(client,), daemon=True)
        reader.start()
        try:
            for raw in sys.stdin:
                try:
                    shown = client.send(raw.rstrip("\r\n"))
                except ExitRequested:
                    return 0
                except ConnectionError as exc:
                    print(exc, file=sys.stderr)
                    return 1
                if shown is not None:
                    print(shown, flush=True)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())