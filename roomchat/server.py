"""Chat room server: accepts clients, relays their messages and keeps history."""

from __future__ import annotations

import argparse
import errno
import select
import socket
import sys
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from roomchat.history import DEFAULT_HISTORY_PATH, HistoryFile
from roomchat.protocol import (
    DEFAULT_PORT,
    ENCODING,
    RECV_SIZE,
    parse_client_message,
    system_message,
)

DEFAULT_BIND_HOST = "0.0.0.0"
LISTEN_BACKLOG = 5
POLL_INTERVAL = 1.0
HISTORY_SEND_DELAY = 0.02

WAITING_LINE = "等待客户端连接……"
WELCOME_MESSAGE = "欢迎来到聊天室！"
CLIENT_LABEL = "客户端"


def _peer_label(address: tuple[str, int]) -> str:
    host, port = address[0], address[1]
    return f"<{host}:{port}>"


class ChatServer:
    """A select-driven chat room that relays each client's lines to the others.

    Every line the server would show its operator is returned from :meth:`poll`
    and handed to :attr:`on_display` by :meth:`serve_forever`.
    """

    def __init__(
        self,
        host: str = DEFAULT_BIND_HOST,
        port: int = DEFAULT_PORT,
        history: HistoryFile | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.history = history if history is not None else HistoryFile()
        self.on_display: Callable[[str], None] = print
        self._listener: socket.socket | None = None
        self._clients: dict[socket.socket, tuple[str, int]] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        """The address the listening socket is bound to."""
        if self._listener is None:
            raise RuntimeError("server is not started")
        host, port = self._listener.getsockname()[:2]
        return host, port

    @property
    def client_count(self) -> int:
        """Number of clients currently connected."""
        with self._lock:
            return len(self._clients)

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> str:
        """Bind and listen; return the line announcing that clients are awaited.

        Raises ``OSError`` if the history file cannot be read or the address
        cannot be bound.
        """
        if self._listener is not None:
            raise RuntimeError("server is already started")
        if self._closed:
            raise RuntimeError("server is closed")
        self.history.check_readable()
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((self.host, self.port))
            listener.listen(LISTEN_BACKLOG)
        except OSError:
            listener.close()
            raise
        self._listener = listener
        return WAITING_LINE

    def poll(self, timeout: float | None = POLL_INTERVAL) -> list[str]:
        """Wait up to ``timeout`` seconds for activity and handle it.

        Returns the display lines produced while handling it.
        """
        if self._listener is None:
            raise RuntimeError("server is not started")
        if self._closed:
            return []
        with self._lock:
            readers = [self._listener, *self._clients]
        try:
            readable, _, _ = select.select(readers, [], [], timeout)
        except (OSError, ValueError) as exc:
            if self._closed:
                return []
            return ["select 函数调用失败！", f"错误码：{getattr(exc, 'errno', None)}"]

        lines: list[str] = []
        for sock in readable:
            if sock is self._listener:
                lines.extend(self._accept())
            else:
                with self._lock:
                    known = sock in self._clients
                if known:
                    lines.extend(self._receive(sock))
        return lines

    def serve_forever(self) -> None:
        """Poll until the server is closed, displaying every line produced."""
        if self._listener is None:
            raise RuntimeError("server is not started")
        while not self._closed:
            for line in self.poll(POLL_INTERVAL):
                self.on_display(line)

    def broadcast_system(self, text: str) -> str:
        """Send an operator announcement to every client and record it."""
        message = system_message(text)
        payload = message.encode(ENCODING)
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            try:
                client.sendall(payload)
            except OSError as exc:
                raise ConnectionError("发送数据失败！") from exc
        self.history.append(message)
        return message

    def close(self) -> None:
        """Close every client connection and the listening socket."""
        self._closed = True
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for client in clients:
            client.close()
        if self._listener is not None:
            self._listener.close()

    def __enter__(self) -> ChatServer:
        if self._listener is None:
            self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _accept(self) -> list[str]:
        assert self._listener is not None
        try:
            conn, addr = self._listener.accept()
        except OSError:
            return ["accept 调用失败"]

        try:
            for line in self.history.lines():
                conn.sendall(line.encode(ENCODING))
                time.sleep(HISTORY_SEND_DELAY)
        except OSError as exc:
            conn.close()
            raise ConnectionError("消息同步失败！") from exc

        lines = [f"{CLIENT_LABEL}{_peer_label(addr)}连接成功！"]
        try:
            conn.sendall(WELCOME_MESSAGE.encode(ENCODING))
        except OSError:
            conn.close()
            lines.append("转发数据失败！")
            return lines
        with self._lock:
            self._clients[conn] = (addr[0], addr[1])
        return lines

    def _drop(self, sock: socket.socket, reason: str) -> list[str]:
        with self._lock:
            peer = self._clients.pop(sock)
        sock.close()
        return [f"{CLIENT_LABEL}{_peer_label(peer)}{reason}"]

    def _receive(self, sock: socket.socket) -> list[str]:
        with self._lock:
            peer = self._clients[sock]
        try:
            data = sock.recv(RECV_SIZE)
        except BlockingIOError:
            return []
        except OSError as exc:
            if isinstance(exc, ConnectionResetError) or exc.errno == errno.ENOTCONN:
                return self._drop(sock, "断开连接")
            raise
        if not data:
            return self._drop(sock, "退出了聊天室")

        text = data.decode(ENCODING, errors="replace")
        lines = [f"{CLIENT_LABEL}{_peer_label(peer)}:{text}"]
        relayed = parse_client_message(data).to_broadcast()
        self.history.append(relayed)
        payload = relayed.encode(ENCODING)
        with self._lock:
            others = [client for client in self._clients if client is not sock]
        for client in others:
            try:
                client.sendall(payload)
            except OSError as exc:
                raise ConnectionError("转发数据失败！") from exc
        return lines


def main(argv: Sequence[str] | None = None) -> int:
    """Run the chat server; lines typed on standard input are announced."""
    parser = argparse.ArgumentParser(prog="roomchat-server", description="Run a chat room server.")
    parser.add_argument("--host", default=DEFAULT_BIND_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--history", type=Path, default=DEFAULT_HISTORY_PATH)
    args = parser.parse_args(argv)

    server = ChatServer(args.host, args.port, HistoryFile(args.history))
    try:
        print(server.start(), flush=True)
    except OSError as exc:
        print(f"无法启动服务器：{exc}", file=sys.stderr)
        server.close()
        return 1

    server.on_display = lambda line: print(line, flush=True)
    worker = threading.Thread(target=server.serve_forever, daemon=True)
    worker.start()
    try:
        for raw in sys.stdin:
            text = raw.rstrip("\r\n")
            if not text:
                continue
            try:
                print(server.broadcast_system(text), flush=True)
            except ConnectionError as exc:
                print(exc, file=sys.stderr)
    except KeyboardInterrupt:
        pass
    finally:
        server.close()
        worker.join(timeout=2 * POLL_INTERVAL)
    return 0


if __name__ == "__main__":
    sys.exit(main())