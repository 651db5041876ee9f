import io
import socket
from datetime import datetime

import pytest

from roomchat.history import HistoryFile
from roomchat.protocol import encode_client_message
from roomchat.server import WAITING_LINE, WELCOME_MESSAGE, ChatServer, main


@pytest.fixture
def history(tmp_path):
    path = tmp_path / "history.info"
    path.touch()
    return HistoryFile(path)


@pytest.fixture
def server(history):
    srv = ChatServer("127.0.0.1", 0, history)
    srv.start()
    yield srv
    srv.close()


def poll_until(server, predicate, attempts=40):
    collected = []
    for _ in range(attempts):
        collected.extend(server.poll(0.1))
        if predicate(collected):
            return collected
    raise AssertionError(f"condition not met, got {collected!r}")


def read_exact(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def connect(server):
    sock = socket.create_connection(server.address, timeout=2)
    lines = poll_until(server, lambda ls: any("连接成功" in line for line in ls))
    return sock, lines


def test_start_returns_waiting_line(history):
    srv = ChatServer("127.0.0.1", 0, history)
    try:
        assert srv.start() == WAITING_LINE
        assert srv.address[1] > 0
    finally:
        srv.close()


def test_start_without_history_file_fails(tmp_path):
    srv = ChatServer("127.0.0.1", 0, HistoryFile(tmp_path / "missing.info"))
    with pytest.raises(FileNotFoundError):
        srv.start()
    srv.close()


def test_start_twice_is_rejected(server):
    with pytest.raises(RuntimeError):
        server.start()


def test_poll_before_start_is_rejected(history):
    srv = ChatServer("127.0.0.1", 0, history)
    with pytest.raises(RuntimeError):
        srv.poll(0)


def test_new_client_gets_welcome(server):
    sock, lines = connect(server)
    with sock:
        port = sock.getsockname()[1]
        assert f"客户端<127.0.0.1:{port}>连接成功！" in lines
        expected = WELCOME_MESSAGE.encode("utf-8")
        assert read_exact(sock, len(expected)) == expected
        assert expected == "欢迎来到聊天室！".encode("utf-8")
        assert server.client_count == 1


def test_new_client_receives_history_first(server, history):
    history.append("[01:02:03]<bob>:earlier")
    sock, _ = connect(server)
    with sock:
        expected = "[01:02:03]<bob>:earlier".encode("utf-8") + WELCOME_MESSAGE.encode("utf-8")
        assert read_exact(sock, len(expected)) == expected


def test_message_is_relayed_to_others_and_stored(server, history):
    alice, _ = connect(server)
    bob, _ = connect(server)
    with alice, bob:
        welcome = WELCOME_MESSAGE.encode("utf-8")
        read_exact(alice, len(welcome))
        read_exact(bob, len(welcome))

        alice.sendall(encode_client_message("hi", "alice", datetime(2024, 1, 2, 3, 4, 5)))
        lines = poll_until(server, lambda ls: any("alice" in line for line in ls))

        port = alice.getsockname()[1]
        assert f"客户端<127.0.0.1:{port}>:hi[03:04:05]<username>alice</username>" in lines

        relayed = "[03:04:05]<alice>:hi".encode("utf-8")
        assert read_exact(bob, len(relayed)) == relayed
        assert history.lines() == ["[03:04:05]<alice>:hi"]

        alice.settimeout(0.2)
        with pytest.raises(socket.timeout):
            alice.recv(100)


def test_broadcast_system_reaches_clients(server, history):
    sock, _ = connect(server)
    with sock:
        welcome = WELCOME_MESSAGE.encode("utf-8")
        read_exact(sock, len(welcome))
        message = server.broadcast_system("hello")
        assert message == "系统消息：hello"
        expected = message.encode("utf-8")
        assert read_exact(sock, len(expected)) == expected
        assert history.lines() == ["系统消息：hello"]


def test_broadcast_system_rejects_empty(server, history):
    with pytest.raises(ValueError):
        server.broadcast_system("")
    assert history.lines() == []


def test_context_manager_closes(history):
    with ChatServer("127.0.0.1", 0, history) as srv:
        assert srv.closed is False
    assert srv.closed is True
    assert srv.poll(0) == []


def test_main_announces_stdin_lines(history, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("hello\n\n"))
    code = main(["--host", "127.0.0.1", "--port", "0", "--history", str(history.path)])
    out = capsys.readouterr().out
    assert code == 0
    assert WAITING_LINE in out
    assert "系统消息：hello" in out
    assert history.lines() == ["系统消息：hello"]


def test_main_fails_without_history(tmp_path, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    code = main(["--host", "127.0.0.1", "--port", "0", "--history", str(tmp_path / "none.info")])
    assert code == 1