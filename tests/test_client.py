import socket

import pytest

from rmdb.client import (
    decode_reply,
    is_exit_command,
    main,
    open_connection,
    run_session,
)


def _lines(*lines):
    items = iter(lines)

    def read_line(prompt):
        assert prompt == "Rucbase> "
        return next(items, None)

    return read_line


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.mark.parametrize("cmd", ["exit", "exit;", "bye", "bye;"])
def test_exit_commands(cmd):
    assert is_exit_command(cmd) is True


@pytest.mark.parametrize("cmd", ["EXIT", "exit ", "quit", "", "select * from t;"])
def test_non_exit_commands(cmd):
    assert is_exit_command(cmd) is False


def test_decode_reply_stops_at_nul():
    assert decode_reply(b"abc\0def") == "abc"


def test_decode_reply_without_nul():
    assert decode_reply(b"hello world") == "hello world"


def test_decode_reply_empty():
    assert decode_reply(b"") == ""
    assert decode_reply(b"\0tail") == ""


def test_run_session_sends_command_and_prints_reply():
    client, server = socket.socketpair()
    with client, server:
        server.sendall(b"| a |\n\0junk")
        out = []
        run_session(client, _lines("select a from t;"), out.append)
        assert server.recv(1024) == b"select a from t;\0"
        assert out == ["| a |\n"]


def test_run_session_exit_sends_nothing():
    client, server = socket.socketpair()
    with server:
        out = []
        run_session(client, _lines("exit"), out.append)
        client.close()
        assert out == ["The client will be closed.\n"]
        assert server.recv(1024) == b""


def test_run_session_skips_empty_lines():
    client, server = socket.socketpair()
    with server:
        out = []
        run_session(client, _lines("", "", "bye;"), out.append)
        client.close()
        assert server.recv(1024) == b""
        assert out == ["The client will be closed.\n"]


def test_run_session_stops_at_end_of_input():
    client, server = socket.socketpair()
    with server:
        out = []
        run_session(client, _lines(), out.append)
        client.close()
        assert out == []
        assert server.recv(1024) == b""


def test_run_session_reports_closed_connection():
    client, server = socket.socketpair()
    with client, server:
        server.shutdown(socket.SHUT_WR)
        out = []
        run_session(client, _lines("help;", "show tables;"), out.append)
        assert out == ["Connection has been closed\n"]
        assert server.recv(1024) == b"help;\0"


def test_open_connection_tcp_round_trip():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        sock = open_connection("127.0.0.1", port, None)
        with sock:
            assert sock.getpeername() == ("127.0.0.1", port)
            conn, _ = listener.accept()
            with conn:
                sock.sendall(b"ping\0")
                assert conn.recv(16) == b"ping\0"
                conn.sendall(b"pong\0")
                assert sock.recv(16) == b"pong\0"


def test_open_connection_refused():
    port = _free_port()
    with pytest.raises(ConnectionError):
        open_connection("127.0.0.1", port, None)


def test_main_returns_1_when_server_unreachable(capsys):
    port = _free_port()
    assert main(["-h", "127.0.0.1", "-p", str(port)]) == 1
    assert "Failed to connect" in capsys.readouterr().err


def test_main_exits_cleanly_on_end_of_input(monkeypatch, capsys):
    def no_input(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", no_input)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        assert main(["-h", "127.0.0.1", "-p", str(port)]) == 0
    assert capsys.readouterr().out.endswith("Bye.\n")