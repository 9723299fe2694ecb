"""Interactive command-line client that sends SQL statements to a database server."""

from __future__ import annotations

import argparse
import re
import socket
import sys
from typing import Callable, Optional, Sequence

MAX_MEM_BUFFER_SIZE = 8192
PORT_DEFAULT = 8765
HOST_DEFAULT = "127.0.0.1"
PROMPT = "Rucbase> "

_EXIT_COMMANDS = frozenset({"exit", "exit;", "bye", "bye;"})
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def is_exit_command(cmd: str) -> bool:
    """Whether ``cmd`` asks the client to quit."""
    return cmd in _EXIT_COMMANDS


def open_connection(
    host: str = HOST_DEFAULT, port: int = PORT_DEFAULT, unix_socket_path: Optional[str] = None
) -> socket.socket:
    """Connect to the server over a Unix socket when a path is given, otherwise over TCP.

    Raises :class:`ConnectionError` when the server cannot be reached.
    """
    if unix_socket_path is not None:
        if not hasattr(socket, "AF_UNIX"):
            raise ConnectionError("failed to create unix socket. not supported on this platform")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(unix_socket_path)
        except OSError as exc:
            sock.close()
            raise ConnectionError(
                f"failed to connect to server. unix socket path '{unix_socket_path}'. "
                f"error {exc.strerror or exc}"
            ) from exc
        return sock

    try:
        address = socket.gethostbyname(host)
    except OSError as exc:
        raise ConnectionError(f"gethostbyname failed. errmsg={exc.errno}:{exc.strerror or exc}") from exc
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((address, port))
    except OSError as exc:
        sock.close()
        raise ConnectionError(f"Failed to connect. errmsg={exc.errno}:{exc.strerror or exc}") from exc
    return sock


def decode_reply(data: bytes) -> str:
    """Text of a server reply, up to its first NUL byte."""
    text, _, _ = bytes(data).partition(b"\0")
    return text.decode("utf-8", errors="replace")


def _read_line(prompt: str) -> Optional[str]:
    try:
        return input(prompt)
    except EOFError:
        return None


def run_session(
    sock: socket.socket,
    read_line: Callable[[str], Optional[str]] = _read_line,
    write: Callable[[str], object] = sys.stdout.write,
) -> None:
    """Read commands until end of input or an exit command, printing each server reply.

    ``read_line`` receives the prompt and returns a line, or ``None`` at end of input.
    Errors while sending propagate as :class:`OSError`.
    """
    while True:
        command = read_line(PROMPT)
        if command is None:
            break
        if not command:
            continue
        if is_exit_command(command):
            write("The client will be closed.\n")
            break
        sock.sendall(command.encode("utf-8") + b"\0")
        try:
            reply = sock.recv(MAX_MEM_BUFFER_SIZE)
        except OSError as exc:
            sys.stderr.write(f"Connection was broken: {exc.strerror or exc}\n")
            break
        if not reply:
            write("Connection has been closed\n")
            break
        write(decode_reply(reply))


def _parse_port(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rmdb-client", add_help=False)
    parser.add_argument("-s", dest="unix_socket_path", default=None)
    parser.add_argument("-h", dest="host", default=HOST_DEFAULT)
    parser.add_argument("-p", dest="port", type=_parse_port, default=PORT_DEFAULT)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the interactive client; returns the process exit status."""
    args = _build_parser().parse_args(argv)
    try:
        sock = open_connection(args.host, args.port, args.unix_socket_path)
    except ConnectionError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1

    try:
        import readline  # noqa: F401  (enables line editing and history for input())
    except ImportError:
        pass

    with sock:
        try:
            run_session(sock)
        except OSError as exc:
            sys.stderr.write(f"send error: {exc.errno}:{exc.strerror or exc} \n\n")
            return 1
    sys.stdout.write("Bye.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())