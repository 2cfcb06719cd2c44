"""A small threaded TCP server speaking the Redis wire protocol."""

from __future__ import annotations

import socket
import threading
from typing import Any, BinaryIO, Callable

from miniredis.server.proto import ProtocolError, read_array

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"
_ACCEPT_POLL = 0.05
_GO_SPACES = frozenset("\x1c\x1d\x1e\x1f")

Handler = Callable[["Peer", str, "list[str]"], None]


def err_unknown_command(cmd: str, args: list[str]) -> str:
    """The error message for a command nobody registered."""
    shown = "".join(f"`{a}`, " for a in args[:20])
    return f"ERR unknown command `{cmd}`, with args beginning with: {shown}"


def to_inline(s: str) -> str:
    """Replace every whitespace character with a plain space."""
    return "".join(
        " " if c.isspace() and c not in _GO_SPACES else c for c in s
    )


def _encode(s: str) -> bytes:
    return s.encode(_ENCODING, _ERRORS)


class Writer:
    """Writes replies to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def write_error(self, message: str) -> None:
        self._stream.write(b"-" + _encode(to_inline(message)) + b"\r\n")

    def write_len(self, n: int) -> None:
        self._stream.write(b"*%d\r\n" % n)

    def write_bulk(self, s: str) -> None:
        data = _encode(s)
        self._stream.write(b"$%d\r\n" % len(data) + data + b"\r\n")

    def write_int(self, i: int) -> None:
        self._stream.write(b":%d\r\n" % i)

    def write_null(self) -> None:
        self._stream.write(b"$-1\r\n")

    def write_inline(self, s: str) -> None:
        self._stream.write(b"+" + _encode(to_inline(s)) + b"\r\n")

    def flush(self) -> None:
        self._stream.flush()


class Peer:
    """A client connected to the server."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()
        self._on_disconnect: list[Callable[[], Any]] = []
        self.closed = False
        self.ctx: Any = None  # free for command handlers; the server ignores it

    def flush(self) -> None:
        """Flush buffered output. Done after every command."""
        with self._lock:
            self._stream.flush()

    def close(self) -> None:
        """Close the connection once the current command is done."""
        with self._lock:
            self.closed = True

    def on_disconnect(self, callback: Callable[[], Any]) -> None:
        """Run callback when the connection ends. Several may be registered."""
        self._on_disconnect.append(callback)

    def block(self, func: Callable[[Writer], Any]) -> None:
        """Call func with a Writer while holding the peer's write lock."""
        with self._lock:
            func(Writer(self._stream))

    def write_error(self, message: str) -> None:
        self.block(lambda w: w.write_error(message))

    def write_inline(self, s: str) -> None:
        self.block(lambda w: w.write_inline(s))

    def write_ok(self) -> None:
        self.write_inline("OK")

    def write_bulk(self, s: str) -> None:
        self.block(lambda w: w.write_bulk(s))

    def write_null(self) -> None:
        self.block(lambda w: w.write_null())

    def write_len(self, n: int) -> None:
        self.block(lambda w: w.write_len(n))

    def write_int(self, i: int) -> None:
        self.block(lambda w: w.write_int(i))

    def _run_disconnect(self) -> None:
        for callback in self._on_disconnect:
            callback()


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address: {addr!r}")
    return host.strip("[]"), int(port)


class Server:
    """Listens on addr ("host:port") and dispatches commands to handlers."""

    def __init__(self, addr: str = "127.0.0.1:0") -> None:
        self._cmds: dict[str, Handler] = {}
        self._peers: set[socket.socket] = set()
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._closing = threading.Event()
        self._info_conns = 0
        self._info_cmds = 0

        listener = socket.create_server(_split_addr(addr))
        listener.settimeout(_ACCEPT_POLL)
        self._listener: socket.socket | None = listener
        self._start_thread(self._serve, listener)

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _start_thread(self, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        with self._lock:
            self._threads.append(thread)
        thread.start()

    def _serve(self, listener: socket.socket) -> None:
        while not self._closing.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.settimeout(None)
            self.serve_conn(conn)

    def serve_conn(self, conn: socket.socket) -> None:
        """Handle a connected socket in its own thread."""
        self._start_thread(self._handle, conn)

    def _handle(self, conn: socket.socket) -> None:
        with self._lock:
            self._peers.add(conn)
            self._info_conns += 1
        reader = conn.makefile("rb")
        writer = conn.makefile("wb")
        try:
            self._serve_peer(reader, writer)
        finally:
            with self._lock:
                self._peers.discard(conn)
            for stream in (reader, writer):
                try:
                    stream.close()
                except OSError:
                    pass
            conn.close()

    def _serve_peer(self, reader: BinaryIO, writer: BinaryIO) -> None:
        peer = Peer(writer)
        try:
            while True:
                try:
                    args = read_array(reader)
                except (EOFError, ProtocolError, OSError):
                    return
                if not args:
                    continue
                self._dispatch(peer, args)
                try:
                    peer.flush()
                except OSError:
                    return
                with self._lock:
                    closed = peer.closed
                if closed:
                    return
        finally:
            peer._run_disconnect()

    def _dispatch(self, peer: Peer, args: list[str]) -> None:
        cmd, rest = args[0], args[1:]
        cmd_up = cmd.upper()
        with self._lock:
            handler = self._cmds.get(cmd_up)
        if handler is None:
            peer.write_error(err_unknown_command(cmd, rest))
            return
        with self._lock:
            self._info_cmds += 1
        handler(peer, cmd_up, rest)

    def addr(self) -> tuple[str, int] | None:
        """The (host, port) the server listens on, or None once closed."""
        with self._lock:
            if self._listener is None:
                return None
            return self._listener.getsockname()[:2]

    def close(self) -> None:
        """Stop listening, disconnect every client and wait for them."""
        self._closing.set()
        with self._lock:
            if self._listener is not None:
                self._listener.close()
            self._listener = None
            for conn in self._peers:
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
            threads = list(self._threads)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join()
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]

    def register(self, cmd: str, handler: Handler) -> None:
        """Register a handler for a command; names are case-insensitive."""
        cmd = cmd.upper()
        with self._lock:
            if cmd in self._cmds:
                raise ValueError(f"command already registered: {cmd}")
            self._cmds[cmd] = handler

    def total_commands(self) -> int:
        """Known commands processed since the server started."""
        with self._lock:
            return self._info_cmds

    def clients_len(self) -> int:
        """Clients connected right now."""
        with self._lock:
            return len(self._peers)

    def total_connections(self) -> int:
        """Clients connected since the server started, current ones included."""
        with self._lock:
            return self._info_conns