import io
import socket
import threading
import time

import pytest

from miniredis.server.server import (
    Peer,
    Server,
    Writer,
    err_unknown_command,
    to_inline,
)

ERR_WRONG_NUMBER = "ERR Wrong number of args"


class _ReplyError(Exception):
    pass


def _encode_command(*args: str) -> bytes:
    out = [b"*%d\r\n" % len(args)]
    for arg in args:
        data = arg.encode()
        out.append(b"$%d\r\n" % len(data) + data + b"\r\n")
    return b"".join(out)


def _read_reply(f):
    line = f.readline()
    if not line:
        raise EOFError
    kind, body = line[:1], line[1:-2].decode()
    if kind == b"+":
        return body
    if kind == b"-":
        raise _ReplyError(body)
    if kind == b":":
        return int(body)
    if kind == b"$":
        n = int(body)
        if n < 0:
            return None
        return f.read(n + 2)[:-2].decode()
    if kind == b"*":
        return [_read_reply(f) for _ in range(int(body))]
    raise AssertionError(f"unexpected reply {line!r}")


class _Client:
    def __init__(self, sock):
        self.sock = sock
        self.reader = sock.makefile("rb")

    def do(self, *args):
        self.sock.sendall(_encode_command(*args))
        return _read_reply(self.reader)

    def close(self):
        self.reader.close()
        self.sock.close()


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _echo(peer, cmd, args):
    if len(args) != 1:
        peer.write_error(ERR_WRONG_NUMBER)
        return
    peer.write_bulk(args[0])


def _dwarfs(peer, cmd, args):
    if args:
        peer.write_error(ERR_WRONG_NUMBER)
        return
    names = ["Blick", "Flick", "Glick", "Plick", "Quee", "Snick", "Whick"]
    peer.write_len(len(names))
    for name in names:
        peer.write_bulk(name)


def _plus(peer, cmd, args):
    if len(args) != 2:
        peer.write_error(ERR_WRONG_NUMBER)
        return
    try:
        a, b = int(args[0]), int(args[1])
    except ValueError:
        peer.write_error("ERR not an int")
        return
    peer.write_int(a + b)


def _quit(peer, cmd, args):
    peer.write_ok()
    peer.close()


@pytest.fixture
def server():
    srv = Server(":0")
    srv.register("PING", lambda peer, cmd, args: peer.write_inline("PONG"))
    srv.register("ECHO", _echo)
    srv.register("dWaRfS", _dwarfs)
    srv.register("PLUS", _plus)
    srv.register("NULL", lambda peer, cmd, args: peer.write_null())
    srv.register("QUIT", _quit)
    yield srv
    srv.close()


@pytest.fixture
def client(server):
    sock = socket.create_connection(("127.0.0.1", server.addr()[1]))
    c = _Client(sock)
    yield c
    c.close()


def test_addr_has_port(server):
    assert server.addr()[1] > 0


def test_ping(client):
    assert client.do("PING") == "PONG"


def test_ping_case_insensitive(client):
    assert client.do("pInG") == "PONG"


def test_unknown_command(client):
    with pytest.raises(_ReplyError) as info:
        client.do("NOSUCH")
    assert str(info.value) == "ERR unknown command `NOSUCH`, with args beginning with: "


def test_echo_newline(client):
    assert client.do("ECHO", "hello\nworld") == "hello\nworld"


def test_echo_wrong_number(client):
    with pytest.raises(_ReplyError) as info:
        client.do("ECHO")
    assert str(info.value) == ERR_WRONG_NUMBER


def test_dwarfs(client):
    assert client.do("dwaRFS") == [
        "Blick", "Flick", "Glick", "Plick", "Quee", "Snick", "Whick",
    ]


def test_plus(client):
    assert client.do("PLUS", "3", "4") == 7


def test_null(client):
    assert client.do("NULL") is None


def test_big_payload(client):
    big = "X" * (1 << 24)
    assert client.do("ECHO", big) == big


def test_counters(server, client):
    assert client.do("PING") == "PONG"
    assert server.clients_len() == 1
    assert server.total_connections() == 1
    assert server.total_commands() == 1
    with pytest.raises(_ReplyError):
        client.do("NOSUCH")
    assert server.total_commands() == 1
    assert client.do("PING") == "PONG"
    assert server.total_commands() == 2


def test_client_disconnect_counts(server, client):
    assert client.do("PING") == "PONG"
    client.close()
    assert _wait_for(lambda: server.clients_len() == 0)
    assert server.total_connections() == 1


def test_peer_close(server, client):
    assert client.do("QUIT") == "OK"
    assert client.reader.readline() == b""
    assert _wait_for(lambda: server.clients_len() == 0)


def test_register_twice(server):
    with pytest.raises(ValueError, match="already registered: PING"):
        server.register("ping", lambda peer, cmd, args: None)


def test_handler_receives_upper_command(server, client):
    seen = []

    def record(peer, cmd, args):
        seen.append((cmd, args))
        peer.write_ok()

    server.register("Record", record)
    assert client.do("rEcOrD", "a", "b") == "OK"
    assert seen == [("RECORD", ["a", "b"])]


def test_on_disconnect(server, client):
    gone = threading.Event()

    def hook(peer, cmd, args):
        peer.on_disconnect(gone.set)
        peer.write_ok()

    server.register("HOOK", hook)
    assert client.do("HOOK") == "OK"
    client.close()
    assert gone.wait(2)


def test_serve_conn_socketpair(server):
    ours, theirs = socket.socketpair()
    server.serve_conn(theirs)
    c = _Client(ours)
    ping_reply = c.do("PING")
    echo_reply = c.do("ECHO", "pipe")
    assert ping_reply == "PONG"
    assert echo_reply == "pipe"
    assert server.total_connections() == 1
    assert server.total_commands() == 2
    assert server.clients_len() == 1
    c.close()
    assert _wait_for(lambda: server.clients_len() == 0)


def test_close_disconnects_clients(client):
    srv = Server("127.0.0.1:0")
    srv.register("PING", lambda peer, cmd, args: peer.write_inline("PONG"))
    sock = socket.create_connection(("127.0.0.1", srv.addr()[1]))
    c = _Client(sock)
    assert c.do("PING") == "PONG"
    srv.close()
    assert srv.addr() is None
    assert c.reader.readline() == b""
    c.close()


def test_context_manager():
    with Server("127.0.0.1:0") as srv:
        srv.register("PING", lambda peer, cmd, args: peer.write_inline("PONG"))
        sock = socket.create_connection(("127.0.0.1", srv.addr()[1]))
        c = _Client(sock)
        assert c.do("PING") == "PONG"
        c.close()
    assert srv.addr() is None


def test_err_unknown_command_truncates():
    args = [str(i) for i in range(25)]
    msg = err_unknown_command("foo", args)
    assert msg.startswith("ERR unknown command `foo`, with args beginning with: `0`, ")
    assert msg.endswith("`19`, ")
    assert "`20`" not in msg


def test_to_inline():
    assert to_inline("a\nb\tc\r d") == "a b c  d"
    assert to_inline("plain") == "plain"


def test_writer_output():
    buf = io.BytesIO()
    w = Writer(buf)
    w.write_error("bad\nthing")
    w.write_len(2)
    w.write_bulk("héllo")
    w.write_int(-5)
    w.write_null()
    w.write_inline("OK")
    assert buf.getvalue() == (
        b"-bad thing\r\n*2\r\n$6\r\nh\xc3\xa9llo\r\n:-5\r\n$-1\r\n+OK\r\n"
    )


def test_peer_block_and_close():
    buf = io.BytesIO()
    peer = Peer(buf)
    peer.block(lambda w: (w.write_len(1), w.write_bulk("x")))
    peer.write_ok()
    assert buf.getvalue() == b"*1\r\n$1\r\nx\r\n+OK\r\n"
    assert peer.closed is False
    peer.close()
    assert peer.closed is True