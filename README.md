# miniredis

Building blocks for a small, in-memory, Redis-compatible server to use in
Python tests: a parser for the Redis wire protocol (RESP), a threaded TCP
server that dispatches commands to handlers you register, Redis glob
patterns, a sorted set, pub/sub subscribers, and a helper that starts a
real `redis-server` for comparison tests. It has no dependencies outside the
standard library.

## Installation

```
pip install miniredis
```

To run the test suite:

```
pip install "miniredis[test]"
pytest
```

## Modules

### `miniredis.server.proto`

- `read_array(reader)` reads one client request (an array of bulk strings)
  from a binary stream and returns its fields as a list of `str`. A null or
  empty array gives an empty list.
- `read_string(reader)` reads one simple string, error, integer or bulk
  string. A null bulk string gives `""`.
- Input that ends early raises `EOFError`; malformed input raises
  `ProtocolError`, a subclass of `ValueError`.

### `miniredis.server.server`

- `Server(addr="127.0.0.1:0")` starts listening on `"host:port"` at once
  and serves every connection in its own thread. It can be used as a context
  manager.
  - `register(cmd, handler)` adds a handler, called as
    `handler(peer, cmd, args)` with the command name upper-cased. Names are
    not case-sensitive; registering a name twice raises `ValueError`.
  - Unknown commands get the error from `err_unknown_command(cmd, args)`.
  - `addr()` returns `(host, port)`, or `None` once closed.
  - `serve_conn(conn)` serves an already connected socket.
  - `total_commands()`, `clients_len()` and `total_connections()` report
    known commands handled, clients connected now, and clients connected
    since start.
  - `close()` stops listening, disconnects all clients and waits for their
    threads.
- `Peer` is the connected client given to handlers: `write_inline`,
  `write_ok`, `write_bulk`, `write_int`, `write_len`, `write_null`,
  `write_error`, `flush`, `close` (disconnect after the current command),
  `on_disconnect(callback)`, and `block(func)`, which calls `func` with a
  `Writer` under the peer's write lock. `peer.ctx` is free for per-connection
  state.
- `Writer` writes the same reply types to a binary stream.
- `to_inline(s)` replaces whitespace with spaces, as used for inline replies
  and errors.

### `miniredis.keys`

`pattern_re(pattern)` compiles a glob such as `foo*`, `f??`, `[ab]c` or
`\*x` to an anchored regular expression. It returns `None` for patterns that
can never match: a trailing backslash, an unclosed or empty `[]`.

### `miniredis.sorted_set`

`SortedSet` maps members to float scores. `set(score, member)`,
`get(member)` (or `None`), `len()`, `in`, iteration and `del`.
`by_score(direction)` returns `SortedElement(score, member)` items ordered by
score and then by member; `rank_by_score(member, direction)` gives the
0-based rank or `None`. `direction` is `Direction.ASC` (default) or
`Direction.DESC`.

### `miniredis.redis`

Error message constants (`MSG_WRONG_TYPE`, `MSG_SYNTAX_ERROR`, ...) and
helpers: `err_wrong_number(cmd)`, `format_float(v)` (Redis-like float text,
`inf`/`-inf`), `redis_range(length, start, end, string_semantics)` (Redis
start/end, inclusive and possibly negative, to slice offsets) and
`match_keys(keys, match)`.

### `miniredis.pubsub`

- `Subscriber` holds channel and pattern subscriptions: `subscribe`,
  `unsubscribe`, `psubscribe`, `punsubscribe` (each returns the total count),
  `count()`, `channels()` and `patterns()` (sorted).
  `publish(channel, message)` queues a `PubsubMessage` once for a channel
  match and once for a pattern match and returns how many were queued; it
  raises `RuntimeError` once closed. `messages()` yields queued messages,
  blocking, until `close()`.
- `active_channels(subs, pattern="")`, `count_subs(subs, channel)` and
  `count_psubs(subs)` answer `PUBSUB`-style queries over subscribers.
- `monitor_publish(peer, subscriber)` writes each message to a peer as a
  `message` array until the subscriber is closed.

### `miniredis.ephemeral`

`start_redis()` and `start_redis_auth(password)` launch a memory-only
`redis-server` (preferring one in `./redis_src/`) on a free port found with
`arbitrary_port()`, and return an `Ephemeral` handle and its
`"127.0.0.1:port"` address. Call `close()` on the handle, or use it as a
context manager. A missing executable raises `FileNotFoundError`; a server
that does not accept connections within a second raises `RuntimeError`.

## Example

```python
import socket

from miniredis.server.server import Server

with Server("127.0.0.1:0") as server:
    server.register("PING", lambda peer, cmd, args: peer.write_inline("PONG"))
    with socket.create_connection(server.addr()) as conn:
        conn.sendall(b"*1\r\n$4\r\nPING\r\n")
        print(conn.recv(64))  # b'+PONG\r\n'
```

## What is not included

There is no ready-made Redis server here: no command set (`GET`, `SET`,
lists, hashes, sets, sorted-set commands, transactions, expiry, Lua
scripting), no key store, and no command-line program. The package provides
the protocol, server, pattern, sorted-set and pub/sub pieces; the commands
themselves are handlers you register on a `Server`.