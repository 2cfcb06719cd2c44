"""Pub/sub subscribers and helpers to query them."""

from __future__ import annotations

import queue
import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from miniredis.keys import pattern_re
from miniredis.server.server import Peer, Writer

_CLOSED = object()


@dataclass(frozen=True)
class PubsubMessage:
    """A message published on a channel."""

    channel: str
    message: str


def _matches(compiled: re.Pattern[str] | None, channel: str) -> bool:
    return compiled is not None and compiled.match(channel) is not None


class Subscriber:
    """Holds channel and pattern subscriptions and a stream of messages."""

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._channels: set[str] = set()
        self._patterns: dict[str, re.Pattern[str] | None] = {}
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        """End the message stream. Closing twice is harmless."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)

    def count(self) -> int:
        """Total number of channel and pattern subscriptions."""
        with self._lock:
            return len(self._channels) + len(self._patterns)

    def subscribe(self, channel: str) -> int:
        """Subscribe to a channel; returns the total subscription count."""
        with self._lock:
            self._channels.add(channel)
            return len(self._channels) + len(self._patterns)

    def unsubscribe(self, channel: str) -> int:
        """Unsubscribe a channel; returns the total subscription count."""
        with self._lock:
            self._channels.discard(channel)
            return len(self._channels) + len(self._patterns)

    def psubscribe(self, pattern: str) -> int:
        """Subscribe to a pattern; returns the total subscription count."""
        with self._lock:
            self._patterns[pattern] = pattern_re(pattern)
            return len(self._channels) + len(self._patterns)

    def punsubscribe(self, pattern: str) -> int:
        """Unsubscribe a pattern; returns the total subscription count."""
        with self._lock:
            self._patterns.pop(pattern, None)
            return len(self._channels) + len(self._patterns)

    def channels(self) -> list[str]:
        """Subscribed channels, alphabetically."""
        with self._lock:
            return sorted(self._channels)

    def patterns(self) -> list[str]:
        """Subscribed patterns, alphabetically."""
        with self._lock:
            return sorted(self._patterns)

    def publish(self, channel: str, message: str) -> int:
        """Deliver a message; returns how often it was delivered (0, 1 or 2).

        A message is delivered once for a channel subscription and once for
        any matching pattern subscription.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("subscriber is closed")
            found = 0
            msg = PubsubMessage(channel, message)
            if channel in self._channels:
                self._queue.put(msg)
                found += 1
            if any(_matches(p, channel) for p in self._patterns.values()):
                self._queue.put(msg)
                found += 1
            return found

    def messages(self) -> Iterator[PubsubMessage]:
        """Yield published messages, blocking, until the subscriber is closed."""
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                # Leave the marker for any later reader.
                self._queue.put(_CLOSED)
                return
            assert isinstance(item, PubsubMessage)
            yield item


def active_channels(subs: Iterable[Subscriber], pattern: str = "") -> list[str]:
    """All subscribed channels, alphabetically, optionally filtered by pattern."""
    channels = {c for s in subs for c in s.channels()}
    if pattern:
        compiled = pattern_re(pattern)
        channels = {c for c in channels if _matches(compiled, c)}
    return sorted(channels)


def count_subs(subs: Iterable[Subscriber], channel: str) -> int:
    """Number of subscribers subscribed (not psubscribed) to channel."""
    return sum(1 for s in subs if channel in s.channels())


def count_psubs(subs: Iterable[Subscriber]) -> int:
    """Total number of pattern subscriptions over all subscribers."""
    return sum(len(s.patterns()) for s in subs)


def monitor_publish(peer: Peer, subscriber: Subscriber) -> None:
    """Write every message of subscriber to peer until it is closed."""
    for msg in subscriber.messages():

        def write(w: Writer, msg: PubsubMessage = msg) -> None:
            w.write_len(3)
            w.write_bulk("message")
            w.write_bulk(msg.channel)
            w.write_bulk(msg.message)
            w.flush()

        peer.block(write)