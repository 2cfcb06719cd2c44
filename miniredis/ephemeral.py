"""Start a throwaway, memory-only redis-server on a free local port."""

from __future__ import annotations

import os
import shutil
import socket
import subprocess
import time

LOCAL_SRC = "./redis_src/"
EXECUTABLE = "redis-server"
_STARTUP_TIMEOUT = 1.0
_POLL_INTERVAL = 0.001


class Ephemeral:
    """A running redis-server process. Close it when done."""

    def __init__(self, process: subprocess.Popen[bytes]) -> None:
        self.process = process

    def close(self) -> None:
        """Kill the server and wait for it to exit."""
        self.process.kill()
        self.process.wait()

    def __enter__(self) -> Ephemeral:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def start_redis() -> tuple[Ephemeral, str]:
    """Start a memory-only redis on a free port; returns it and its address."""
    return _run_redis("")


def start_redis_auth(password: str) -> tuple[Ephemeral, str]:
    """Like start_redis, with authentication required."""
    return _run_redis(f"requirepass {password}")


def _run_redis(extra_config: str) -> tuple[Ephemeral, str]:
    port = arbitrary_port()

    # An executable in ./redis_src wins over one on the PATH.
    search = os.pathsep.join([LOCAL_SRC, os.environ.get("PATH", "")])
    executable = shutil.which(EXECUTABLE, path=search)
    if executable is None:
        raise FileNotFoundError(f"{EXECUTABLE} not found")

    process = subprocess.Popen(
        [executable, "-"],
        stdin=subprocess.PIPE,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    config = f"port {port}\nbind 127.0.0.1\nappendonly no\n{extra_config}"
    assert process.stdin is not None
    with process.stdin:
        process.stdin.write(config.encode())

    addr = f"127.0.0.1:{port}"
    deadline = time.monotonic() + _STARTUP_TIMEOUT
    while time.monotonic() < deadline:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=_STARTUP_TIMEOUT):
                return Ephemeral(process), addr
        except OSError:
            time.sleep(_POLL_INTERVAL)

    process.kill()
    process.wait()
    raise RuntimeError(f"No connection on port {port}")


def arbitrary_port() -> int:
    """A local TCP port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]