"""Pytest fixtures: start/stop the stand-in daemon subprocess, client on a free port."""

import socket
import subprocess
import sys
import time
from pathlib import Path

import pytest

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from bloomd_client import BloomdClient, ClientConfig

SERVER_SCRIPT = Path(__file__).resolve().parent / "bloomd_server.py"


def find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def wait_for_port(port: int, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=0.2):
                return
        except OSError:
            time.sleep(0.05)
    raise RuntimeError(f"stand-in daemon did not start on port {port}")


def start_server(port: int, delay: float = 0.0, delete_delay: float = 0.0) -> subprocess.Popen:
    proc = subprocess.Popen(
        [
            sys.executable, str(SERVER_SCRIPT),
            "--host", "127.0.0.1", "--port", str(port),
            "--delay", str(delay),
            "--delete-delay", str(delete_delay),
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
    )
    try:
        wait_for_port(port)
    except RuntimeError:
        stop_server(proc)
        raise
    return proc


def stop_server(proc: subprocess.Popen) -> None:
    proc.terminate()
    try:
        proc.wait(timeout=2)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


@pytest.fixture
def port():
    return find_free_port()


@pytest.fixture
def server_process(port):
    """Start the stand-in daemon as a subprocess; yield; then terminate it."""
    proc = start_server(port)
    yield proc
    stop_server(proc)


@pytest.fixture
def client(server_process, port):
    c = BloomdClient(
        host="127.0.0.1",
        port=port,
        config=ClientConfig(initial_connections=1, max_connections=4, timeout=5.0),
    )
    yield c
    c.shutdown()
