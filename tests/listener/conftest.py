# tests/listener/conftest.py
"""
Pytest fixtures for listener tests
In-process doubles for the SSH transport and its shell channel
"""

import threading

import paramiko
import pytest


class FakeChannel:
    """Shell channel: output is empty until closed, exit status is scripted"""

    def __init__(self):
        self.pty = None
        self.shell_invoked = False
        self.closed = threading.Event()
        self.exit_status = None

    def get_pty(self, term, width, height):
        self.pty = (term, width, height)

    def invoke_shell(self):
        self.shell_invoked = True

    def recv(self, size):
        self.closed.wait()
        return b""

    def exit(self, status):
        self.exit_status = status
        self.closed.set()

    def recv_exit_status(self):
        self.closed.wait()
        return -1 if self.exit_status is None else self.exit_status

    def close(self):
        self.closed.set()


class FakeTransport:
    """
    Transport double. keepalive_replies scripts each keepalive outcome:
    "ok" (reply), "deny" (failure reply), "error" (raises) or "hang" (no reply).
    Once the script runs out, `default_reply` is used.
    """

    def __init__(self, keepalive_replies=None, default_reply="ok", port=34567):
        self.active = True
        self.keepalive_replies = list(keepalive_replies or [])
        self.default_reply = default_reply
        self.port = port
        self.probes = 0
        self.forwarded = None
        self.cancelled = []
        self.channel = FakeChannel()
        self.close_calls = 0
        self._released = threading.Event()

    def is_active(self):
        return self.active

    def global_request(self, kind, data=None, wait=True):
        assert kind == "keepalive@openssh.com"
        self.probes += 1
        outcome = self.keepalive_replies.pop(0) if self.keepalive_replies else self.default_reply
        if outcome == "hang":
            self._released.wait()
            return None
        if outcome == "error":
            raise paramiko.SSHException("channel closed")
        if outcome == "deny":
            return None
        return paramiko.Message()

    def request_port_forward(self, address, port, handler=None):
        self.forwarded = (address, port, handler)
        return self.port

    def cancel_port_forward(self, address, port):
        self.cancelled.append((address, port))

    def open_session(self, timeout=None):
        return self.channel

    def close(self):
        self.close_calls += 1
        self.active = False
        self._released.set()
        self.channel.close()


@pytest.fixture
def make_transport():
    """Factory for FakeTransport instances"""
    return FakeTransport
