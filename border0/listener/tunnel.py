# border0/listener/tunnel.py
"""
Tunnel session - one SSH connection to the Border0 tunnel server

Provides:
- Dial with a certificate signer and a pinned host key
- Remote listening endpoint (tcpip-forward) whose inbound connections
  are accepted as paramiko channels
- Interactive shell kept open as the session's liveness anchor
- Keepalive loop that closes the session after consecutive missed replies
"""

import logging
import queue
import socket
import threading
from typing import Optional, Tuple

import paramiko

from ..client.errors import HostKeyMismatchError, SessionEndedError, TunnelError

logger = logging.getLogger('border0.listener.tunnel')

HANDSHAKE_TIMEOUT = 10.0     # seconds
KEEPALIVE_INTERVAL = 10.0    # seconds between probes
KEEPALIVE_TIMEOUT = 5.0      # reply deadline per probe
KEEPALIVE_MAX_MISSES = 4

KEEPALIVE_REQUEST = "keepalive@openssh.com"

TERM = "xterm-256color"
TERM_WIDTH = 80
TERM_HEIGHT = 40

DEFAULT_SSH_PORT = 22

# How often a blocked accept() rechecks whether the session is still alive
ACCEPT_POLL_INTERVAL = 0.5


def split_host_port(address: str) -> Tuple[str, int]:
    """
    Split "host:port" (or "[v6]:port"); the port defaults to 22.

    Raises:
        ValueError: empty host, or a port that is not a number in 1-65535
    """
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest.lstrip(":")
    elif address.count(":") == 1:
        host, _, port = address.partition(":")
    else:
        host, port = address, ""

    if not host:
        raise ValueError(f"missing host in address {address!r}")
    if not port:
        return host, DEFAULT_SSH_PORT
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"invalid port {port!r} in address {address!r}")
    return host, int(port)


def _check_host_key(transport, expected: paramiko.PKey):
    actual = transport.get_remote_server_key()
    if actual.get_name() != expected.get_name() or actual.asbytes() != expected.asbytes():
        raise HostKeyMismatchError(
            f"host key mismatch: expected {expected.get_name()} {expected.get_base64()}, "
            f"got {actual.get_name()} {actual.get_base64()}"
        )


class RemoteListener:
    """
    Listening endpoint opened on the tunnel server

    Inbound connections arrive as channels; accept() returns them in order
    and raises EOFError once the endpoint or its session is gone.
    """

    def __init__(self, transport, host: str, port: int):
        self._transport = transport
        self.host = host
        self.port = port
        self._ip = socket.gethostbyname(host)
        self._incoming: "queue.Queue[Tuple[paramiko.Channel, Optional[Tuple[str, int]]]]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def addr(self) -> Tuple[str, int]:
        """Loopback address and server-assigned port"""
        return self._ip, self.port

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set() and self._transport.is_active()

    def handle_channel(self, channel, origin, server):
        """Forwarded connection handler, called from the transport thread"""
        if not self.is_open:
            channel.close()
            return
        self._incoming.put((channel, origin))

    def accept(self):
        """
        Block until an inbound connection arrives.

        Channels still queued when the session dies are closed, never returned.

        Returns:
            (channel, (origin_host, origin_port))

        Raises:
            EOFError: the endpoint was closed or the session ended
        """
        while True:
            if not self.is_open:
                self._discard_pending()
                raise EOFError("remote listener closed")
            try:
                return self._incoming.get(timeout=ACCEPT_POLL_INTERVAL)
            except queue.Empty:
                pass

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        if self._transport.is_active():
            try:
                self._transport.cancel_port_forward(self.host, self.port)
            except (paramiko.SSHException, OSError) as e:
                logger.debug(f"cancel_port_forward failed: {e}")
        self._discard_pending()

    def _discard_pending(self):
        while True:
            try:
                channel, origin = self._incoming.get_nowait()
            except queue.Empty:
                return
            logger.debug(f"Dropping connection from {origin}: session is gone")
            try:
                channel.close()
            except (paramiko.SSHException, OSError) as e:
                logger.debug(f"Closing stale channel: {e}")


class TunnelSession:
    """
    One authenticated transport plus its remote listener, shell and keepalive loop
    """

    def __init__(
        self,
        transport,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        keepalive_timeout: float = KEEPALIVE_TIMEOUT,
        keepalive_max_misses: int = KEEPALIVE_MAX_MISSES,
    ):
        self.transport = transport
        self.keepalive_interval = keepalive_interval
        self.keepalive_timeout = keepalive_timeout
        self.keepalive_max_misses = keepalive_max_misses

        self.listener: Optional[RemoteListener] = None
        self._shell = None
        self._done = threading.Event()
        self._close_lock = threading.Lock()

    @classmethod
    def dial(
        cls,
        address: str,
        username: str,
        signer: paramiko.PKey,
        host_key: paramiko.PKey,
        timeout: float = HANDSHAKE_TIMEOUT,
    ) -> "TunnelSession":
        """
        Connect to the tunnel server and authenticate.

        Raises:
            HostKeyMismatchError: server key differs from host_key
            paramiko.SSHException / OSError: connection or authentication failed
        """
        host, port = split_host_port(address)
        logger.debug(f"Dialing tunnel server {host}:{port} as {username}")

        sock = socket.create_connection((host, port), timeout=timeout)
        transport = paramiko.Transport(sock)
        transport.banner_timeout = timeout
        transport.handshake_timeout = timeout
        transport.auth_timeout = timeout

        try:
            transport.start_client(timeout=timeout)
            _check_host_key(transport, host_key)
            transport.auth_publickey(username, signer)
        except BaseException:
            transport.close()
            raise

        return cls(transport)

    @property
    def is_active(self) -> bool:
        return not self._done.is_set() and self.transport.is_active()

    def listen(self, host: str = "localhost", port: int = 0) -> RemoteListener:
        """Ask the server to listen on host:port (0 = any) and forward connections here"""
        listener = RemoteListener(self.transport, host, port)
        assigned = self.transport.request_port_forward(host, port, handler=listener.handle_channel)
        listener.port = assigned
        self.listener = listener
        return listener

    def open_shell(self):
        """Open the interactive control channel; its output is read and discarded"""
        channel = self.transport.open_session(timeout=HANDSHAKE_TIMEOUT)
        channel.get_pty(term=TERM, width=TERM_WIDTH, height=TERM_HEIGHT)
        channel.invoke_shell()
        self._shell = channel

        threading.Thread(target=self._drain, args=(channel,), name="border0-shell-drain", daemon=True).start()
        return channel

    def _drain(self, channel):
        try:
            while channel.recv(4096):
                pass
        except (OSError, EOFError, paramiko.SSHException):
            pass

    def wait(self):
        """
        Block until the shell ends.

        Raises:
            SessionEndedError: the shell ended with a failure status or the
            transport was lost
        """
        if self._shell is None:
            raise TunnelError("no shell open on this session")
        status = self._shell.recv_exit_status()
        if status != 0:
            raise SessionEndedError(f"tunnel session ended (exit status {status})")

    # =========================================================================
    # Keepalive
    # =========================================================================

    def start_keepalive(self) -> threading.Thread:
        thread = threading.Thread(target=self._keepalive_loop, name="border0-keepalive", daemon=True)
        thread.start()
        return thread

    def _probe(self) -> bool:
        """One keepalive request; a reply of either kind on a live transport counts"""
        replies: "queue.Queue[bool]" = queue.Queue(maxsize=1)

        def send():
            try:
                self.transport.global_request(KEEPALIVE_REQUEST, wait=True)
                replies.put(self.transport.is_active())
            except (paramiko.SSHException, OSError, EOFError):
                replies.put(False)

        threading.Thread(target=send, name="border0-keepalive-probe", daemon=True).start()
        try:
            return replies.get(timeout=self.keepalive_timeout)
        except queue.Empty:
            return False

    def _keepalive_loop(self):
        misses = 0
        while not self._done.wait(self.keepalive_interval):
            if self._probe():
                misses = 0
                continue

            misses += 1
            logger.debug(f"ssh keepalive missed ({misses}/{self.keepalive_max_misses})")
            if misses >= self.keepalive_max_misses:
                logger.warning("ssh keepalive timeout, disconnecting")
                self.close()
                return

    def close(self):
        """Tear down listener, shell and transport. Safe to call more than once."""
        with self._close_lock:
            if self._done.is_set():
                return
            self._done.set()

        if self.listener is not None:
            self.listener.close()
        if self._shell is not None:
            self._shell.close()
        self.transport.close()
