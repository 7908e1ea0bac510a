# border0/listener/listener.py
"""
Border0 Listener - accepts connections forwarded by the Border0 tunnel server

Lifecycle:
1. Authenticate (device authorization) when no token is configured
2. Ensure the socket exists (created as an http socket when missing)
3. Reconcile attached policies when policy names were given
4. Supervisor loop: sign a fresh key, dial, open the remote listener and
   the shell, publish the session, wait for it to end, back off, repeat

accept() hides session turnover from the caller: an end-of-stream from a
dead session is reported on `errors` and the call resumes on the next
session.
"""

import logging
import queue
import threading
from enum import Enum
from typing import Callable, List, Optional, Tuple

import paramiko

from ..client.api_client import APIClient
from ..client.authentication import AuthConfig
from ..client.backoff import ExponentialBackOff
from ..client.errors import Border0Error, ListenerClosedError, SessionEndedError, TunnelError, is_not_found
from ..client.schemas import Socket, SocketType
from ..config import load_settings
from .keypair import generate_key_pair, sign_certificate
from .tunnel import RemoteListener, TunnelSession, split_host_port

logger = logging.getLogger('border0.listener')

# Advisory errors kept for the embedder; the oldest is dropped when full
ERRORS_BUFFER = 16

Dialer = Callable[[str, str, paramiko.PKey, paramiko.PKey], TunnelSession]


class ListenerState(Enum):
    """Listener lifecycle state"""
    CREATED = "created"
    AUTHENTICATING = "authenticating"
    ENSURING_SOCKET = "ensuring_socket"
    DIALING = "dialing"
    LIVE = "live"
    FAILED = "failed"
    CLOSED = "closed"


def diff_names(current: List[str], desired: List[str]) -> Tuple[List[str], List[str]]:
    """Names to add and names to remove to turn current into desired, order preserved"""
    to_add = [name for name in dict.fromkeys(desired) if name not in current]
    to_remove = [name for name in dict.fromkeys(current) if name not in desired]
    return to_add, to_remove


class Listener:
    """
    Connection listener backed by a Border0 tunnel

    Accepted connections are (channel, origin_address) pairs; channels are
    socket-like (recv, send, sendall, makefile, close).
    """

    def __init__(
        self,
        socket_name: Optional[str] = None,
        auth_token: Optional[str] = None,
        api_client: Optional[APIClient] = None,
        policy_names: Optional[List[str]] = None,
        tunnel_server: Optional[str] = None,
        auth_config: Optional[AuthConfig] = None,
        reconnect_backoff: Optional[ExponentialBackOff] = None,
        dialer: Optional[Dialer] = None,
        errors_maxsize: int = ERRORS_BUFFER,
    ):
        settings = load_settings()

        self.socket_name = socket_name or settings.SOCKET_NAME
        self.tunnel_server = tunnel_server or settings.TUNNEL_SERVER
        try:
            split_host_port(self.tunnel_server)
        except ValueError as e:
            raise Border0Error(f"invalid tunnel server address: {e}") from e
        self.policy_names = list(policy_names) if policy_names is not None else None
        self.auth_config = auth_config
        self.api_client = api_client if api_client is not None else APIClient(auth_token=auth_token)
        self.reconnect_backoff = reconnect_backoff or ExponentialBackOff()
        self.dialer = dialer or TunnelSession.dial

        self.errors: "queue.Queue[Exception]" = queue.Queue(maxsize=errors_maxsize)

        self._cond = threading.Condition()
        self._state = ListenerState.CREATED
        self._session: Optional[TunnelSession] = None
        self._inner: Optional[RemoteListener] = None
        self._addr: Optional[Tuple[str, int]] = None
        self._generation = 0

        self._closed = threading.Event()
        self._started = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def addr(self) -> Optional[Tuple[str, int]]:
        """Address of the current remote listener, or the last known one while reconnecting"""
        return self._addr

    # =========================================================================
    # Public API
    # =========================================================================

    def start(self, timeout: Optional[float] = None):
        """
        Bootstrap and block until the first tunnel session is live.

        Raises:
            Border0Error: a terminal startup failure (unauthorized, exhausted
                retries, missing claims, policy errors)
            TimeoutError: not ready within timeout; the listener is closed
        """
        if self._thread is not None:
            raise RuntimeError("listener already started")
        if not self.socket_name:
            raise Border0Error("socket name is required")

        self._thread = threading.Thread(target=self._run, name="border0-listener", daemon=True)
        self._thread.start()

        if not self._started.wait(timeout):
            self.close()
            raise TimeoutError(f"listener not ready after {timeout}s")
        if self._startup_error is not None:
            raise self._startup_error

    def accept(self):
        """
        Wait for the next inbound connection.

        Returns:
            (channel, origin_address)

        Raises:
            ListenerClosedError: the listener is closed or was never started
        """
        while True:
            with self._cond:
                if self._closed.is_set():
                    raise ListenerClosedError("listener closed")
                if self._state is ListenerState.FAILED:
                    raise TunnelError("listener stopped reconnecting")
                inner = self._inner
                generation = self._generation
            if inner is None:
                raise ListenerClosedError("listener is not started")

            try:
                return inner.accept()
            except EOFError:
                if self._closed.is_set():
                    raise ListenerClosedError("listener closed")
                self._post_error(TunnelError("listener closed and reconnecting"))
                self._wait_for_session(generation)

    def close(self):
        """Stop the supervisor and tear down the current session. Idempotent."""
        with self._cond:
            if self._closed.is_set():
                return
            self._closed.set()
            self._state = ListenerState.CLOSED
            session = self._session
            self._cond.notify_all()

        if not self._started.is_set():
            self._startup_error = ListenerClosedError("listener closed before it became ready")
            self._started.set()

        if session is not None:
            try:
                session.close()
            except (paramiko.SSHException, OSError) as e:
                logger.debug(f"Closing tunnel session: {e}")
        logger.info(f"Listener for socket {self.socket_name} closed")

    # =========================================================================
    # Bootstrap
    # =========================================================================

    def _run(self):
        try:
            principal = self._bootstrap()
        except Exception as e:
            self._fail(e)
            return
        self._supervise(principal)

    def _bootstrap(self) -> str:
        self._set_state(ListenerState.AUTHENTICATING)
        if not self.api_client.auth_token:
            self.api_client.authenticate(self.auth_config, cancel=self._closed)

        try:
            claims = self.api_client.token_claims()
        except Border0Error as e:
            raise Border0Error(f"failed to get api token claims: {e}") from e

        user_id = claims.get("sub") or claims.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            raise Border0Error("can't find claim for sub or user_id")

        self._set_state(ListenerState.ENSURING_SOCKET)
        socket = self._ensure_socket_created()
        self._ensure_policies_attached(socket)

        # The tunnel server expects the principal without hyphens
        return user_id.replace("-", "")

    def _ensure_socket_created(self) -> Socket:
        try:
            return self.api_client.socket(self.socket_name, cancel=self._closed)
        except Border0Error as e:
            if not is_not_found(e):
                raise

        logger.info(f"Socket {self.socket_name} not found, creating it")
        return self.api_client.create_socket(
            Socket(name=self.socket_name, socket_type=SocketType.HTTP.value),
            cancel=self._closed,
        )

    def _ensure_policies_attached(self, socket: Socket):
        """Attach missing and detach extra policies so the socket carries exactly policy_names"""
        if self.policy_names is None:
            return

        attached = {policy.name: policy for policy in socket.policies or []}
        to_add, to_remove = diff_names(list(attached), self.policy_names)

        if to_add:
            found = {policy.name: policy for policy in self.api_client.policies_by_names(*to_add, cancel=self._closed)}
            ids = [found[name].id for name in to_add]
            logger.info(f"Attaching policies {to_add} to socket {socket.name}")
            self.api_client.attach_policies_to_socket(ids, socket.socket_id, cancel=self._closed)

        if to_remove:
            ids = [attached[name].id for name in to_remove]
            logger.info(f"Removing policies {to_remove} from socket {socket.name}")
            self.api_client.remove_policies_from_socket(ids, socket.socket_id, cancel=self._closed)

    # =========================================================================
    # Supervisor
    # =========================================================================

    def _supervise(self, principal: str):
        while not self._closed.is_set():
            self._set_state(ListenerState.DIALING)
            try:
                self._run_session(principal)
            except SessionEndedError as e:
                if self._closed.is_set():
                    return
                logger.warning(f"Border0 listener: {e}")
                last_error = e
            except (Border0Error, paramiko.SSHException, OSError, EOFError) as e:
                if self._closed.is_set():
                    return
                self._post_error(e)
                last_error = e
            except Exception as e:
                if self._closed.is_set():
                    return
                logger.exception("Unexpected error in tunnel supervisor")
                err = TunnelError(f"listener stopped on unexpected error: {e!r}")
                err.__cause__ = e
                self._give_up(err)
                return
            else:
                if self._closed.is_set():
                    return
                self.reconnect_backoff.reset()
                logger.info("Tunnel session ended, reconnecting")
                last_error = None

            delay = self.reconnect_backoff.next_backoff()
            if delay is None:
                self._give_up(TunnelError(f"error connecting to server: {last_error}"))
                return
            if self._closed.wait(delay):
                return

    def _run_session(self, principal: str):
        keypair = generate_key_pair()
        # Host key is re-pinned from every signing response
        signer, host_key = sign_certificate(self.api_client, self.socket_name, keypair, cancel=self._closed)

        session = self.dialer(self.tunnel_server, principal, signer, host_key)
        try:
            session.start_keepalive()
            try:
                inner = session.listen("localhost", 0)
            except paramiko.SSHException as e:
                raise TunnelError(f"failed to open listener on tunnel server: {e}") from e
            session.open_shell()

            if not self._publish(session, inner):
                return
            session.wait()
        finally:
            with self._cond:
                if self._session is session:
                    self._session = None
            session.close()

    def _publish(self, session: TunnelSession, inner: RemoteListener) -> bool:
        with self._cond:
            if self._closed.is_set():
                return False
            self._session = session
            self._inner = inner
            self._addr = inner.addr
            self._generation += 1
            self._state = ListenerState.LIVE
            self._cond.notify_all()

        logger.info(f"Listener for socket {self.socket_name} ready on {self._addr[0]}:{self._addr[1]}")
        self._started.set()
        return True

    def _wait_for_session(self, seen_generation: int):
        with self._cond:
            self._cond.wait_for(
                lambda: self._generation > seen_generation
                or self._closed.is_set()
                or self._state is ListenerState.FAILED
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _set_state(self, state: ListenerState):
        with self._cond:
            if self._closed.is_set():
                return
            self._state = state
        logger.debug(f"Listener state: {state.value}")

    def _post_error(self, err: Exception):
        logger.warning(f"Border0 listener: {err}")
        while True:
            try:
                self.errors.put_nowait(err)
                return
            except queue.Full:
                try:
                    self.errors.get_nowait()
                except queue.Empty:
                    pass

    def _fail(self, err: BaseException):
        logger.error(f"Listener for socket {self.socket_name} failed to start: {err}")
        with self._cond:
            if not self._closed.is_set():
                self._state = ListenerState.FAILED
        if not self._started.is_set():
            self._startup_error = err
            self._started.set()

    def _give_up(self, err: Exception):
        if not self._started.is_set():
            self._fail(err)
            return
        self._post_error(err)
        with self._cond:
            self._state = ListenerState.FAILED
            self._cond.notify_all()
