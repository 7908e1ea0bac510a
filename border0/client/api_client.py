# border0/client/api_client.py
"""
Border0 API Client

Combines the resource services (sockets, policies, authentication) on top
of a retrying request executor.

Retry policy:
- an attempt is retried when it failed with any status other than 401 or 404
- at most retry_max retries (retry_max + 1 attempts in total)
- wait before retry i is backoff(retry_wait_min, retry_wait_max, i)
- a set cancellation event aborts the wait, drains idle connections and
  raises RequestCancelledError
"""

import logging
import threading
from typing import Any, Dict, Optional, Tuple

import jwt

from ..config import load_settings
from .authentication import AuthenticationService
from .backoff import Backoff, exponential_backoff, sleep
from .errors import Border0Error, HTTPRequestError, RequestCancelledError, RequestFailedError
from .http_client import HTTPClient
from .policies import PolicyService
from .sockets import SocketService

logger = logging.getLogger('border0.client')

DEFAULT_TIMEOUT = 10.0       # seconds per HTTP request
DEFAULT_RETRY_WAIT_MIN = 1.0
DEFAULT_RETRY_WAIT_MAX = 30.0
DEFAULT_RETRY_MAX = 4

# Statuses that are answers, not transient failures
NON_RETRYABLE_STATUSES = (401, 404)


class APIClient(AuthenticationService, SocketService, PolicyService):
    """
    Client for the Border0 control-plane API
    """

    def __init__(
        self,
        auth_token: Optional[str] = None,
        base_url: Optional[str] = None,
        portal_base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_wait_min: float = DEFAULT_RETRY_WAIT_MIN,
        retry_wait_max: float = DEFAULT_RETRY_WAIT_MAX,
        retry_max: int = DEFAULT_RETRY_MAX,
        backoff: Backoff = exponential_backoff,
    ):
        settings = load_settings()

        self.auth_token = auth_token if auth_token is not None else settings.AUTH_TOKEN
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.portal_base_url = (portal_base_url or settings.PORTAL_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self.retry_max = retry_max
        self.backoff = backoff

        self.http = HTTPClient(self.auth_token, timeout=self.timeout)

    def token_claims(self) -> Dict[str, Any]:
        """
        Claims of the bearer token. The signature is not verified here:
        the control plane issues the token and the dispatcher verifies it.
        """
        try:
            return jwt.decode(self.auth_token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise Border0Error(f"failed to parse token: {e}") from e

    def set_auth_token(self, token: str):
        """Replace the bearer token and rebuild the HTTP client around it"""
        self.http.close()
        self.auth_token = token
        self.http = HTTPClient(token, timeout=self.timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        response_model: Any = None,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[int, Any]:
        """
        Send a request to base_url + path, retrying transient failures.

        Returns:
            (status_code, parsed response or None)

        Raises:
            RequestFailedError: last attempt failed; wraps the attempt's error
            RequestCancelledError: cancel was set
        """
        url = self.base_url + path
        attempt = 0

        while True:
            if cancel is not None and cancel.is_set():
                self.http.close()
                raise RequestCancelledError()

            try:
                return self.http.request(method, url, body=body, response_model=response_model)
            except HTTPRequestError as e:
                last_error = e

            if last_error.status_code in NON_RETRYABLE_STATUSES:
                break
            if attempt >= self.retry_max:
                break

            wait = self.backoff(self.retry_wait_min, self.retry_wait_max, attempt)
            logger.debug(f"{method} {path} failed ({last_error}), retrying in {wait:.2f}s")
            if sleep(wait, cancel):
                self.http.close()
                raise RequestCancelledError()
            attempt += 1

        raise RequestFailedError(attempt + 1, last_error) from last_error

    def close(self):
        self.http.close()
