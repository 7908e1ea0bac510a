"""
Border0 API client

Retrying HTTP executor plus the socket, policy and authentication
endpoints the listener depends on.
"""

__all__ = [
    "APIClient",
    "AuthConfig",
    "APIError",
    "AuthenticationError",
    "Border0Error",
    "CertificateError",
    "HTTPRequestError",
    "HostKeyMismatchError",
    "ListenerClosedError",
    "NotFoundError",
    "RequestCancelledError",
    "RequestFailedError",
    "SessionEndedError",
    "TunnelError",
    "is_not_found",
    "is_unauthorized",
    "ExponentialBackOff",
    "exponential_backoff",
    "FlexibleTime",
    "Policy",
    "SignedSocketKey",
    "Socket",
    "SocketKeyToSign",
    "SocketType",
]

from .api_client import APIClient
from .authentication import AuthConfig
from .backoff import ExponentialBackOff, exponential_backoff
from .errors import (
    APIError,
    AuthenticationError,
    Border0Error,
    CertificateError,
    HostKeyMismatchError,
    HTTPRequestError,
    ListenerClosedError,
    NotFoundError,
    RequestCancelledError,
    RequestFailedError,
    SessionEndedError,
    TunnelError,
    is_not_found,
    is_unauthorized,
)
from .flexible_time import FlexibleTime
from .schemas import Policy, SignedSocketKey, Socket, SocketKeyToSign, SocketType
