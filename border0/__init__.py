"""
Border0 SDK

- new_api_client(): client for managing Border0 resources (sockets, policies)
- listen(): listener that accepts connections sent through a Border0 socket
"""

import logging
from typing import Optional

__version__ = "1.0.0"
__all__ = ["APIClient", "Listener", "listen", "new_api_client"]

from .client import APIClient
from .listener import Listener

logging.getLogger('border0').addHandler(logging.NullHandler())


def new_api_client(**options) -> APIClient:
    """Create an API client; unset options come from BORDER0_* environment variables"""
    return APIClient(**options)


def listen(timeout: Optional[float] = None, **options) -> Listener:
    """
    Create a listener and block until its first tunnel session is live.

    Options are those of Listener (socket_name, auth_token, policy_names,
    tunnel_server, ...). The returned listener's accept() yields
    (channel, origin_address) pairs.
    """
    listener = Listener(**options)
    listener.start(timeout=timeout)
    return listener
