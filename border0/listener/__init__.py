"""
Border0 Listener

Exposes a local connection listener backed by an SSH tunnel to the Border0
tunnel server. Connections made to the socket on the Border0 side are
accepted here as socket-like channels.
"""

__all__ = ["Listener", "ListenerState", "TunnelSession", "RemoteListener"]

from .listener import Listener, ListenerState
from .tunnel import RemoteListener, TunnelSession
