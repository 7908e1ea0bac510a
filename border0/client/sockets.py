# border0/client/sockets.py
"""
Socket endpoints of the Border0 API
"""

import threading
from typing import List, Optional

from .errors import CertificateError, NotFoundError, RequestFailedError, is_not_found
from .schemas import SignedSocketKey, Socket, SocketKeyToSign


class SocketService:
    """Socket methods, mixed into APIClient"""

    def socket(self, id_or_name: str, cancel: Optional[threading.Event] = None) -> Socket:
        """
        Fetch a socket by UUID or by name (unique within the organization).

        Raises:
            NotFoundError: the socket does not exist; is_not_found() holds for it
        """
        try:
            _, out = self.request("GET", f"/socket/{id_or_name}", response_model=Socket, cancel=cancel)
        except RequestFailedError as e:
            if is_not_found(e):
                raise NotFoundError(f"socket [{id_or_name}] not found: {e}") from e
            raise
        return out

    def sockets(self, cancel: Optional[threading.Event] = None) -> List[Socket]:
        _, out = self.request("GET", "/socket", response_model=List[Socket], cancel=cancel)
        return out or []

    def create_socket(self, socket: Socket, cancel: Optional[threading.Event] = None) -> Socket:
        """Create a socket. Names must be unique and contain only lowercase letters, digits and dashes."""
        _, out = self.request("POST", "/socket", body=socket, response_model=Socket, cancel=cancel)
        return out

    def update_socket(self, id_or_name: str, socket: Socket, cancel: Optional[threading.Event] = None) -> Socket:
        _, out = self.request("PUT", f"/socket/{id_or_name}", body=socket, response_model=Socket, cancel=cancel)
        return out

    def delete_socket(self, id_or_name: str, cancel: Optional[threading.Event] = None):
        """Delete a socket. Deleting a socket that does not exist is not an error."""
        try:
            self.request("DELETE", f"/socket/{id_or_name}", cancel=cancel)
        except RequestFailedError as e:
            if not is_not_found(e):
                raise

    def sign_socket_key(
        self,
        id_or_name: str,
        key: SocketKeyToSign,
        cancel: Optional[threading.Event] = None,
    ) -> SignedSocketKey:
        """
        Have the API sign an OpenSSH public key for this socket.

        The certificate is short-lived (about 5 minutes). The returned host key
        is the dispatcher's public key, base64 of its wire encoding.
        """
        status, out = self.request(
            "POST", f"/socket/{id_or_name}/signkey", body=key, response_model=SignedSocketKey, cancel=cancel
        )
        if out is None:
            raise CertificateError(f"unable to get signed key from server (status {status})")
        return out
