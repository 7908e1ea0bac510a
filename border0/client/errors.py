# border0/client/errors.py
"""
Border0 client exceptions

Every error raised by the SDK derives from Border0Error. Errors carry the
HTTP status of the attempt that produced them (0 when no response was
received) so callers and the retrying executor can classify them.
"""

from typing import Optional


class Border0Error(Exception):
    """Base class for all Border0 SDK errors"""


class HTTPRequestError(Border0Error):
    """A single HTTP attempt failed"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class APIError(HTTPRequestError):
    """Error body returned by the Border0 API on a 4xx/5xx response"""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}", status_code=code)


class RequestFailedError(HTTPRequestError):
    """Final error of the retrying executor"""

    def __init__(self, attempts: int, inner: HTTPRequestError):
        self.attempts = attempts
        noun = "attempt" if attempts == 1 else "attempts"
        super().__init__(f"failed after {attempts} {noun}: {inner}", status_code=inner.status_code)
        self.__cause__ = inner


class RequestCancelledError(HTTPRequestError):
    """The caller's cancellation scope was set"""

    def __init__(self, message: str = "request cancelled"):
        super().__init__(message, status_code=0)


class NotFoundError(Border0Error):
    """Requested resource does not exist"""


class AuthenticationError(Border0Error):
    """Login or device authorization failed"""


class CertificateError(Border0Error):
    """Signed certificate or host key returned by the API is unusable"""


class TunnelError(Border0Error):
    """Dispatcher-side failure"""


class HostKeyMismatchError(TunnelError):
    """Dispatcher presented a host key other than the pinned one"""


class SessionEndedError(TunnelError):
    """Tunnel session ended abnormally"""


class ListenerClosedError(TunnelError):
    """Operation on a listener that has been closed"""


def _api_error_in_chain(err: Optional[BaseException]) -> Optional[APIError]:
    seen = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, APIError):
            return err
        seen.add(id(err))
        err = err.__cause__
    return None


def is_not_found(err: Optional[BaseException]) -> bool:
    """True if err, or any error it wraps, is a 404 from the API"""
    api_err = _api_error_in_chain(err)
    return api_err is not None and api_err.code == 404


def is_unauthorized(err: Optional[BaseException]) -> bool:
    """True if err, or any error it wraps, is a 401 from the API"""
    api_err = _api_error_in_chain(err)
    return api_err is not None and api_err.code == 401
