# border0/client/authentication.py
"""
Authentication against the Border0 API

Two flows:
1. Legacy credentials: POST /login with email and password
2. Device authorization: POST /device_authorizations, send the user to the
   portal, then poll GET /device_authorizations until a token is issued

On success the token optionally goes to <home>/.border0/token (0600) and
the client switches to it.
"""

import getpass
import logging
import os
import platform
import subprocess
import threading
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

import jwt
import requests

from ..homedir import get_user_home_dir
from .backoff import ExponentialBackOff, sleep
from .errors import AuthenticationError, Border0Error, HTTPRequestError, RequestCancelledError
from .http_client import HEADER_ACCESS_TOKEN
from .schemas import DeviceAuthorizationStatus, LoginRequest, TokenResponse

logger = logging.getLogger('border0.client.auth')

TOKEN_DIR_MODE = 0o750
TOKEN_FILE_MODE = 0o600

# Device authorization polling schedule
POLL_INITIAL_INTERVAL = 1.0
POLL_MAX_INTERVAL = 5.0
POLL_MULTIPLIER = 1.3
POLL_MAX_ELAPSED = 180.0


@dataclass
class AuthConfig:
    """Authentication options"""
    token_storage_file_path: Optional[Path] = None
    token_writing_enabled: bool = True
    browser_enabled: bool = True

    # Deprecated programmatic login
    legacy_auth: bool = False
    email: str = ""
    password: str = ""

    def __post_init__(self):
        if self.token_storage_file_path is None:
            try:
                home = get_user_home_dir()
            except OSError as e:
                raise Border0Error(
                    f"no token storage filepath provided and failed to get user home directory: {e}"
                ) from e
            self.token_storage_file_path = home / ".border0" / "token"
        else:
            self.token_storage_file_path = Path(self.token_storage_file_path)

    @classmethod
    def with_legacy_credentials(cls, email: str = "", password: str = "", **kwargs) -> "AuthConfig":
        return cls(legacy_auth=True, email=email, password=password, **kwargs)


def write_token_file(path: Path, token: str):
    """Write the token with owner-only permissions"""
    path.parent.mkdir(parents=True, exist_ok=True, mode=TOKEN_DIR_MODE)
    path.write_text(token)
    os.chmod(path, TOKEN_FILE_MODE)


def read_from_terminal(prompt: str) -> str:
    """Prompt on the terminal with echo suppressed"""
    return getpass.getpass(f"{prompt}: ")


def open_browser(url: str):
    """Best effort; the URL has already been printed either way"""
    # Under sudo on macOS, open the browser as the invoking user so their session is used
    sudo_username = os.environ.get("SUDO_USER", "")
    if platform.system() == "Darwin" and sudo_username:
        result = subprocess.run(
            ["sudo", "-u", sudo_username, "open", url],
            check=False,
            capture_output=True,
        )
        if result.returncode == 0:
            return
    try:
        webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug(f"Could not open browser: {e}")


class AuthenticationService:
    """Authentication methods, mixed into APIClient"""

    def authenticate(self, config: Optional[AuthConfig] = None, cancel: Optional[threading.Event] = None):
        """
        Obtain a token and switch the client to it.

        Raises:
            AuthenticationError: the login flow failed
            Border0Error: the token could not be written
        """
        config = config or AuthConfig()

        if config.legacy_auth:
            token = self._legacy_login(config, cancel)
        else:
            token = self._device_authorization(config, cancel)

        if config.token_writing_enabled:
            try:
                write_token_file(config.token_storage_file_path, token)
            except OSError as e:
                raise Border0Error(f"failed to write Border0 token: {e}") from e
            logger.info(f"Border0 token written to {config.token_storage_file_path}")

        self.set_auth_token(token)

    def _legacy_login(self, config: AuthConfig, cancel: Optional[threading.Event]) -> str:
        email = config.email or read_from_terminal("email")
        password = config.password or read_from_terminal("password")

        _, out = self.request(
            "POST",
            "/login",
            body=LoginRequest(email=email, password=password),
            response_model=TokenResponse,
            cancel=cancel,
        )
        if not out.token:
            raise AuthenticationError("login response carried no token")
        return out.token

    def _device_authorization(self, config: AuthConfig, cancel: Optional[threading.Event]) -> str:
        try:
            _, out = self.request("POST", "/device_authorizations", response_model=TokenResponse, cancel=cancel)
        except RequestCancelledError:
            raise
        except HTTPRequestError as e:
            raise AuthenticationError(f"failed to initiate Border0 device authorization flow: {e}") from e

        try:
            claims = jwt.decode(out.token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise AuthenticationError("failed to decode Border0 device authorization token") from e

        device_identifier = str(claims.get("identifier"))
        url = f"{self.portal_base_url}/login?device_identifier={quote_plus(device_identifier)}"
        print(f"Please navigate to the URL below in order to complete the login process:\n{url}")

        if config.browser_enabled:
            open_browser(url)

        return self._poll_for_token(out.token, cancel)

    def get_device_authorization_status(self, device_auth_token: str) -> DeviceAuthorizationStatus:
        """
        One poll of the device authorization.

        Raises:
            AuthenticationError: not authorized yet, or the poll failed
        """
        try:
            response = requests.get(
                f"{self.base_url}/device_authorizations",
                headers={HEADER_ACCESS_TOKEN: device_auth_token},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthenticationError(str(e)) from e

        if response.status_code == 401:
            raise AuthenticationError("unauthorized")
        if response.status_code != 200:
            raise AuthenticationError(f"failed to get device_authorization ({response.status_code})")

        try:
            status = DeviceAuthorizationStatus.model_validate_json(response.content)
        except ValueError as e:
            raise AuthenticationError("failed to decode device auth response") from e

        if not status.token or status.state == "not_authorized":
            raise AuthenticationError("unauthorized")
        return status

    def _poll_for_token(self, device_auth_token: str, cancel: Optional[threading.Event]) -> str:
        schedule = ExponentialBackOff(
            initial_interval=POLL_INITIAL_INTERVAL,
            multiplier=POLL_MULTIPLIER,
            max_interval=POLL_MAX_INTERVAL,
            max_elapsed_time=POLL_MAX_ELAPSED,
        )

        while True:
            try:
                status = self.get_device_authorization_status(device_auth_token)
                print("Login successful")
                return status.token
            except AuthenticationError as e:
                last_error = e

            delay = schedule.next_backoff()
            if delay is None:
                print(f"We couldn't log you in, make sure that you are properly logged in using the link above: {last_error}")
                raise AuthenticationError(f"failed to authenticate you against Border0: {last_error}") from last_error
            if sleep(delay, cancel):
                raise RequestCancelledError()
