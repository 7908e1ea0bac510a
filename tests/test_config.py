# tests/test_config.py
"""
Unit Tests for settings and home directory lookup
"""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

import border0
from border0.config import (
    DEFAULT_BASE_URL,
    DEFAULT_PORTAL_BASE_URL,
    DEFAULT_TUNNEL_SERVER,
    load_settings,
)
from border0.homedir import get_user_home_dir


class TestSettings:
    """Tests for BORDER0_* settings"""

    def test_defaults(self):
        settings = load_settings()

        assert settings.AUTH_TOKEN == ""
        assert settings.BASE_URL == DEFAULT_BASE_URL == "https://api.border0.com/api/v1"
        assert settings.PORTAL_BASE_URL == DEFAULT_PORTAL_BASE_URL
        assert settings.SOCKET_NAME == ""
        assert settings.TUNNEL_SERVER == DEFAULT_TUNNEL_SERVER == "tunnel.border0.com:22"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BORDER0_AUTH_TOKEN", "tok")
        monkeypatch.setenv("BORDER0_SOCKET_NAME", "sdk-socket-http")
        monkeypatch.setenv("BORDER0_TUNNEL_SERVER", "localhost:2222")

        settings = load_settings()

        assert settings.AUTH_TOKEN == "tok"
        assert settings.SOCKET_NAME == "sdk-socket-http"
        assert settings.TUNNEL_SERVER == "localhost:2222"

    def test_empty_variable_keeps_default(self, monkeypatch):
        monkeypatch.setenv("BORDER0_TUNNEL_SERVER", "")

        assert load_settings().TUNNEL_SERVER == DEFAULT_TUNNEL_SERVER


class TestHomeDir:
    """Tests for get_user_home_dir"""

    def test_current_user(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SUDO_USER", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert get_user_home_dir() == tmp_path

    def test_sudo_user_on_macos(self, monkeypatch):
        monkeypatch.setenv("SUDO_USER", "alice")

        with patch("border0.homedir.platform.system", return_value="Darwin"):
            assert get_user_home_dir() == Path("/Users/alice")

    def test_sudo_user_from_passwd(self, monkeypatch):
        pwd = pytest.importorskip("pwd")
        monkeypatch.setenv("SUDO_USER", "alice")

        with patch("border0.homedir.platform.system", return_value="Linux"), \
                patch.object(pwd, "getpwnam", return_value=Mock(pw_dir="/home/alice")):
            assert get_user_home_dir() == Path("/home/alice")

    def test_unknown_sudo_user(self, monkeypatch):
        pwd = pytest.importorskip("pwd")
        monkeypatch.setenv("SUDO_USER", "nobody-such-user")

        with patch("border0.homedir.platform.system", return_value="Linux"), \
                patch.object(pwd, "getpwnam", side_effect=KeyError("nobody-such-user")):
            with pytest.raises(OSError, match="couldn't get user details"):
                get_user_home_dir()


class TestPackage:
    """Tests for top-level helpers"""

    def test_new_api_client(self):
        client = border0.new_api_client(auth_token="tok", base_url="http://x")

        assert isinstance(client, border0.APIClient)
        assert client.auth_token == "tok"

    def test_listen_starts_listener(self):
        with patch("border0.Listener") as listener_cls:
            listener = border0.listen(timeout=2, socket_name="sdk-socket-http")

        listener_cls.assert_called_once_with(socket_name="sdk-socket-http")
        listener.start.assert_called_once_with(timeout=2)
