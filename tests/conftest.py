# tests/conftest.py
"""
Pytest fixtures shared by client and listener tests
"""

import base64
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import Mock

import jwt
import paramiko
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from border0.client import APIClient
from border0.client.schemas import SignedSocketKey


BORDER0_ENV_VARS = [
    "BORDER0_AUTH_TOKEN",
    "BORDER0_BASE_URL",
    "BORDER0_PORTAL_BASE_URL",
    "BORDER0_SOCKET_NAME",
    "BORDER0_TUNNEL_SERVER",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's BORDER0_* environment out of tests"""
    for name in BORDER0_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_token(**claims) -> str:
    """Unsigned-for-our-purposes JWT; the SDK never verifies signatures"""
    return jwt.encode(claims, "test-secret", algorithm="HS256")


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def auth_token():
    return make_token(sub="8c7e6d5b-4a39-2817-0605-f4e3d2c1b0a9", org_id="org-1")


@pytest.fixture
def api_client(auth_token):
    """API client with zero-delay retries"""
    client = APIClient(
        auth_token=auth_token,
        base_url="http://api.test/api/v1",
        backoff=lambda wait_min, wait_max, attempt: 0,
    )
    yield client
    client.close()


# ============================================
# Local HTTP server
# ============================================

class _ScriptedHandler(BaseHTTPRequestHandler):
    """Records each request and replies with the next scripted response"""

    def _handle(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.received.append({
            "method": self.command,
            "path": self.path,
            "headers": self.headers,
            "body": body,
        })

        if self.server.responses:
            status, payload, content_type = self.server.responses.pop(0)
        else:
            status, payload, content_type = 200, b"{}", "application/json"

        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle

    def log_message(self, format, *args):
        pass


class ScriptedServer:
    def __init__(self, httpd):
        self._httpd = httpd
        host, port = httpd.server_address
        self.url = f"http://{host}:{port}"

    @property
    def requests(self):
        return self._httpd.received

    def respond(self, status: int, body=None, raw: bytes = None, content_type: str = "application/json"):
        """Queue a response; body is JSON-encoded, raw is sent as-is"""
        payload = raw if raw is not None else json.dumps(body if body is not None else {}).encode()
        self._httpd.responses.append((status, payload, content_type))


@pytest.fixture
def http_server():
    """Local HTTP server replying with scripted responses"""
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _ScriptedHandler)
    httpd.received = []
    httpd.responses = []
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    yield ScriptedServer(httpd)

    httpd.shutdown()
    httpd.server_close()


# ============================================
# SSH certificate authority
# ============================================

class SSHAuthority:
    """Throwaway CA and tunnel server host key, used to answer sign-key calls"""

    def __init__(self):
        self.ca_key = ed25519.Ed25519PrivateKey.generate()
        self.rotate_host_key()

    def rotate_host_key(self):
        host_private = ed25519.Ed25519PrivateKey.generate()
        line = host_private.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )
        # Second field of an OpenSSH public key line is the base64 wire blob
        self.host_key_b64 = line.split()[1].decode()
        self.host_key = paramiko.PKey.from_type_string(
            "ssh-ed25519", base64.b64decode(self.host_key_b64)
        )

    def sign(self, public_key_line: str, principal: bytes = b"listener") -> str:
        now = int(time.time())
        cert = (
            serialization.SSHCertificateBuilder()
            .public_key(serialization.load_ssh_public_key(public_key_line.encode()))
            .serial(1)
            .type(serialization.SSHCertificateType.USER)
            .key_id(b"sdk-socket-http")
            .valid_principals([principal])
            .valid_after(now - 60)
            .valid_before(now + 300)
            .sign(self.ca_key)
        )
        return cert.public_bytes().decode()

    def signed_socket_key(self, public_key_line: str) -> SignedSocketKey:
        return SignedSocketKey(signed_ssh_cert=self.sign(public_key_line), host_key=self.host_key_b64)


@pytest.fixture
def ssh_authority():
    return SSHAuthority()


@pytest.fixture
def signing_client(ssh_authority):
    """Mock API client whose sign_socket_key answers with real certificates"""
    client = Mock()
    client.sign_socket_key.side_effect = (
        lambda name, key, cancel=None: ssh_authority.signed_socket_key(key.ssh_public_key)
    )
    return client
