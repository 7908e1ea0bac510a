# border0/listener/keypair.py
"""
Ephemeral keypair and signed certificate for dialing the tunnel server

Each dial uses a fresh ECDSA P-256 keypair. The public half is signed by
the Border0 API into a short-lived OpenSSH user certificate; the response
also carries the tunnel server's host key, which the next dial pins.
"""

import base64
import binascii
import io
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

import paramiko
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..client.errors import CertificateError
from ..client.schemas import SocketKeyToSign


@dataclass(frozen=True)
class KeyPair:
    """PEM private key (SEC1 "EC PRIVATE KEY") and OpenSSH authorized_keys public key"""
    private_key: bytes
    public_key: bytes


def generate_key_pair() -> KeyPair:
    private_key = ec.generate_private_key(ec.SECP256R1())

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_ssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    return KeyPair(private_key=private_pem, public_key=public_ssh)


def parse_host_key(encoded: str) -> paramiko.PKey:
    """Parse a base64 SSH wire-format public key"""
    try:
        blob = base64.b64decode(encoded, validate=True)
        key_type = paramiko.Message(blob).get_text()
        return paramiko.PKey.from_type_string(key_type, blob)
    except (binascii.Error, paramiko.SSHException, paramiko.UnknownKeyType, ValueError) as e:
        raise CertificateError(f"failed to parse host key: {e}") from e


def _load_certificate(signed_cert: str, keypair: KeyPair):
    try:
        identity = serialization.load_ssh_public_identity(signed_cert.strip().encode())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertificateError(f"failed to parse signed certificate: {e}") from e

    if not isinstance(identity, serialization.SSHCertificate):
        raise CertificateError("signed key is not an SSH certificate")

    embedded = identity.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    if embedded != keypair.public_key.strip():
        raise CertificateError("signed certificate does not match the submitted public key")
    return identity


def sign_certificate(
    api_client,
    socket_name: str,
    keypair: KeyPair,
    cancel: Optional[threading.Event] = None,
) -> Tuple[paramiko.PKey, paramiko.PKey]:
    """
    Have the API sign keypair's public key for socket_name.

    Returns:
        (signer, host_key): a paramiko key carrying the certificate, and the
        tunnel server's host key to pin on the next dial

    Raises:
        CertificateError: the API returned no certificate or an unusable one
    """
    signed = api_client.sign_socket_key(
        socket_name,
        SocketKeyToSign(ssh_public_key=keypair.public_key.decode()),
        cancel=cancel,
    )
    if not signed.signed_ssh_cert:
        raise CertificateError("unable to get signed key from server")

    _load_certificate(signed.signed_ssh_cert, keypair)

    try:
        signer = paramiko.ECDSAKey.from_private_key(io.StringIO(keypair.private_key.decode()))
        signer.load_certificate(signed.signed_ssh_cert.strip())
    except (paramiko.SSHException, ValueError) as e:
        raise CertificateError(f"failed to create signer from certificate: {e}") from e

    host_key = parse_host_key(signed.host_key)
    return signer, host_key
