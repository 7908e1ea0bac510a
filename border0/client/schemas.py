# border0/client/schemas.py
"""
Pydantic schemas for the Border0 API resources used by the SDK
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .flexible_time import ZERO_TIME, FlexibleTime


class SocketType(str, Enum):
    """Socket types known to the platform. The listener only creates http sockets."""
    HTTP = "http"
    SSH = "ssh"
    TLS = "tls"
    DATABASE = "database"
    VNC = "vnc"
    RDP = "rdp"
    TCP = "tcp"
    KUBERNETES = "kubernetes"
    SNOWFLAKE = "snowflake"
    VPN = "vpn"
    SUBNET_ROUTER = "subnet-router"
    EXIT_NODE = "exit-node"
    AWS_ACCESS = "aws-access"
    AWS_S3 = "aws-s3"
    ELASTICSEARCH = "elasticsearch"
    DOCKER = "docker"


class _APIModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# Policy Schemas
# =============================================================================

class PolicyWho(_APIModel):
    email: Optional[List[str]] = None
    domain: Optional[List[str]] = None
    group: Optional[List[str]] = None


class PolicyWhere(_APIModel):
    allowed_ip: Optional[List[str]] = None
    country: Optional[List[str]] = None
    country_not: Optional[List[str]] = None


class PolicyWhen(_APIModel):
    after: Optional[str] = None
    before: Optional[str] = None
    time_of_day_after: Optional[str] = None
    time_of_day_before: Optional[str] = None


class PolicyCondition(_APIModel):
    who: PolicyWho = Field(default_factory=PolicyWho)
    where: PolicyWhere = Field(default_factory=PolicyWhere)
    when: PolicyWhen = Field(default_factory=PolicyWhen)


class PolicyData(_APIModel):
    version: str = "v1"
    action: List[str] = Field(default_factory=list)
    condition: PolicyCondition = Field(default_factory=PolicyCondition)


class Policy(_APIModel):
    """A policy; org-wide policies apply to every socket, others are attached per socket"""
    id: str = ""
    name: str = ""
    description: str = ""
    org_id: str = ""
    org_wide: bool = False
    policy_data: PolicyData = Field(default_factory=PolicyData)
    created_at: FlexibleTime = ZERO_TIME
    socket_ids: Optional[List[str]] = None
    deleted: bool = False


class PolicySocketAttachment(_APIModel):
    action: str = Field(..., pattern="^(add|remove)$")
    id: str


class PolicySocketAttachments(_APIModel):
    actions: List[PolicySocketAttachment] = Field(default_factory=list)


# =============================================================================
# Socket Schemas
# =============================================================================

class Socket(_APIModel):
    """A named endpoint; name is unique within the organization, socket_id is server-assigned"""
    name: str = ""
    socket_id: str = ""
    socket_type: str = ""
    description: Optional[str] = None
    upstream_type: Optional[str] = None
    upstream_http_hostname: Optional[str] = None
    recording_enabled: bool = False
    connector_authentication_enabled: bool = False
    tags: Optional[Dict[str, str]] = None

    # Link to a connector with upstream config (opaque to the SDK)
    connector_id: Optional[str] = None
    upstream_configuration: Optional[Dict[str, Any]] = None

    policies: Optional[List[Policy]] = None


class SocketKeyToSign(_APIModel):
    """SSH public key in OpenSSH authorized_keys format"""
    ssh_public_key: str


class SignedSocketKey(_APIModel):
    """Signed SSH certificate plus the base64 wire-format host key of the dispatcher"""
    signed_ssh_cert: str = ""
    host_key: str = ""


# =============================================================================
# Authentication Schemas
# =============================================================================

class LoginRequest(_APIModel):
    email: str
    password: str


class TokenResponse(_APIModel):
    token: str = ""


class DeviceAuthorizationStatus(_APIModel):
    token: str = ""
    state: str = ""
