# border0/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.border0.com/api/v1"
DEFAULT_PORTAL_BASE_URL = "https://portal.border0.com"
DEFAULT_TUNNEL_SERVER = "tunnel.border0.com:22"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BORDER0_", env_ignore_empty=True)

    # Bearer token used when none is given programmatically
    AUTH_TOKEN: str = ""

    # Control plane
    BASE_URL: str = DEFAULT_BASE_URL
    PORTAL_BASE_URL: str = DEFAULT_PORTAL_BASE_URL

    # Listener
    SOCKET_NAME: str = ""
    TUNNEL_SERVER: str = DEFAULT_TUNNEL_SERVER


def load_settings() -> Settings:
    """Read settings from the environment. Called once per client or listener at startup."""
    return Settings()
