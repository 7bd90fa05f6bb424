"""
Configuration for the Actual MCP server.

SECURITY AUDIT NOTES:
- The server password is read from ACTUAL_PASSWORD or the OS keyring
- The password is NEVER logged or printed
- Settings are read once at startup
"""

import os
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError

KEYRING_SERVICE = "actual-mcp-server"
KEYRING_USERNAME = "password"

DEFAULT_BRIDGE_URL = "http://localhost:5007"


class Settings(BaseModel):
    """Startup settings, read from the environment."""
    model_config = ConfigDict(frozen=True)

    server_url: str = Field(..., description="URL of the Actual sync server")
    password: Optional[str] = Field(default=None, repr=False, description="Sync server password")
    data_dir: Path = Field(..., description="Local cache directory for budget files")
    budget_id: Optional[str] = Field(default=None, description="Budget to load at startup")
    bridge_url: str = Field(default=DEFAULT_BRIDGE_URL, description="URL of the Actual API bridge")
    debug: bool = Field(default=False, description="Verbose logging and stacks in error payloads")


def default_data_dir() -> Path:
    """Per-user data directory, following XDG_DATA_HOME when set."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"
    return base / "actual-mcp"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


# ============================================================================
# PASSWORD MANAGEMENT
# ============================================================================

def get_password() -> Optional[str]:
    """
    Retrieve the sync server password.

    Priority:
    1. Environment variable ACTUAL_PASSWORD
    2. OS keyring

    Returns None when no password is configured; servers without
    authentication are allowed.
    """
    password = os.environ.get("ACTUAL_PASSWORD")
    if password:
        return password

    try:
        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except KeyringError:
        return None


def store_password(password: str) -> bool:
    """
    Store the sync server password in the OS keyring.

    Returns:
        True if stored successfully, False otherwise
    """
    try:
        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, password)
        return True
    except KeyringError as e:
        print(f"Error storing password: {e}")
        return False


# ============================================================================
# SETTINGS
# ============================================================================

def load_settings() -> Settings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: If ACTUAL_SERVER_URL is not set
    """
    server_url = os.environ.get("ACTUAL_SERVER_URL", "").strip()
    if not server_url:
        raise ConfigurationError(
            "ACTUAL_SERVER_URL environment variable is required",
            hint="Set ACTUAL_SERVER_URL to your Actual sync server, e.g. http://localhost:5006",
        )

    data_dir = os.environ.get("ACTUAL_DATA_DIR")

    return Settings(
        server_url=server_url,
        password=get_password(),
        data_dir=Path(data_dir).expanduser() if data_dir else default_data_dir(),
        budget_id=os.environ.get("ACTUAL_BUDGET_ID") or None,
        bridge_url=os.environ.get("ACTUAL_BRIDGE_URL") or DEFAULT_BRIDGE_URL,
        debug=_env_flag("ACTUAL_DEBUG"),
    )
