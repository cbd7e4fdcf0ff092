"""Client configuration.

Centralizes the settings the host application supplies to the client and
how they are read from the environment.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "http://localhost:8080"


class ClientConfig(BaseModel):
    """Settings for talking to the session service."""

    base_url: str = Field(default=DEFAULT_BASE_URL, description="Service root URL")
    api_key: str | None = Field(default=None, description="Credential for Bearer / X-API-Key auth")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    max_sessions: int = Field(default=10, ge=1, description="Upper bound for batch session starts")
    session_timeout: float = Field(default=300.0, gt=0, description="Idle session lifetime in seconds")
    debug: bool = Field(default=False, description="Enable debug logging")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Remove a trailing slash so endpoints can be appended directly."""
        v = v.strip()
        if not v:
            raise ValueError("base_url must not be empty")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def blank_key_is_none(cls, v: str | None) -> str | None:
        """Treat an empty credential as no credential."""
        if v is None or not v.strip():
            return None
        return v.strip()


def _env_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def load_config(env_file: str | None = None) -> ClientConfig:
    """Create client configuration from environment variables.

    Args:
        env_file: Optional .env file to load first (default: search for .env)

    Returns:
        Validated client configuration

    Environment variables:
        AGENTRELAY_BASE_URL: Service root URL (default: http://localhost:8080)
        AGENTRELAY_API_KEY: API key (optional)
        AGENTRELAY_TIMEOUT: Request timeout in seconds (default: 10)
        AGENTRELAY_MAX_SESSIONS: Batch start limit (default: 10)
        AGENTRELAY_SESSION_TIMEOUT: Session lifetime in seconds (default: 300)
        AGENTRELAY_DEBUG: Enable debug logging (default: false)
    """
    load_dotenv(env_file)
    return ClientConfig(
        base_url=os.getenv("AGENTRELAY_BASE_URL", DEFAULT_BASE_URL),
        api_key=os.getenv("AGENTRELAY_API_KEY"),
        timeout=float(os.getenv("AGENTRELAY_TIMEOUT", "10")),
        max_sessions=int(os.getenv("AGENTRELAY_MAX_SESSIONS", "10")),
        session_timeout=float(os.getenv("AGENTRELAY_SESSION_TIMEOUT", "300")),
        debug=_env_bool(os.getenv("AGENTRELAY_DEBUG")),
    )
