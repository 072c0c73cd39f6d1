"""
Pydantic Settings configuration for imapstream.

Loads account and negotiation settings from environment variables
(``IMAPSTREAM_*``) or a ``.env`` file, and defines the validated option
structure accepted when a session is created by hand.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from imapstream.core.logging import configure_logging

DEFAULT_PORTS: tuple[int, ...] = (993, 143)


def _check_ports(ports: list[int]) -> list[int]:
    if not ports:
        raise ValueError("at least one port is required")
    for port in ports:
        if not 1 <= port <= 65535:
            raise ValueError(f"port {port} is outside 1-65535")
    return ports


class AccountOptions(BaseModel):
    """Optional knobs for a single account.

    ``port`` accepts one port or an ordered list; only those ports are
    tried during negotiation. ``mailbox`` is the default mailbox path.
    """

    port: int | list[int] | None = None
    mailbox: str = ""

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int | list[int] | None) -> int | list[int] | None:
        if value is None:
            return value
        _check_ports([value] if isinstance(value, int) else list(value))
        return value

    @property
    def ports(self) -> list[int]:
        """Ports to negotiate against, in order."""
        if self.port is None:
            return list(DEFAULT_PORTS)
        if isinstance(self.port, int):
            return [self.port]
        return list(self.port)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Account
    imap_host: str = Field(..., pattern=r"^[a-zA-Z0-9.-]+$")
    imap_user: str = Field(..., min_length=1)
    imap_pass: SecretStr = Field(...)
    imap_ports: list[int] = Field(default_factory=lambda: list(DEFAULT_PORTS))
    imap_mailbox: str = Field("INBOX")

    # Negotiation
    connect_timeout: int = Field(30, ge=1, le=300)
    # Skips the reachability check before the first connection attempt
    skip_network_check: bool = Field(False)
    check_timeout: float = Field(3.0, gt=0, le=60)

    # Logging settings
    log_format: str = Field("console", pattern=r"^(console|json)$")
    debug: bool = Field(False)

    model_config = {
        "env_prefix": "IMAPSTREAM_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("imap_ports")
    @classmethod
    def _validate_ports(cls, value: list[int]) -> list[int]:
        return _check_ports(value)

    def account_options(self) -> AccountOptions:
        """Build the per-account options these settings describe."""
        return AccountOptions(port=list(self.imap_ports), mailbox=self.imap_mailbox)

    def setup_logging(self) -> None:
        """Configure structlog from ``log_format`` and ``debug``."""
        configure_logging(json_format=self.log_format == "json", debug=self.debug)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure only one Settings instance is created,
    avoiding repeated environment variable parsing.
    """
    return Settings()  # type: ignore[call-arg]
