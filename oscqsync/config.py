import ipaddress

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OSCQuerySettings(BaseSettings):
    """OSCQuery service configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="OSCQUERY_", env_file=".env", extra="ignore"
    )

    service_name: str = Field(
        "OSCQuery-Service",
        min_length=1,
        description="Instance name advertised for both the HTTP query and OSC services.",
    )
    host: str = Field(
        "127.0.0.1",
        description="Address the query server binds to and that is advertised in A records.",
    )
    osc_port: int = Field(
        9001, ge=1, le=65535, description="UDP port this process receives OSC on."
    )
    http_port: int = Field(
        0,
        ge=0,
        le=65535,
        description="Port for the HTTP query server; 0 binds an ephemeral port.",
    )
    peer_name_prefix: str = Field(
        "VRChat-Client-",
        description="Instance-name prefix of peers whose namespace is synchronized.",
    )
    parameters_path: tuple[str, ...] = Field(
        ("avatar", "parameters"),
        description="Child names leading from a peer's root node to its parameters.",
    )
    fetch_timeout_seconds: float = Field(
        10.0, gt=0, description="Total timeout for one namespace fetch."
    )
    record_ttl_seconds: int = Field(
        120, ge=1, description="TTL of advertised multicast DNS records."
    )
    interface_poll_interval_seconds: float = Field(
        30.0,
        gt=0,
        description="How often network interfaces are checked for new addresses.",
    )
    log_level: str = Field("INFO", description="Log level for configure_logging.")

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        try:
            ipaddress.ip_address(value)
        except ValueError as exc:
            raise ValueError(f"host must be an IP address, got {value!r}") from exc
        return value
