"""Per-protocol server configuration with environment defaults.

Each protocol (SMTP, IMAP, POP3) carries its own partial override. Any
field left unset falls back to the environment (optionally loaded from a
``.env`` file). Overrides are resolved at session creation time, so a
reconfiguration only affects sessions opened afterwards.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidConfigError, MissingConfigError
from .logging import get_logger
from .paths import ENV_FILE_PATH

logger = get_logger(__name__)


class Protocol(str, Enum):
    """Mail protocols bridged by MailBridge."""

    SMTP = "smtp"
    IMAP = "imap"
    POP3 = "pop3"


# (secure port, plain port)
DEFAULT_PORTS = {
    Protocol.SMTP: (465, 587),
    Protocol.IMAP: (993, 143),
    Protocol.POP3: (995, 110),
}


def strip_password(password: Optional[str]) -> Optional[str]:
    """Remove all whitespace from a password (copy-pasted app passwords)."""
    if password is None:
        return None
    return re.sub(r"\s+", "", password)


class ProtocolConfig(BaseModel):
    """Partial server configuration; unset fields fall back to defaults."""

    model_config = ConfigDict(extra="ignore")

    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    secure: Optional[bool] = None

    def merged_over(self, base: "ProtocolConfig") -> "ProtocolConfig":
        """Return ``base`` with every field set on this config applied on top."""
        values = base.model_dump()
        values.update(
            {key: value for key, value in self.model_dump().items() if value is not None}
        )
        return ProtocolConfig(**values)


class ServerSettings(BaseModel):
    """Fully resolved, immutable settings used to open one session."""

    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    host: str
    port: int
    user: str
    password: str = ""
    secure: bool = False

    @field_validator("password", mode="before")
    @classmethod
    def _strip_password(cls, value: Any) -> Any:
        return strip_password(value) if isinstance(value, str) else value

    def describe(self) -> Dict[str, Any]:
        """Settings safe to log (no password)."""
        return {
            "protocol": self.protocol.value,
            "server": self.host,
            "port": self.port,
            "username": self.user,
            "secure": self.secure,
        }


ConfigInput = Union[ProtocolConfig, Mapping[str, Any], None]


def _to_config(config: ConfigInput) -> ProtocolConfig:
    if config is None:
        return ProtocolConfig()
    if isinstance(config, ProtocolConfig):
        return config
    try:
        return ProtocolConfig(**dict(config))
    except ValueError as e:
        raise InvalidConfigError(
            f"Invalid server configuration: {str(e)}"
        ) from e


class EnvironmentDefaults:
    """Reads the process-wide defaults for one protocol from the environment."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def for_protocol(self, protocol: Protocol) -> ProtocolConfig:
        prefix = protocol.value.upper()
        env = self.environ

        port_value = env.get(f"{prefix}_PORT")
        try:
            port = int(port_value) if port_value else None
        except ValueError as e:
            raise InvalidConfigError(
                f"{prefix}_PORT must be a valid integer",
                details={"value": port_value},
            ) from e

        secure_value = env.get(f"{prefix}_SECURE")

        return ProtocolConfig(
            host=env.get(f"{prefix}_HOST") or None,
            port=port,
            user=env.get("EMAIL_USER") or None,
            password=env.get("EMAIL_PASSWORD") or None,
            secure=secure_value.strip().lower() == "true" if secure_value else None,
        )


class ConfigManager:
    """Holds per-protocol overrides and resolves them into ServerSettings."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ):
        """Initialise the manager.

        Args:
            environ: Mapping used instead of ``os.environ`` (tests)
            env_file: Optional ``.env`` file loaded into the environment
        """
        if environ is None:
            load_dotenv(env_file or ENV_FILE_PATH)
            load_dotenv()
        self.defaults = EnvironmentDefaults(environ)
        self._overrides: Dict[Protocol, ProtocolConfig] = {}

    def configure(self, protocol: Union[Protocol, str], config: ConfigInput) -> None:
        """Replace the stored override for one protocol."""
        protocol = Protocol(protocol)
        self._overrides[protocol] = _to_config(config)
        logger.info(
            "Configuration updated",
            extra={
                "protocol": protocol.value,
                "fields": sorted(
                    key
                    for key, value in self._overrides[protocol].model_dump().items()
                    if value is not None
                ),
            },
        )

    def configure_all(
        self,
        smtp: ConfigInput = None,
        imap: ConfigInput = None,
        pop3: ConfigInput = None,
    ) -> None:
        """Update several protocols at once; ``None`` leaves one untouched."""
        for protocol, config in (
            (Protocol.SMTP, smtp),
            (Protocol.IMAP, imap),
            (Protocol.POP3, pop3),
        ):
            if config is not None:
                self.configure(protocol, config)

    def get_override(self, protocol: Union[Protocol, str]) -> ProtocolConfig:
        return self._overrides.get(Protocol(protocol), ProtocolConfig())

    def resolve(
        self, protocol: Union[Protocol, str], override: ConfigInput = None
    ) -> ServerSettings:
        """Resolve call-time override > stored override > environment.

        Raises:
            MissingConfigError: If no host or user can be determined
            InvalidConfigError: If a value cannot be used
        """
        protocol = Protocol(protocol)
        merged = _to_config(override).merged_over(
            self.get_override(protocol).merged_over(self.defaults.for_protocol(protocol))
        )

        if not merged.host:
            raise MissingConfigError(
                f"No {protocol.value.upper()} host configured",
                details={"protocol": protocol.value},
            )
        if not merged.user:
            raise MissingConfigError(
                f"No {protocol.value.upper()} user configured",
                details={"protocol": protocol.value},
            )

        secure = bool(merged.secure)
        secure_port, plain_port = DEFAULT_PORTS[protocol]
        port = merged.port or (secure_port if secure else plain_port)

        try:
            return ServerSettings(
                protocol=protocol,
                host=merged.host,
                port=port,
                user=merged.user,
                password=merged.password or "",
                secure=secure,
            )
        except ValueError as e:
            raise InvalidConfigError(
                f"Invalid {protocol.value.upper()} configuration: {str(e)}",
                details={"protocol": protocol.value},
            ) from e


## Default provider

_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Process-wide ConfigManager consulted when no explicit one is given."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def reset_config_manager() -> None:
    """Drop the process-wide ConfigManager (used by tests)."""
    global _config_manager
    _config_manager = None
