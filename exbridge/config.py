import configparser
import logging
import os
import shlex
import sys
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from exbridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.cfg"
CONFIG_SECTION = "EXBRIDGE"
WORKER_MODULE = "exbridge.connectors.ccxt_connector.main"


def default_worker_command() -> List[str]:
    return [sys.executable, "-m", WORKER_MODULE]


class BridgeConfig(BaseModel):
    """Process-wide settings for the worker pool and the call bridge."""

    model_config = ConfigDict(frozen=True)

    pool_size: int = Field(default=16, ge=0)
    call_timeout: float = Field(default=30.0, gt=0)
    startup_timeout: float = Field(default=60.0, gt=0)
    max_restarts: int = Field(default=5, ge=1)
    worker_command: List[str] = Field(default_factory=default_worker_command, min_length=1)
    max_message_bytes: int = Field(default=64 * 1024 * 1024, gt=0)
    health_port: int = Field(default=5000, ge=0, le=65535)

    @classmethod
    def from_env(cls, config_file: str = CONFIG_FILE) -> "BridgeConfig":
        """Read each setting from ``EXBRIDGE_<NAME>``, else from the ``[EXBRIDGE]``
        section of ``config_file``, else use the default.

        :raises ConfigurationError: If a value is present but invalid.
        """
        parser = configparser.ConfigParser()
        parser.read(config_file)

        values = {}
        for name in cls.model_fields:
            raw = _lookup(parser, name)
            if raw is None:
                continue
            values[name] = shlex.split(raw) if name == "worker_command" else raw
        try:
            config = cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid exbridge configuration: {e}") from e
        logger.debug(f"Loaded configuration: {config}")
        return config


def _lookup(parser: configparser.ConfigParser, name: str) -> Optional[str]:
    env_value = os.getenv(f"EXBRIDGE_{name.upper()}")
    if env_value is not None:
        return env_value
    if parser.has_option(CONFIG_SECTION, name):
        return parser.get(CONFIG_SECTION, name)
    return None
