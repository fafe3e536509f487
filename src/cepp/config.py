"""
Configuration for CEPP tools.

Settings come from environment variables, optionally overlaid by a YAML
config file named by ``CEPP_CONFIG_FILE``::

    trust_store: /etc/cepp/trusted_ca_public_keys.yaml
    ca_keystore: /etc/cepp/ca_private_keys.yaml
    logging:
      level: INFO
      format: json
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .truststore import CAKeystore, TrustStore, load_ca_keystore, load_trust_store


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a YAML config file.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping
    """
    config_path = Path(path)
    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        msg = f"Configuration file not found: {config_path}"
        raise ConfigurationError(msg) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in configuration file {config_path}: {e}"
        raise ConfigurationError(msg) from e

    if not isinstance(data, Mapping):
        msg = f"Configuration file {config_path} must contain a mapping"
        raise ConfigurationError(msg)
    return dict(data)


@dataclass(frozen=True)
class CeppConfig:
    """Resolved configuration for the CEPP tools."""

    environment: str = "development"
    trust_store_path: Path | None = None
    ca_keystore_path: Path | None = None
    log_level: str = "WARNING"
    log_format: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CeppConfig:
        """Create configuration from environment variables and the optional config file."""
        env = os.environ if environ is None else environ
        file_config: dict[str, Any] = {}
        if env.get("CEPP_CONFIG_FILE"):
            file_config = load_config_file(env["CEPP_CONFIG_FILE"])
        logging_config = file_config.get("logging") or {}

        trust_store = env.get("CEPP_TRUST_STORE") or file_config.get("trust_store")
        ca_keystore = env.get("CEPP_CA_KEYSTORE") or file_config.get("ca_keystore")
        return cls(
            environment=env.get("CEPP_ENV", "development").lower(),
            trust_store_path=Path(trust_store) if trust_store else None,
            ca_keystore_path=Path(ca_keystore) if ca_keystore else None,
            log_level=env.get("CEPP_LOG_LEVEL") or logging_config.get("level", "WARNING"),
            log_format=env.get("CEPP_LOG_FORMAT") or logging_config.get("format"),
        )

    def load_trust_store(self) -> TrustStore:
        if self.trust_store_path is None:
            msg = "No trust store configured (set CEPP_TRUST_STORE or pass --trust-store)"
            raise ConfigurationError(msg)
        return load_trust_store(self.trust_store_path)

    def load_ca_keystore(self) -> CAKeystore:
        if self.ca_keystore_path is None:
            msg = "No CA keystore configured (set CEPP_CA_KEYSTORE or pass --keystore)"
            raise ConfigurationError(msg)
        return load_ca_keystore(self.ca_keystore_path)
