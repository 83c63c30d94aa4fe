"""
API Configuration Manager
Centralized management of record service configuration and connector instances
"""
import os
from pathlib import Path
from typing import Dict, Any, Optional, Mapping, Union

import toml
from dotenv import load_dotenv

from records_core.errors import ConfigurationError
from records_core.logging import get_logger
from .base_connector import BaseAPIConnector, APIConfig
from .record_connector import RecordServiceConnector, MockRecordConnector

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "clinic_records.toml"

# Environment variable -> (section, key)
ENV_VARS = {
    "RECORDS_PROVIDER": ("records", "provider"),
    "RECORDS_API_URL": ("records", "base_url"),
    "RECORDS_API_KEY": ("records", "api_key"),
    "RECORDS_API_TIMEOUT": ("records", "timeout"),
    "RECORDS_CACHE_PATH": ("cache", "path"),
    "RECORDS_LOG_LEVEL": ("logging", "level"),
}


class APIConfigManager:
    """
    Manages record service configuration and creates connector instances

    Precedence, lowest first: built-in defaults, the TOML file, environment
    variables (a ``.env`` file is loaded into the environment first).

    Usage:
        config_manager = APIConfigManager()
        connector = config_manager.get_record_connector("mock")
        patients = connector.list_patients()
    """

    # Registry of available connectors
    RECORD_CONNECTORS = {
        "http": RecordServiceConnector,
        "mock": MockRecordConnector,
    }

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            config_path: TOML file; defaults to ./clinic_records.toml when present
            environ: Environment mapping; defaults to os.environ after loading .env
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        self.config_path = Path(config_path) if config_path else None
        self.configs = self._get_default_configs()
        self._merge(self._load_configs_from_file())
        self._merge(self._load_configs_from_env(environ))

    def _get_default_configs(self) -> Dict[str, Dict[str, Any]]:
        """Return default configurations"""
        return {
            "records": {
                "provider": "http",
                "base_url": "http://localhost:80",
                "timeout": 30,
            },
            "cache": {"path": None},
            "logging": {"level": "INFO"},
        }

    def _merge(self, overrides: Dict[str, Dict[str, Any]]) -> None:
        for section, values in overrides.items():
            self.configs.setdefault(section, {}).update(values)

    def _load_configs_from_file(self) -> Dict[str, Dict[str, Any]]:
        """
        Load configuration from a TOML file

        Expected clinic_records.toml format:
        [api.records]
        provider = "http"
        base_url = "http://records.clinic.local"
        api_key = "your_api_key"
        timeout = 10

        [cache]
        path = "local_data/clinic_records.db"

        [logging]
        level = "INFO"
        """
        path = self.config_path
        if path is None:
            default = Path(DEFAULT_CONFIG_FILE)
            if not default.exists():
                return {}
            path = default
        elif not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", config_key="config_path")

        try:
            data = toml.load(path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}", config_key="config_path") from e

        logger.debug(f"Loaded configuration from {path}")

        configs = {}
        records = data.get("api", {}).get("records")
        if records:
            configs["records"] = dict(records)
        for section in ("cache", "logging"):
            if section in data:
                configs[section] = dict(data[section])
        return configs

    def _load_configs_from_env(self, environ: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
        configs: Dict[str, Dict[str, Any]] = {}
        for var, (section, key) in ENV_VARS.items():
            value = environ.get(var)
            if value:
                configs.setdefault(section, {})[key] = value
        return configs

    @staticmethod
    def _parse_timeout(value: Any) -> Optional[float]:
        """Seconds as a number; None, "none" or "off" disable the timeout."""
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in ("none", "off"):
            return None
        if isinstance(value, bool):
            raise ConfigurationError("Timeout must be a number", config_key="timeout", expected_type="float")
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Timeout must be a number, got {value!r}",
                config_key="timeout",
                expected_type="float",
            )
        if timeout <= 0:
            raise ConfigurationError(
                f"Timeout must be positive, got {value!r}",
                config_key="timeout",
                expected_type="float",
            )
        return timeout

    def get_record_connector(self, provider: Optional[str] = None, **kwargs) -> RecordServiceConnector:
        """
        Get record service connector

        Args:
            provider: Connector type ('http', 'mock')
            **kwargs: Override configuration parameters

        Returns:
            Configured record connector instance
        """
        provider = provider or self.configs["records"].get("provider", "http")

        connector_class = self.RECORD_CONNECTORS.get(provider)
        if not connector_class:
            raise ConfigurationError(
                f"Unknown record connector: {provider}. "
                f"Available: {', '.join(self.RECORD_CONNECTORS)}",
                config_key="provider",
            )

        config = self._build_config(provider, kwargs)
        logger.debug(f"Creating {connector_class.__name__} for {config.base_url}")
        return connector_class(config)

    def _build_config(self, provider: str, overrides: Dict[str, Any]) -> APIConfig:
        """Build APIConfig from stored config and overrides"""
        merged = {**self.configs["records"], **overrides}

        return APIConfig(
            api_name=f"records_{provider}",
            base_url=merged.get("base_url", ""),
            api_key=merged.get("api_key"),
            headers=merged.get("headers"),
            timeout=self._parse_timeout(merged.get("timeout", 30)),
            additional_params={
                k: v for k, v in merged.items()
                if k not in ["provider", "base_url", "api_key", "headers", "timeout"]
            }
        )

    def get_cache_path(self) -> Optional[Path]:
        """Durable cache location, or None for the default."""
        path = self.configs["cache"].get("path")
        return Path(path) if path else None

    def get_log_level(self) -> str:
        return str(self.configs["logging"].get("level", "INFO")).upper()

    def test_connection(self, provider: Optional[str] = None) -> Dict[str, Any]:
        """
        Test the record service connection

        Returns:
            Dict with "status" ("success" or "error") and "message"
        """
        try:
            connector: BaseAPIConnector = self.get_record_connector(provider)
        except ConfigurationError as e:
            return {"status": "error", "message": e.message}
        return connector.test_connection()

    def get_available_providers(self) -> list:
        """
        Get list of available record connector providers

        Returns:
            List of provider names
        """
        return list(self.RECORD_CONNECTORS.keys())
