"""Configuration utilities for entraops."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.console import Console

from ..engine.models import BulkOperationConfig

console = Console(stderr=True)

CONFIG_DIR_ENV = "ENTRAOPS_CONFIG_DIR"
TENANT_ID_ENV = "ENTRAOPS_TENANT_ID"
CLIENT_ID_ENV = "ENTRAOPS_CLIENT_ID"
CLIENT_SECRET_ENV = "ENTRAOPS_CLIENT_SECRET"

DEFAULT_CONFIG_DIR = Path.home() / ".entraops"

# Default bulk engine configuration
DEFAULT_BULK_CONFIG = {
    "batch_size": 20,
    "concurrency_limit": 10,
    "max_retries": 5,
    "inter_batch_delay_seconds": 2,
    "start_delay_range": [0.1, 0.5],  # seconds, per item before it starts
    "retry_jitter_range": [0.2, 1.0],  # seconds, added to each backoff delay
    "output_directory": ".",
}

# Default Microsoft Graph connection configuration
DEFAULT_GRAPH_CONFIG = {
    "tenant_id": None,
    "client_id": None,
    "authority_host": "https://login.microsoftonline.com",
    "graph_endpoint": "https://graph.microsoft.com",
    "request_timeout": 60,
}

# Default logging configuration
DEFAULT_LOGGING_CONFIG = {
    "level": "INFO",
    "format": "detailed",
    "file_logging": True,
    "log_directory": "~/.entraops/logs",
    "log_filename": "entraops.log",
    "max_file_size_mb": 10,
    "backup_count": 5,
}

DEFAULTS = {
    "bulk": DEFAULT_BULK_CONFIG,
    "graph": DEFAULT_GRAPH_CONFIG,
    "logging": DEFAULT_LOGGING_CONFIG,
}


def get_config_dir() -> Path:
    """Return the configuration directory, honouring ENTRAOPS_CONFIG_DIR."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_DIR


class Config:
    """Manages entraops configuration stored in a YAML file."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the configuration manager.

        Args:
            config_dir: Directory holding config.yaml (defaults to ~/.entraops)
        """
        self._config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.config_data: Dict[str, Any] = {}
        self._config_loaded = False

    @property
    def config_file(self) -> Path:
        return self._config_dir / "config.yaml"

    def _ensure_config_loaded(self):
        """Ensure configuration is loaded from file."""
        if not self._config_loaded:
            self._load_config()
            self._config_loaded = True

    def reload_config(self):
        """Force reload configuration from file."""
        self._config_loaded = False
        self._ensure_config_loaded()

    def _load_config(self):
        """Load the configuration from file."""
        if not self.config_file.exists():
            self.config_data = {}
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            console.print(
                f"[red]Error: Configuration file {self.config_file} is not valid YAML: {e}[/red]"
            )
            loaded = {}
        except OSError as e:
            console.print(f"[red]Error reading configuration file {self.config_file}: {e}[/red]")
            loaded = {}

        if not isinstance(loaded, dict):
            console.print(
                f"[yellow]Warning: Ignoring {self.config_file}, top level must be a mapping[/yellow]"
            )
            loaded = {}
        self.config_data = loaded

    def save_config(self):
        """Save the configuration to the YAML file."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.dump(self.config_data, f, default_flow_style=False, indent=2, sort_keys=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key (supports dot notation like "bulk.batch_size")
            default: Default value if key doesn't exist

        Returns:
            Configuration value from the file, else the built-in default, else ``default``
        """
        self._ensure_config_loaded()

        for source in (self.config_data, DEFAULTS):
            value: Any = source
            found = True
            for k in key.split("."):
                if isinstance(value, dict) and k in value:
                    value = value[k]
                else:
                    found = False
                    break
            if found and value is not None:
                return value
        return default

    def set(self, key: str, value: Any):
        """Set a configuration value and save it.

        Args:
            key: Configuration key (supports dot notation)
            value: Configuration value
        """
        self._ensure_config_loaded()

        keys = key.split(".")
        node = self.config_data
        for k in keys[:-1]:
            if not isinstance(node.get(k), dict):
                node[k] = {}
            node = node[k]
        node[keys[-1]] = value

        self.save_config()

    def get_all(self) -> Dict[str, Any]:
        """Return the effective configuration: defaults overlaid with the file."""
        self._ensure_config_loaded()
        return _deep_merge(DEFAULTS, self.config_data)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Return one effective configuration section."""
        return dict(self.get_all().get(section) or {})

    def get_graph_config(self) -> Dict[str, Any]:
        """Return the Graph connection settings with environment overrides applied.

        The client secret is only read from the environment.
        """
        graph = self.get_section("graph")
        graph["tenant_id"] = os.environ.get(TENANT_ID_ENV) or graph.get("tenant_id")
        graph["client_id"] = os.environ.get(CLIENT_ID_ENV) or graph.get("client_id")
        graph["client_secret"] = os.environ.get(CLIENT_SECRET_ENV)
        return graph

    def bulk_config(self, **overrides: Any) -> BulkOperationConfig:
        """Build a validated BulkOperationConfig from the file and CLI overrides.

        Args:
            **overrides: Values given on the command line; ``None`` means "not given"

        Returns:
            BulkOperationConfig

        Raises:
            ValueError: If a value is out of range
        """
        bulk = self.get_section("bulk")
        bulk.update({k: v for k, v in overrides.items() if v is not None})
        return BulkOperationConfig(
            batch_size=int(bulk["batch_size"]),
            concurrency_limit=int(bulk["concurrency_limit"]),
            max_retries=int(bulk["max_retries"]),
            inter_batch_delay_seconds=float(bulk["inter_batch_delay_seconds"]),
            dry_run=bool(bulk.get("dry_run", False)),
            start_delay_range=tuple(bulk["start_delay_range"]),
            retry_jitter_range=tuple(bulk["retry_jitter_range"]),
        )


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries; values from ``override`` win unless they are None."""
    result = {k: (dict(v) if isinstance(v, dict) else v) for k, v in base.items()}
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        elif value is not None:
            result[key] = value
    return result
