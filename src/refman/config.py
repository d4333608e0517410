"""
Refman Configuration
====================

Download settings and registry location, loaded from an optional YAML file.

Configuration file lookup order:
1. Explicit path passed to ``RefmanConfig.load``
2. ``$REFMAN_CONFIG``
3. ``~/.refman/config.yaml`` (if present)

Example config.yaml:

    strict_cache: false
    download:
      max_attempts: 5
      backoff_base: 2
      timeout: 60
      max_workers: 8

``REFMAN_HOME`` is read once into the config value and is never written
back to the process environment.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from . import __version__
from .errors import ConfigError
from .registry import REGISTRY_FILENAME

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "REFMAN_CONFIG"
HOME_ENV_VAR = "REFMAN_HOME"
REFMAN_DIRNAME = ".refman"


@dataclass
class DownloadSettings:
    """Fetch and concurrency tuning."""
    max_attempts: int = 5
    backoff_base: float = 2.0
    timeout: float = 60
    chunk_size: int = 64 * 1024
    max_workers: int = 8
    user_agent: str = f"refman/{__version__}"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError("download.max_attempts must be at least 1")
        if self.max_workers < 1:
            raise ConfigError("download.max_workers must be at least 1")
        if self.chunk_size < 1:
            raise ConfigError("download.chunk_size must be positive")
        if self.backoff_base < 0 or self.timeout <= 0:
            raise ConfigError("download.backoff_base and download.timeout must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadSettings":
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                logger.debug(f"Ignoring unknown download setting: {key}")
                continue
            expected = known[key].type
            accepted = (int, float) if expected is float else (expected,)
            if isinstance(value, bool) or not isinstance(value, accepted):
                raise ConfigError(f"download.{key} must be a {expected.__name__}, got {value!r}")
            kwargs[key] = value
        return cls(**kwargs)


@dataclass
class RefmanConfig:
    """
    Top-level configuration threaded through registry and sync operations.

    Attributes:
        refman_home: Directory that holds the global registry (from REFMAN_HOME)
        strict_cache: Re-fetch slots whose stored hash is missing or cannot
            be recomputed, instead of trusting them
        download: Fetch and concurrency settings
    """
    refman_home: Optional[Path] = None
    strict_cache: bool = False
    download: DownloadSettings = field(default_factory=DownloadSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefmanConfig":
        """Create from dictionary."""
        download = data.get("download") or {}
        if not isinstance(download, dict):
            raise ConfigError("`download` must be a mapping")

        strict_cache = data.get("strict_cache", False)
        if not isinstance(strict_cache, bool):
            raise ConfigError("`strict_cache` must be true or false")

        for key in data:
            if key not in ("download", "strict_cache", "refman_home"):
                logger.debug(f"Ignoring unknown config key: {key}")

        home = data.get("refman_home")
        return cls(
            refman_home=Path(home).expanduser() if home else None,
            strict_cache=strict_cache,
            download=DownloadSettings.from_dict(download),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "RefmanConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def load(
        cls,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "RefmanConfig":
        """
        Build the effective configuration.

        Args:
            config_file: Explicit YAML config path
            environ: Environment mapping to read from (defaults to os.environ)

        Returns:
            RefmanConfig
        """
        env = os.environ if environ is None else environ

        if config_file is None and env.get(CONFIG_ENV_VAR):
            config_file = Path(env[CONFIG_ENV_VAR])
        if config_file is None:
            default = Path.home() / REFMAN_DIRNAME / "config.yaml"
            if default.is_file():
                config_file = default

        if config_file is not None:
            logger.debug(f"Loading configuration from {config_file}")
            config = cls.from_yaml(Path(config_file))
        else:
            config = cls()

        if env.get(HOME_ENV_VAR):
            logger.debug(f"{HOME_ENV_VAR} is set to {env[HOME_ENV_VAR]}")
            config.refman_home = Path(env[HOME_ENV_VAR]).expanduser()

        return config

    def resolve_registry_path(
        self,
        requested_dir: Optional[Path] = None,
        global_registry: bool = False,
    ) -> Path:
        """
        Decide where the manifest lives.

        1. An explicitly requested directory wins.
        2. A local (non-global) registry lives in the working directory.
        3. A global registry lives under ``<REFMAN_HOME or ~>/.refman``.

        Returns:
            Full path to the manifest file
        """
        if requested_dir is not None:
            return Path(requested_dir).expanduser() / REGISTRY_FILENAME

        if not global_registry:
            return Path.cwd() / REGISTRY_FILENAME

        base = self.refman_home
        if base is None:
            try:
                base = Path.home()
            except RuntimeError:
                logger.warning(
                    "Unable to access the home directory, so the registry will be placed "
                    "in the current working directory. Pass the same directory next time "
                    "to pick up where this run leaves off."
                )
                base = Path.cwd()
        return base / REFMAN_DIRNAME / REGISTRY_FILENAME
