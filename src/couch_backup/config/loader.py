"""
Configuration loader for the couch backup system.

Configuration comes from an optional YAML file; the DATACOUCH_ROOT and
DATACOUCH_VHOST environment variables override the connection section.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import BackupSystemConfig

ROOT_ENV_VAR = "DATACOUCH_ROOT"
VHOST_ENV_VAR = "DATACOUCH_VHOST"


class ConfigLoader:
    """Loads and validates BackupSystemConfig objects."""

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> BackupSystemConfig:
        """
        Load configuration from a file when given, otherwise from the environment.

        Args:
            config_path: Optional path to the YAML configuration file
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated configuration
        """
        if config_path is None:
            return cls.load_from_env(environ)
        return cls.load_from_file(config_path, environ)

    @classmethod
    def load_from_file(
        cls,
        config_path: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None,
    ) -> BackupSystemConfig:
        """
        Load configuration from a YAML file, applying environment overrides.

        Args:
            config_path: Path to the YAML configuration file
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file {config_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {config_path} must contain a mapping"
            )

        return cls._validate(cls._apply_environment(data, environ))

    @classmethod
    def load_from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> BackupSystemConfig:
        """Build a default configuration from environment variables only."""
        return cls._validate(cls._apply_environment({}, environ))

    @staticmethod
    def _apply_environment(
        data: Dict[str, Any], environ: Optional[Mapping[str, str]]
    ) -> Dict[str, Any]:
        environ = os.environ if environ is None else environ
        couch = dict(data.get("couch") or {})

        if environ.get(ROOT_ENV_VAR):
            couch["root_url"] = environ[ROOT_ENV_VAR]
        if environ.get(VHOST_ENV_VAR):
            couch["vhost"] = environ[VHOST_ENV_VAR]

        if not couch.get("root_url"):
            raise ConfigurationError(
                f"No root endpoint configured: set ${ROOT_ENV_VAR} "
                "or couch.root_url in the configuration file"
            )

        merged = dict(data)
        merged["couch"] = couch
        return merged

    @staticmethod
    def _validate(data: Dict[str, Any]) -> BackupSystemConfig:
        try:
            return BackupSystemConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
