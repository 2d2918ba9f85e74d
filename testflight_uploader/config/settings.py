"""Centralized configuration for the uploader.

Polling cadences, API endpoints and the default backend live here. Values can
be overridden from a YAML file; credentials are never read from YAML and come
from CLI options or the environment instead.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from testflight_uploader.models import PollPolicy
from testflight_uploader.utils.result import ConfigError, Err, Ok, Result

DEFAULT_BASE_URL = "https://api.appstoreconnect.apple.com/v1"
DEFAULT_TRANSPORTER = "/usr/local/itms/bin/iTMSTransporter"
DEFAULT_BACKEND = "appstore-api"

# Environment variables holding credentials
ENV_ISSUER_ID = "APP_STORE_CONNECT_ISSUER_ID"
ENV_API_KEY_ID = "APP_STORE_CONNECT_API_KEY_ID"
ENV_API_PRIVATE_KEY = "APP_STORE_CONNECT_API_PRIVATE_KEY"


@dataclass
class ApiConfig:
    """App Store Connect API settings."""

    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 60.0

    # Apple rejects tokens that live longer than 20 minutes
    token_ttl: int = 1200
    token_refresh_leeway: int = 60


@dataclass
class PhaseConfig:
    """Attempts and delay for one polling phase."""

    attempts: int
    delay: float
    fail_fast: bool = False


@dataclass
class PollingConfig:
    """Polling cadences for every wait in a publish run."""

    visibility: PhaseConfig = field(default_factory=lambda: PhaseConfig(attempts=10, delay=30.0))
    processing: PhaseConfig = field(default_factory=lambda: PhaseConfig(attempts=10, delay=30.0))
    localization: PhaseConfig = field(default_factory=lambda: PhaseConfig(attempts=20, delay=30.0))
    build_lookup: PhaseConfig = field(default_factory=lambda: PhaseConfig(attempts=20, delay=30.0))
    backoff_cap: float = 300.0

    def visibility_policy(self) -> PollPolicy:
        return PollPolicy(
            attempts=self.visibility.attempts,
            initial_delay=self.visibility.delay,
            backoff_cap=self.backoff_cap,
        )

    def processing_policy(self) -> PollPolicy:
        return PollPolicy(
            attempts=self.processing.attempts,
            initial_delay=self.processing.delay,
            backoff_cap=self.backoff_cap,
        )

    def localization_policy(self) -> PollPolicy:
        return PollPolicy(
            attempts=self.localization.attempts,
            initial_delay=self.localization.delay,
        )

    def build_lookup_policy(self) -> PollPolicy:
        return PollPolicy(
            attempts=self.build_lookup.attempts,
            initial_delay=self.build_lookup.delay,
        )


@dataclass
class TransporterConfig:
    """iTMSTransporter backend settings."""

    executable: str = DEFAULT_TRANSPORTER


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class UploaderConfig:
    """
    Complete uploader configuration.

    This is the single source of truth for tunable values; the defaults match
    the cadences App Store Connect processing usually needs.
    """

    backend: str = DEFAULT_BACKEND
    api: ApiConfig = field(default_factory=ApiConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    transporter: TransporterConfig = field(default_factory=TransporterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Set at runtime
    config_dir: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> Result["UploaderConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top-level YAML value must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["UploaderConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Missing keys keep their defaults.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        defaults = cls()
        try:
            api_data = data.get("api", {})
            api = ApiConfig(
                base_url=api_data.get("base_url", defaults.api.base_url),
                request_timeout=float(api_data.get("request_timeout", defaults.api.request_timeout)),
                token_ttl=int(api_data.get("token_ttl", defaults.api.token_ttl)),
                token_refresh_leeway=int(
                    api_data.get("token_refresh_leeway", defaults.api.token_refresh_leeway)
                ),
            )

            polling_data = data.get("polling", {})
            polling = PollingConfig(
                visibility=_phase_from_dict(
                    polling_data.get("visibility", {}), defaults.polling.visibility
                ),
                processing=_phase_from_dict(
                    polling_data.get("processing", {}), defaults.polling.processing
                ),
                localization=_phase_from_dict(
                    polling_data.get("localization", {}), defaults.polling.localization
                ),
                build_lookup=_phase_from_dict(
                    polling_data.get("build_lookup", {}), defaults.polling.build_lookup
                ),
                backoff_cap=float(polling_data.get("backoff_cap", defaults.polling.backoff_cap)),
            )

            transporter_data = data.get("transporter", {})
            transporter = TransporterConfig(
                executable=transporter_data.get("executable", DEFAULT_TRANSPORTER),
            )

            logging_data = data.get("logging", {})
            logging_config = LoggingConfig(
                level=logging_data.get("level", "info"),
                format=logging_data.get("format", "json"),
            )

            config = cls(
                backend=data.get("backend", DEFAULT_BACKEND),
                api=api,
                polling=polling,
                transporter=transporter,
                logging=logging_config,
            )

            return Ok(config)

        except (AttributeError, TypeError, ValueError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if not self.api.base_url.startswith("https://"):
            return Err(ConfigError(
                field="api.base_url",
                message=f"Must be an https URL, got {self.api.base_url}",
            ))

        if self.api.request_timeout <= 0:
            return Err(ConfigError(
                field="api.request_timeout",
                message=f"Must be positive, got {self.api.request_timeout}",
            ))

        if not 0 < self.api.token_ttl <= 1200:
            return Err(ConfigError(
                field="api.token_ttl",
                message=f"Must be between 1 and 1200 seconds, got {self.api.token_ttl}",
            ))

        if not 0 <= self.api.token_refresh_leeway < self.api.token_ttl:
            return Err(ConfigError(
                field="api.token_refresh_leeway",
                message=f"Must be smaller than token_ttl, got {self.api.token_refresh_leeway}",
            ))

        for name, phase in [
            ("visibility", self.polling.visibility),
            ("processing", self.polling.processing),
            ("localization", self.polling.localization),
            ("build_lookup", self.polling.build_lookup),
        ]:
            if phase.attempts < 1:
                return Err(ConfigError(
                    field=f"polling.{name}.attempts",
                    message=f"Must be at least 1, got {phase.attempts}",
                ))
            if phase.delay < 0:
                return Err(ConfigError(
                    field=f"polling.{name}.delay",
                    message=f"Must not be negative, got {phase.delay}",
                ))

        for name, phase in [
            ("visibility", self.polling.visibility),
            ("processing", self.polling.processing),
        ]:
            if self.polling.backoff_cap < phase.delay:
                return Err(ConfigError(
                    field="polling.backoff_cap",
                    message=(
                        f"Must be at least the {name} delay "
                        f"({phase.delay}), got {self.polling.backoff_cap}"
                    ),
                ))

        return Ok(None)


def _phase_from_dict(data: dict[str, Any], default: PhaseConfig) -> PhaseConfig:
    return PhaseConfig(
        attempts=int(data.get("attempts", default.attempts)),
        delay=float(data.get("delay", default.delay)),
        fail_fast=bool(data.get("fail_fast", default.fail_fast)),
    )


def load_config(config_dir: Path = None) -> Result[UploaderConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Loads ``defaults.yaml`` from the config directory when present, otherwise
    uses built-in defaults, then validates the result.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    if config_dir is None:
        config_dir = Path("./config")

    config_dir = Path(config_dir)

    defaults_path = config_dir / "defaults.yaml"
    if defaults_path.exists():
        result = UploaderConfig.from_yaml(defaults_path)
        if result.is_err():
            return result
        config = result.unwrap()
    else:
        config = UploaderConfig()

    config.config_dir = config_dir

    validation_result = config.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(config)


def get_env_issuer_id() -> Optional[str]:
    """Get the App Store Connect issuer id from environment."""
    return os.environ.get(ENV_ISSUER_ID)


def get_env_api_key_id() -> Optional[str]:
    """Get the App Store Connect API key id from environment."""
    return os.environ.get(ENV_API_KEY_ID)


def get_env_private_key() -> Optional[str]:
    """Get the App Store Connect private key contents from environment."""
    return os.environ.get(ENV_API_PRIVATE_KEY)
