"""
Credential subsystem configuration.

Values come from three layers, later layers winning:
    1. Dataclass defaults
    2. YAML config file (under the 'auth:' key)
    3. Environment variables

Usage:
    config = AuthConfig.load(Path("config.yaml"))
    set_config(config)
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from gcs_oauth2.errors import ConfigurationError

# Default config file location: config.yaml in the working directory
DEFAULT_CONFIG_PATH = Path("config.yaml")

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_METADATA_HOST = "metadata.google.internal"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Tokens are treated as expired this long before their literal expiration
DEFAULT_EXPIRATION_MARGIN_SECONDS = 500


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_number(name: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a {kind.__name__}, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{name} must be a {kind.__name__}, got {value!r}", cause=e
        ) from e


@dataclass
class AuthConfig:
    """Token endpoint, metadata service and audit settings.

    Load from file + environment using AuthConfig.load(),
    or from environment only using AuthConfig.from_env().
    """

    # Endpoints
    token_uri: str = DEFAULT_TOKEN_URI
    metadata_host: str = DEFAULT_METADATA_HOST

    # Scopes used by service accounts when the caller supplies none
    default_scopes: List[str] = field(
        default_factory=lambda: [CLOUD_PLATFORM_SCOPE]
    )

    # Token lifecycle
    expiration_margin_seconds: int = DEFAULT_EXPIRATION_MARGIN_SECONDS
    http_timeout_seconds: float = 30.0

    # Audit trail
    audit_logging_enabled: bool = False
    audit_log_path: str = "logs/auth_audit.log"

    def __post_init__(self) -> None:
        # YAML values arrive untyped
        self.expiration_margin_seconds = _parse_number(
            "expiration_margin_seconds", self.expiration_margin_seconds, int
        )
        self.http_timeout_seconds = _parse_number(
            "http_timeout_seconds", self.http_timeout_seconds, float
        )
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                "Invalid auth configuration: " + "; ".join(errors)
            )

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []
        if not self.token_uri:
            errors.append("token_uri is empty")
        if not self.metadata_host:
            errors.append("metadata_host is empty")
        if self.expiration_margin_seconds < 0:
            errors.append("expiration_margin_seconds must be >= 0")
        if self.http_timeout_seconds <= 0:
            errors.append("http_timeout_seconds must be > 0")
        return errors

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthConfig":
        """Build from a plain dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional[Dict[str, Any]] = None,
    ) -> "AuthConfig":
        """Load configuration from environment variables.

        Optional environment variables (with defaults):
            GCS_OAUTH2_TOKEN_URI: https://oauth2.googleapis.com/token
            GCE_METADATA_ROOT: metadata.google.internal
            GCS_OAUTH2_DEFAULT_SCOPES: cloud-platform scope (comma-separated)
            GCS_OAUTH2_EXPIRATION_MARGIN_SECONDS: 500
            GCS_OAUTH2_HTTP_TIMEOUT_SECONDS: 30
            GCS_OAUTH2_AUDIT_ENABLED: false
            GCS_OAUTH2_AUDIT_LOG_PATH: logs/auth_audit.log

        Args:
            environ: Environment mapping (default: os.environ)
            base: Values to start from before applying the environment

        Raises:
            ConfigurationError: If a numeric variable does not parse
        """
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = dict(base or {})

        if env.get("GCS_OAUTH2_TOKEN_URI"):
            data["token_uri"] = env["GCS_OAUTH2_TOKEN_URI"]
        if env.get("GCE_METADATA_ROOT"):
            data["metadata_host"] = env["GCE_METADATA_ROOT"]
        if env.get("GCS_OAUTH2_DEFAULT_SCOPES"):
            data["default_scopes"] = [
                s.strip()
                for s in env["GCS_OAUTH2_DEFAULT_SCOPES"].split(",")
                if s.strip()
            ]
        if env.get("GCS_OAUTH2_EXPIRATION_MARGIN_SECONDS"):
            data["expiration_margin_seconds"] = _parse_number(
                "GCS_OAUTH2_EXPIRATION_MARGIN_SECONDS",
                env["GCS_OAUTH2_EXPIRATION_MARGIN_SECONDS"],
                int,
            )
        if env.get("GCS_OAUTH2_HTTP_TIMEOUT_SECONDS"):
            data["http_timeout_seconds"] = _parse_number(
                "GCS_OAUTH2_HTTP_TIMEOUT_SECONDS",
                env["GCS_OAUTH2_HTTP_TIMEOUT_SECONDS"],
                float,
            )
        if env.get("GCS_OAUTH2_AUDIT_ENABLED"):
            data["audit_logging_enabled"] = _parse_bool(env["GCS_OAUTH2_AUDIT_ENABLED"])
        if env.get("GCS_OAUTH2_AUDIT_LOG_PATH"):
            data["audit_log_path"] = env["GCS_OAUTH2_AUDIT_LOG_PATH"]

        return cls.from_dict(data)

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AuthConfig":
        """Load configuration from config.yaml and environment variables.

        Priority (highest to lowest):
            1. Environment variables
            2. overrides
            3. config.yaml file (under 'auth:' key)
            4. Dataclass defaults

        Raises:
            ConfigurationError: If the YAML file is unreadable or invalid
        """
        config_path = config_path or DEFAULT_CONFIG_PATH

        data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    yaml_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to read config file: {config_path}", cause=e
                ) from e
            if not isinstance(yaml_data, dict):
                raise ConfigurationError(
                    f"Config file {config_path} must contain a mapping, "
                    f"got {type(yaml_data).__name__}"
                )
            section = yaml_data.get("auth") or {}
            if not isinstance(section, dict):
                raise ConfigurationError(
                    f"'auth' in {config_path} must be a mapping, "
                    f"got {type(section).__name__}"
                )
            data = dict(section)

        if overrides:
            data = _deep_merge(data, overrides)

        return cls.from_env(environ=environ, base=data)


# Module-level cached config
_config: Optional[AuthConfig] = None


def get_config() -> AuthConfig:
    """
    Get or load the singleton config instance.

    Returns:
        Cached AuthConfig instance
    """
    global _config
    if _config is None:
        _config = AuthConfig.load()
    return _config


def reset_config() -> None:
    """Reset cached config (primarily for testing)."""
    global _config
    _config = None


def set_config(config: AuthConfig) -> None:
    """Set the cached config instance (primarily for testing)."""
    global _config
    _config = config
