"""supa-dynamic Configuration System.

Layered YAML configuration with Pydantic validation.
Environment variables (SUPADYNAMIC_ prefix) supply secrets such as the
vault master password.

Config Layer Priority (highest to lowest):
1. Runtime overrides (in-memory)
2. System config (~/.supa-dynamic/config.yaml)
3. Defaults (defined in Pydantic models)

Usage:
    from supadynamic.core.config import get_settings

    settings = get_settings()
    print(settings.dispatch.timeout_ms)  # 5000 (default)
"""

from __future__ import annotations

import threading
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from supadynamic.core.exceptions import ConfigurationError


DEFAULT_BASE_PATH = "~/.supa-dynamic"
DEFAULT_DELAY_SCHEDULE: tuple[float, ...] = (0.0, 0.250, 0.500, 1.000, 2.500, 5.000)


# =============================================================================
# Sub-configuration Models (nested sections)
# =============================================================================


class DispatchConfig(BaseModel):
    """Defaults for outbound HTTP dispatch."""

    method: str = "POST"
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"Content-Type": "application/json"}
    )
    timeout_ms: NonNegativeInt = 5000
    max_retries: NonNegativeInt = 0
    delay_schedule: List[float] = Field(
        default_factory=lambda: list(DEFAULT_DELAY_SCHEDULE)
    )
    redacted_headers: List[str] = Field(
        default_factory=lambda: ["authorization", "apikey", "x-api-key"]
    )

    @field_validator("delay_schedule")
    @classmethod
    def validate_delay_schedule(cls, v: List[float]) -> List[float]:
        """Validate schedule is non-empty with non-negative delays."""
        if not v:
            raise ValueError("delay_schedule cannot be empty")
        if any(d < 0 for d in v):
            raise ValueError("delay_schedule entries must be >= 0")
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Normalize HTTP method to upper case."""
        if not v.strip():
            raise ValueError("method cannot be empty")
        return v.strip().upper()


class VaultConfig(BaseModel):
    """Secret vault configuration."""

    database_url: str = f"sqlite:///{DEFAULT_BASE_PATH}/vault.sqlite"
    master_password: Optional[SecretStr] = None
    kdf_iterations: PositiveInt = 600000
    privileged_roles: List[str] = Field(default_factory=lambda: ["service_role"])
    admin_users: List[str] = Field(default_factory=lambda: ["postgres"])


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate renderer format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v.lower()


class Settings(BaseSettings):
    """Main settings class with layered configuration support.

    Loads configuration from:
    1. Environment variables (SUPADYNAMIC_ prefix)
    2. System config file (~/.supa-dynamic/config.yaml)
    3. Defaults defined in Pydantic models
    """

    model_config = SettingsConfigDict(
        env_prefix="SUPADYNAMIC_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    vault: VaultConfig = Field(default_factory=VaultConfig)
    logging_config: LoggingConfig = Field(
        default_factory=LoggingConfig, alias="logging"
    )

    @property
    def logging(self) -> LoggingConfig:
        """Alias for logging_config to match YAML key and common usage."""
        return self.logging_config


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as dictionary.

    Raises:
        ConfigurationError: If file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Configuration file not found: {path}",
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Invalid YAML in {path}: {e}",
        )

    if not content:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(
            config_path=str(path),
            expected_type="mapping",
            message=f"Top level of {path} must be a mapping",
        )
    return content


def load_system_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load system configuration from YAML file.

    Args:
        path: Optional path to config file. Defaults to ~/.supa-dynamic/config.yaml.

    Returns:
        System configuration dictionary (empty if the default file is missing).

    Raises:
        ConfigurationError: If file cannot be loaded.
    """
    if path is None:
        path = Path(DEFAULT_BASE_PATH) / "config.yaml"

    path = Path(path).expanduser()

    if not path.exists():
        return {}

    return load_yaml_file(path)


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge multiple configuration dictionaries.

    Later configs override earlier ones.
    """
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge_configs(result[key], value)
            else:
                result[key] = value

    return result


def create_settings(
    system_config_path: Optional[Path] = None,
    runtime_overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """Create a Settings instance with layered configuration.

    Args:
        system_config_path: Optional path to system config file.
        runtime_overrides: Optional runtime overrides dictionary.

    Returns:
        Configured Settings instance.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    if system_config_path:
        config_base = Path(system_config_path).expanduser().parent
    else:
        config_base = Path(DEFAULT_BASE_PATH).expanduser()

    # Secrets (e.g. SUPADYNAMIC_VAULT__MASTER_PASSWORD) may live in .env
    env_path = config_base / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    merged = load_system_config(system_config_path)
    if runtime_overrides:
        merged = merge_configs(merged, runtime_overrides)

    try:
        return Settings(**merged)
    except Exception as e:
        raise ConfigurationError(
            config_path=str(system_config_path or f"{DEFAULT_BASE_PATH}/config.yaml"),
            message=f"Configuration validation failed: {e}",
        ) from e


# =============================================================================
# Singleton Settings Access
# =============================================================================


class _SettingsHolder:
    """Thread-safe singleton holder for Settings instance."""

    _instance: Optional[Settings] = None
    _lock: threading.Lock = threading.Lock()

    @classmethod
    def get(cls, force_reload: bool = False, **kwargs: Any) -> Settings:
        """Get or create the Settings singleton.

        Args:
            force_reload: If True, recreate settings even if already loaded.
            **kwargs: Arguments passed to create_settings().
        """
        if cls._instance is None or force_reload:
            with cls._lock:
                # Double-check locking
                if cls._instance is None or force_reload:  # pragma: no cover
                    cls._instance = create_settings(**kwargs)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton (for testing)."""
        with cls._lock:
            cls._instance = None


def get_settings(
    force_reload: bool = False,
    system_config_path: Optional[Path] = None,
    runtime_overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """Get the global Settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Examples:
        >>> settings = get_settings()
        >>> settings = get_settings(
        ...     force_reload=True,
        ...     runtime_overrides={"dispatch": {"max_retries": 2}},
        ... )
    """
    if not force_reload and _SettingsHolder._instance is not None:
        if system_config_path is not None or runtime_overrides is not None:
            warnings.warn(
                "Arguments provided to get_settings() are ignored because "
                "singleton is already initialized. Use force_reload=True "
                "to apply new configuration.",
                RuntimeWarning,
                stacklevel=2,
            )

    return _SettingsHolder.get(
        force_reload=force_reload,
        system_config_path=system_config_path,
        runtime_overrides=runtime_overrides,
    )


def reset_settings() -> None:
    """Reset the settings singleton (for testing)."""
    _SettingsHolder.reset()
