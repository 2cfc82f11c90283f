"""
Configuration module for the Charity Python Toolkit.

Provides centralized configuration for the document store, the recycle bin
and the activity log.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, field_validator


class StoreBackend(str, Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class CharityConfig(BaseModel):
    """Central configuration for the back office.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (CHARITY_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = CharityConfig(
        ...     store_backend="sqlite",
        ...     database_url="sqlite:///charity.db",
        ...     recycle_retention_days=7,
        ... )

        Loading from environment:

        >>> import os
        >>> os.environ['CHARITY_RECYCLE_RETENTION_DAYS'] = '14'
        >>> config = CharityConfig.from_env()

    Note:
        The retention window decides when held records become unrecoverable.
        Shortening it takes effect on the next sweep.
    """

    # General settings
    application_name: str = Field(
        "Rangdhanu Charity", description="Name of the organisation's application"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )
    timezone: str = Field("UTC", description="Default timezone for timestamps")
    log_level: str = Field("INFO", description="Root log level for the CLI")

    # Document store settings
    store_backend: StoreBackend = Field(
        StoreBackend.SQLITE, description="Backend for the document store"
    )
    database_url: Optional[str] = Field(
        "sqlite:///charity.db", description="Connection string for SQL backends"
    )

    # Recycle bin settings
    recycle_bin_enabled: bool = Field(
        True, description="Route deletions through the recycle bin"
    )
    recycle_retention_days: int = Field(
        7, description="Days a held record stays restorable", gt=0, le=365
    )
    default_actor: str = Field(
        "admin", description="Actor recorded when a caller supplies none"
    )
    cleanup_on_view: bool = Field(
        True, description="Run the retention sweep whenever the bin is viewed"
    )

    # Activity log settings
    activity_log_enabled: bool = Field(True, description="Record admin activity")
    activity_log_max_entries: int = Field(
        100, description="Newest activity entries kept", gt=0, le=10000
    )

    # Finance settings
    currency_symbol: str = Field("৳", description="Currency symbol for amounts")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the log level is one logging understands."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator("default_actor")
    @classmethod
    def validate_default_actor(cls, v: str) -> str:
        """The fallback actor must not be blank."""
        if not v.strip():
            raise ValueError("Default actor must not be empty")
        return v.strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "CHARITY_") -> "CharityConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]

                field_type = field_info.annotation

                # Handle Optional types
                if get_origin(field_type) is Union:
                    args = get_args(field_type)
                    field_type = next(
                        (arg for arg in args if arg is not type(None)), str
                    )

                try:
                    if field_type == bool:
                        config_dict[field_name] = value.lower() in (
                            "true",
                            "1",
                            "yes",
                            "on",
                        )
                    elif field_type == int:
                        config_dict[field_name] = int(value)
                    elif isinstance(field_type, type) and issubclass(field_type, Enum):
                        config_dict[field_name] = field_type(value)
                    else:
                        config_dict[field_name] = value
                except (ValueError, TypeError):
                    # Let model validation report the raw value
                    config_dict[field_name] = value

        return cls.model_validate(config_dict)

    def get_store_config(self) -> Dict[str, Any]:
        """Arguments for ``get_document_store``."""
        if self.store_backend == StoreBackend.MEMORY:
            return {"backend": self.store_backend.value}
        return {
            "backend": self.store_backend.value,
            "connection_string": self.database_url,
        }

    def get_recycle_bin_config(self) -> Dict[str, Any]:
        """Get recycle bin configuration."""
        return {
            "enabled": self.recycle_bin_enabled,
            "retention_days": self.recycle_retention_days,
            "default_actor": self.default_actor,
            "cleanup_on_view": self.cleanup_on_view,
        }


# Global configuration instance
_config: Optional[CharityConfig] = None


def get_config() -> CharityConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        try:
            _config = CharityConfig.from_env()
        except ValueError:
            # Invalid environment values fall back to defaults
            _config = CharityConfig.model_validate({})

    return _config


def set_config(config: CharityConfig) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> CharityConfig:
    """
    Configure the toolkit with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = CharityConfig(**kwargs)
    else:
        config_dict = _config.to_dict()
        config_dict.update(kwargs)
        _config = CharityConfig(**config_dict)

    return _config
