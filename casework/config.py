"""Configuration management for the casework service.

Every :class:`AppConfig` field can be overridden with an environment variable
named ``CASEWORK_<FIELD>``, e.g. ``CASEWORK_STRICT_TRANSITIONS=true``.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .core.exceptions import ConfigurationError
from .core.logging import DEFAULT_FORMAT

ENV_PREFIX = "CASEWORK_"
SUPPORTED_SCHEMES = ("sqlite", "postgresql", "mysql")


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Settings for the API process, its database and the workflow rules."""

    app_name: str = "Casework"
    app_version: str = "1.0.0"
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = False

    database_url: str = Field(default="sqlite:///./casework.db", description="SQLAlchemy URL")
    database_echo: bool = False

    seed_demo_data: bool = Field(default=True, description="Create demo users and apps on startup")
    seed_demo_cases: bool = Field(default=True, description="Also create the demo cases when seeding")
    strict_transitions: bool = Field(
        default=False,
        description="Refuse to complete a step with several exits unless a valid next step is chosen"
    )
    allow_self_loops: bool = False

    log_level: LogLevel = LogLevel.INFO
    log_format: str = DEFAULT_FORMAT
    log_file: Optional[str] = None
    log_structured: bool = Field(default=False, description="Emit JSON lines instead of plain text")
    log_max_size: int = Field(default=10 * 1024 * 1024, gt=0)
    log_backup_count: int = Field(default=5, ge=0)

    slow_request_threshold: float = Field(default=5.0, gt=0, description="Seconds")
    enable_performance_monitoring: bool = True

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_methods: List[str] = Field(default_factory=lambda: ["GET", "POST", "PUT", "PATCH", "DELETE"])

    @field_validator("database_url")
    @classmethod
    def check_database_scheme(cls, value: str) -> str:
        if not value:
            raise ValueError("Database URL cannot be empty")
        # "postgresql+psycopg://" and friends name their driver after the plus
        scheme = value.partition("://")[0].partition("+")[0].lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported database scheme '{scheme}', expected one of {list(SUPPORTED_SCHEMES)}")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("cors_origins", "cors_methods", mode="before")
    @classmethod
    def split_comma_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.lower().startswith("sqlite")

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Keyword arguments for ``uvicorn.run``."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug,
        }

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "AppConfig":
        """Build a config from ``CASEWORK_*`` variables; unset fields keep their defaults."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                overrides[name] = raw
        return cls(**overrides)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load ``config_file`` (or ``./.env``) into the environment, then read the config from it."""
    global _config

    env_file = Path(config_file) if config_file else Path(".env")
    if env_file.is_file():
        load_dotenv(env_file)

    _config = AppConfig.from_env()
    return _config


def reset_config():
    """Forget the cached configuration; used by tests."""
    global _config
    _config = None


def _ensure_parent_dir(path: str, label: str, problems: List[str]) -> None:
    parent = Path(path).parent
    if parent.exists():
        return
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        problems.append(f"Cannot create {label} directory {parent}: {e}")


def validate_config(config: AppConfig) -> None:
    """Check the parts of the configuration that touch the filesystem.

    Raises:
        ConfigurationError: If the SQLite file or log file directory cannot be created
    """
    problems: List[str] = []

    if config.is_sqlite and ":memory:" not in config.database_url:
        _ensure_parent_dir(config.database_url.split("///", 1)[-1], "database", problems)
    if config.log_file:
        _ensure_parent_dir(config.log_file, "log", problems)

    if problems:
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(problems)}")


def get_production_config() -> AppConfig:
    """Preset for deployments: quiet logging, no CORS, strict decisions."""
    return AppConfig(
        log_level=LogLevel.INFO,
        cors_origins=[],
        strict_transitions=True,
    )


def get_testing_config() -> AppConfig:
    """Preset for the test suite: in-memory database and no demo data."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        seed_demo_data=False,
        seed_demo_cases=False,
        enable_performance_monitoring=False,
    )
