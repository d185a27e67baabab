"""Configuration with JSON file, YAML overlay, secrets.yml, and env variable support."""

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from croniter import croniter
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from refresher.enums import ArtifactFamily

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

# S3 rejects SigV4 presigned URLs that live longer than seven days.
MAX_SIGNED_URL_SECONDS = 7 * DAY_SECONDS

ENV_PREFIX = "REFRESHER_"


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    Relative config paths resolve against the repo root so the service can be
    launched from any working directory.

    - first directory containing `pyproject.toml`
    - otherwise fall back to the current working directory
    """

    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML file that must contain a mapping; missing file -> {}."""
    if not path.exists() or not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top-level YAML value is not a mapping", path)
        return {}
    return data


def _load_secrets(secrets_path: Path) -> dict[str, Any]:
    """Load secrets from a YAML file.

    Keys are lower-cased so `STORAGE_BUCKET: x` and `storage_bucket: x`
    both map onto the same setting.
    """
    raw = _load_yaml_mapping(secrets_path)
    return {str(k).lower(): v for k, v in raw.items()}


class RefresherConfig(BaseSettings):
    """Configuration with JSON file + config.yml + secrets.yml + env var support.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - non-secret overlay at the repo root
    3. secrets.yml - database URL, AWS credentials, API token
    4. Environment variables - runtime overrides

    Prefix: REFRESHER_ (e.g., REFRESHER_STORAGE_BUCKET)
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./refresher.db")
    auto_create_tables: bool = Field(
        default=False,
        description=(
            "If true, create tables from ORM metadata on startup. "
            "Production deployments rely on Alembic migrations."
        ),
    )

    # Object storage
    storage_bucket: str = Field(...)
    aws_region: str = Field(default="us-east-1")
    aws_access_key_id: str | None = Field(default=None)
    aws_secret_access_key: str | None = Field(default=None)
    aws_session_token: str | None = Field(default=None)
    localstack_endpoint: str | None = Field(default=None)
    verify_object_exists: bool = Field(
        default=True,
        description="HEAD the object before signing so missing objects fail the artifact",
    )

    # Refresh policy
    lookahead_seconds: int = Field(default=3 * DAY_SECONDS, gt=0)
    validity_window_seconds: int = Field(default=MAX_SIGNED_URL_SECONDS, gt=0)
    refresh_cron: str = Field(default="0 3 * * *")
    run_on_startup: bool = Field(default=False)
    run_timeout_seconds: float = Field(default=540.0, gt=0)
    max_concurrency: int = Field(default=8, ge=1)
    batch_limit: int = Field(default=1000, ge=1)
    refresh_missing_expiry: bool = Field(
        default=False,
        description="Also select rows whose expiry was never recorded",
    )
    refresh_families: list[ArtifactFamily] = Field(
        default_factory=lambda: list(ArtifactFamily),
    )
    lock_timeout_minutes: int = Field(default=15, ge=1)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8750)
    api_token: str | None = Field(default=None)
    health_fail_on_degraded: bool = Field(
        default=False,
        description="Return 503 from /health when a family's last run could not scan its store",
    )

    # Error log file
    error_log_file_enabled: bool = Field(default=True)
    error_log_file_path: str = Field(default="./logs/errors.log")
    error_log_level: str = Field(default="WARNING")
    error_log_max_bytes: int = Field(default=10_485_760)
    error_log_backup_count: int = Field(default=5)

    @field_validator("refresh_cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        value = value.strip()
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value!r}")
        return value

    @field_validator("refresh_families", mode="before")
    @classmethod
    def _split_families(cls, value: Any) -> Any:
        # Allow "audio_record,chunk" in config files; env vars take a JSON list.
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @model_validator(mode="after")
    def _validate_windows(self) -> "RefresherConfig":
        if self.validity_window_seconds > MAX_SIGNED_URL_SECONDS:
            raise ValueError(
                "validity_window_seconds must not exceed "
                f"{MAX_SIGNED_URL_SECONDS} (7 days)"
            )
        if self.validity_window_seconds <= self.lookahead_seconds:
            raise ValueError(
                "validity_window_seconds must be greater than lookahead_seconds, "
                "otherwise refreshed URLs are re-selected by the next scan"
            )
        if self.run_timeout_seconds >= self.lock_timeout_minutes * 60:
            raise ValueError(
                "run_timeout_seconds must be shorter than lock_timeout_minutes"
            )
        return self

    @classmethod
    def from_json_file(
        cls,
        config_path: str = "config.json",
        secrets_path: str = "secrets.yml",
    ) -> "RefresherConfig":
        """Load config from JSON + config.yml + secrets.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.
            secrets_path: Path to secrets YAML file.

        Returns:
            Configured RefresherConfig instance.
        """
        config_data: dict[str, Any] = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path) as f:
                config_data = json.load(f)

        repo_root = _find_repo_root(start=Path(__file__))
        config_data.update(_load_yaml_mapping(repo_root / "config.yml"))

        config_data.update(_load_secrets(Path(secrets_path)))

        # Drop file values that an env var overrides so pydantic-settings
        # sees the env var instead of the init kwarg.
        for key in list(config_data):
            if f"{ENV_PREFIX}{key.upper()}" in os.environ:
                del config_data[key]

        return cls(**config_data)
