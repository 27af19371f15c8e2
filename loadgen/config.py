"""
Application Configuration using Pydantic Settings

Process-wide tunables are loaded from environment variables with sensible
defaults. Database credentials have no defaults and are loaded once into an
immutable RunConfig that is handed to the driver explicitly.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from loadgen.models.workload import Stage


class ConfigurationError(Exception):
    """Raised when the run configuration is missing or invalid."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # Workload Settings
    # ========================================================================
    # Think time between iterations, drawn uniformly from [min, max).
    THINK_TIME_MIN_SECONDS: float = 0.5
    THINK_TIME_MAX_SECONDS: float = 2.5

    # How often the scheduler re-evaluates the target VU count.
    SCHEDULER_TICK_SECONDS: float = 1.0

    # How long retiring VUs may take to finish their current iteration once
    # the schedule is exhausted.
    GRACEFUL_STOP_SECONDS: float = 30.0

    # Optional base seed; each VU derives its own generator from it.
    WORKLOAD_SEED: Optional[int] = None

    # ========================================================================
    # Connection Settings
    # ========================================================================
    DB_CONNECT_TIMEOUT_SECONDS: int = 10
    DB_STATEMENT_TIMEOUT_SECONDS: float = 30.0

    # ========================================================================
    # Status API Settings
    # ========================================================================
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8089

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(levelprefix)s %(asctime)s - [vu=%(vu_id)s] %(message)s"
    # Print the connection string with the password in the startup banner.
    LOG_UNMASKED_CONNECTION_STRING: bool = False

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return str(v or "INFO").upper()


class DatabaseSettings(BaseSettings):
    """
    Database endpoint and cloud reporting identifiers.

    Host, port, user, password and schema are required; the K6_MYSQL_* names
    used by the compose manifests are accepted as aliases.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    DB_DIALECT: Literal["mysql", "postgresql"] = "mysql"
    DB_HOST: str = Field(validation_alias=AliasChoices("DB_HOST", "K6_MYSQL_HOST"))
    DB_PORT: int = Field(validation_alias=AliasChoices("DB_PORT", "K6_MYSQL_PORT"))
    DB_USER: str = Field(validation_alias=AliasChoices("DB_USER", "K6_MYSQL_USER"))
    DB_PASSWORD: str = Field(
        validation_alias=AliasChoices("DB_PASSWORD", "K6_MYSQL_PASSWORD")
    )
    DB_DATABASE: str = Field(
        validation_alias=AliasChoices("DB_DATABASE", "K6_MYSQL_DATABASE")
    )

    CLOUD_PROJECT_ID: int = Field(
        0, validation_alias=AliasChoices("CLOUD_PROJECT_ID", "K6_CLOUD_PROJECT_ID")
    )
    CLOUD_LOAD_ZONE: str = "amazon:us:ashburn"
    CLOUD_TEST_NAME: str = "Database Observability Load Test"

    @field_validator("CLOUD_PROJECT_ID", mode="before")
    @classmethod
    def _blank_project_id(cls, v: Any) -> Any:
        # An unset or non-numeric project id disables cloud reporting.
        if v is None or str(v).strip() == "":
            return 0
        try:
            return int(str(v).strip())
        except ValueError:
            return 0


class CloudConfig(BaseModel):
    """Identifiers attached to exported results for cloud reporting."""

    model_config = ConfigDict(frozen=True)

    project_id: int = 0
    name: str = "Database Observability Load Test"
    load_zone: str = "amazon:us:ashburn"

    @property
    def enabled(self) -> bool:
        return self.project_id > 0


class RunConfig(BaseModel):
    """
    Immutable configuration for one run of the workload driver.

    Built once at process start and passed into the driver; nothing inside the
    workload loop reads the environment.
    """

    model_config = ConfigDict(frozen=True)

    dialect: Literal["mysql", "postgresql"] = "mysql"
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    user: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    database: str = Field(..., min_length=1)

    cloud: CloudConfig = Field(default_factory=CloudConfig)

    stages: tuple[Stage, ...] = Field(..., min_length=1)
    thresholds: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    think_time_min_seconds: float = Field(0.5, ge=0)
    think_time_max_seconds: float = Field(2.5, ge=0)
    scheduler_tick_seconds: float = Field(1.0, gt=0)
    graceful_stop_seconds: float = Field(30.0, ge=0)
    connect_timeout_seconds: int = Field(10, ge=1)
    statement_timeout_seconds: float = Field(30.0, gt=0)
    seed: Optional[int] = None
    log_unmasked_connection_string: bool = False

    tags: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_think_time(self):
        if self.think_time_max_seconds < self.think_time_min_seconds:
            raise ValueError(
                "think_time_max_seconds must be >= think_time_min_seconds"
            )
        return self

    @property
    def metric_prefix(self) -> str:
        return self.dialect

    @property
    def total_duration_seconds(self) -> float:
        return float(sum(s.duration_seconds for s in self.stages))

    @property
    def max_vus(self) -> int:
        return max(s.target for s in self.stages)

    def connection_string(self, *, masked: bool = True) -> str:
        """Return `user:password@tcp(host:port)/schema` for logging."""
        password = "********" if masked else self.password
        return f"{self.user}:{password}@tcp({self.host}:{self.port})/{self.database}"


def load_run_config(
    *,
    stages: Optional[list[Stage]] = None,
    thresholds: Optional[dict[str, tuple[str, ...]]] = None,
    seed: Optional[int] = None,
    app_settings: Optional[Settings] = None,
) -> RunConfig:
    """
    Build the RunConfig from the environment.

    Raises:
        ConfigurationError: if a required database field is missing or invalid
    """
    # Imported here to keep config importable from the schedule/threshold modules.
    from loadgen.core.schedule import DEFAULT_STAGES
    from loadgen.core.thresholds import DEFAULT_THRESHOLDS

    app = app_settings or settings
    try:
        db = DatabaseSettings()  # type: ignore[call-arg]
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            "Database configuration is incomplete: " + "; ".join(errors), errors
        ) from e

    try:
        return RunConfig(
            dialect=db.DB_DIALECT,
            host=db.DB_HOST,
            port=db.DB_PORT,
            user=db.DB_USER,
            password=db.DB_PASSWORD,
            database=db.DB_DATABASE,
            cloud=CloudConfig(
                project_id=db.CLOUD_PROJECT_ID,
                name=db.CLOUD_TEST_NAME,
                load_zone=db.CLOUD_LOAD_ZONE,
            ),
            stages=tuple(stages or DEFAULT_STAGES),
            thresholds=dict(thresholds or DEFAULT_THRESHOLDS),
            think_time_min_seconds=app.THINK_TIME_MIN_SECONDS,
            think_time_max_seconds=app.THINK_TIME_MAX_SECONDS,
            scheduler_tick_seconds=app.SCHEDULER_TICK_SECONDS,
            graceful_stop_seconds=app.GRACEFUL_STOP_SECONDS,
            connect_timeout_seconds=app.DB_CONNECT_TIMEOUT_SECONDS,
            statement_timeout_seconds=app.DB_STATEMENT_TIMEOUT_SECONDS,
            seed=seed if seed is not None else app.WORKLOAD_SEED,
            log_unmasked_connection_string=app.LOG_UNMASKED_CONNECTION_STRING,
            tags={
                "test_type": "database_observability",
                "database": db.DB_DIALECT,
            },
        )
    except ValidationError as e:
        errors = [str(err.get("msg")) for err in e.errors()]
        raise ConfigurationError(
            "Run configuration is invalid: " + "; ".join(errors), errors
        ) from e


# Create global settings instance
settings = Settings()
