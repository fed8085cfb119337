from datetime import tzinfo
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cadence.domain import constants as C


class SchedulerParams(BaseModel):
    """
    Tunable constants of the SM-2 family scheduler.

    Defaults follow classic SM-2; every number can be overridden from config.
    """

    model_config = {"frozen": True}

    initial_ease: float = C.DEFAULT_INITIAL_EASE
    ease_floor: float = Field(default=C.DEFAULT_EASE_FLOOR, gt=0)
    ease_ceiling: float = C.DEFAULT_EASE_CEILING
    ease_penalty: float = Field(default=C.DEFAULT_EASE_PENALTY, ge=0)
    hard_penalty: float = Field(default=C.DEFAULT_HARD_PENALTY, ge=0)
    ease_bonus: float = Field(default=C.DEFAULT_EASE_BONUS, ge=0)

    learning_step_days: float = Field(default=C.DEFAULT_LEARNING_STEP_DAYS, gt=0)
    graduating_interval_days: float = Field(default=C.DEFAULT_GRADUATING_INTERVAL_DAYS, gt=0)
    easy_interval_days: float = Field(default=C.DEFAULT_EASY_INTERVAL_DAYS, gt=0)
    hard_multiplier: float = Field(default=C.DEFAULT_HARD_MULTIPLIER, gt=0, lt=1.0)
    easy_multiplier: float = Field(default=C.DEFAULT_EASY_MULTIPLIER, gt=1.0)
    max_interval_days: float = Field(default=C.DEFAULT_MAX_INTERVAL_DAYS, gt=0)

    graduation_repetitions: int = Field(default=C.DEFAULT_GRADUATION_REPETITIONS, ge=1)
    mastery_threshold_days: float = Field(default=C.DEFAULT_MASTERY_THRESHOLD_DAYS, gt=0)
    mastery_min_repetitions: int = Field(default=C.DEFAULT_MASTERY_MIN_REPETITIONS, ge=1)

    @model_validator(mode="after")
    def check_ranges(self) -> "SchedulerParams":
        if not self.ease_floor <= self.initial_ease <= self.ease_ceiling:
            raise ValueError("initial_ease must lie within [ease_floor, ease_ceiling]")
        if self.graduating_interval_days < self.learning_step_days:
            raise ValueError("graduating_interval_days must be >= learning_step_days")
        if self.easy_interval_days < self.graduating_interval_days:
            raise ValueError("easy_interval_days must be >= graduating_interval_days")
        if self.max_interval_days < self.easy_interval_days:
            raise ValueError("max_interval_days must be >= easy_interval_days")
        return self


CONFIG_FILES = [
    Path.home() / ".config/cadence/config.toml",
    Path.home() / ".cadence.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for cadence.
    Supports loading from:
    1. Environment variables (CADENCE_*, nested with __)
    2. Config file (~/.config/cadence/config.toml)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "sqlite"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: Path.home() / ".local/share/cadence/reviews.db")
    catalog_url: str | None = None
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/cadence/logs")

    # Server
    host: str = "127.0.0.1"
    port: int = 8777
    timezone: str = "UTC"

    # Queue
    include_new_cards: bool = True
    new_cards_per_queue: int | None = C.DEFAULT_NEW_CARDS_PER_QUEUE
    slot_search_days: int = Field(default=C.SLOT_SEARCH_DAYS, ge=1)

    # Analytics
    analytics_window_days: int = Field(default=C.DEFAULT_ANALYTICS_WINDOW_DAYS, ge=1)

    scheduler: SchedulerParams = Field(default_factory=SchedulerParams)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = None
        for f in CONFIG_FILES:
            if f.exists():
                toml_file = f
                break

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cadence/config.toml (if exists)
    3. Environment variables (CADENCE_*)
    4. cli_overrides (passed from Typer or the API), None values ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
