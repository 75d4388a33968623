"""polltrigger — Engine configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/polltrigger/config.yaml
    3. User config:   ~/.polltrigger/config.yaml
    4. An explicit config file passed to ``Settings.load()``
    5. Environment variables prefixed with POLLTRIGGER_

Call ``Settings.load()`` once at host startup.  Triggers read the engine
block through ``get_settings()`` unless one is injected.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Configuration for the trigger runtime."""

    primary_labels: list[str] = Field(
        default_factory=lambda: ["master", "built-in"],
        description=(
            "Label names that designate the primary worker. Matched "
            "case-insensitively against a trigger's label restriction."
        ),
    )
    log_dir: Path | None = Field(
        default=None,
        description=(
            "Directory for per-trigger poll logs. None keeps poll logs in "
            "memory only."
        ),
    )
    queue_thread_prefix: str = Field(
        default="poll",
        description="Prefix for the names of single-flight queue threads.",
    )
    scheduler_tick_seconds: Annotated[float, Field(gt=0, le=3600)] = Field(
        default=1.0,
        description="How often the host scheduler checks for due triggers.",
    )

    @field_validator("primary_labels")
    @classmethod
    def normalise_primary_labels(cls, v: list[str]) -> list[str]:
        return [label.strip().lower() for label in v if label.strip()]

    def is_primary_label(self, label: str) -> bool:
        return label.strip().lower() in self.primary_labels


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="POLLTRIGGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("engine", mode="before")
    @classmethod
    def expand_engine_paths(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("log_dir"), str):
            v["log_dir"] = Path(v["log_dir"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/polltrigger/config.yaml"),
            Path.home() / ".polltrigger" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton — replaced by ``Settings.load()`` at host startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
