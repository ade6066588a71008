"""Configuration management for cursor-sub-agents."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CsaSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    state_dir: Path = Field(default=Path("~/.csa"), validation_alias="CSA_STATE_DIR")
    project_root: Path = Field(default_factory=Path.cwd, validation_alias="CSA_PROJECT_ROOT")
    global_commands_dir: Path = Field(
        default=Path("~/.cursor/commands"), validation_alias="CSA_GLOBAL_COMMANDS_DIR"
    )
    followup_prompts: str | None = Field(default=None, validation_alias="CSA_FOLLOWUP_PROMPTS")
    target_app: str = Field(default="Cursor", validation_alias="CSA_TARGET_APP")
    prompt_url: str = Field(
        default="https://cursor.com/link/prompt", validation_alias="CSA_PROMPT_URL"
    )
    complete_timeout_minutes: float = Field(
        default=30, validation_alias="CSA_COMPLETE_TIMEOUT_MINUTES"
    )
    job_id_mismatch: Literal["error", "warn"] = Field(
        default="error", validation_alias="CSA_JOB_ID_MISMATCH"
    )
    log_level: str = Field(default="WARNING", validation_alias="CSA_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CSA_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("job_id_mismatch", mode="before")
    @classmethod
    def _normalize_policy(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("complete_timeout_minutes")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("CSA_COMPLETE_TIMEOUT_MINUTES must be > 0")
        return value

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def global_config_file(self) -> Path:
        return self.state_dir / "config.json"

    @property
    def global_task_types_file(self) -> Path:
        return self.state_dir / "task-types.json"

    @property
    def global_jobs_dir(self) -> Path:
        return self.state_dir / "jobs"

    @property
    def project_state_dir(self) -> Path:
        return self.project_root / ".csa"

    @property
    def project_config_file(self) -> Path:
        return self.project_state_dir / "config.json"

    @property
    def project_task_types_file(self) -> Path:
        return self.project_state_dir / "task-types.json"

    @property
    def project_jobs_dir(self) -> Path:
        return self.project_state_dir / "jobs"

    @property
    def project_commands_dir(self) -> Path:
        return self.project_root / ".cursor" / "commands"

    def resolved(self) -> "CsaSettings":
        """Return a copy with every path expanded and made absolute."""

        return self.model_copy(
            update={
                "state_dir": self.state_dir.expanduser().resolve(),
                "project_root": self.project_root.expanduser().resolve(),
                "global_commands_dir": self.global_commands_dir.expanduser().resolve(),
            }
        )


@lru_cache(maxsize=1)
def get_settings() -> CsaSettings:
    """Return cached settings instance."""

    return CsaSettings().resolved()


__all__ = ["CsaSettings", "get_settings"]
