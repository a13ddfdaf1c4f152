from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_KEYWORDS = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "api_key",
    "apikey",
    "access_key",
    "private_key",
    "token",
    "credential",
)


class ScanSettings(BaseModel):
    keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS), min_length=1)
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=lambda: [".git", "__pycache__", "node_modules"])
    case_sensitive: bool = False
    max_context: int = Field(default=40, ge=0)
    max_file_size_bytes: int = Field(default=1024 * 1024, gt=0)
    follow_symlinks: bool = False
    encoding: str = Field(default="utf-8")

    @field_validator("keywords", "include", "exclude", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:  # noqa: D401
        """Accept comma separated strings coming from environment overrides."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class ConcurrencySettings(BaseModel):
    workers: int = Field(default=1, ge=1)


class RetrySettings(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base: float = Field(default=0.05, gt=0)
    max_sleep: float = Field(default=0.5, gt=0)


class OutputSettings(BaseModel):
    format: Literal["json", "text"] = "json"
    pretty: bool = False
    show_summary: bool = True


class ObservabilitySettings(BaseModel):
    json_logs: bool = False
    log_level: str = Field(default="WARNING")


class Settings(BaseModel):
    scan: ScanSettings = Field(default_factory=ScanSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
