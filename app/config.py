from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from adapters.layout.constraint_solver import LayoutConfig
from domain.models import Font, Size

DEFAULT_CONFIG_PATH = Path("config/fd.yaml")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class FontSettings(BaseModel):
    family: str = "Inter"
    weight: int = 400
    size: float = Field(default=14.0, gt=0)


class EngineSettings(BaseModel):
    viewport_width: float = Field(default=800.0, gt=0)
    viewport_height: float = Field(default=600.0, gt=0)
    default_width: float = Field(default=100.0, gt=0)
    default_height: float = Field(default=100.0, gt=0)
    frame_width: float = Field(default=200.0, gt=0)
    frame_height: float = Field(default=200.0, gt=0)
    char_width_ratio: float = Field(default=0.6, gt=0)
    default_font: FontSettings = FontSettings()
    undo_limit: int = Field(default=100, ge=1)
    duplicate_offset: float = 20.0

    def to_layout_config(self) -> LayoutConfig:
        font = self.default_font
        return LayoutConfig(
            viewport=Size(self.viewport_width, self.viewport_height),
            default_size=Size(self.default_width, self.default_height),
            frame_size=Size(self.frame_width, self.frame_height),
            char_width_ratio=self.char_width_ratio,
            default_font=Font(font.family, font.weight, font.size),
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FD_", env_nested_delimiter="__")

    engine: EngineSettings = EngineSettings()
    log_level: str = "WARNING"

    _yaml_path: ClassVar[Path | None] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> str:
        level = str(value or "WARNING").strip().upper()
        if level not in LOG_LEVELS:
            msg = f"log_level must be one of: {', '.join(LOG_LEVELS)}"
            raise ValueError(msg)
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("FD_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
