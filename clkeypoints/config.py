from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# smoothing applied by smooth_and_detect: Gaussian sigma and kernel half-width
SMOOTH_SIGMA = 2.0
SMOOTH_HALF_WIDTH = 2

LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


class DetectorSettings(BaseSettings):
    """Defaults for the command line, read from ``CLKEYPOINTS_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="CLKEYPOINTS_", env_ignore_empty=True)

    threshold: float = 0.003
    scale: float = 2.0
    subpixel: bool = False
    device_index: int = Field(default=0, ge=0)
    log_level: LogLevel = "INFO"
    log_file: Optional[str] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        return value.upper() if isinstance(value, str) else value
