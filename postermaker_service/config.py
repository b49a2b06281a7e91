"""
Configuration loader for the PosterMaker background-removal service.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REMOVAL_BACKENDS = {"remote", "local"}
ORIENTATION_STRATEGIES = {"edge_center", "passthrough"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Backend selection
    removal_backend: str = Field("remote")

    # remove.bg proxy
    remove_bg_api_key: Optional[str] = Field(None)
    remove_bg_api_url: str = Field("https://api.remove.bg/v1.0/removebg")
    request_timeout_seconds: int = Field(30)

    # Local U^2-Net backend
    u2net_model_path: Optional[Path] = Field(None)

    # Matte post-processing tunables (empirical, see matte.py)
    orientation_strategy: str = Field("edge_center")
    orientation_edge_fraction: float = Field(0.05)
    orientation_min_border: int = Field(2)
    orientation_center_low: float = Field(0.25)
    orientation_center_high: float = Field(0.75)
    matte_epsilon: float = Field(1e-6)

    # API
    max_upload_bytes: int = Field(10 * 1024 * 1024)
    static_dir: Path = Field(Path("dist"))
    host: str = Field("0.0.0.0")
    port: int = Field(3000)
    log_level: str = Field("INFO")

    # Debugging
    debug: bool = Field(False)
    debug_output_dir: Path = Field(Path("/tmp/postermaker_debug"))

    @field_validator("removal_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in REMOVAL_BACKENDS:
            raise ValueError("REMOVAL_BACKEND must be one of remote|local")
        return v

    @field_validator("orientation_strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        v = v.lower()
        if v not in ORIENTATION_STRATEGIES:
            raise ValueError("ORIENTATION_STRATEGY must be one of edge_center|passthrough")
        return v

    @model_validator(mode="after")
    def validate_center_box(self) -> "Settings":
        if not 0.0 <= self.orientation_center_low < self.orientation_center_high <= 1.0:
            raise ValueError("ORIENTATION_CENTER_LOW/HIGH must satisfy 0 <= low < high <= 1")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()
