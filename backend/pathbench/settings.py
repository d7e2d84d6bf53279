from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep logs in backend/out by default to avoid polluting the source tree.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tuning knobs out of the search code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_to_file: bool = Field(default=True, alias="LOG_TO_FILE")

    # Snap radius for start/goal coordinates. Unset means "nearest node wherever it is".
    nearest_node_max_distance_m: float | None = Field(
        default=None,
        gt=0.0,
        alias="NEAREST_NODE_MAX_DISTANCE_M",
    )
    replanner_max_reconstruction_steps: int = Field(
        default=10_000,
        ge=1,
        alias="REPLANNER_MAX_RECONSTRUCTION_STEPS",
    )

    # 15 km/h, used for the travel-time column of comparison reports.
    walking_speed_mps: float = Field(default=4.17, gt=0.0, alias="WALKING_SPEED_MPS")
    # Straight-line start/goal cap enforced by the HTTP layer (0 disables).
    max_route_span_m: float = Field(default=5_000.0, ge=0.0, alias="MAX_ROUTE_SPAN_M")

    result_cache_ttl_s: int = Field(default=600, ge=1, alias="RESULT_CACHE_TTL_S")
    result_cache_max_entries: int = Field(default=256, ge=1, alias="RESULT_CACHE_MAX_ENTRIES")


settings = Settings()
