"""Configuration management using Pydantic settings."""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Squad engine settings loaded from environment variables (SQUAD_*)."""

    model_config = SettingsConfigDict(
        env_prefix="SQUAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SQUADRON"
    debug: bool = False
    api_enabled: bool = True
    tick_interval: float = 1.0          # seconds between ticks when running live
    scenario_path: str | None = None    # sandbox scenario served by app.main

    # Squad sizing
    max_squad_size: int = 4
    min_squad_size: int = 4             # FORMING -> READY without timeout

    # Lifecycle timers (ticks)
    forming_timeout_ticks: int = 200    # smaller squads may leave after this
    stale_forming_ticks: int = 500      # cleanup drops squads still forming
    cleanup_interval: int = 50
    status_report_interval: int = 10

    # Health thresholds (fractions of max health)
    retreat_health_threshold: float = 0.3
    recover_health_threshold: float = 0.8
    swap_front_threshold: float = 0.5
    swap_margin: float = 0.2

    # Ranges (tiles)
    ranged_range: int = 3
    melee_range: int = 1
    heal_range: int = 3
    mass_attack_min_targets: int = 3
    formation_edge_margin: int = 2
    rally_anchor_range: int = 5
    regroup_range: int = 3
    home_search_distance: int = 5       # rooms

    # Safe-mode rooms are avoided for this many ticks once seen
    safe_mode_memory_ticks: int = 1500

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        if not 1 <= self.min_squad_size <= self.max_squad_size:
            raise ValueError("min_squad_size must be between 1 and max_squad_size")
        if self.max_squad_size > 4:
            raise ValueError("quad formation holds at most 4 members")
        if self.retreat_health_threshold >= self.recover_health_threshold:
            raise ValueError("retreat threshold must be below recover threshold")
        if self.cleanup_interval < 1 or self.status_report_interval < 1:
            raise ValueError("intervals must be positive")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        return self


settings = Settings()
