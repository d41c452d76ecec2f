"""Centralized application configuration.

All settings are read from SPARRING_* environment variables (or a
.env.sparring file). Every field has a default, so a bare environment
runs against a ``stockfish`` binary on PATH.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SPARRING_", env_file=".env.sparring", env_file_encoding="utf-8",
    )

    # Engine process
    engine_path: str = "stockfish"
    engine_args: list[str] = Field(default_factory=list)
    startup_timeout: float = 5.0
    search_timeout: float = 60.0
    max_uci_elo: int = 3190

    # Play and analysis
    thinking_delay: bool = True
    analysis_multipv: int = 4
    analysis_throttle_ms: int = 100
    default_analysis_depth: int = 15

    # Rating
    min_rating: int = 50
    max_rating: int = 2000
    default_rating: int = 100

    # Persistence
    stats_db_path: str = "data/sparring.db"
