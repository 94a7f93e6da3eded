"""
LaneRush Server Configuration

This file contains all server-side configurable settings.
Modify these values to tune the race behaviour.
"""

from dataclasses import dataclass, field
import os


@dataclass
class ServerConfig:
    """Server networking configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = field(default_factory=lambda: int(os.environ.get("PORT", "3001")))
    WEBSOCKET_PATH: str = "/ws"
    # Browser origins allowed to open the race socket (empty = any origin)
    ALLOWED_ORIGINS: tuple = ()
    SEND_QUEUE_LIMIT: int = 256  # Pending outbound messages before a connection is dropped


@dataclass
class RaceConfig:
    """Race rules and simulation parameters."""
    MAX_PLAYERS: int = 16
    MIN_PLAYERS_TO_START: int = 2
    RACE_DISTANCE: float = 100.0  # units
    COUNTDOWN_SECONDS: int = 3
    TICK_RATE_MS: int = 50

    # Speed
    BASE_SPEED_MIN: float = 8.0  # units/second
    BASE_SPEED_MAX: float = 8.0
    FATIGUE_VARIATION: float = 0.05  # +/- 5% random speed fluctuation
    FATIGUE_CHANGE_CHANCE: float = 0.15  # Chance per tick to redraw fatigue

    # Impede
    IMPEDE_SLOW_PERCENT: float = 0.3
    IMPEDE_DURATION_MS: int = 500
    MAX_IMPEDES_PER_RACE: int = 3  # Impedes each player may perform per race

    # Display names
    MAX_NAME_LENGTH: int = 20

    @property
    def tick_interval(self) -> float:
        """Tick interval in seconds."""
        return self.TICK_RATE_MS / 1000


@dataclass
class Settings:
    """Main settings container."""
    server: ServerConfig = None
    race: RaceConfig = None

    # Application info
    APP_NAME: str = "LaneRush"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))

    def __post_init__(self):
        self.server = self.server or ServerConfig()
        self.race = self.race or RaceConfig()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
