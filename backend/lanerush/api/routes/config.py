"""
Configuration API endpoints.

Provides access to race configuration for clients.
"""

from fastapi import APIRouter
from typing import Dict, Any

from lanerush.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/race")
async def get_race_config() -> Dict[str, Any]:
    """
    Get race configuration parameters.

    Lets the frontend size lanes, show the impede budget and animate
    between ticks without hardcoding server constants.

    Returns:
        dict: Race configuration
    """
    race = get_settings().race

    return {
        # Roster
        "MAX_PLAYERS": race.MAX_PLAYERS,
        "MIN_PLAYERS_TO_START": race.MIN_PLAYERS_TO_START,
        "MAX_NAME_LENGTH": race.MAX_NAME_LENGTH,

        # Course and timing
        "RACE_DISTANCE": race.RACE_DISTANCE,
        "COUNTDOWN_SECONDS": race.COUNTDOWN_SECONDS,
        "TICK_RATE_MS": race.TICK_RATE_MS,

        # Impede
        "IMPEDE_SLOW_PERCENT": race.IMPEDE_SLOW_PERCENT,
        "IMPEDE_DURATION_MS": race.IMPEDE_DURATION_MS,
        "MAX_IMPEDES_PER_RACE": race.MAX_IMPEDES_PER_RACE,
    }
