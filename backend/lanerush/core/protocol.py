"""
JSON wire protocol between race clients and the server.

Inbound intents are validated with pydantic; outbound events are plain
dicts ready for ``send_json``.
"""

import random
import string
import time
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from lanerush.config import RaceConfig


class MalformedMessage(ValueError):
    """Inbound frame that is not a valid intent."""


# ===== Inbound intents =====

class JoinGame(BaseModel):
    """Request a lane in the next race."""
    type: Literal["JOIN_GAME"]
    name: Optional[str] = Field(default=None, description="Display name")


class StartGame(BaseModel):
    """Request the countdown to begin."""
    type: Literal["START_GAME"]


class ImpedeRunner(BaseModel):
    """Slow down the runner in another lane."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["IMPEDE_RUNNER"]
    target_lane: int = Field(..., alias="targetLane", description="Lane to impede")


class RestartGame(BaseModel):
    """Return a finished race to the lobby."""
    type: Literal["RESTART_GAME"]


Intent = Annotated[
    Union[JoinGame, StartGame, ImpedeRunner, RestartGame],
    Field(discriminator="type")
]

_intent_adapter = TypeAdapter(Intent)


def parse_intent(raw: Union[str, bytes]) -> Intent:
    """
    Parse a raw client frame into an intent model.

    Raises:
        MalformedMessage: If the frame is not JSON or not a known intent
    """
    try:
        return _intent_adapter.validate_json(raw)
    except ValidationError as exc:
        raise MalformedMessage(f"Invalid client message: {exc.error_count()} error(s)") from exc


# ===== Identity and names =====

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_identity(rng: Optional[random.Random] = None) -> str:
    """Opaque session identity, e.g. ``player_1718000000000_k3j9x0a1b``."""
    rng = rng or random
    suffix = "".join(rng.choice(_ID_ALPHABET) for _ in range(9))
    return f"player_{int(time.time() * 1000)}_{suffix}"


def normalize_name(name: Optional[str], participant_count: int, config: RaceConfig) -> str:
    """
    Clean a requested display name.

    Names are stripped and cut to MAX_NAME_LENGTH; a blank name becomes
    ``Player N`` where N is the next participant number.
    """
    cleaned = (name or "").strip()[:config.MAX_NAME_LENGTH].strip()
    return cleaned or f"Player {participant_count + 1}"


# ===== Outbound events =====

def player_assigned(identity: str, lane: int, name: str) -> Dict:
    return {'type': 'PLAYER_ASSIGNED', 'playerId': identity, 'lane': lane, 'name': name}


def lobby_update(snapshot: Dict) -> Dict:
    return {'type': 'LOBBY_UPDATE', **snapshot}


def state_update(snapshot: Dict) -> Dict:
    return {'type': 'STATE_UPDATE', **snapshot}


def countdown_start(seconds: int) -> Dict:
    return {'type': 'COUNTDOWN_START', 'countdown': seconds}


def game_start() -> Dict:
    return {'type': 'GAME_START'}


def impede_effect(target_lane: int, attacker_lane: int) -> Dict:
    return {'type': 'IMPEDE_EFFECT', 'targetLane': target_lane, 'attackerLane': attacker_lane}


def game_end(rankings: List[Dict]) -> Dict:
    return {'type': 'GAME_END', 'rankings': rankings}


def game_reset(reason: str) -> Dict:
    return {'type': 'GAME_RESET', 'reason': reason}


def error(message: str) -> Dict:
    return {'type': 'ERROR', 'message': message}
