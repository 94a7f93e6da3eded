"""
Per-racer state for a LaneRush sprint.

A Participant knows its own kinematics and impede counters and nothing
about other racers or the network.
"""

import random
from dataclasses import dataclass
from typing import Dict, Optional

from lanerush.config import RaceConfig


@dataclass
class Participant:
    """Kinematic, impede and finish state for one lane."""
    identity: str
    name: str
    lane: int

    # Kinematics
    base_speed: float  # units/second, fixed for the participant's lifetime
    position: float = 0.0
    fatigue_factor: float = 1.0
    current_speed: float = 0.0

    # Impede
    impeded_until: float = 0.0  # ms timestamp; 0 is always in the past
    impedes_used: int = 0  # Impedes this participant has performed
    times_impeded: int = 0  # Impedes this participant has received

    # Finish
    finish_time: Optional[float] = None  # ms since race start
    finish_rank: Optional[int] = None

    @classmethod
    def create(
        cls,
        identity: str,
        name: str,
        lane: int,
        config: RaceConfig,
        rng: random.Random
    ) -> "Participant":
        """
        Create a participant at the start line.

        Args:
            identity: Session identity
            name: Display name
            lane: Lane number (1-based)
            config: Race configuration supplying the base speed range
            rng: Random source for the base speed draw

        Returns:
            New Participant with zeroed counters
        """
        base_speed = rng.uniform(config.BASE_SPEED_MIN, config.BASE_SPEED_MAX)
        return cls(
            identity=identity,
            name=name,
            lane=lane,
            base_speed=base_speed,
            current_speed=base_speed
        )

    @property
    def is_finished(self) -> bool:
        return self.finish_time is not None

    def is_impeded(self, now: float) -> bool:
        return now < self.impeded_until

    def impedes_remaining(self, config: RaceConfig) -> int:
        return max(0, config.MAX_IMPEDES_PER_RACE - self.impedes_used)

    def advance_fatigue(self, config: RaceConfig, rng: random.Random) -> None:
        """Redraw the fatigue multiplier with the configured per-tick chance."""
        if rng.random() < config.FATIGUE_CHANGE_CHANCE:
            self.fatigue_factor = 1 + rng.uniform(-1, 1) * config.FATIGUE_VARIATION

    def compute_speed(self, now: float, config: RaceConfig) -> float:
        """
        Effective speed at time ``now`` (ms).

        Impeded participants run at ``1 - IMPEDE_SLOW_PERCENT`` of their
        base speed; fatigue applies in both cases.
        """
        if now >= self.impeded_until:
            return self.base_speed * self.fatigue_factor
        return self.base_speed * (1 - config.IMPEDE_SLOW_PERCENT) * self.fatigue_factor

    def reset_for_race(self) -> None:
        """Clear race-scoped counters when the starting gun fires."""
        self.position = 0.0
        self.finish_time = None
        self.finish_rank = None
        self.impedes_used = 0
        self.times_impeded = 0

    def to_snapshot(self, now: float, config: RaceConfig) -> Dict:
        """
        Externally visible view of this participant.

        Args:
            now: Current time in ms
            config: Race configuration (impede budget)

        Returns:
            JSON-serializable dict
        """
        return {
            'id': self.identity,
            'name': self.name,
            'lane': self.lane,
            'position': self.position,
            'currentSpeed': self.current_speed,
            'isImpeded': self.is_impeded(now),
            'impedesRemaining': self.impedes_remaining(config),
            'finishTime': self.finish_time,
            'finishRank': self.finish_rank,
        }
