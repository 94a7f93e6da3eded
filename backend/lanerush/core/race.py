"""
Race state machine and physics for LaneRush.

This module owns the set of participants, lane allocation, phase
transitions (waiting -> countdown -> running -> finished), the per-tick
sprint simulation and impede resolution.

The Race is not thread- or task-safe on its own; callers serialize every
mutation (see lanerush.core.synchronizer).
"""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Set

from lanerush.config import RaceConfig, get_settings
from lanerush.core.errors import (
    GameFull,
    ImpedeBudgetExhausted,
    NotRunning,
    RaceInProgress,
    SelfTarget,
    TargetAlreadyFinished,
    UnknownAttacker,
    UnknownTarget,
)
from lanerush.core.participant import Participant

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


class RacePhase(Enum):
    """Race state machine."""
    WAITING = "waiting"      # Accepting joins
    COUNTDOWN = "countdown"  # Start accepted, timer running
    RUNNING = "running"      # Physics ticking
    FINISHED = "finished"    # Everyone crossed the line


@dataclass(frozen=True)
class ImpedeResult:
    """Lanes involved in a successful impede."""
    target_lane: int
    attacker_lane: int


class Race:
    """
    Authoritative state for a single sprint.

    One instance lives for the whole server process and is reset in place
    between races.
    """

    def __init__(
        self,
        config: Optional[RaceConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize an empty race in the waiting phase.

        Args:
            config: Race rules (defaults to global settings)
            rng: Random source for base speed and fatigue draws
            clock: Millisecond clock used when no explicit ``now`` is given
        """
        self.config = config or get_settings().race
        self.rng = rng or random.Random()
        self._clock = clock or wall_clock_ms

        self._participants: Dict[str, Participant] = {}
        self._used_lanes: Set[int] = set()
        self._finish_order: List[str] = []
        self.phase = RacePhase.WAITING
        self.countdown_started_at: Optional[float] = None
        self.race_started_at: Optional[float] = None

    # ----- Read-only views -----

    @property
    def participants(self) -> Mapping[str, Participant]:
        return MappingProxyType(self._participants)

    @property
    def participant_count(self) -> int:
        return len(self._participants)

    @property
    def used_lanes(self) -> frozenset:
        return frozenset(self._used_lanes)

    @property
    def finish_order(self) -> List[str]:
        return list(self._finish_order)

    def get_participant(self, identity: str) -> Optional[Participant]:
        return self._participants.get(identity)

    def participant_in_lane(self, lane: int) -> Optional[Participant]:
        for participant in self._participants.values():
            if participant.lane == lane:
                return participant
        return None

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def _by_lane(self) -> List[Participant]:
        return sorted(self._participants.values(), key=lambda p: p.lane)

    # ----- Lifecycle -----

    def reset(self) -> None:
        """Return to WAITING with no participants, lanes or timing."""
        self._participants = {}
        self._used_lanes = set()
        self._finish_order = []
        self.phase = RacePhase.WAITING
        self.countdown_started_at = None
        self.race_started_at = None
        logger.info("Race reset to WAITING")

    def add_participant(self, identity: str, name: str) -> Participant:
        """
        Add a participant in the lowest free lane.

        Args:
            identity: Session identity
            name: Display name

        Returns:
            The created Participant

        Raises:
            GameFull: If MAX_PLAYERS participants are already present
            RaceInProgress: If the race is not WAITING
        """
        if len(self._participants) >= self.config.MAX_PLAYERS:
            raise GameFull()
        if self.phase != RacePhase.WAITING:
            raise RaceInProgress()

        lane = 1
        while lane in self._used_lanes:
            lane += 1

        participant = Participant.create(identity, name, lane, self.config, self.rng)
        self._participants[identity] = participant
        self._used_lanes.add(lane)
        logger.info(f"Participant {identity} ('{name}') joined in lane {lane} ({len(self._participants)}/{self.config.MAX_PLAYERS})")
        return participant

    def remove_participant(self, identity: str) -> bool:
        """
        Remove a participant and free its lane.

        Unknown identities are ignored. If the race is past WAITING and
        fewer than MIN_PLAYERS_TO_START remain, the race resets.

        Returns:
            True if the race was reset, False otherwise
        """
        participant = self._participants.pop(identity, None)
        if participant is not None:
            self._used_lanes.discard(participant.lane)
            if identity in self._finish_order:
                self._finish_order.remove(identity)
                # Keep ranks contiguous for the finishers still present
                for rank, other in enumerate(self._finish_order, start=1):
                    self._participants[other].finish_rank = rank
            logger.info(f"Participant {identity} left lane {participant.lane} ({len(self._participants)} remaining)")

        if (
            self.phase != RacePhase.WAITING and
            len(self._participants) < self.config.MIN_PLAYERS_TO_START
        ):
            logger.info(f"Only {len(self._participants)} participant(s) left during {self.phase.value}")
            self.reset()
            return True

        # Someone still racing may have been the only unfinished participant
        if self.phase == RacePhase.RUNNING and self._all_finished():
            self.phase = RacePhase.FINISHED
            logger.info("All remaining participants finished")
        return False

    def can_start(self) -> bool:
        return (
            self.phase == RacePhase.WAITING and
            len(self._participants) >= self.config.MIN_PLAYERS_TO_START
        )

    def start_countdown(self, now: Optional[float] = None) -> bool:
        """
        Move WAITING -> COUNTDOWN.

        Returns:
            True if the countdown started, False if the race cannot start
        """
        if not self.can_start():
            return False
        self.phase = RacePhase.COUNTDOWN
        self.countdown_started_at = self._now(now)
        logger.info(f"Countdown started with {len(self._participants)} participants")
        return True

    def countdown_elapsed(self, now: Optional[float] = None) -> bool:
        """Whether COUNTDOWN_SECONDS have passed since the countdown began."""
        if self.phase != RacePhase.COUNTDOWN or self.countdown_started_at is None:
            return False
        elapsed = self._now(now) - self.countdown_started_at
        return elapsed >= self.config.COUNTDOWN_SECONDS * 1000

    def start_race(self, now: Optional[float] = None) -> None:
        """Move COUNTDOWN -> RUNNING and put everyone back on the line."""
        if self.phase != RacePhase.COUNTDOWN:
            logger.debug(f"Ignoring start_race in phase {self.phase.value}")
            return

        self.phase = RacePhase.RUNNING
        self.race_started_at = self._now(now)
        for participant in self._participants.values():
            participant.reset_for_race()
        self._finish_order = []
        logger.info("Race started")

    def restart(self) -> bool:
        """
        Rebuild the lobby after a finished race.

        Every participant is recreated with the same identity, name and
        lane, so kinematic and finish state start from scratch.

        Returns:
            True if restarted, False if the race is not FINISHED
        """
        if self.phase != RacePhase.FINISHED:
            return False

        roster = [(p.identity, p.name, p.lane) for p in self._by_lane()]
        self.reset()
        for identity, name, lane in roster:
            self._participants[identity] = Participant.create(identity, name, lane, self.config, self.rng)
            self._used_lanes.add(lane)
        logger.info(f"Race restarted with {len(roster)} participants")
        return True

    # ----- Interaction -----

    def apply_impede(
        self,
        attacker_identity: str,
        target_lane: int,
        now: Optional[float] = None
    ) -> ImpedeResult:
        """
        Slow down the participant in ``target_lane``.

        Args:
            attacker_identity: Identity of the impeding participant
            target_lane: Lane to impede
            now: Current time in ms

        Returns:
            ImpedeResult with the lanes involved

        Raises:
            NotRunning, UnknownAttacker, SelfTarget, ImpedeBudgetExhausted,
            UnknownTarget, TargetAlreadyFinished
        """
        if self.phase != RacePhase.RUNNING:
            raise NotRunning()

        attacker = self._participants.get(attacker_identity)
        if attacker is None:
            raise UnknownAttacker()
        if attacker.lane == target_lane:
            raise SelfTarget()
        if attacker.impedes_used >= self.config.MAX_IMPEDES_PER_RACE:
            raise ImpedeBudgetExhausted()

        target = self.participant_in_lane(target_lane)
        if target is None:
            raise UnknownTarget()
        if target.is_finished:
            raise TargetAlreadyFinished()

        now = self._now(now)
        attacker.impedes_used += 1
        target.impeded_until = now + self.config.IMPEDE_DURATION_MS
        target.current_speed = target.compute_speed(now, self.config)
        target.times_impeded += 1

        logger.debug(f"Lane {attacker.lane} impeded lane {target.lane} ({attacker.impedes_remaining(self.config)} left)")
        return ImpedeResult(target_lane=target.lane, attacker_lane=attacker.lane)

    # ----- Simulation -----

    def tick(self, now: Optional[float] = None) -> None:
        """
        Advance the simulation by one tick.

        No-op unless RUNNING. Participants are processed in ascending lane
        order so same-tick finishers are ranked by lane.
        """
        if self.phase != RacePhase.RUNNING:
            return

        now = self._now(now)
        dt = self.config.tick_interval

        for participant in self._by_lane():
            if participant.is_finished:
                continue

            participant.advance_fatigue(self.config, self.rng)
            participant.current_speed = participant.compute_speed(now, self.config)
            participant.position += participant.current_speed * dt

            if participant.position >= self.config.RACE_DISTANCE:
                participant.position = self.config.RACE_DISTANCE
                participant.finish_time = now - self.race_started_at
                participant.finish_rank = len(self._finish_order) + 1
                self._finish_order.append(participant.identity)
                logger.info(f"Lane {participant.lane} finished #{participant.finish_rank} in {participant.finish_time:.0f}ms")

        if self._all_finished():
            self.phase = RacePhase.FINISHED
            logger.info(f"Race finished: {len(self._finish_order)} finishers")

    def _all_finished(self) -> bool:
        return all(p.is_finished for p in self._participants.values())

    # ----- Projections -----

    def snapshot(self, now: Optional[float] = None) -> Dict:
        """
        Get current race state as a JSON-serializable dict.

        Returns:
            Dictionary with status, lane-ordered players, race time (ms)
            and remaining countdown seconds (None outside COUNTDOWN)
        """
        now = self._now(now)

        countdown = None
        if self.phase == RacePhase.COUNTDOWN and self.countdown_started_at is not None:
            elapsed_seconds = int((now - self.countdown_started_at) // 1000)
            countdown = max(0, self.config.COUNTDOWN_SECONDS - elapsed_seconds)

        return {
            'status': self.phase.value,
            'players': [p.to_snapshot(now, self.config) for p in self._by_lane()],
            'raceTime': now - self.race_started_at if self.race_started_at is not None else 0,
            'countdown': countdown,
        }

    def rankings(self) -> List[Dict]:
        """
        Final standings in finish order.

        Returns:
            List of ranking dicts, empty unless the race is FINISHED
        """
        if self.phase != RacePhase.FINISHED:
            return []

        return [
            {
                'rank': index,
                'name': participant.name,
                'lane': participant.lane,
                'time': participant.finish_time,
                'timesImpeded': participant.times_impeded,
            }
            for index, participant in enumerate(
                (self._participants[identity] for identity in self._finish_order),
                start=1
            )
        ]
