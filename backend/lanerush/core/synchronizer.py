"""
Session and tick-loop orchestration for the LaneRush race.

The Synchronizer is the only writer of the shared Race. Every intent,
tick, connect and disconnect runs under one asyncio lock, and every
outbound message is queued for all sessions while that lock is held, so
all connections observe the same event order. Each session drains its
own queue, which keeps a slow or dead connection from stalling the race.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional
from uuid import uuid4

from lanerush.config import get_settings
from lanerush.core import protocol
from lanerush.core.errors import RaceError
from lanerush.core.protocol import (
    ImpedeRunner,
    JoinGame,
    MalformedMessage,
    RestartGame,
    StartGame,
)
from lanerush.core.race import Race, RacePhase

logger = logging.getLogger(__name__)

NOT_ENOUGH_PLAYERS = "Not enough players"
WS_INTERNAL_ERROR = 1011


class Session:
    """
    One live connection and the participant it controls (if any).

    ``connection`` is anything with an awaitable ``send_json(dict)``,
    such as a Starlette WebSocket. If it also has an awaitable
    ``close(code)``, a detached session closes it so the transport's
    normal disconnect path releases the participant.
    """

    def __init__(self, connection: Any, queue_limit: int):
        self.session_id = str(uuid4())
        self.connection = connection
        self.identity: Optional[str] = None
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_limit)
        self._sender: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start draining the outbox onto the connection."""
        if self._sender is None and not self.closed:
            self._sender = asyncio.create_task(self._pump())

    def enqueue(self, message: Dict) -> bool:
        """
        Queue a message without waiting.

        Returns:
            False if the session is closed or its backlog is full
        """
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Session {self.session_id} fell {self._outbox.maxsize} messages behind, detaching")
            self.detach()
            return False
        return True

    async def flush(self) -> None:
        """
        Wait until every queued message has been handed to the connection,
        or until a detached session's transport has been closed.
        """
        if self._closer is not None:
            await self._closer
            return
        if self._sender is None or self.closed:
            return
        await self._outbox.join()

    def close(self) -> None:
        """Stop sending; queued messages are discarded."""
        self.closed = True
        if self._sender is not None and self._sender is not asyncio.current_task():
            self._sender.cancel()
        self._sender = None

        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    def detach(self) -> None:
        """Stop sending and close the transport (slow or failed connection)."""
        if self.closed:
            return
        self.close()
        if hasattr(self.connection, "close"):
            self._closer = asyncio.create_task(self._close_transport())

    async def _close_transport(self) -> None:
        try:
            await self.connection.close(code=WS_INTERNAL_ERROR)
        except Exception as e:
            logger.debug(f"Closing session {self.session_id} transport failed: {e}")

    async def _pump(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self.connection.send_json(message)
            except Exception as e:
                logger.warning(f"Send to session {self.session_id} failed, detaching: {e}")
                self._outbox.task_done()
                self.detach()
                return
            except asyncio.CancelledError:
                self._outbox.task_done()
                raise
            self._outbox.task_done()


class Synchronizer:
    """
    Bridges connections to the shared Race.

    Translates intents into Race operations, runs the fixed-rate tick
    loop and fans resulting events out to every session.
    """

    def __init__(self, race: Optional[Race] = None):
        """
        Initialize the synchronizer.

        Args:
            race: Race to drive (a fresh one by default)
        """
        self.settings = get_settings()
        self.race = race or Race()
        self.config = self.race.config

        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()  # Serializes every Race mutation
        self._task: Optional[asyncio.Task] = None

    @property
    def sessions(self) -> Dict[str, Session]:
        return dict(self._sessions)

    @property
    def loop_running(self) -> bool:
        return self._task is not None

    # ----- Fan-out -----

    def _broadcast(self, message: Dict) -> None:
        for session in list(self._sessions.values()):
            session.enqueue(message)

    def _broadcast_lobby(self) -> None:
        self._broadcast(protocol.lobby_update(self.race.snapshot()))

    def _broadcast_state(self) -> None:
        self._broadcast(protocol.state_update(self.race.snapshot()))

    async def flush(self) -> None:
        """Wait for every live session to drain its outbox."""
        await asyncio.gather(*(session.flush() for session in list(self._sessions.values())))

    # ----- Connection lifecycle -----

    async def connect(self, connection: Any) -> Session:
        """
        Register a new connection.

        The connection immediately receives the current lobby snapshot.
        """
        session = Session(connection, self.settings.server.SEND_QUEUE_LIMIT)
        async with self._lock:
            self._sessions[session.session_id] = session
            session.enqueue(protocol.lobby_update(self.race.snapshot()))
        session.start()
        logger.info(f"Session {session.session_id} connected ({len(self._sessions)} connections)")
        return session

    async def disconnect(self, session: Session) -> None:
        """Drop a connection and release its participant."""
        session.close()
        async with self._lock:
            self._sessions.pop(session.session_id, None)
            logger.info(f"Session {session.session_id} disconnected ({len(self._sessions)} connections)")

            if session.identity is None:
                return

            was_running = self.race.phase == RacePhase.RUNNING
            reset = self.race.remove_participant(session.identity)
            session.identity = None

            if reset:
                self.stop_loop()
                # The roster is gone; everyone has to join again
                for other in self._sessions.values():
                    other.identity = None
                self._broadcast(protocol.game_reset(NOT_ENOUGH_PLAYERS))
            elif was_running and self.race.phase == RacePhase.FINISHED:
                self._finish()
            else:
                self._broadcast_lobby()

    # ----- Intents -----

    async def handle_message(self, session: Session, raw: Any) -> None:
        """
        Apply one inbound frame from ``session``.

        Malformed frames are dropped without a response.
        """
        try:
            intent = protocol.parse_intent(raw)
        except MalformedMessage as e:
            logger.debug(f"Dropping frame from session {session.session_id}: {e}")
            return

        async with self._lock:
            if isinstance(intent, JoinGame):
                self._handle_join(session, intent)
            elif isinstance(intent, StartGame):
                self._handle_start()
            elif isinstance(intent, ImpedeRunner):
                self._handle_impede(session, intent)
            elif isinstance(intent, RestartGame):
                self._handle_restart()

    def _handle_join(self, session: Session, intent: JoinGame) -> None:
        if session.identity is not None:
            session.enqueue(protocol.error("Already joined"))
            return

        name = protocol.normalize_name(intent.name, self.race.participant_count, self.config)
        identity = protocol.generate_identity()
        try:
            participant = self.race.add_participant(identity, name)
        except RaceError as e:
            logger.warning(f"Join rejected for session {session.session_id}: {e}")
            session.enqueue(protocol.error(e.client_message))
            return

        session.identity = identity
        session.enqueue(protocol.player_assigned(identity, participant.lane, participant.name))
        self._broadcast_lobby()

    def _handle_start(self) -> None:
        if not self.race.start_countdown():
            logger.debug(f"Start ignored (phase={self.race.phase.value}, participants={self.race.participant_count})")
            return

        self._broadcast(protocol.countdown_start(self.config.COUNTDOWN_SECONDS))
        self.start_loop()

    def _handle_impede(self, session: Session, intent: ImpedeRunner) -> None:
        if session.identity is None:
            return

        try:
            result = self.race.apply_impede(session.identity, intent.target_lane)
        except RaceError as e:
            logger.debug(f"Impede from {session.identity} on lane {intent.target_lane} rejected: {e}")
            return

        self._broadcast(protocol.impede_effect(result.target_lane, result.attacker_lane))

    def _handle_restart(self) -> None:
        if not self.race.restart():
            logger.debug(f"Restart ignored in phase {self.race.phase.value}")
            return

        self._broadcast_lobby()

    # ----- Tick loop -----

    def start_loop(self) -> None:
        """Start the tick loop in the background (no-op if running)."""
        if self._task is not None:
            return

        self._task = asyncio.create_task(self._tick_loop())
        logger.info(f"Tick loop started ({self.config.TICK_RATE_MS}ms)")

    def stop_loop(self) -> None:
        """Stop the tick loop (no-op if stopped). Safe to call from the loop itself."""
        task, self._task = self._task, None
        if task is None:
            return

        if task is not asyncio.current_task():
            task.cancel()
        logger.info("Tick loop stopped")

    async def _tick_loop(self) -> None:
        """Main loop - runs at a fixed tick rate until stopped."""
        me = asyncio.current_task()
        tick_interval = self.config.tick_interval
        last_tick_time = time.perf_counter()

        while self._task is me:
            current_time = time.perf_counter()
            elapsed = current_time - last_tick_time

            # Wait until it's time for the next tick
            if elapsed < tick_interval:
                await asyncio.sleep(tick_interval - elapsed)
                continue

            last_tick_time = current_time
            await self.process_tick()

    async def process_tick(self) -> None:
        """Run exactly one loop iteration."""
        async with self._lock:
            phase = self.race.phase

            if phase == RacePhase.COUNTDOWN:
                if self.race.countdown_elapsed():
                    self.race.start_race()
                    self._broadcast(protocol.game_start())
                else:
                    self._broadcast_state()

            elif phase == RacePhase.RUNNING:
                self.race.tick()
                self._broadcast_state()
                if self.race.phase == RacePhase.FINISHED:
                    self._finish()

            else:
                # Nothing to simulate while waiting or finished
                self.stop_loop()

    def _finish(self) -> None:
        rankings = self.race.rankings()
        logger.info(f"Race over: {', '.join(r['name'] for r in rankings)}")
        self._broadcast(protocol.game_end(rankings))
        self.stop_loop()

    # ----- Introspection / shutdown -----

    def status(self) -> Dict:
        """Summary used by the health endpoints."""
        return {
            'phase': self.race.phase.value,
            'participants': self.race.participant_count,
            'connections': len(self._sessions),
            'tick_loop': self.loop_running,
        }

    async def shutdown(self) -> None:
        """Stop the loop and all session senders."""
        async with self._lock:
            self.stop_loop()
            for session in self._sessions.values():
                session.close()
            self._sessions.clear()


# Global synchronizer instance
_synchronizer = Synchronizer()


def get_synchronizer() -> Synchronizer:
    """Get global synchronizer instance."""
    return _synchronizer


def reset_synchronizer(race: Optional[Race] = None) -> Synchronizer:
    """Replace the global synchronizer (used between test runs)."""
    global _synchronizer
    _synchronizer = Synchronizer(race)
    return _synchronizer
