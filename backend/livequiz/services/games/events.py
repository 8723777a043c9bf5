"""Domain events published by the engine and their Socket.IO relay.

The engine never talks to the transport directly: it publishes
``GameEvent`` values, and the broadcaster drains them into the session's
room. Delivery is best effort; clients re-fetch state over HTTP.
"""

from dataclasses import dataclass, field
import logging
import queue
from typing import Any, Dict

logger = logging.getLogger(__name__)

PARTICIPANT_JOINED = 'participant-joined'
PARTICIPANT_LEFT = 'participant-left'
GAME_STARTED = 'game-started'
QUESTION_CHANGED = 'question-changed'
ANSWER_SUBMITTED = 'answer-submitted'
GAME_ENDED = 'game-ended'
HOST_DISCONNECTED = 'host-disconnected'

EVENT_NAMES = frozenset({
    PARTICIPANT_JOINED, PARTICIPANT_LEFT, GAME_STARTED, QUESTION_CHANGED,
    ANSWER_SUBMITTED, GAME_ENDED, HOST_DISCONNECTED,
})


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


@dataclass(frozen=True)
class GameEvent:
    session_id: str
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.name not in EVENT_NAMES:
            raise ValueError(f"unknown game event {self.name!r}")

    @property
    def room(self) -> str:
        return session_room(self.session_id)


class Broadcaster:
    """Queue-backed relay from engine events to Socket.IO rooms."""

    def __init__(self, socketio, namespace: str = '/ws', synchronous: bool = False) -> None:
        self._socketio = socketio
        self._namespace = namespace
        self._queue: "queue.Queue[GameEvent]" = queue.Queue()
        self._started = False
        # Emit on publish instead of from the pump (used in tests)
        self.synchronous = synchronous

    def publish(self, event: GameEvent) -> None:
        self._queue.put(event)
        if self.synchronous:
            self.flush()

    def flush(self) -> int:
        sent = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return sent
            self._emit(event)
            sent += 1

    def _emit(self, event: GameEvent) -> None:
        try:
            self._socketio.emit(event.name, event.payload, to=event.room, namespace=self._namespace)
        except Exception as exc:
            logger.warning(f"[broadcast-failed] session={event.session_id} event={event.name} error={exc}")

    def start(self) -> None:
        if self._started or self.synchronous:
            return
        self._started = True
        self._socketio.start_background_task(self._pump)

    def _pump(self) -> None:
        while True:
            try:
                event = self._queue.get(timeout=1.0)
            except queue.Empty:
                continue
            self._emit(event)

