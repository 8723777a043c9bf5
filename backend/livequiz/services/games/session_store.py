"""Session store: live sessions keyed by id, with a secondary PIN index.

Each session has its own lock; ``locked()`` is the only way callers get
write access to a session. The registry lock guards the dictionaries
themselves (and PIN allocation) and is never held while waiting on a
session lock.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
import logging
import random
import string
import threading
from typing import Callable, Dict, Iterator, List, Optional

from livequiz.errors import NotFound

from .state import LiveSession, QuizSnapshot, SessionStatus

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, pin_length: int = 6, waiting_ttl_sec: int = 86400,
                 ended_retention_sec: int = 3600,
                 clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.pin_length = pin_length
        self.waiting_ttl = timedelta(seconds=waiting_ttl_sec)
        self.ended_retention = timedelta(seconds=ended_retention_sec)
        self._clock = clock
        self._sessions: Dict[str, LiveSession] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._pins: Dict[str, str] = {}  # active PIN -> session id
        self._retired_pins: Dict[str, str] = {}  # PIN of an ended session -> session id
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _generate_pin(self) -> str:
        # Caller holds the registry lock
        while True:
            pin = ''.join(random.choices(string.digits, k=self.pin_length))
            if pin not in self._pins:
                return pin

    def create(self, quiz: QuizSnapshot, host_id: int, max_players: int = 50) -> LiveSession:
        """Register a new waiting session under a freshly allocated PIN."""
        with self._registry_lock:
            pin = self._generate_pin()
            session = LiveSession(quiz=quiz, host_id=host_id, pin=pin, max_players=max_players,
                                  created_at=self._clock(), last_activity_at=self._clock())
            self._sessions[session.id] = session
            self._locks[session.id] = threading.RLock()
            self._pins[pin] = session.id
            self._retired_pins.pop(pin, None)
        return session

    def get(self, session_id: str) -> LiveSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound('Game not found')
        return session

    def find_by_pin(self, pin: str) -> LiveSession:
        """Resolve a PIN to its session; ended sessions still resolve until purged."""
        key = (pin or '').strip().upper()
        with self._registry_lock:
            session_id = self._pins.get(key) or self._retired_pins.get(key)
            session = self._sessions.get(session_id) if session_id else None
        if session is None:
            raise NotFound('Game not found')
        return session

    @contextmanager
    def locked(self, session_id: str) -> Iterator[LiveSession]:
        with self._registry_lock:
            lock = self._locks.get(session_id)
        if lock is None:
            raise NotFound('Game not found')
        with lock:
            session = self._sessions.get(session_id)
            if session is None:
                # Removed while we were waiting for the lock
                raise NotFound('Game not found')
            yield session

    def retire_pin(self, session: LiveSession) -> None:
        """Drop the PIN from the active index once the session has ended."""
        with self._registry_lock:
            if self._pins.get(session.pin) == session.id:
                del self._pins[session.pin]
            self._retired_pins[session.pin] = session.id

    def remove(self, session_id: str) -> Optional[LiveSession]:
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
            if session is None:
                return None
            if self._pins.get(session.pin) == session_id:
                del self._pins[session.pin]
            if self._retired_pins.get(session.pin) == session_id:
                del self._retired_pins[session.pin]
        return session

    def active_for_quiz(self, quiz_id: int) -> List[LiveSession]:
        with self._registry_lock:
            sessions = list(self._sessions.values())
        return [s for s in sessions if s.quiz.id == quiz_id and s.status != SessionStatus.ENDED]

    def _is_expired(self, session: LiveSession, now: datetime) -> bool:
        if session.status == SessionStatus.ENDED:
            return session.ended_at is not None and now - session.ended_at >= self.ended_retention
        if session.finalizing:
            return False
        # Lobbies that never started, and running games nobody touches any more
        return now - session.last_activity_at >= self.waiting_ttl

    def sweep(self, now: Optional[datetime] = None) -> List[LiveSession]:
        """Remove expired sessions, releasing their PINs. Returns what was removed."""
        now = now or self._clock()
        with self._registry_lock:
            candidates = list(self._sessions.keys())
        removed = []
        for session_id in candidates:
            try:
                with self.locked(session_id) as session:
                    if not self._is_expired(session, now):
                        continue
                    self.remove(session_id)
                    removed.append(session)
            except NotFound:
                continue
        if removed:
            logger.info(f"[sweep] removed={len(removed)} remaining={len(self._sessions)}")
        return removed
