"""Live game session engine.

Owns the waiting -> running -> ended state machine. Every transition that
mutates a session runs inside that session's lock; catalog lookups and
history writes happen outside it. Events are published after the lock is
released.
"""

from contextlib import suppress
from datetime import datetime
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from livequiz.errors import (
    AlreadyEnded, AlreadyStarted, DuplicateParticipant, Forbidden, Full, GameError,
    InvalidState, NotFound, NotInGame, ValidationError,
)

from . import events
from .catalog import QuizCatalog
from .evaluator import evaluate, points_for
from .history import HistoryRepository
from .session_store import SessionStore
from .state import (
    DEFAULT_AVATAR, DEFAULT_NAME, MAX_NAME_LENGTH, AnswerRecord, AnswerValue, HistoryRecord,
    Identity, LiveSession, Participant, QuestionDef, QuizSnapshot, SessionStatus,
)

logger = logging.getLogger(__name__)


def normalize_avatar(avatar: Any) -> Any:
    if isinstance(avatar, dict):
        return {
            'emoji': avatar.get('emoji') or DEFAULT_AVATAR,
            'color': avatar.get('color'),
            'name': avatar.get('name'),
        }
    if isinstance(avatar, str) and avatar.strip():
        return avatar.strip()
    return DEFAULT_AVATAR


def _default_name(participants: Iterable[Participant]) -> str:
    """First free 'Player', 'Player 2', ... for someone who left the name blank."""
    taken = {p.display_name.lower() for p in participants}
    name, n = DEFAULT_NAME, 1
    while name.lower() in taken:
        n += 1
        name = f'{DEFAULT_NAME} {n}'
    return name


def rank_participants(participants: Iterable[Participant]) -> List[Tuple[int, Participant]]:
    """Positional ranking: score descending, ties keep join order, no shared ranks."""
    ordered = sorted(participants, key=lambda p: -p.score)
    return list(enumerate(ordered, start=1))


def _answer_detail(question: QuestionDef, record: Optional[AnswerRecord]) -> Dict[str, Any]:
    detail = {
        'questionId': question.id,
        'question': question.text,
        'userAnswer': None,
        'correctAnswer': question.correct_answer,
        'isCorrect': False,
        'timeSpent': None,
        'answered': False,
    }
    if record is None or record.auto_saved:
        return detail
    value = record.value
    if isinstance(value, (list, tuple)):
        value = ', '.join(str(v) for v in value)
    detail.update({
        'userAnswer': value,
        'isCorrect': bool(record.is_correct),
        'timeSpent': record.time_spent,
        'answered': True,
    })
    return detail


def build_results(session: LiveSession) -> List[Dict[str, Any]]:
    """Ranked player results covering every question of the quiz."""
    results = []
    for rank, p in rank_participants(session.participants):
        results.append({
            'userId': p.user_id,
            'playerName': p.display_name,
            'avatar': p.avatar_emoji,
            'isGuest': p.is_guest,
            'score': p.score,
            'totalPoints': p.score,
            'rank': rank,
            'answers': [_answer_detail(q, p.answers.get(q.id)) for q in session.quiz.questions],
        })
    return results


class GameEngine:
    def __init__(self, store: SessionStore, catalog: QuizCatalog, history: HistoryRepository,
                 broadcaster, max_players: int = 50,
                 clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.store = store
        self.catalog = catalog
        self.history = history
        self.broadcaster = broadcaster
        self.max_players = max_players
        self._clock = clock
        # quiz id -> listing state before the first live session hid it
        self._hidden_quizzes: Dict[int, bool] = {}
        self._visibility_lock = threading.Lock()

    # ---- helpers ----

    def _publish(self, session_id: str, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.broadcaster.publish(events.GameEvent(session_id, name, payload or {}))

    @staticmethod
    def _require_host(session: LiveSession, host_id: Optional[int], message: str = 'Not authorized') -> None:
        if host_id is None or session.host_id != host_id:
            raise Forbidden(message)

    @staticmethod
    def _require_running(session: LiveSession) -> None:
        if session.status == SessionStatus.WAITING:
            raise InvalidState('Game has not started yet')
        if session.status == SessionStatus.ENDED:
            raise AlreadyEnded('Game has already ended')
        if session.finalizing:
            raise InvalidState('Game is ending')

    @staticmethod
    def _resolve(session: LiveSession, identity: Identity) -> Participant:
        participant = session.find_participant(identity)
        if participant is None:
            raise NotInGame('You are not in this game')
        return participant

    @staticmethod
    def _question(session: LiveSession, question_id: Any) -> QuestionDef:
        if question_id is None or str(question_id).strip() == '':
            raise ValidationError('Please provide question ID')
        question = session.quiz.question(question_id)
        if question is None:
            raise NotFound('Question not found')
        return question

    @staticmethod
    def _time_spent(participant: Participant, question_id: str, reported: Any,
                    now: datetime, cap: Optional[int] = None) -> Optional[float]:
        if isinstance(reported, (int, float)) and not isinstance(reported, bool) and reported >= 0:
            return float(reported)
        started = participant.question_started.get(question_id)
        if started is None:
            return None
        elapsed = max(0.0, (now - started).total_seconds())
        if cap is not None:
            elapsed = min(elapsed, float(cap))
        return round(elapsed, 2)

    def _finalize(self, participant: Participant, question: QuestionDef, value: AnswerValue,
                  now: datetime, time_spent: Optional[float]) -> Tuple[AnswerRecord, int]:
        """Grade once and store as the final answer. Caller holds the session lock."""
        is_correct = evaluate(question, value)
        points = points_for(question, is_correct)
        participant.score += points
        record = participant.answers.get(question.id)
        if record is None:
            record = AnswerRecord(question_id=question.id)
            participant.answers[question.id] = record
        record.value = value
        record.is_correct = is_correct
        record.answered_at = now
        record.time_spent = time_spent
        record.auto_saved = False
        participant.question_started.pop(question.id, None)
        return record, points

    def _finalize_drafts(self, session: LiveSession, questions: Iterable[QuestionDef], now: datetime) -> int:
        finalized = 0
        for participant in session.participants:
            for question in questions:
                record = participant.answers.get(question.id)
                if record is None or not record.auto_saved:
                    continue
                spent = self._time_spent(participant, question.id, None, now, cap=question.time_limit)
                self._finalize(participant, question, record.value, now, spent)
                finalized += 1
        return finalized

    def _hide_quiz(self, quiz: QuizSnapshot) -> None:
        with self._visibility_lock:
            first = quiz.id not in self._hidden_quizzes
            self._hidden_quizzes.setdefault(quiz.id, quiz.was_published)
        if first and quiz.was_published:
            try:
                self.catalog.set_discoverable(quiz.id, False)
            except GameError as exc:
                logger.warning(f"[quiz-visibility] quiz={quiz.id} hide failed: {exc}")

    def _restore_quiz(self, quiz_id: int) -> None:
        if self.store.active_for_quiz(quiz_id):
            return
        with self._visibility_lock:
            was_published = self._hidden_quizzes.pop(quiz_id, None)
        if was_published:
            try:
                self.catalog.set_discoverable(quiz_id, True)
            except GameError as exc:
                logger.warning(f"[quiz-visibility] quiz={quiz_id} restore failed: {exc}")

    # ---- transitions ----

    def create_session(self, quiz_id: Any, host_id: int) -> Dict[str, Any]:
        if quiz_id is None or str(quiz_id).strip() == '':
            raise ValidationError('Please provide quiz ID')
        quiz = self.catalog.load(quiz_id)
        if quiz.owner_id != host_id:
            raise Forbidden('Not authorized to host this quiz')
        session = self.store.create(quiz, host_id, max_players=self.max_players)
        logger.info(f"[create] session={session.id} pin={session.pin} quiz={quiz.id} host={host_id}")
        self._hide_quiz(quiz)
        return {
            'sessionId': session.id,
            'PIN': session.pin,
            'quizTitle': quiz.title,
            'totalQuestions': session.total_questions,
        }

    def join(self, pin: Any, display_name: Any, avatar: Any = None,
             user_id: Optional[int] = None) -> Dict[str, Any]:
        if not pin or display_name is None:
            raise ValidationError('Please provide PIN and player name')
        name = display_name.strip() if isinstance(display_name, str) else ''
        name = name[:MAX_NAME_LENGTH].rstrip()
        session = self.store.find_by_pin(str(pin))
        with self.store.locked(session.id) as s:
            if s.status == SessionStatus.RUNNING:
                raise AlreadyStarted('Game has already started')
            if s.status == SessionStatus.ENDED:
                raise AlreadyEnded('Game has already ended')
            if user_id is not None and any(p.user_id == user_id for p in s.participants):
                raise DuplicateParticipant('You already joined this game')
            if not name:
                name = _default_name(s.participants)
            lowered = name.lower()
            for p in s.participants:
                # A guest is only addressable by name, so names involving guests must be unique
                if (user_id is None or p.is_guest) and p.display_name.lower() == lowered:
                    raise DuplicateParticipant(f'The name "{name}" is already taken in this game')
            if len(s.participants) >= s.max_players:
                raise Full('Game is full')
            now = self._clock()
            participant = Participant(
                display_name=name,
                user_id=user_id,
                avatar=normalize_avatar(avatar),
                is_guest=user_id is None,
                joined_at=now,
            )
            s.participants.append(participant)
            s.touch(now)
            total = len(s.participants)
            result = {
                'sessionId': s.id,
                'PIN': s.pin,
                'totalPlayers': total,
                'status': s.status.value,
                'isGuest': participant.is_guest,
                'playerId': participant.id,
            }
        logger.info(f"[join] session={session.id} player={name} guest={user_id is None} total={total}")
        self._publish(session.id, events.PARTICIPANT_JOINED, {'name': name, 'totalPlayers': total})
        return result

    def get_state(self, session_id: str, viewer_id: Optional[int] = None) -> Dict[str, Any]:
        with self.store.locked(session_id) as s:
            return s.to_dict(include_answers=viewer_id is not None and viewer_id == s.host_id)

    def is_host(self, session_id: str, user_id: Optional[int]) -> bool:
        session = self.store.get(session_id)
        return user_id is not None and session.host_id == user_id

    def start(self, session_id: str, host_id: Optional[int]) -> Dict[str, Any]:
        with self.store.locked(session_id) as s:
            self._require_host(s, host_id, 'Not authorized to start this game')
            if s.status != SessionStatus.WAITING:
                raise InvalidState('Game already started' if s.status == SessionStatus.RUNNING
                                   else 'Game has already ended')
            now = self._clock()
            s.status = SessionStatus.RUNNING
            s.started_at = now
            s.question_started_at = now
            s.current_question_index = 0
            s.touch(now)
            payload = s.to_dict(include_answers=True)
        logger.info(f"[start] session={session_id} players={len(payload['players'])}")
        self._publish(session_id, events.GAME_STARTED, {
            'currentQuestionIndex': payload['currentQuestionIndex'],
            'totalQuestions': payload['totalQuestions'],
            'questionStartedAt': payload['questionStartedAt'],
        })
        return payload

    def save_draft(self, session_id: str, identity: Identity, question_id: Any,
                   value: AnswerValue) -> Dict[str, Any]:
        """Remember a provisional answer; never scores, never touches a final answer."""
        with self.store.locked(session_id) as s:
            participant = self._resolve(s, identity)
            question = self._question(s, question_id)
            record = participant.answers.get(question.id)
            if record is not None and not record.auto_saved:
                return {'saved': True, 'alreadyAnswered': True}
            self._require_running(s)
            now = self._clock()
            participant.question_started.setdefault(question.id, now)
            if record is None:
                participant.answers[question.id] = AnswerRecord(question_id=question.id, value=value)
            else:
                record.value = value
            s.touch(now)
        return {'saved': True}

    def submit(self, session_id: str, identity: Identity, question_id: Any, value: AnswerValue,
               time_spent: Any = None) -> Dict[str, Any]:
        with self.store.locked(session_id) as s:
            participant = self._resolve(s, identity)
            question = self._question(s, question_id)
            record = participant.answers.get(question.id)
            if record is not None and not record.auto_saved:
                # Replay of a final answer: report it, do not score again
                return {
                    'isCorrect': bool(record.is_correct),
                    'pointsAwarded': points_for(question, bool(record.is_correct)),
                    'currentScore': participant.score,
                    'timeSpent': record.time_spent,
                    'alreadyAnswered': True,
                }
            self._require_running(s)
            now = self._clock()
            spent = self._time_spent(participant, question.id, time_spent, now)
            record, points = self._finalize(participant, question, value, now, spent)
            s.touch(now)
            name, score = participant.display_name, participant.score
        logger.info(f"[answer] session={session_id} player={name} question={question.id} "
                    f"correct={record.is_correct} score={score}")
        self._publish(session_id, events.ANSWER_SUBMITTED, {
            'name': name,
            'questionId': question.id,
            'isCorrect': record.is_correct,
            'score': score,
        })
        return {
            'isCorrect': record.is_correct,
            'pointsAwarded': points,
            'currentScore': score,
            'timeSpent': spent,
            'alreadyAnswered': False,
        }

    def advance(self, session_id: str, host_id: Optional[int]) -> Dict[str, Any]:
        """Move to the next question, or end the game when on the last one."""
        with self.store.locked(session_id) as s:
            self._require_host(s, host_id)
            self._require_running(s)
            now = self._clock()
            current = s.current_question
            if current is not None:
                finalized = self._finalize_drafts(s, [current], now)
                if finalized:
                    logger.info(f"[auto-submit] session={session_id} question={current.id} drafts={finalized}")
            if s.current_question_index >= s.total_questions - 1:
                record, results = self._begin_end(s, now)
                payload = None
            else:
                s.current_question_index += 1
                s.question_started_at = now
                s.touch(now)
                payload = {
                    'currentQuestionIndex': s.current_question_index,
                    'totalQuestions': s.total_questions,
                }
                question_id = s.current_question.id
        if payload is None:
            ended = self._complete_end(session_id, record, results)
            return {'gameEnded': True, **ended}
        logger.info(f"[next_question] session={session_id} index={payload['currentQuestionIndex']}")
        self._publish(session_id, events.QUESTION_CHANGED, {
            'index': payload['currentQuestionIndex'],
            'questionId': question_id,
        })
        return payload

    def end(self, session_id: str, host_id: Optional[int]) -> Dict[str, Any]:
        with self.store.locked(session_id) as s:
            self._require_host(s, host_id)
            if s.status == SessionStatus.ENDED:
                raise InvalidState('Game has already ended')
            if s.status == SessionStatus.WAITING:
                raise InvalidState('Game has not started yet')
            if s.finalizing:
                raise InvalidState('Game is already ending')
            record, results = self._begin_end(s, self._clock())
        return self._complete_end(session_id, record, results)

    def _begin_end(self, session: LiveSession, now: datetime) -> Tuple[HistoryRecord, Dict[str, Any]]:
        """Finalize every draft and freeze the ranking. Caller holds the session lock."""
        finalized = self._finalize_drafts(session, session.quiz.questions, now)
        if finalized:
            logger.info(f"[auto-submit] session={session.id} drafts={finalized} (game end)")
        players = build_results(session)
        session.finalizing = True
        record = HistoryRecord(
            session_id=session.id,
            host_id=session.host_id,
            quiz_id=session.quiz.id,
            quiz_title=session.quiz.title,
            pin=session.pin,
            player_results=tuple(players),
            total_players=len(session.participants),
            started_at=session.started_at,
            ended_at=now,
        )
        results = {'players': players, 'quiz': {'id': session.quiz.id, 'title': session.quiz.title}}
        return record, results

    def _complete_end(self, session_id: str, record: HistoryRecord,
                      results: Dict[str, Any]) -> Dict[str, Any]:
        try:
            history_id = self.history.record(record)
        except Exception:
            # Leave the game running so the host can retry
            with suppress(NotFound), self.store.locked(session_id) as s:
                s.finalizing = False
            logger.exception(f"[finish-failed] session={session_id}")
            raise
        with self.store.locked(session_id) as s:
            s.status = SessionStatus.ENDED
            s.ended_at = record.ended_at
            s.history_id = history_id
            s.finalizing = False
            s.touch(record.ended_at)
            self.store.retire_pin(s)
        logger.info(f"[finish] session={session_id} history={history_id} players={record.total_players}")
        self._publish(session_id, events.GAME_ENDED, {'results': results, 'historyId': history_id})
        self._restore_quiz(record.quiz_id)
        return {'results': results, 'historyId': history_id}

    def leave(self, session_id: str, identity: Identity) -> Dict[str, Any]:
        with self.store.locked(session_id) as s:
            participant = self._resolve(s, identity)
            if s.status == SessionStatus.ENDED:
                raise AlreadyEnded('Game has already ended')
            if s.status == SessionStatus.WAITING:
                s.participants.remove(participant)
            s.touch(self._clock())
            total = len(s.participants)
        logger.info(f"[leave] session={session_id} player={participant.display_name} total={total}")
        self._publish(session_id, events.PARTICIPANT_LEFT, {
            'name': participant.display_name,
            'totalPlayers': total,
        })
        return {'left': True, 'totalPlayers': total}

    def teardown(self, session_id: str) -> bool:
        """Drop a session whose host went away. Ended sessions are kept."""
        with self.store.locked(session_id) as s:
            if s.status == SessionStatus.ENDED or s.finalizing:
                return False
            self.store.remove(session_id)
            quiz_id = s.quiz.id
        logger.info(f"[teardown] session={session_id} reason=host-disconnected")
        self._publish(session_id, events.HOST_DISCONNECTED, {'sessionId': session_id})
        self._restore_quiz(quiz_id)
        return True

    def sweep(self) -> int:
        removed = self.store.sweep()
        for session in removed:
            self._restore_quiz(session.quiz.id)
        return len(removed)
