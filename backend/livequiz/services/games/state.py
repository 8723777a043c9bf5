"""In-memory live game state.

These objects are owned by the session store and only mutated while the
owning session's lock is held.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
import uuid

Scalar = Union[str, int, float, bool, None]
AnswerValue = Union[Scalar, List[Scalar]]

DEFAULT_AVATAR = '👤'
DEFAULT_NAME = 'Player'
# Width of the player name column in game history
MAX_NAME_LENGTH = 64


class QuestionType(str, Enum):
    SINGLE_CHOICE = 'single-choice'
    MULTIPLE_CHOICE = 'multiple-choice'
    TRUE_FALSE = 'true-false'
    SHORT_ANSWER = 'short-answer'

    @classmethod
    def parse(cls, label: Optional[str]) -> Optional['QuestionType']:
        """Map a stored type label (including legacy labels) to a type.

        Returns None for labels we do not recognise; such questions are
        graded by the shape of their correct answer.
        """
        if not label:
            return None
        return _TYPE_ALIASES.get(label.strip().lower())


_TYPE_ALIASES = {
    'single-choice': QuestionType.SINGLE_CHOICE,
    'pilihan ganda': QuestionType.SINGLE_CHOICE,
    'multiple-choice': QuestionType.MULTIPLE_CHOICE,
    'multiple-answer': QuestionType.MULTIPLE_CHOICE,
    'true-false': QuestionType.TRUE_FALSE,
    'benar salah': QuestionType.TRUE_FALSE,
    'short-answer': QuestionType.SHORT_ANSWER,
    'isian': QuestionType.SHORT_ANSWER,
}


class SessionStatus(str, Enum):
    WAITING = 'waiting'
    RUNNING = 'running'
    ENDED = 'ended'


@dataclass(frozen=True)
class QuestionDef:
    id: str
    text: str
    question_type: Optional[QuestionType]
    options: Tuple[str, ...] = ()
    correct_answer: Any = None
    accepted_answers: Tuple[str, ...] = ()
    points: int = 1
    time_limit: int = 30

    def to_dict(self, include_answers: bool = True) -> Dict[str, Any]:
        payload = {
            'id': self.id,
            'question': self.text,
            'questionType': self.question_type.value if self.question_type else None,
            'options': list(self.options),
            'points': self.points,
            'timeLimit': self.time_limit,
        }
        if include_answers:
            payload['correctAnswer'] = self.correct_answer
            payload['acceptedAnswers'] = list(self.accepted_answers)
        return payload


@dataclass(frozen=True)
class QuizSnapshot:
    """Question set captured when a session is created."""

    id: int
    title: str
    owner_id: int
    questions: Tuple[QuestionDef, ...]
    # Listing state before the session hid it; restored when the PIN goes away
    was_published: bool = False

    def question(self, question_id: Any) -> Optional[QuestionDef]:
        key = str(question_id)
        for q in self.questions:
            if q.id == key:
                return q
        return None

    def to_dict(self, include_answers: bool = True) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'questions': [q.to_dict(include_answers) for q in self.questions],
        }


@dataclass
class AnswerRecord:
    question_id: str
    value: AnswerValue = None
    is_correct: Optional[bool] = None
    answered_at: Optional[datetime] = None
    time_spent: Optional[float] = None
    auto_saved: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'questionId': self.question_id,
            'answer': self.value,
            'isCorrect': self.is_correct,
            'answeredAt': _iso(self.answered_at),
            'timeSpent': self.time_spent,
            'autoSaved': self.auto_saved,
        }


@dataclass
class Identity:
    """Who is calling: an authenticated user id, a guest display name, or both."""

    user_id: Optional[int] = None
    display_name: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


@dataclass
class Participant:
    display_name: str
    user_id: Optional[int] = None
    avatar: Any = DEFAULT_AVATAR
    is_guest: bool = False
    score: int = 0
    joined_at: datetime = field(default_factory=datetime.utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    # question id -> record; insertion order is first-touch order
    answers: Dict[str, AnswerRecord] = field(default_factory=dict)
    # question id -> when this participant first touched it (timer recovery)
    question_started: Dict[str, datetime] = field(default_factory=dict)

    @property
    def avatar_emoji(self) -> str:
        if isinstance(self.avatar, dict):
            return self.avatar.get('emoji') or DEFAULT_AVATAR
        return self.avatar or DEFAULT_AVATAR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'playerName': self.display_name,
            'avatar': self.avatar,
            'isGuest': self.is_guest,
            'score': self.score,
            'joinedAt': _iso(self.joined_at),
            'answers': [a.to_dict() for a in self.answers.values()],
        }


@dataclass
class LiveSession:
    quiz: QuizSnapshot
    host_id: int
    pin: str
    max_players: int = 50
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SessionStatus = SessionStatus.WAITING
    current_question_index: int = 0
    question_started_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_activity_at: datetime = field(default_factory=datetime.utcnow)
    participants: List[Participant] = field(default_factory=list)
    history_id: Optional[int] = None
    # Set while End is persisting history; blocks further mutation
    finalizing: bool = False

    @property
    def total_questions(self) -> int:
        return len(self.quiz.questions)

    @property
    def current_question(self) -> Optional[QuestionDef]:
        if 0 <= self.current_question_index < self.total_questions:
            return self.quiz.questions[self.current_question_index]
        return None

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity_at = now or datetime.utcnow()

    def find_participant(self, identity: Identity) -> Optional[Participant]:
        """Resolve by user id first, then by case-insensitive display name."""
        if identity.user_id is not None:
            for p in self.participants:
                if p.user_id == identity.user_id:
                    return p
        name = (identity.display_name or '').strip().lower()
        if name:
            for p in self.participants:
                if p.display_name.lower() == name:
                    return p
        return None

    def to_dict(self, include_answers: bool = True) -> Dict[str, Any]:
        current = self.current_question
        return {
            'id': self.id,
            'PIN': self.pin,
            'hostId': self.host_id,
            'status': self.status.value,
            'currentQuestionIndex': self.current_question_index,
            'currentQuestionId': current.id if current else None,
            'totalQuestions': self.total_questions,
            'questionStartedAt': _iso(self.question_started_at),
            'startedAt': _iso(self.started_at),
            'endedAt': _iso(self.ended_at),
            'createdAt': _iso(self.created_at),
            'maxPlayers': self.max_players,
            'totalPlayers': len(self.participants),
            'quiz': self.quiz.to_dict(include_answers),
            'players': [p.to_dict() for p in self.participants],
            'historyId': self.history_id,
        }


@dataclass(frozen=True)
class HistoryRecord:
    """Final snapshot of an ended session, handed to history storage once."""

    session_id: str
    host_id: int
    quiz_id: int
    quiz_title: str
    pin: str
    player_results: Tuple[Dict[str, Any], ...]
    total_players: int
    started_at: Optional[datetime]
    ended_at: Optional[datetime]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
