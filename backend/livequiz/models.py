from livequiz import db, bcrypt
from flask_login import UserMixin
from datetime import datetime
import json


def _dump(value):
    return json.dumps(value) if value is not None else None


def _load(raw, default=None):
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    is_published = db.Column(db.Boolean, default=False, nullable=False)
    questions = db.relationship('Question', back_populates='quiz', order_by='Question.order_index',
                                cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'owner_id': self.owner_id,
            'is_published': self.is_published,
            'questions': [q.to_dict() for q in self.questions],
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    # single-choice, multiple-choice, true-false, short-answer (legacy labels accepted)
    question_type = db.Column(db.String(32), default='single-choice', nullable=False)
    options = db.Column(db.Text, nullable=True)  # JSON-encoded list of option texts
    correct_answer = db.Column(db.Text, nullable=True)  # JSON-encoded index, list, bool or text
    accepted_answers = db.Column(db.Text, nullable=True)  # JSON-encoded list of strings
    points = db.Column(db.Integer, default=1, nullable=False)
    time_limit = db.Column(db.Integer, default=30, nullable=False)
    order_index = db.Column(db.Integer, default=0, nullable=False)
    quiz = db.relationship('Quiz', back_populates='questions')

    def __init__(self, **kwargs):
        # Callers pass plain Python values for the JSON-encoded columns
        for key in ('options', 'correct_answer', 'accepted_answers'):
            if key in kwargs:
                kwargs[key] = _dump(kwargs[key])
        super(Question, self).__init__(**kwargs)

    @property
    def option_list(self):
        return _load(self.options, [])

    @property
    def correct_value(self):
        return _load(self.correct_answer)

    @property
    def accepted_list(self):
        return _load(self.accepted_answers, [])

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'question_type': self.question_type,
            'options': self.option_list,
            'correct_answer': self.correct_value,
            'accepted_answers': self.accepted_list,
            'points': self.points,
            'time_limit': self.time_limit,
        }


class GameHistory(db.Model):
    """Immutable record written once when a live session ends."""
    __tablename__ = 'game_history'
    id = db.Column(db.Integer, primary_key=True)
    host_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    quiz_title = db.Column(db.String(200), nullable=True)
    pin = db.Column(db.String(16), nullable=False)
    session_id = db.Column(db.String(64), unique=True, nullable=False)
    player_results = db.Column(db.Text, nullable=False)  # JSON-encoded ranked PlayerResult list
    total_players = db.Column(db.Integer, default=0, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    players = db.relationship('GameHistoryPlayer', back_populates='history', cascade='all, delete-orphan')

    @property
    def results(self):
        return _load(self.player_results, [])

    def to_dict(self):
        return {
            'id': self.id,
            'hostId': self.host_id,
            'quizId': self.quiz_id,
            'quizTitle': self.quiz_title,
            'PIN': self.pin,
            'sessionId': self.session_id,
            'playerResults': self.results,
            'totalPlayers': self.total_players,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'endedAt': self.ended_at.isoformat() if self.ended_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }


class GameHistoryPlayer(db.Model):
    """Per-participant index row so history can be listed by player."""
    __tablename__ = 'game_history_player'
    id = db.Column(db.Integer, primary_key=True)
    history_id = db.Column(db.Integer, db.ForeignKey('game_history.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    rank = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    history = db.relationship('GameHistory', back_populates='players')
