from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
import time

from livequiz.errors import GameError
from livequiz.services.games.state import Identity


games = Blueprint('games', __name__)

_last_controller_action: dict[str, float] = {}


def _engine():
    return current_app.extensions['livequiz.engine']


def _current_user_id():
    return current_user.id if current_user.is_authenticated else None


def _identity(data) -> Identity:
    name = data.get('displayName') or data.get('playerName')
    return Identity(user_id=_current_user_id(), display_name=name)


def _debounced(action: str, session_id: str) -> bool:
    """True if the same host action arrived inside CONTROLLER_DEBOUNCE_MS."""
    try:
        debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    except (TypeError, ValueError):
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    key = f"{action}:{session_id}:{_current_user_id()}"
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    _last_controller_action[key] = now
    return False


@games.errorhandler(GameError)
def handle_game_error(exc: GameError):
    if exc.status_code >= 500:
        current_app.logger.warning(f"[{exc.kind}] {request.method} {request.path}: {exc.message}")
    return jsonify(exc.to_dict()), exc.status_code


@games.route('/create-session', methods=['POST'])
@login_required
def create_session():
    data = request.get_json(silent=True) or {}
    created = _engine().create_session(data.get('quizId'), current_user.id)
    return jsonify(created), 201


@games.route('/join', methods=['POST'])
def join_session():
    data = request.get_json(silent=True) or {}
    joined = _engine().join(
        data.get('PIN') or data.get('pin'),
        data.get('displayName', data.get('playerName')),
        avatar=data.get('avatar'),
        user_id=_current_user_id(),
    )
    return jsonify(joined), 200


@games.route('/session/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(_engine().get_state(session_id, viewer_id=_current_user_id()))


@games.route('/session/<string:session_id>/start', methods=['POST'])
@login_required
def start_session(session_id):
    if _debounced('start', session_id):
        return jsonify({'message': 'debounced'}), 202
    return jsonify(_engine().start(session_id, current_user.id))


@games.route('/session/<string:session_id>/save-draft', methods=['POST'])
def save_draft(session_id):
    data = request.get_json(silent=True) or {}
    saved = _engine().save_draft(session_id, _identity(data), data.get('questionId'), data.get('value'))
    return jsonify(saved)


@games.route('/session/<string:session_id>/submit', methods=['POST'])
def submit_answer(session_id):
    data = request.get_json(silent=True) or {}
    value = data['value'] if 'value' in data else data.get('answer')
    result = _engine().submit(
        session_id,
        _identity(data),
        data.get('questionId'),
        value,
        time_spent=data.get('timeSpent'),
    )
    return jsonify(result)


@games.route('/session/<string:session_id>/advance', methods=['POST'])
@login_required
def advance_question(session_id):
    if _debounced('advance', session_id):
        return jsonify({'message': 'debounced'}), 202
    return jsonify(_engine().advance(session_id, current_user.id))


@games.route('/session/<string:session_id>/end', methods=['POST'])
@login_required
def end_session(session_id):
    return jsonify(_engine().end(session_id, current_user.id))


@games.route('/session/<string:session_id>/leave', methods=['POST'])
def leave_session(session_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_engine().leave(session_id, _identity(data)))
