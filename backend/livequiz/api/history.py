from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from livequiz.errors import GameError


history = Blueprint('history', __name__)


def _repository():
    return current_app.extensions['livequiz.engine'].history


@history.errorhandler(GameError)
def handle_game_error(exc: GameError):
    return jsonify(exc.to_dict()), exc.status_code


@history.route('/mine', methods=['GET'])
@login_required
def my_games():
    """Games the current user hosted or played in, newest first."""
    return jsonify(_repository().for_user(current_user.id))


@history.route('/<int:history_id>', methods=['GET'])
def get_history(history_id):
    return jsonify(_repository().get(history_id))
