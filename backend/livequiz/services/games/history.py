"""History storage: one immutable GameHistory row per ended session."""

import json
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from livequiz import db
from livequiz.errors import InvalidState, NotFound, Unavailable
from livequiz.models import GameHistory, GameHistoryPlayer

from .state import HistoryRecord


class HistoryRepository:
    def record(self, record: HistoryRecord) -> int:
        """Persist ``record`` and return its id.

        The history row and its per-player index rows are committed together.
        """
        history = GameHistory(
            host_id=record.host_id,
            quiz_id=record.quiz_id,
            quiz_title=record.quiz_title,
            pin=record.pin,
            session_id=record.session_id,
            player_results=json.dumps(list(record.player_results)),
            total_players=record.total_players,
            started_at=record.started_at,
            ended_at=record.ended_at,
        )
        for result in record.player_results:
            history.players.append(GameHistoryPlayer(
                user_id=result.get('userId'),
                player_name=result.get('playerName') or 'Player',
                rank=result['rank'],
                score=result.get('score') or 0,
            ))
        try:
            db.session.add(history)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise InvalidState('History already recorded for this game') from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise Unavailable('Could not save game history') from exc
        return history.id

    def get(self, history_id) -> Dict[str, Any]:
        try:
            key = int(history_id)
        except (TypeError, ValueError):
            raise NotFound('Game results not found')
        try:
            history = db.session.get(GameHistory, key)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise Unavailable('Could not load game history') from exc
        if history is None:
            raise NotFound('Game results not found')
        return history.to_dict()

    def for_user(self, user_id: int) -> Dict[str, Any]:
        """Games the user hosted or played, newest first."""
        try:
            played = (
                GameHistory.query
                .join(GameHistoryPlayer)
                .filter(GameHistoryPlayer.user_id == user_id)
                .distinct()
                .all()
            )
            hosted = GameHistory.query.filter_by(host_id=user_id).all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise Unavailable('Could not load game history') from exc

        player_history = []
        for game in played:
            entry = _summary(game, 'player')
            mine = next((p for p in game.players if p.user_id == user_id), None)
            entry['yourRank'] = mine.rank if mine else 0
            entry['yourScore'] = mine.score if mine else 0
            player_history.append(entry)
        host_history = [_summary(game, 'host') for game in hosted]

        combined = sorted(player_history + host_history, key=lambda e: e['date'] or '', reverse=True)
        return {
            'history': combined,
            'totalGames': len(combined),
            'playerGames': len(player_history),
            'hostGames': len(host_history),
        }


def _summary(game: GameHistory, role: str) -> Dict[str, Any]:
    results: List[Dict[str, Any]] = game.results
    scores = [r.get('score') or 0 for r in results]
    duration = None
    if game.started_at and game.ended_at:
        duration = round((game.ended_at - game.started_at).total_seconds() / 60)
    return {
        'id': game.id,
        'quizTitle': game.quiz_title or 'Unknown Quiz',
        'date': game.completed_at.isoformat() if game.completed_at else None,
        'players': game.total_players,
        'topScore': scores[0] if scores else 0,
        'avgScore': round(sum(scores) / len(scores)) if scores else 0,
        'durationMinutes': duration,
        'PIN': game.pin,
        'role': role,
    }
