from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from flask_login import current_user
from livequiz import socketio
from livequiz.errors import GameError
from livequiz.services.games.events import session_room
from livequiz.services.games.state import Identity
from typing import Dict, Any
import time


_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_host_count: Dict[str, int] = {}
_teardown_deadline: Dict[str, float] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _engine():
    return current_app.extensions['livequiz.engine']


def _current_user_id():
    return current_user.id if current_user.is_authenticated else None


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # If this socket was the last host connection for a session, tear the
    # session down (after a grace period outside tests)
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx or not ctx.get('is_host'):
        return
    session_id = ctx['session_id']
    _host_count[session_id] = max(0, _host_count.get(session_id, 0) - 1)
    if current_app.config.get('TESTING'):
        if _host_count.get(session_id, 0) == 0:
            _teardown(session_id)
        return
    grace = float(current_app.config.get('HOST_DISCONNECT_GRACE_SEC', 2.0))
    _schedule_teardown_if_no_host(current_app._get_current_object(), session_id, grace)


def handle_join_session(data):
    session_id = (data or {}).get('sessionId')
    if not session_id:
        emit('error', {'error': 'sessionId is required', 'kind': 'ValidationError'})
        return
    try:
        is_host = _engine().is_host(session_id, _current_user_id())
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    room = session_room(session_id)
    join_room(room)
    # Track host presence and socket context
    _sid_to_ctx[_get_sid()] = {
        'session_id': session_id,
        'is_host': is_host,
        'display_name': (data or {}).get('displayName'),
    }
    if is_host:
        _host_count[session_id] = _host_count.get(session_id, 0) + 1
        _cancel_scheduled_teardown(session_id)
    emit('joined', {'room': room, 'isHost': is_host})


def handle_leave_session(data):
    session_id = (data or {}).get('sessionId')
    if not session_id:
        emit('error', {'error': 'sessionId is required', 'kind': 'ValidationError'})
        return
    room = session_room(session_id)
    ctx = _sid_to_ctx.pop(_get_sid(), None) or {}
    if ctx.get('is_host') and ctx.get('session_id') == session_id:
        # Explicit host quit: end immediately
        leave_room(room)
        emit('left', {'room': room})
        _host_count[session_id] = max(0, _host_count.get(session_id, 0) - 1)
        _teardown(session_id)
        return
    identity = Identity(user_id=_current_user_id(),
                        display_name=(data or {}).get('displayName') or ctx.get('display_name'))
    try:
        _engine().leave(session_id, identity)
    except GameError as exc:
        emit('error', exc.to_dict())
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


# ---- Host lifecycle helpers ----

def _teardown(session_id: str) -> None:
    """Drop the live session; the engine publishes host-disconnected to the room."""
    try:
        _engine().teardown(session_id)
    except GameError as exc:
        current_app.logger.info(f"[teardown-skip] session={session_id} {exc.kind}")
    finally:
        _host_count.pop(session_id, None)
        _teardown_deadline.pop(session_id, None)


def _schedule_teardown_if_no_host(app, session_id: str, delay_sec: float) -> None:
    if _host_count.get(session_id, 0) > 0:
        return
    _teardown_deadline[session_id] = time.time() + delay_sec

    def _runner(sid: str, deadline: float):
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            time.sleep(sleep_for)
        if _host_count.get(sid, 0) == 0 and _teardown_deadline.get(sid) == deadline:
            with app.app_context():
                _teardown(sid)

    socketio.start_background_task(_runner, session_id, _teardown_deadline[session_id])


def _cancel_scheduled_teardown(session_id: str) -> None:
    _teardown_deadline.pop(session_id, None)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_session', handle_join_session, namespace=namespace)
        socketio.on_event('leave_session', handle_leave_session, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
