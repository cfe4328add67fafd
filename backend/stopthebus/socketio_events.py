from flask import current_app, request
from flask_socketio import emit

from stopthebus import socketio
from stopthebus.services.rooms.broadcast import NAMESPACE, room_channel
from stopthebus.services.rooms.codes import normalize_code
from stopthebus.services.rooms.errors import InvalidInput, RoomError
from stopthebus.services.rooms.scheduler import cancel_idle_eviction, schedule_idle_eviction


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _hub():
    return current_app.extensions['room_hub']


def _engine():
    return current_app.extensions['room_engine']


def _code_from(data) -> str:
    code = (data or {}).get('code') if isinstance(data, dict) else None
    if not isinstance(code, str) or not code.strip():
        raise InvalidInput('code is required')
    return normalize_code(code)


def _emit_error(exc: RoomError) -> None:
    emit('error', exc.to_dict())


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    app = current_app._get_current_object()
    for code in _hub().drop(_get_sid()):
        schedule_idle_eviction(app, code)


def handle_subscribe(data):
    try:
        code = _code_from(data)
        # Under the room lock so a pending idle eviction sees the new subscriber
        with _engine().store.locked(code):
            _hub().subscribe(_get_sid(), code)
            cancel_idle_eviction(code)
        view = _engine().get_room_view(code)
    except RoomError as exc:
        _emit_error(exc)
        return
    # Send the current view so a reconnecting client can reconcile missed events
    emit('subscribed', {'room': room_channel(code), 'view': view})


def handle_unsubscribe(data):
    try:
        code = _code_from(data)
    except RoomError as exc:
        _emit_error(exc)
        return
    remaining = _hub().unsubscribe(_get_sid(), code)
    emit('unsubscribed', {'room': room_channel(code)})
    if remaining == 0:
        schedule_idle_eviction(current_app._get_current_object(), code)


def handle_get_room_view(data):
    try:
        view = _engine().get_room_view(_code_from(data))
    except RoomError as exc:
        _emit_error(exc)
        return
    emit('room_view', view)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('subscribe', handle_subscribe, namespace=NAMESPACE)
    socketio.on_event('unsubscribe', handle_unsubscribe, namespace=NAMESPACE)
    socketio.on_event('get_room_view', handle_get_room_view, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
