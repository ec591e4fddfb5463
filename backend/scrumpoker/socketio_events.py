from flask import current_app, request
from flask_socketio import emit

from scrumpoker import socketio
from scrumpoker.protocol import INBOUND_EVENTS, OTHERS, ROOM, SENDER


def room_channel(room_code: str) -> str:
    return f"room:{room_code}"


class SocketIOBroadcaster:
    """Delivers notices over Socket.IO, one channel per room."""

    def __init__(self, sio, namespace: str):
        self.sio = sio
        self.namespace = namespace

    def enter(self, sid: str, room_code: str) -> None:
        self.sio.server.enter_room(sid, room_channel(room_code), namespace=self.namespace)

    def exit(self, sid: str, room_code: str) -> None:
        self.sio.server.leave_room(sid, room_channel(room_code), namespace=self.namespace)

    def deliver(self, notices, sid=None) -> None:
        for notice in notices:
            if notice.scope == SENDER:
                if sid is not None:
                    self.sio.emit(notice.event, notice.payload, to=sid, namespace=self.namespace)
            elif notice.scope == OTHERS:
                self.sio.emit(notice.event, notice.payload, to=room_channel(notice.room),
                              skip_sid=sid, namespace=self.namespace)
            elif notice.scope == ROOM:
                self.sio.emit(notice.event, notice.payload, to=room_channel(notice.room), namespace=self.namespace)


def _services():
    return current_app.extensions['scrumpoker']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    current_app.logger.info(f"[connect] sid={_get_sid()}")


def handle_disconnect(reason=None):
    _services().dispatcher.disconnect(_get_sid())


def _make_event_handler(event: str):
    def handler(data=None):
        _services().dispatcher.handle(_get_sid(), event, data)
    handler.__name__ = f"handle_{event.replace('-', '_')}"
    return handler


def handle_error(exc):
    # Last resort: the dispatcher already turns event failures into notices
    current_app.logger.exception(f"[socket-error] sid={_get_sid()}")
    emit('error', {'message': 'Something went wrong'})


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``.

    Every inbound room event is routed through the app's dispatcher.
    """
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    for event in INBOUND_EVENTS:
        socketio.on_event(event, _make_event_handler(event), namespace=namespace)
    socketio.on_error(namespace)(handle_error)
