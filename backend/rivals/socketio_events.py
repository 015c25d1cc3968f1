from flask import current_app, request

from rivals import socketio


def _server():
    return current_app.extensions['rivals']


def handle_connect(auth=None):
    _server().connect(_get_sid(), request.namespace)


def handle_disconnect(reason=None):
    # Host: room survives for the grace period. Guest: slot freed now.
    _server().disconnect(_get_sid())


def handle_message(data):
    _server().handle_message(_get_sid(), data)


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def emit_to_connection(conn, payload) -> None:
    # socketio.emit since this may be called from a background task
    socketio.emit('message', payload, to=conn.id, namespace=conn.namespace)


def run_in_background(fn, *args) -> None:
    socketio.start_background_task(fn, *args)


def schedule_later(delay_sec: float, fn, *args) -> None:
    def _runner():
        if delay_sec > 0:
            socketio.sleep(delay_sec)
        fn(*args)

    socketio.start_background_task(_runner)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for ns in namespaces:
        socketio.on_event('connect', handle_connect, namespace=ns)
        socketio.on_event('disconnect', handle_disconnect, namespace=ns)
        socketio.on_event('message', handle_message, namespace=ns)
