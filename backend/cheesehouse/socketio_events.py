from flask_socketio import join_room, leave_room, emit
from cheesehouse import socketio

DASHBOARD_ROOM = 'dashboard'


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_dashboard(data=None):
    # Staff screens listen here for voucher_issued / voucher_redeemed
    join_room(DASHBOARD_ROOM)
    emit('joined', {'room': DASHBOARD_ROOM})


def handle_leave_dashboard(data=None):
    leave_room(DASHBOARD_ROOM)
    emit('left', {'room': DASHBOARD_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def notify_dashboard(event, payload):
    """Broadcast to staff screens; safe to call from request handlers."""
    socketio.emit(event, payload, to=DASHBOARD_ROOM, namespace='/ws')


def register_socketio_handlers(testing: bool = False) -> None:
    """Attach the dashboard handlers to '/ws' (and '/' as well under tests)."""
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_dashboard', handle_join_dashboard, namespace='/ws')
    socketio.on_event('leave_dashboard', handle_leave_dashboard, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_dashboard', handle_join_dashboard, namespace='/')
        socketio.on_event('leave_dashboard', handle_leave_dashboard, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
